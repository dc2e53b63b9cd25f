import pytest

from helpers import write


@pytest.fixture
def card(tmp_path):
    """A memory card: one RAW+JPEG pair, a lone PNG and some junk."""
    src = tmp_path / "card"
    write(src / "a.cr2", b"r" * 100)
    write(src / "a.jpg", b"j" * 50)
    write(src / "b.png", b"p" * 20)
    write(src / ".DS_Store", b"junk")
    return src
