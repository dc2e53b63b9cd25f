from pathlib import Path

import pytest

from photoingest.core.errors import PathPrefixMismatch
from photoingest.utils.paths import avoid_collision, relative_to_root, safe_rel_under


def test_safe_rel_under():
    assert safe_rel_under(Path("/card"), Path("/card/DCIM/a.jpg")) == Path("DCIM/a.jpg")
    assert safe_rel_under(Path("/card"), Path("/other/a.jpg")) is None

def test_relative_to_root_outside_raises():
    with pytest.raises(PathPrefixMismatch):
        relative_to_root(Path("/card"), Path("/elsewhere/a.jpg"))

def test_avoid_collision_free_name_is_kept(tmp_path):
    assert avoid_collision(tmp_path / "a.jpg") == tmp_path / "a.jpg"

def test_avoid_collision_counts_up(tmp_path):
    (tmp_path / "a.jpg").write_bytes(b"1")
    (tmp_path / "a-1.jpg").write_bytes(b"2")
    assert avoid_collision(tmp_path / "a.jpg") == tmp_path / "a-2.jpg"

def test_avoid_collision_custom_exists():
    taken = {Path("/t/a.cr2"), Path("/t/a-1.cr2")}
    assert avoid_collision(Path("/t/a.cr2"), taken.__contains__) == Path("/t/a-2.cr2")
