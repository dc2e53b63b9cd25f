from pathlib import Path

import pytest

from photoingest.services.filter import Filter, MAX_SIZE, is_hidden, is_junk, normalize_extensions


def _touch(p: Path, size: int = 10) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(b"x" * size)
    return p

def test_extensions_are_normalised():
    f = Filter(extensions=["JPG", ".Cr2", " png "])
    assert f.extensions == frozenset({".jpg", ".cr2", ".png"})
    assert normalize_extensions(["", "."]) == frozenset({""})

def test_matches_is_case_insensitive(tmp_path):
    f = Filter(extensions={"jpg"})
    assert f.matches(_touch(tmp_path / "a.JPG"))
    assert f.matches(_touch(tmp_path / "b.jpg"))
    assert not f.matches(_touch(tmp_path / "c.png"))

def test_empty_extension_set_accepts_anything_but_junk(tmp_path):
    f = Filter()
    assert f.matches(_touch(tmp_path / "a.png"))
    assert f.matches(_touch(tmp_path / "README"))
    # sidecars / catalogs / installers are never candidates on their own
    assert not f.matches(_touch(tmp_path / "a.xmp"))
    assert not f.matches(_touch(tmp_path / "cat.lrcat"))
    assert not f.matches(_touch(tmp_path / "setup.exe"))

def test_empty_string_means_extensionless_only(tmp_path):
    f = Filter(extensions={""})
    assert f.matches(_touch(tmp_path / "README"))
    assert not f.matches(_touch(tmp_path / "a.png"))

def test_size_bounds_are_inclusive(tmp_path):
    f = Filter(extensions={"jpg"}, min_size=5, max_size=10)
    assert not f.matches(_touch(tmp_path / "small.jpg", 4))
    assert f.matches(_touch(tmp_path / "lo.jpg", 5))
    assert f.matches(_touch(tmp_path / "hi.jpg", 10))
    assert not f.matches(_touch(tmp_path / "big.jpg", 11))

def test_size_bounds_apply_to_extensionless(tmp_path):
    f = Filter(min_size=100)
    assert not f.matches(_touch(tmp_path / "README", 10))

def test_hidden_files_only_rejected_when_ignored(tmp_path):
    p = _touch(tmp_path / ".hidden.jpg")
    assert not Filter(extensions={"jpg"}).matches(p)
    assert Filter(extensions={"jpg"}, ignore_hidden=False).matches(p)
    assert is_hidden(p)

def test_junk_names_and_folders(tmp_path):
    f = Filter(ignore_hidden=False)
    assert not f.matches(_touch(tmp_path / "IndexerVolumeGuid"))
    assert not f.matches(_touch(tmp_path / "._IMG_0001.JPG"))
    assert not f.matches(_touch(tmp_path / "System Volume Information" / "a.jpg"))
    assert is_junk(Path("/card/.Trashes/501/a.jpg"))
    assert not is_junk(Path("/card/DCIM/100CANON/IMG_0001.CR2"))

def test_excludes_prunes_hidden_dirs(tmp_path):
    f = Filter.images()
    assert f.excludes(tmp_path / ".thumbnails")
    assert f.excludes(tmp_path / "$RECYCLE.BIN")
    assert not f.excludes(tmp_path / "DCIM")

def test_images_preset():
    f = Filter.images()
    assert {".cr2", ".nef", ".dng", ".jpg", ".heic"} <= f.extensions
    assert ".mp4" not in f.extensions
    assert f.ignore_hidden is True
    assert f.max_size == MAX_SIZE

def test_missing_file_raises_oserror(tmp_path):
    with pytest.raises(OSError):
        Filter().matches(tmp_path / "nope.jpg")
