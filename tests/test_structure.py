import pytest

from photoingest.core.errors import JpegHasNoJpeg, MissingComponent, NoAccompanyingJpeg
from photoingest.services.rename import Rename
from photoingest.services.structure import Layout, SidecarTracker, Structure, accompanying_jpeg, pick_jpeg


def test_structure_constructors():
    assert Structure.retain().is_retained()
    assert Structure.preserve().is_preserved()
    s = Structure.renamed(Rename(name="x"))
    assert s.is_renamed() and s.rename.name == "x"
    # a bare RENAME gets a default Rename
    assert Structure(Layout.RENAME).rename == Rename()

def test_accompanying_jpeg_found(tmp_path):
    (tmp_path / "a.cr2").write_bytes(b"raw")
    (tmp_path / "a.jpg").write_bytes(b"jpg")
    assert accompanying_jpeg(tmp_path / "a.cr2") == (tmp_path / "a.jpg").resolve()

def test_accompanying_jpeg_jpeg_spelling(tmp_path):
    (tmp_path / "a.nef").write_bytes(b"raw")
    (tmp_path / "a.jpeg").write_bytes(b"jpg")
    assert accompanying_jpeg(tmp_path / "a.nef").name == "a.jpeg"

def test_accompanying_jpeg_errors(tmp_path):
    (tmp_path / "a.cr2").write_bytes(b"raw")
    with pytest.raises(NoAccompanyingJpeg):
        accompanying_jpeg(tmp_path / "a.cr2")
    with pytest.raises(JpegHasNoJpeg):
        accompanying_jpeg(tmp_path / "a.JPG")
    with pytest.raises(MissingComponent):
        accompanying_jpeg(tmp_path / "README")

def test_tracker_jpeg_first_then_raw(tmp_path):
    t = SidecarTracker()
    j = tmp_path / "a.jpg"
    assert t.sighted(j) is False
    assert t.state(j) is False          # owed a copy
    assert t.delivered(j) is True       # raw brought it along
    assert len(t) == 0

def test_tracker_raw_first_then_jpeg(tmp_path):
    t = SidecarTracker()
    j = tmp_path / "a.jpg"
    assert t.delivered(j) is False
    assert j in t and t.state(j) is True
    assert t.sighted(j) is True
    assert j not in t

def test_tracker_drain_returns_only_owed(tmp_path):
    t = SidecarTracker()
    t.sighted(tmp_path / "b.jpg")
    t.sighted(tmp_path / "a.jpg")
    t.delivered(tmp_path / "c.jpg")
    assert t.drain() == [tmp_path / "a.jpg", tmp_path / "b.jpg"]
    assert len(t) == 0

def test_tracker_second_raw_does_not_reopen_pair(tmp_path):
    # a.cr2 and a.dng both bring a.jpg along; the walk then reaches a.jpg
    t = SidecarTracker()
    j = tmp_path / "a.jpg"
    assert t.delivered(j) is False
    assert t.is_delivered(j)
    assert t.sighted(j) is True
    assert t.is_delivered(j)
    assert t.delivered(j) is True
    assert t.drain() == []

def test_tracker_jpeg_first_then_two_raws(tmp_path):
    t = SidecarTracker()
    j = tmp_path / "a.jpg"
    t.sighted(j)
    assert not t.is_delivered(j)
    t.delivered(j)
    assert t.is_delivered(j) and len(t) == 0
    assert t.drain() == []

def test_pick_jpeg_uses_listed_spelling(tmp_path):
    raw = tmp_path / "a.cr2"
    assert pick_jpeg(raw, [tmp_path / "a.JPG", tmp_path / "b.jpg"]) == tmp_path / "a.JPG"
    assert pick_jpeg(raw, [tmp_path / "a.JPG", tmp_path / "a.jpg"]) == tmp_path / "a.jpg"
    with pytest.raises(NoAccompanyingJpeg):
        pick_jpeg(raw, [tmp_path / "a.xmp", raw])

def test_accompanying_jpeg_keeps_name_from_listing(tmp_path):
    (tmp_path / "a.cr2").write_bytes(b"raw")
    (tmp_path / "a.JPG").write_bytes(b"jpg")
    assert accompanying_jpeg(tmp_path / "a.cr2").name == "a.JPG"
