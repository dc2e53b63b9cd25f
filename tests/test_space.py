import pytest

from photoingest.core.errors import BackupNotSet, InsufficientSpace
from photoingest.services.engine import IngestorBuilder
from photoingest.services.space import fits_on, needs_from, required_bytes
from photoingest.services.structure import Structure

from helpers import FakeVolumes, names, write


def _builder(src, out, fs, backup=None):
    b = (IngestorBuilder.images()
         .with_structure(Structure.preserve())
         .with_sources([src])
         .with_target(out)
         .with_executor(fs))
    if backup is not None:
        b.with_backup(backup)
    return b

def test_fits_on_is_strict():
    assert not fits_on(100, 100)
    assert fits_on(100, 101)
    assert not fits_on(100, 110, extra=10)

def test_fits_on_same_disk_needs_double():
    assert not fits_on(100, 200, backup_free=200, same_disk=True)
    assert fits_on(100, 201, backup_free=201, same_disk=True)
    assert required_bytes(100, same_disk=True) == 200

def test_fits_on_separate_disks_checks_both():
    assert fits_on(100, 101, backup_free=101)
    assert not fits_on(100, 101, backup_free=100)
    assert not fits_on(100, 100, backup_free=1000)

def test_needs_snapshot():
    n = needs_from(10, 20, 30, True)
    assert n.total == 10 and n.free == 20
    assert n.backup.free == 30 and n.backup.same_disk is True
    assert needs_from(1, 2).backup is None

def test_total_size_counts_matching_files_only(card, tmp_path):
    out = tmp_path / "out"
    ing = _builder(card, out, FakeVolumes({out: 10**9})).build()
    # a.cr2 + a.jpg + b.png; .DS_Store is junk
    assert ing.total_size() == 170
    assert len(ing.files()) == 3

def test_free_space_creates_target(card, tmp_path):
    out = tmp_path / "deep" / "out"
    ing = _builder(card, out, FakeVolumes({out: 500})).build()
    assert ing.free_space() == 500
    assert out.is_dir()

def test_free_space_backup_without_backup(card, tmp_path):
    out = tmp_path / "out"
    ing = _builder(card, out, FakeVolumes({out: 500})).build()
    with pytest.raises(BackupNotSet):
        ing.free_space_backup()

def test_fits_boundary(card, tmp_path):
    out = tmp_path / "out"
    assert not _builder(card, out, FakeVolumes({out: 170})).build().fits()
    assert _builder(card, out, FakeVolumes({out: 171})).build().fits()
    assert not _builder(card, out, FakeVolumes({out: 171})).build().fits_with(1)

def test_same_disk_backup_needs_twice(card, tmp_path):
    out, bak = tmp_path / "out", tmp_path / "bak"
    fs = FakeVolumes({out: 340, bak: 340}, same=True)
    ing = _builder(card, out, fs, backup=bak).build()
    n = ing.needs()
    assert n.backup.same_disk is True
    assert not ing.fits()
    fs.free = {out: 341, bak: 341}
    assert ing.fits()

def test_insufficient_space_copies_nothing(card, tmp_path):
    out = tmp_path / "out"
    ing = _builder(card, out, FakeVolumes({out: 10})).build()
    with pytest.raises(InsufficientSpace) as ei:
        ing.ingest()
    assert ei.value.target == out
    assert names(out) == set()

def test_backup_short_on_space_aborts_before_primary(card, tmp_path):
    out, bak = tmp_path / "out", tmp_path / "bak"
    ing = _builder(card, out, FakeVolumes({out: 10**9, bak: 100}), backup=bak).build()
    with pytest.raises(InsufficientSpace) as ei:
        ing.ingest()
    assert ei.value.target == bak
    assert names(out) == set() and names(bak) == set()
    assert ing.progress.copied == 0
