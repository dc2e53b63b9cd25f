from pathlib import Path

import pytest

from photoingest.core.config import CONFIG_ENV, Settings, load_settings
from photoingest.services.filter import Filter
from photoingest.services.rename import Position
from photoingest.services.structure import Layout

SAMPLE = """
[paths]
target = "/Volumes/Photos/2024"
backup = "/Volumes/Backup/2024"
sources = ["/Volumes/EOS_DIGITAL"]

[filter]
preset = "none"
extensions = ["CR3", ".jpg"]
min_size = 1024

[ingest]
structure = "rename"
copy_xmp = false
depth = 3

[rename]
name = "trip"
position = "suffix"
sequence = 10
zeroes = 4
"""


def test_defaults_without_file():
    s = Settings({})
    assert s.structure is Layout.RETAIN
    assert s.target is None and s.backup is None and s.sources == []
    assert s.depth is None
    assert s.dry_run_default is True
    assert s.to_filter() == Filter.images()

def test_load_explicit_path(tmp_path):
    cfg = tmp_path / "photoingest.toml"
    cfg.write_text(SAMPLE, encoding="utf-8")
    s = load_settings(cfg)
    assert s.source == cfg
    assert s.target == Path("/Volumes/Photos/2024")
    assert s.sources == [Path("/Volumes/EOS_DIGITAL")]
    assert s.extensions == {".cr3", ".jpg"}
    assert s.to_filter().extensions == {".cr3", ".jpg"}
    assert s.to_filter().min_size == 1024
    assert s.copy_xmp is False and s.copy_jpg is True
    assert s.depth == 3
    assert s.rename.position is Position.SUFFIX
    assert s.to_structure().rename.file_stem("x.cr3") == "trip-0010"

def test_env_var_wins(tmp_path, monkeypatch):
    cfg = tmp_path / "elsewhere.toml"
    cfg.write_text('[ingest]\nstructure = "preserve"\n', encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV, str(cfg))
    monkeypatch.chdir(tmp_path)
    assert load_settings().structure is Layout.PRESERVE

def test_found_in_parent_dir(tmp_path, monkeypatch):
    (tmp_path / "photoingest.toml").write_text('[ingest]\nheartbeat = 7\n', encoding="utf-8")
    child = tmp_path / "a" / "b"
    child.mkdir(parents=True)
    monkeypatch.delenv(CONFIG_ENV, raising=False)
    monkeypatch.chdir(child)
    s = load_settings()
    assert s.heartbeat == 7
    assert s.source == tmp_path / "photoingest.toml"

def test_preset_images_adds_extensions():
    s = Settings({"filter": {"extensions": ["mp4"]}})
    exts = s.to_filter().extensions
    assert ".mp4" in exts and ".cr2" in exts

def test_bad_values_raise():
    with pytest.raises(ValueError):
        Settings({"ingest": {"structure": "shuffle"}})
    with pytest.raises(ValueError):
        Settings({"filter": {"preset": "videos"}})

def test_to_builder(tmp_path):
    s = Settings({"paths": {"target": str(tmp_path / "out"), "sources": [str(tmp_path)]}})
    ing = s.to_builder().build()
    assert ing.target == tmp_path / "out"
    assert ing.sources == {tmp_path}
    assert ing.structure.is_retained()
