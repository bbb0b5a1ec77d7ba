from pathlib import Path

from parcel_pulse.io.paths import LOG_FILENAME, STORE_FILENAME, app_dir, derive_store_paths


def test_derive_store_paths_custom_file(tmp_path: Path):
    store, log = derive_store_paths(tmp_path / "state" / "pp.json")
    assert store == tmp_path / "state" / "pp.json"
    assert log == tmp_path / "state" / LOG_FILENAME


def test_derive_store_paths_existing_directory(tmp_path: Path):
    store, log = derive_store_paths(tmp_path)
    assert store == tmp_path / STORE_FILENAME
    assert log.parent == tmp_path


def test_app_dir_under_home(tmp_path: Path):
    assert app_dir(tmp_path) == tmp_path / ".parcel_pulse"
