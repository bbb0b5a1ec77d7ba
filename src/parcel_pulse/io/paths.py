from __future__ import annotations

from pathlib import Path
from typing import Optional

APP_DIR_NAME = ".parcel_pulse"
STORE_FILENAME = "store.json"
LOG_FILENAME = "parcel_pulse.log"


def app_dir(home: Optional[Path] = None) -> Path:
    return Path(home or Path.home()) / APP_DIR_NAME


def derive_store_paths(store_path: Optional[Path] = None) -> tuple[Path, Path]:
    """
    Return (store_json_path, log_path). The log lives next to the store so a
    custom PARCEL_PULSE_STORE keeps everything in one directory.
    """
    store = Path(store_path).expanduser() if store_path else app_dir() / STORE_FILENAME
    if store.exists() and store.is_dir():
        store = store / STORE_FILENAME
    return store, store.with_name(LOG_FILENAME)
