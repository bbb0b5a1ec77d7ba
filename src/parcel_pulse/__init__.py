# src/parcel_pulse/__init__.py
from .api.credentials import CredentialRefresher
from .api.normalize import normalize_tracking
from .api.tracking import TrackingClient
from .io.session_store import SessionStore
from .pipelines.poller import Poller
from .rules.notifier import ChangeDetector

__all__ = [
    "CredentialRefresher",
    "normalize_tracking",
    "TrackingClient",
    "SessionStore",
    "Poller",
    "ChangeDetector",
]
