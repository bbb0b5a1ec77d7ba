# src/parcel_pulse/io/schema.py
from __future__ import annotations


# Top-level keys in the key-value store
SESSIONS_KEY = "sessions"
PENDING_IMPORT_KEY = "pendingImport"
DETECTED_IDS_KEY = "detectedTrackingIds"
NOTIFICATION_SETTINGS_KEY = "notifSettings"
