# src/parcel_pulse/rules/notifier.py
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from parcel_pulse.io.schema import NOTIFICATION_SETTINGS_KEY
from parcel_pulse.io.storage import KeyValueStore
from parcel_pulse.models import Notification, NotificationSettings, TrackingRecord, TrackingStatus
from parcel_pulse.rules.status_mapper import status_label

SettingsProvider = Callable[[], NotificationSettings]

# title_key -> (title, message template)
TEMPLATES: Dict[str, tuple[str, str]] = {
    "status_change": ("Shipment status changed",
                      "Your shipment {tracking_id} is now: {status_text}"),
    "delivered": ("Package delivered!",
                  "Shipment {tracking_id} has been delivered."),
    "nearby": ("Courier nearby!",
               "The courier is {distance_text} from the destination."),
    "few_stops": ("Only a few stops left!",
                  "The courier has {stops} {stops_word} left before your delivery."),
}


def format_distance(km: float) -> str:
    if km < 1:
        return f"{int(round(km * 1000))} m"
    return f"{km:.1f} km"


def render_notification(n: Notification) -> tuple[str, str]:
    """Return (title, message) for a display collaborator."""
    title, template = TEMPLATES.get(n.title_key, (n.title_key, ""))
    try:
        return title, template.format(**n.message_params)
    except (KeyError, IndexError):
        return title, ""


def _coerce_settings(raw: Any) -> NotificationSettings:
    defaults = NotificationSettings()
    if not isinstance(raw, dict):
        return defaults

    def flag(name: str) -> bool:
        v = raw.get(name, getattr(defaults, name))
        return v if isinstance(v, bool) else getattr(defaults, name)

    try:
        nearby_km = float(raw.get("nearby_km"))
    except (TypeError, ValueError):
        nearby_km = defaults.nearby_km
    try:
        few_stops_count = int(raw.get("few_stops_count"))
    except (TypeError, ValueError):
        few_stops_count = defaults.few_stops_count

    return NotificationSettings(
        status_change=flag("status_change"),
        delivered=flag("delivered"),
        nearby=flag("nearby"),
        few_stops=flag("few_stops"),
        # zero/negative thresholds fall back to the defaults
        nearby_km=nearby_km if nearby_km > 0 else defaults.nearby_km,
        few_stops_count=few_stops_count if few_stops_count > 0 else defaults.few_stops_count,
    )


def load_notification_settings(store: KeyValueStore) -> NotificationSettings:
    return _coerce_settings(store.get(NOTIFICATION_SETTINGS_KEY))


def save_notification_settings(store: KeyValueStore, settings: NotificationSettings) -> NotificationSettings:
    settings = _coerce_settings(settings.to_dict())
    store.set(NOTIFICATION_SETTINGS_KEY, settings.to_dict())
    return settings


class ChangeDetector:
    """Turns successive polls of a shipment into edge-triggered notifications.

    Keeps the previous record per tracking id. The first record for an id is
    only a baseline. After evaluation the current record always becomes the
    new baseline.
    """

    def __init__(
        self,
        settings: Union[NotificationSettings, SettingsProvider, None] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if settings is None:
            settings = NotificationSettings()
        if isinstance(settings, NotificationSettings):
            fixed = settings
            self._settings: SettingsProvider = lambda: fixed
        else:
            self._settings = settings
        self._previous: Dict[str, TrackingRecord] = {}
        self.logger = logger or logging.getLogger("parcel_pulse.rules.notifier")

    def previous(self, tracking_id: str) -> Optional[TrackingRecord]:
        return self._previous.get(tracking_id)

    def forget(self, tracking_id: str) -> None:
        self._previous.pop(tracking_id, None)

    def restore(self, tracking_id: str, record: Optional[TrackingRecord]) -> None:
        """Put back a baseline taken with previous(); None forgets the id."""
        if record is None:
            self.forget(tracking_id)
        else:
            self._previous[tracking_id] = record

    def observe(self, record: TrackingRecord) -> List[Notification]:
        prev = self._previous.get(record.tracking_id)
        self._previous[record.tracking_id] = record
        if prev is None:
            return []

        settings = self._settings()
        fired: List[Notification] = []
        tid = record.tracking_id

        if settings.status_change and record.status and prev.status != record.status:
            fired.append(Notification(
                "status_change",
                {"tracking_id": tid, "status": record.status, "status_text": status_label(record.status)},
                "status_change",
            ))

        delivered = TrackingStatus.DELIVERED.value
        if settings.delivered and record.status == delivered and prev.status != delivered:
            fired.append(Notification("delivered", {"tracking_id": tid}, "delivered"))

        if settings.nearby:
            threshold = settings.nearby_km
            dist = record.effective_distance_km
            prev_dist = prev.effective_distance_km
            if dist is not None and dist <= threshold and (prev_dist is None or prev_dist > threshold):
                fired.append(Notification(
                    "nearby",
                    {"tracking_id": tid, "distance_km": dist, "distance_text": format_distance(dist)},
                    "nearby",
                ))

        if settings.few_stops:
            threshold = settings.few_stops_count
            stops = record.stops_remaining
            prev_stops = prev.stops_remaining
            if stops is not None and stops <= threshold and (prev_stops is None or prev_stops > threshold):
                fired.append(Notification(
                    "few_stops",
                    {"tracking_id": tid, "stops": stops, "stops_word": "stop" if stops == 1 else "stops"},
                    "few_stops",
                ))

        for n in fired:
            self.logger.info("Notification %s for %s", n.tag, tid)
        return fired
