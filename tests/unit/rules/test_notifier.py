from __future__ import annotations

from parcel_pulse.io.storage import MemoryStore
from parcel_pulse.models import Notification, NotificationSettings, TrackingRecord
from parcel_pulse.rules.notifier import (
    ChangeDetector,
    format_distance,
    load_notification_settings,
    render_notification,
    save_notification_settings,
)


def _rec(status="IN_TRANSIT", tid="TBA1", **kw):
    return TrackingRecord(tracking_id=tid, status=status, **kw)


def _tags(notifications):
    return [n.tag for n in notifications]


def test_first_observation_is_a_silent_baseline():
    det = ChangeDetector()
    assert det.observe(_rec("DELIVERED", distance_km=0.1, stops_remaining=0)) == []
    assert det.previous("TBA1") is not None


def test_status_sequence_fires_once_per_edge():
    det = ChangeDetector()
    fired = []
    for status in ("IN_TRANSIT", "IN_TRANSIT", "DELIVERED", "DELIVERED"):
        fired.extend(det.observe(_rec(status)))
    assert _tags(fired) == ["status_change", "delivered"]
    assert fired[0].message_params["status"] == "DELIVERED"


def test_proximity_fires_on_downward_crossing_only():
    det = ChangeDetector(NotificationSettings(nearby_km=1.0))
    fired = []
    for d in (2.0, 0.8, 0.5):
        fired.extend(det.observe(_rec(distance_km=d)))
    assert _tags(fired) == ["nearby"]
    assert fired[0].message_params["distance_km"] == 0.8


def test_proximity_rearms_after_moving_away():
    det = ChangeDetector(NotificationSettings(nearby_km=1.0))
    fired = []
    for d in (2.0, 0.8, 3.0, 0.9):
        fired.extend(det.observe(_rec(distance_km=d)))
    assert _tags(fired) == ["nearby", "nearby"]


def test_proximity_prefers_road_distance():
    det = ChangeDetector(NotificationSettings(nearby_km=1.0))
    det.observe(_rec(distance_km=0.5, road_distance_km=2.5))
    fired = det.observe(_rec(distance_km=0.4, road_distance_km=0.9))
    assert _tags(fired) == ["nearby"]
    assert fired[0].message_params["distance_km"] == 0.9


def test_proximity_fires_when_previous_distance_unknown():
    det = ChangeDetector()
    det.observe(_rec())
    assert _tags(det.observe(_rec(distance_km=0.3))) == ["nearby"]


def test_few_stops_threshold_crossing():
    det = ChangeDetector(NotificationSettings(few_stops_count=3))
    fired = []
    for stops in (6, 4, 3, 2, 1):
        fired.extend(det.observe(_rec(stops_remaining=stops)))
    assert _tags(fired) == ["few_stops"]
    assert fired[0].message_params["stops"] == 3


def test_disabled_rules_do_not_fire():
    settings = NotificationSettings(status_change=False, delivered=False, nearby=False, few_stops=False)
    det = ChangeDetector(settings)
    det.observe(_rec("IN_TRANSIT", distance_km=5.0, stops_remaining=9))
    assert det.observe(_rec("DELIVERED", distance_km=0.1, stops_remaining=0)) == []


def test_settings_provider_is_consulted_each_time():
    current = {"s": NotificationSettings(nearby=False)}
    det = ChangeDetector(lambda: current["s"])
    det.observe(_rec(distance_km=5.0))
    assert det.observe(_rec(distance_km=0.5)) == []
    current["s"] = NotificationSettings(nearby_km=10.0)
    # 0.5 -> 0.4 is not a crossing of 10 km because 0.5 is already inside
    assert det.observe(_rec(distance_km=0.4)) == []


def test_baselines_are_per_tracking_id():
    det = ChangeDetector()
    det.observe(_rec("IN_TRANSIT", tid="A"))
    assert det.observe(_rec("DELIVERED", tid="B")) == []
    assert _tags(det.observe(_rec("DELIVERED", tid="A"))) == ["status_change", "delivered"]


def test_forget_resets_baseline():
    det = ChangeDetector()
    det.observe(_rec("IN_TRANSIT"))
    det.forget("TBA1")
    assert det.observe(_rec("DELIVERED")) == []


def test_render_notification_texts():
    title, msg = render_notification(Notification(
        "few_stops", {"tracking_id": "T", "stops": 1, "stops_word": "stop"}, "few_stops"))
    assert title == "Only a few stops left!"
    assert "1 stop left" in msg
    assert format_distance(0.45) == "450 m"
    assert format_distance(2.34) == "2.3 km"


def test_settings_round_trip_through_store():
    store = MemoryStore()
    assert load_notification_settings(store) == NotificationSettings()
    saved = save_notification_settings(store, NotificationSettings(nearby_km=2.5, few_stops=False))
    assert load_notification_settings(store) == saved
    assert saved.nearby_km == 2.5 and saved.few_stops is False


def test_invalid_stored_settings_fall_back_to_defaults():
    store = MemoryStore({"notifSettings": {"nearby_km": "abc", "few_stops_count": 0, "delivered": "yes"}})
    s = load_notification_settings(store)
    assert s.nearby_km == 1.0
    assert s.few_stops_count == 3
    assert s.delivered is True
