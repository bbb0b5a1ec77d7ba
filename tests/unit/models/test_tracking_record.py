from datetime import datetime, timezone

from parcel_pulse.models import PollUpdate, TrackingRecord, TrackingStatus


def test_effective_distance_prefers_road():
    rec = TrackingRecord("T1", TrackingStatus.IN_TRANSIT.value, distance_km=2.0)
    assert rec.effective_distance_km == 2.0
    rec = TrackingRecord("T1", TrackingStatus.IN_TRANSIT.value, distance_km=2.0, road_distance_km=3.1)
    assert rec.effective_distance_km == 3.1


def test_positions_require_both_coordinates():
    rec = TrackingRecord("T1", "IN_TRANSIT", courier_lat=1.0, dest_lat=2.0, dest_lon=3.0)
    assert not rec.has_courier_position
    assert rec.has_destination


def test_to_dict_drops_raw_and_formats_time():
    ts = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    rec = TrackingRecord("T1", "DELIVERED", last_update=ts, raw={"big": "payload"})
    d = rec.to_dict()
    assert "raw" not in d
    assert d["last_update"] == "2024-05-01T12:00:00+00:00"
    assert d["status"] == "DELIVERED"


def test_raw_ignored_in_equality():
    assert TrackingRecord("T1", "X", raw={"a": 1}) == TrackingRecord("T1", "X", raw={"b": 2})


def test_poll_update_ok():
    assert PollUpdate("T1", TrackingRecord("T1", "X")).ok
    assert not PollUpdate("T1", error="Network error").ok
