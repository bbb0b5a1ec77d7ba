import threading

import pytest

from parcel_pulse.errors import InvalidTokenError, MalformedResponseError, NetworkError
from parcel_pulse.models import NotificationSettings, TrackingStatus
from parcel_pulse.pipelines.poller import Poller
from parcel_pulse.rules.notifier import ChangeDetector


def _payload(state="IN_TRANSIT", stops=5, courier=(45.0, 9.0), dest=(45.0, 9.5)):
    return {
        "packageLocationDetails": {
            "trackingObjectState": state,
            "stopsRemaining": stops,
            "transporterDetails": {
                "geoLocation": {"latitude": courier[0], "longitude": courier[1], "locationTime": 1714564800000},
                "transporterSessionState": "ACTIVE",
            },
            "destinationAddress": {"geoLocation": {"latitude": dest[0], "longitude": dest[1]}},
        }
    }


class FakeClient:
    """Stands in for TrackingClient: replays queued payloads or exceptions."""

    def __init__(self, *results, domain="www.amazon.it"):
        self.results = list(results)
        self.domain = domain
        self.calls = []

    def resolve_domain(self, domain=None):
        return domain or self.domain

    def fetch_with_token_retry(self, tracking_id, domain=None):
        self.calls.append((tracking_id, domain))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def _poller(client, ids=("TBA1",), **kw):
    kw.setdefault("detector", ChangeDetector(NotificationSettings()))
    return Poller(list(ids), client=client, **kw)


def test_rejects_empty_ids_and_bad_interval():
    with pytest.raises(ValueError):
        Poller([" ", ""], client=FakeClient(_payload()))
    with pytest.raises(ValueError):
        Poller(["TBA1"], client=FakeClient(_payload()), interval=0)


def test_run_cycle_emits_enriched_update():
    seen = []
    p = _poller(FakeClient(_payload()), on_update=seen.append)
    update = p.run_cycle()
    assert update.ok
    assert seen == [update]
    rec = update.record
    assert rec.status == TrackingStatus.IN_TRANSIT.value
    assert rec.domain == "www.amazon.it"
    assert rec.stops_remaining == 5
    assert rec.distance_km is not None
    # first observation is only a baseline
    assert update.notifications == []


def test_second_cycle_fires_notifications():
    client = FakeClient(_payload(stops=5), _payload(state="OUT_FOR_DELIVERY", stops=2))
    p = _poller(client)
    p.run_cycle()
    update = p.run_cycle()
    tags = [n.tag for n in update.notifications]
    assert tags == ["status_change", "few_stops"]


@pytest.mark.parametrize("exc", [NetworkError("timeout"), InvalidTokenError()])
def test_errors_become_error_updates(exc):
    update = _poller(FakeClient(exc)).run_cycle()
    assert not update.ok
    assert update.record is None
    assert update.error == exc.user_message


def test_unexpected_error_is_reported_not_raised():
    update = _poller(FakeClient(KeyError("boom"))).run_cycle()
    assert not update.ok
    assert "boom" in update.error


def test_malformed_response_becomes_unknown_record():
    def bad_normalizer(raw, *, tracking_id, domain=None):
        raise MalformedResponseError("shape")

    update = _poller(FakeClient(_payload()), normalizer=bad_normalizer).run_cycle()
    assert update.ok
    assert update.record.status == TrackingStatus.UNKNOWN.value
    assert update.record.reason == MalformedResponseError.user_message


def test_record_with_reason_does_not_move_baseline():
    detector = ChangeDetector(NotificationSettings())
    client = FakeClient(_payload(stops=5), {"value": {"status": "DELIVERED"}}, _payload(stops=5))
    p = _poller(client, detector=detector)
    p.run_cycle()
    no_gps = p.run_cycle()
    assert no_gps.record.reason is not None
    assert no_gps.notifications == []
    assert detector.previous("TBA1").stops_remaining == 5
    assert p.run_cycle().notifications == []


def test_handler_failure_does_not_break_cycle():
    def explode(update):
        raise RuntimeError("display gone")

    update = _poller(FakeClient(_payload()), on_update=explode).run_cycle()
    assert update.ok


def test_cancelled_cycle_is_discarded():
    seen = []
    p = _poller(FakeClient(_payload()), on_update=seen.append)
    p.stop()
    assert p.run_cycle() is None
    assert seen == []


def test_select_by_index_and_id():
    client = FakeClient(_payload())
    p = _poller(client, ids=("A", "B"))
    assert p.active_tracking_id == "A"
    p.select(1)
    assert p.active_tracking_id == "B"
    p.select("C")
    assert p.tracking_ids == ["A", "B", "C"]
    assert p.active_tracking_id == "C"
    assert [c[0] for c in client.calls] == ["B", "C"]
    with pytest.raises(IndexError):
        p.select(5)


def test_refresh_now_resets_countdown_and_fetches():
    client = FakeClient(_payload())
    p = _poller(client, interval=30)
    update = p.refresh_now()
    assert update.ok
    assert p.seconds_until_refresh == 30
    assert len(client.calls) == 1


def test_explicit_domain_is_passed_to_client():
    client = FakeClient(_payload())
    _poller(client, domain="www.amazon.de").run_cycle()
    assert client.calls == [("TBA1", "www.amazon.de")]


def test_start_polls_repeatedly_until_stopped():
    two_cycles = threading.Event()
    seen = []

    def on_update(update):
        seen.append(update)
        if len(seen) >= 2:
            two_cycles.set()

    p = _poller(FakeClient(_payload()), on_update=on_update, interval=0.05, countdown_tick=0.01)
    with p:
        assert p.is_running
        assert two_cycles.wait(5)
    p.join(5)
    assert not p.is_running
    count = len(seen)
    assert count >= 2
    assert all(u.ok for u in seen)


def test_discarded_cycle_keeps_notification_baseline():
    class StoppingClient(FakeClient):
        """Stops the poller while the second fetch is in flight."""

        poller = None

        def fetch_with_token_retry(self, tracking_id, domain=None):
            if len(self.calls) == 1:
                self.poller.stop()
            return super().fetch_with_token_retry(tracking_id, domain)

    client = StoppingClient(_payload(), _payload(state="DELIVERED"), _payload(state="DELIVERED"))
    detector = ChangeDetector(NotificationSettings())
    resumed = threading.Event()
    seen = []

    def on_update(update):
        seen.append(update)
        if len(seen) == 2:
            resumed.set()

    p = _poller(client, detector=detector, on_update=on_update, interval=60)
    client.poller = p

    p.run_cycle()
    assert p.run_cycle() is None
    assert detector.previous("TBA1").status == TrackingStatus.IN_TRANSIT.value

    p.start()
    try:
        assert resumed.wait(5)
    finally:
        p.stop()
        p.join(5)
    tags = [n.tag for n in seen[-1].notifications]
    assert "status_change" in tags
    assert "delivered" in tags
