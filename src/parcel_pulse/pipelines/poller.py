from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional, Sequence, Union

from parcel_pulse.api.normalize import normalize_tracking
from parcel_pulse.api.tracking import TrackingClient
from parcel_pulse.errors import MalformedResponseError, ParcelPulseError
from parcel_pulse.models import PollUpdate, TrackingRecord, TrackingStatus
from parcel_pulse.pipelines.enricher import DistanceEnricher
from parcel_pulse.rules.notifier import ChangeDetector

UpdateCallback = Callable[[PollUpdate], None]
CountdownCallback = Callable[[int], None]


class Poller:
    """Periodically refresh one active shipment out of a list.

    Each cycle: fetch (with one invalid-token retry) -> normalize -> distance
    enrichment -> change detection -> on_update(PollUpdate). A worker thread
    runs cycles back to back separated by `interval`; a second thread ticks
    the display countdown. Errors never stop the schedule, only stop() does.
    """

    def __init__(
        self,
        tracking_ids: Sequence[str],
        *,
        client: TrackingClient,
        detector: Optional[ChangeDetector] = None,
        enricher: Optional[DistanceEnricher] = None,
        normalizer: Callable[..., TrackingRecord] = normalize_tracking,
        on_update: Optional[UpdateCallback] = None,
        on_countdown: Optional[CountdownCallback] = None,
        interval: float = 30.0,
        countdown_tick: float = 1.0,
        domain: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        ids = [str(t).strip() for t in tracking_ids if str(t).strip()]
        if not ids:
            raise ValueError("At least one tracking ID is required")
        if interval <= 0 or countdown_tick <= 0:
            raise ValueError("interval and countdown_tick must be positive")

        self.tracking_ids = ids
        self.client = client
        self.detector = detector or ChangeDetector()
        self.enricher = enricher or DistanceEnricher()
        self.normalizer = normalizer
        self.on_update = on_update
        self.on_countdown = on_countdown
        self.interval = float(interval)
        self.countdown_tick = float(countdown_tick)
        self.domain = domain
        self.logger = logger or logging.getLogger("parcel_pulse.pipelines.poller")

        self._active = 0
        self._lock = threading.Lock()
        self._seconds_left = self.interval
        self._cancelled = threading.Event()
        self._wake = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._ticker: Optional[threading.Thread] = None

    # --- state ---------------------------------------------------------------

    @property
    def active_tracking_id(self) -> str:
        with self._lock:
            return self.tracking_ids[self._active]

    @property
    def seconds_until_refresh(self) -> int:
        with self._lock:
            return int(round(self._seconds_left))

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive() and not self._cancelled.is_set()

    def _reset_countdown(self) -> None:
        with self._lock:
            self._seconds_left = self.interval

    # --- one cycle -------------------------------------------------------------

    def _fetch_record(self, tracking_id: str) -> TrackingRecord:
        domain = self.client.resolve_domain(self.domain)
        try:
            raw = self.client.fetch_with_token_retry(tracking_id, domain)
            record = self.normalizer(raw, tracking_id=tracking_id, domain=domain)
        except MalformedResponseError as ex:
            self.logger.warning("Malformed response for %s: %s", tracking_id, ex)
            return TrackingRecord(
                tracking_id=tracking_id,
                status=TrackingStatus.UNKNOWN.value,
                domain=domain,
                reason=ex.user_message,
            )
        return self.enricher.enrich(record)

    def run_cycle(self) -> Optional[PollUpdate]:
        """Run one cycle synchronously. Returns None if cancelled meanwhile."""
        tracking_id = self.active_tracking_id
        baseline = self.detector.previous(tracking_id)
        try:
            record = self._fetch_record(tracking_id)
            if self._cancelled.is_set():
                self.logger.debug("Poller cancelled; discarding result for %s", tracking_id)
                return None
            # records without live data (no GPS yet, bad payload) carry a
            # reason and do not move the notification baseline
            notifications = self.detector.observe(record) if record.reason is None else []
            update = PollUpdate(tracking_id, record, notifications)
            self.logger.info(
                "Tracking %s status=%s distance=%s stops=%s",
                tracking_id, record.status,
                record.effective_distance_km if record.effective_distance_km is not None else "N/A",
                record.stops_remaining if record.stops_remaining is not None else "N/A",
            )
        except ParcelPulseError as ex:
            self.logger.warning("Cycle for %s failed: %s", tracking_id, ex)
            update = PollUpdate(tracking_id, error=ex.user_message)
        except Exception as ex:
            self.logger.exception("Unexpected error polling %s: %s", tracking_id, ex)
            update = PollUpdate(tracking_id, error=f"Unexpected error: {ex}")

        if self._cancelled.is_set():
            # a discarded cycle must leave the baseline as it found it
            self.detector.restore(tracking_id, baseline)
            self.logger.debug("Poller cancelled; discarding result for %s", tracking_id)
            return None
        self._emit(update)
        return update

    def _emit(self, update: PollUpdate) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(update)
        except Exception:
            self.logger.exception("Update handler failed for %s", update.tracking_id)

    # --- scheduling ------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._cancelled.is_set():
            self._wake.clear()
            self._reset_countdown()
            self.run_cycle()
            self._wake.wait(self.interval)

    def _tick_loop(self) -> None:
        while not self._cancelled.wait(self.countdown_tick):
            with self._lock:
                self._seconds_left = max(0.0, self._seconds_left - self.countdown_tick)
                left = int(round(self._seconds_left))
            if self.on_countdown is not None:
                try:
                    self.on_countdown(left)
                except Exception:
                    self.logger.exception("Countdown handler failed")

    def start(self) -> None:
        if self.is_running:
            return
        # a previous, cancelled worker must be gone before the flag is reset
        self.join()
        self._cancelled.clear()
        self._wake.clear()
        self._worker = threading.Thread(target=self._run_loop, name="parcel-pulse-poller", daemon=True)
        self._ticker = threading.Thread(target=self._tick_loop, name="parcel-pulse-countdown", daemon=True)
        self._worker.start()
        self._ticker.start()
        self.logger.info("Polling %s every %.0fs", self.active_tracking_id, self.interval)

    def stop(self) -> None:
        """Cancel both timers. An in-flight cycle finishes but is not emitted."""
        self._cancelled.set()
        self._wake.set()
        self.logger.info("Polling stopped")

    def join(self, timeout: Optional[float] = None) -> None:
        for t in (self._worker, self._ticker):
            if t is not None and t is not threading.current_thread():
                t.join(timeout)

    def refresh_now(self) -> Optional[PollUpdate]:
        """Re-fetch immediately and restart the countdown.

        While running the worker thread does the fetch; otherwise it happens
        in the caller's thread and the update is returned.
        """
        self._reset_countdown()
        if self.is_running:
            self._wake.set()
            return None
        return self.run_cycle()

    def select(self, target: Union[int, str]) -> Optional[PollUpdate]:
        """Switch the displayed shipment (by index or id) and re-fetch."""
        with self._lock:
            if isinstance(target, int):
                if not 0 <= target < len(self.tracking_ids):
                    raise IndexError(target)
                self._active = target
            else:
                if target not in self.tracking_ids:
                    self.tracking_ids.append(target)
                self._active = self.tracking_ids.index(target)
        return self.refresh_now()

    def __enter__(self) -> "Poller":
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()
