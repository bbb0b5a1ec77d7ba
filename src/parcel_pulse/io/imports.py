from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from parcel_pulse.io.schema import DETECTED_IDS_KEY, PENDING_IMPORT_KEY
from parcel_pulse.io.storage import KeyValueStore
from parcel_pulse.models import DetectedTrackingId, PendingImport
from parcel_pulse.utils.clock import now_ms


class PendingImportStore:
    """One-shot handoff of tracking ids to an importing collaborator.

    A new `offer` replaces any unconsumed import. `take` reads and deletes in
    one step; `peek` + `acknowledge` is the two-step variant.
    """

    def __init__(self, store: KeyValueStore, *, clock: Callable[[], int] = now_ms) -> None:
        self._store = store
        self._clock = clock

    def offer(self, tracking_ids: Iterable[str], domain: str) -> PendingImport:
        ids = list(dict.fromkeys(str(t).strip() for t in tracking_ids if str(t).strip()))
        if not ids:
            raise ValueError("No tracking IDs to import")
        pending = PendingImport(tracking_ids=ids, domain=domain, created_at=self._clock())
        self._store.set(PENDING_IMPORT_KEY, pending.to_dict())
        return pending

    def peek(self) -> Optional[PendingImport]:
        raw = self._store.get(PENDING_IMPORT_KEY)
        if not isinstance(raw, dict):
            return None
        return PendingImport.from_dict(raw)

    def acknowledge(self) -> None:
        self._store.remove(PENDING_IMPORT_KEY)

    def take(self) -> Optional[PendingImport]:
        pending = self.peek()
        if pending is not None:
            self.acknowledge()
        return pending


class TrackingIdRegistry:
    """Tracking ids seen on carrier pages, keyed by id."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        on_change: Optional[Callable[[int], None]] = None,
        clock: Callable[[], int] = now_ms,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._on_change = on_change
        self._clock = clock
        self.logger = logger or logging.getLogger("parcel_pulse.io.imports")

    def _load(self) -> Dict[str, Dict[str, Any]]:
        raw = self._store.get(DETECTED_IDS_KEY)
        return raw if isinstance(raw, dict) else {}

    def record(self, tracking_ids: Iterable[str], domain: str,
               source_url: Optional[str] = None) -> int:
        """Register ids; returns the total number of known ids."""
        ids = [str(t).strip() for t in tracking_ids if str(t).strip()]
        if not ids:
            raise ValueError("No tracking IDs")
        existing = self._load()
        now = self._clock()
        for tid in ids:
            existing[tid] = {"domain": domain, "source_url": source_url, "detected_at": now}
        self._store.set(DETECTED_IDS_KEY, existing)
        self.logger.info("%d tracking IDs detected on %s", len(ids), domain)
        if self._on_change is not None:
            self._on_change(len(existing))
        return len(existing)

    def all(self) -> list[DetectedTrackingId]:
        return [
            DetectedTrackingId(
                tracking_id=tid,
                domain=str(info.get("domain") or ""),
                source_url=info.get("source_url"),
                detected_at=int(info.get("detected_at") or 0),
            )
            for tid, info in self._load().items()
            if isinstance(info, dict)
        ]
