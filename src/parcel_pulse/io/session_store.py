from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Any, Callable, Dict, Optional

from parcel_pulse.io.schema import SESSIONS_KEY
from parcel_pulse.io.storage import KeyValueStore
from parcel_pulse.models import SessionRecord
from parcel_pulse.utils.clock import now_ms

BadgeCallback = Callable[[int], None]

_MUTABLE_FIELDS = {f.name for f in fields(SessionRecord)} - {"domain", "updated_at"}


class SessionStore:
    """Per-domain credential cache on top of a KeyValueStore.

    All records live under a single key as {domain: record}. Every mutating
    call reports the number of stored domains to `on_change` (the badge).
    Backing-store failures propagate to the caller.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        on_change: Optional[BadgeCallback] = None,
        clock: Callable[[], int] = now_ms,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._on_change = on_change
        self._clock = clock
        self.logger = logger or logging.getLogger("parcel_pulse.io.session_store")

    def _load(self) -> Dict[str, dict[str, Any]]:
        raw = self._store.get(SESSIONS_KEY)
        return raw if isinstance(raw, dict) else {}

    def _save(self, sessions: Dict[str, dict[str, Any]]) -> None:
        self._store.set(SESSIONS_KEY, sessions)
        if self._on_change is not None:
            self._on_change(len(sessions))

    def get(self, domain: str) -> Optional[SessionRecord]:
        data = self._load().get(domain)
        if not isinstance(data, dict):
            return None
        return SessionRecord.from_dict({**data, "domain": domain})

    def get_all(self) -> Dict[str, SessionRecord]:
        return {
            domain: SessionRecord.from_dict({**data, "domain": domain})
            for domain, data in self._load().items()
            if isinstance(data, dict)
        }

    def most_recent(self) -> Optional[SessionRecord]:
        records = list(self.get_all().values())
        if not records:
            return None
        return max(records, key=lambda r: r.updated_at or 0)

    def put(self, domain: str, **changes: Any) -> SessionRecord:
        """Merge `changes` onto the stored record (or create it).

        `updated_at` is always stamped and never moves backwards.
        """
        if not domain:
            raise ValueError("domain is required")
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown session field(s): {', '.join(sorted(unknown))}")

        sessions = self._load()
        existing = self.get(domain) if domain in sessions else None
        now = self._clock()

        if existing is None:
            record = SessionRecord(domain=domain, updated_at=now)
            record = replace(record, **changes)
            if not record.captured_at:
                record = replace(record, captured_at=now)
        else:
            now = max(now, existing.updated_at or 0)
            record = replace(existing, updated_at=now, **changes)

        sessions[domain] = record.to_dict()
        self._save(sessions)
        self.logger.debug("Session stored for %s (updated_at=%s)", domain, record.updated_at)
        return record

    def delete(self, domain: str) -> None:
        sessions = self._load()
        sessions.pop(domain, None)
        self._save(sessions)

    def clear(self) -> None:
        self._save({})
