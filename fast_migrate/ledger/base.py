"""Ledger state machine shared by the journal-backed and in-memory ledgers."""
from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import LedgerError
from ..models import ASSIGNED, ASSIGNMENT, CREATED, FAILED, PENDING, LedgerEntry

Key = Tuple[str, str, str]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class Ledger:
    """Correlates (provider, kind, source id) with a target id and a migration status.

    Every record_* call is a single atomic read-modify-write of one key.
    """

    def __init__(self, source_provider: str, clock: Callable[[], str] = _utc_now):
        self.source_provider = source_provider
        self._clock = clock
        self._entries: Dict[Key, LedgerEntry] = {}
        self._lock = threading.Lock()

    def _persist(self, entry: LedgerEntry):
        """Durably store one entry. Subclasses override."""

    def _key(self, kind: str, source_id: str) -> Key:
        return (self.source_provider, kind, str(source_id))

    def lookup(self, kind: str, source_id: str) -> Optional[LedgerEntry]:
        with self._lock:
            return self._entries.get(self._key(kind, source_id))

    def entries(self, kind: Optional[str] = None) -> List[LedgerEntry]:
        with self._lock:
            selected = [
                e for e in self._entries.values()
                if e.source_provider == self.source_provider and (kind is None or e.source_kind == kind)
            ]
        return sorted(selected, key=lambda e: e.key)

    def record_pending(self, kind: str, source_id: str, target_id: Optional[str] = None) -> LedgerEntry:
        """Start (or restart after a failure) an attempt; keeps any known target id.

        Passing target_id notes a resource that exists but whose follow-up
        calls have not finished yet.
        """
        return self._transition(kind, source_id, PENDING, allowed_from=(None, PENDING, FAILED), target_id=target_id)

    def record_created(self, kind: str, source_id: str, target_id: str) -> LedgerEntry:
        if not target_id:
            raise LedgerError(f"{kind} {source_id}: created without a target id")
        return self._transition(kind, source_id, CREATED, allowed_from=(PENDING,), target_id=target_id)

    def record_assigned(self, kind: str, source_id: str) -> LedgerEntry:
        allowed = (CREATED, PENDING) if kind == ASSIGNMENT else (CREATED,)
        return self._transition(kind, source_id, ASSIGNED, allowed_from=allowed)

    def record_failed(self, kind: str, source_id: str, reason: str) -> LedgerEntry:
        return self._transition(
            kind, source_id, FAILED, allowed_from=(None, PENDING, CREATED, FAILED), error_reason=reason
        )

    def _transition(self, kind, source_id, status, allowed_from, target_id=None, error_reason=None) -> LedgerEntry:
        key = self._key(kind, source_id)
        with self._lock:
            current = self._entries.get(key)
            current_status = current.status if current else None
            if current_status not in allowed_from:
                raise LedgerError(f"{kind} {source_id}: cannot move from {current_status} to {status}")
            if current is None:
                current = LedgerEntry(
                    source_provider=self.source_provider,
                    source_kind=kind,
                    source_id=str(source_id),
                    status=status,
                )
            entry = replace(
                current,
                status=status,
                target_id=target_id or current.target_id,
                last_attempt_at=self._clock(),
                error_reason=error_reason if status == FAILED else None,
            )
            self._persist(entry)
            self._entries[key] = entry
            return entry


class MemoryLedger(Ledger):
    """Non-persistent ledger for tests and dry runs."""
