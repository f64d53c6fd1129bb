"""Append-only JSON-lines ledger that survives process restarts."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Callable, Union

from ..models import LedgerEntry
from .base import Ledger, _utc_now

logger = logging.getLogger("fast_migrate.ledger")


def ledger_path(root: Union[str, Path], tenant_id: str, realm_id: str) -> Path:
    """One journal per target tenant and realm."""
    return Path(root) / f"ledger_tenant_{tenant_id}_realm_{realm_id}.jsonl"


class JournalLedger(Ledger):
    """Each write appends one JSON line and fsyncs it before returning.

    On open the journal is replayed (last line per key wins), unreadable lines
    such as a write torn by a crash are skipped, and the file is compacted
    through a temp file and os.replace.
    """

    def __init__(self, path: Union[str, Path], source_provider: str, fsync: bool = True,
                 clock: Callable[[], str] = _utc_now):
        super().__init__(source_provider, clock=clock)
        self.path = Path(path)
        self.fsync = fsync
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._load()
        self._compact()

    def _load(self):
        if not self.path.exists():
            return
        skipped = 0
        with open(self.path, "r", encoding="utf-8") as fh:
            for line_number, line in enumerate(fh, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = LedgerEntry.from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError) as e:
                    skipped += 1
                    logger.warning("Ignoring unreadable ledger line %d in %s: %s", line_number, self.path, e)
                    continue
                self._entries[entry.key] = entry
        logger.info("Loaded %d ledger entries from %s", len(self._entries), self.path)
        if skipped:
            logger.warning("Skipped %d unreadable ledger lines", skipped)

    def _compact(self):
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as fh:
            for key in sorted(self._entries):
                fh.write(self._encode(self._entries[key]))
            fh.flush()
            if self.fsync:
                os.fsync(fh.fileno())
        os.replace(tmp_path, self.path)

    def _persist(self, entry: LedgerEntry):
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(self._encode(entry))
            fh.flush()
            if self.fsync:
                os.fsync(fh.fileno())

    @staticmethod
    def _encode(entry: LedgerEntry) -> str:
        return json.dumps(entry.to_dict(), sort_keys=True, ensure_ascii=False) + "\n"
