"""Ledger implementations for the migration engine."""

from .base import Ledger, MemoryLedger
from .journal_ledger import JournalLedger, ledger_path

__all__ = ["Ledger", "MemoryLedger", "JournalLedger", "ledger_path"]
