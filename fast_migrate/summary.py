"""Per-run outcome counts and the terminal report."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .models import APPLICATION, ASSIGNMENT, ENTITY_KINDS, GROUP, USER

CREATED = "created"
SKIPPED = "skipped"
FAILED = "failed"
OUTCOMES = (CREATED, SKIPPED, FAILED)

_LABELS = {
    APPLICATION: "applications",
    GROUP: "groups",
    USER: "users",
    ASSIGNMENT: "assignments",
}


class MigrationSummary:
    """Counts of created / skipped / failed per entity kind, with failure reasons."""

    def __init__(self, provider: str):
        self.provider = provider
        self.counts: Dict[str, Dict[str, int]] = {kind: {o: 0 for o in OUTCOMES} for kind in ENTITY_KINDS}
        self.failures: List[Tuple[str, str, str]] = []

    def record(self, kind: str, outcome: str, source_id: str, reason: Optional[str] = None):
        if outcome not in OUTCOMES:
            raise ValueError(f"unknown outcome {outcome}")
        self.counts[kind][outcome] += 1
        if outcome == FAILED:
            self.failures.append((kind, str(source_id), reason or "unknown error"))

    def count(self, kind: str, outcome: str) -> int:
        return self.counts[kind][outcome]

    @property
    def failed_count(self) -> int:
        return sum(c[FAILED] for c in self.counts.values())

    @property
    def exit_code(self) -> int:
        return 1 if self.failed_count else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "counts": {kind: dict(c) for kind, c in self.counts.items()},
            "failures": [
                {"kind": kind, "source_id": source_id, "reason": reason}
                for kind, source_id, reason in sorted(self.failures)
            ],
        }

    def render(self) -> str:
        """Fixed-order, timestamp-free report: identical outcomes give identical text."""
        lines = [f"Fast-migrate summary ({self.provider})"]
        fmt = "{:<14}{:>9}{:>9}{:>8}"
        lines.append(fmt.format("KIND", "CREATED", "SKIPPED", "FAILED"))
        for kind in ENTITY_KINDS:
            c = self.counts[kind]
            lines.append(fmt.format(_LABELS[kind], c[CREATED], c[SKIPPED], c[FAILED]))
        totals = {o: sum(c[o] for c in self.counts.values()) for o in OUTCOMES}
        lines.append(fmt.format("total", totals[CREATED], totals[SKIPPED], totals[FAILED]))
        if self.failures:
            lines.append("")
            lines.append(f"Failures ({len(self.failures)}), fix and re-run to resume:")
            for kind, source_id, reason in sorted(self.failures):
                lines.append(f"  {kind} {source_id}: {reason}")
        return "\n".join(lines) + "\n"
