"""
Ledger models — per-step status keyed by stable step identifiers.

The whole document is re-serialized on every status transition, so an
entry can only ever be addressed by its step id; there is no textual
search-and-replace that could hit the wrong line.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from linux_init.core.models.outcome import Outcome


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def glyph(self) -> str:
        """Checklist marker used in the Markdown progress file."""
        return _GLYPHS[self]

    @property
    def terminal(self) -> bool:
        return self is not StepStatus.PENDING

    @classmethod
    def from_outcome(cls, outcome: Outcome) -> StepStatus:
        if outcome.ok:
            return cls.DONE
        if outcome.skipped:
            return cls.SKIPPED
        return cls.FAILED


_GLYPHS = {
    StepStatus.PENDING: " ",
    StepStatus.DONE: "x",
    StepStatus.SKIPPED: "-",
    StepStatus.FAILED: "!",
}


class LedgerEntry(BaseModel):
    """Status of a single step."""

    step_id: str
    title: str = ""
    status: StepStatus = StepStatus.PENDING
    timestamp: str = Field(default_factory=_now_iso)
    message: str = ""


class HistoryLine(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    message: str


class LedgerDocument(BaseModel):
    """Everything the progress files contain."""

    schema_version: int = 1
    started_at: str = Field(default_factory=_now_iso)
    # Insertion order is execution order.
    entries: dict[str, LedgerEntry] = Field(default_factory=dict)
    history: list[HistoryLine] = Field(default_factory=list)

    def pending(self) -> list[str]:
        return [sid for sid, e in self.entries.items() if e.status is StepStatus.PENDING]

    def counts(self) -> dict[str, int]:
        result = {s.value: 0 for s in StepStatus}
        for entry in self.entries.values():
            result[entry.status.value] += 1
        return result

    def to_markdown(self) -> str:
        """Render the human-readable checklist plus the detail log."""
        lines = [
            "# Linux initialization progress",
            f"Started: {self.started_at}",
            "",
            "## Steps",
        ]
        for entry in self.entries.values():
            lines.append(f"- [{entry.status.glyph}] {entry.title or entry.step_id} ({entry.step_id})")
        lines += ["", "## Details"]
        for h in self.history:
            lines.append(f"- {h.timestamp}: {h.message}")
        return "\n".join(lines) + "\n"
