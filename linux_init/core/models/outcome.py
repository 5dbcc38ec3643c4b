"""
Outcome — the terminal classification of one step execution.

Steps report results through Outcomes; the step runner converts any
exception into ``Outcome.failure`` so the orchestrator only ever sees
Outcomes, never exceptions (critical steps excepted).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Outcome(BaseModel):
    """Result of running a step."""

    status: Literal["success", "skipped", "failed"] = "success"
    message: str = ""
    error: str | None = None
    finished_at: str = Field(default_factory=_now_iso)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def detail(self) -> str:
        """The text worth showing to an operator."""
        if self.failed:
            return self.error or self.message
        return self.message

    @classmethod
    def success(cls, message: str = "") -> Outcome:
        """Create a success outcome."""
        return cls(status="success", message=message)

    @classmethod
    def skip(cls, reason: str) -> Outcome:
        """Create an intentionally-skipped outcome."""
        return cls(status="skipped", message=reason)

    @classmethod
    def failure(cls, error: str) -> Outcome:
        """Create a failed outcome."""
        return cls(status="failed", error=error)
