"""
Progress ledger — durable per-step status for audit.

The ledger keeps a LedgerDocument in memory and re-renders it to disk
on every change:

    progress.md    human checklist + detail log
    progress.json  the same document, machine readable

Writes are atomic (write to temp file, then rename). Persistence is an
observability aid, not a correctness gate: a failed write is logged as
a warning and the run carries on with the in-memory document.
"""

from __future__ import annotations

import json
import logging
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path

from linux_init.core.models.ledger import (
    HistoryLine,
    LedgerDocument,
    LedgerEntry,
    StepStatus,
)
from linux_init.core.models.outcome import Outcome

logger = logging.getLogger(__name__)


class ProgressLedger:
    """Keyed step-status record, persisted after every transition."""

    def __init__(self, markdown_path: Path | None = None, json_path: Path | None = None):
        self._markdown_path = markdown_path
        self._json_path = json_path
        self._doc = LedgerDocument()

    @property
    def document(self) -> LedgerDocument:
        return self._doc

    @property
    def entries(self) -> dict[str, LedgerEntry]:
        return self._doc.entries

    def status_of(self, step_id: str) -> StepStatus:
        return self._doc.entries[step_id].status

    def initialize(
        self,
        step_ids: Sequence[str],
        titles: Mapping[str, str] | None = None,
    ) -> None:
        """Start a fresh document with every step Pending and persist it."""
        titles = titles or {}
        self._doc = LedgerDocument()
        for sid in step_ids:
            if sid in self._doc.entries:
                raise ValueError(f"Duplicate step id in ledger: {sid}")
            self._doc.entries[sid] = LedgerEntry(step_id=sid, title=titles.get(sid, sid))
        self._doc.history.append(HistoryLine(message=f"Run started with {len(step_ids)} steps"))
        self._save()
        logger.debug("Ledger initialized with %d steps", len(step_ids))

    def record_outcome(self, step_id: str, outcome: Outcome) -> LedgerEntry:
        """Move a step to its terminal status and log the outcome message.

        Raises:
            ValueError: If ``step_id`` was not registered by initialize().
        """
        entry = self._doc.entries.get(step_id)
        if entry is None:
            raise ValueError(f"Unknown step id: {step_id}")
        if entry.status.terminal:
            logger.warning(
                "Step '%s' already recorded as %s, overwriting", step_id, entry.status.value
            )

        entry.status = StepStatus.from_outcome(outcome)
        entry.timestamp = outcome.finished_at
        entry.message = outcome.detail

        label = entry.title or step_id
        text = f"{label}: {entry.status.value}"
        if entry.message:
            text += f" — {entry.message}"
        self._doc.history.append(HistoryLine(timestamp=outcome.finished_at, message=text))
        self._save()
        return entry

    def note(self, message: str) -> None:
        """Append a free-form line to the detail log."""
        self._doc.history.append(HistoryLine(message=message))
        self._save()

    # ── Persistence ─────────────────────────────────────────────

    def _save(self) -> None:
        if self._markdown_path is not None:
            _write_atomic(self._markdown_path, self._doc.to_markdown())
        if self._json_path is not None:
            data = self._doc.model_dump(mode="json")
            _write_atomic(self._json_path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def _write_atomic(path: Path, content: str) -> None:
    """Write-to-temp-then-rename; failures are logged, never raised."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".ledger_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.warning("Could not persist progress to %s: %s", path, e)


def load_ledger(path: Path) -> LedgerDocument | None:
    """Load a ledger JSON written by a previous run.

    Returns:
        The document, or None if the file is missing or unreadable.
    """
    if not path.is_file():
        logger.info("No progress file at %s", path)
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return LedgerDocument.model_validate(data)
    except json.JSONDecodeError as e:
        logger.warning("Corrupt progress file %s: %s", path, e)
        return None
    except Exception as e:
        logger.warning("Cannot load progress from %s: %s", path, e)
        return None
