"""
Orchestrator — the provisioning loop.

Flow:
    probe environment → initialize ledger → run each step in order → summary

State machine:

    NOT_STARTED → PROBING → RUNNING(i) → COMPLETED
                     │           │
                     └───────────┴──────→ ABORTED

A probe failure aborts before the ledger exists. A critical step
failure aborts after it is recorded; later steps are never invoked
and stay Pending. Anything else, including failed non-critical steps,
moves on to the next step. COMPLETED means the end of the step list
was reached, not that every step succeeded.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from linux_init.core.config.loader import InitConfig
from linux_init.core.engine.runner import run_step
from linux_init.core.errors import CriticalStepError, ExitCode, LinuxInitError, ProbeError
from linux_init.core.models.environment import HostEnvironment
from linux_init.core.models.outcome import Outcome
from linux_init.core.models.step import Step, StepContext
from linux_init.core.persistence.ledger import ProgressLedger
from linux_init.core.services.fetcher import Fetcher
from linux_init.core.services.probe import probe_environment
from linux_init.core.services.prompts import Prompter
from linux_init.core.services.shell import HostShell

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    NOT_STARTED = "not-started"
    PROBING = "probing"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class RunSummary:
    """Result of one orchestrator run."""

    state: RunState = RunState.NOT_STARTED
    environment: HostEnvironment | None = None
    outcomes: dict[str, Outcome] = field(default_factory=dict)
    current_index: int | None = None
    abort_reason: str = ""
    error: LinuxInitError | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.ok)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.failed)

    @property
    def completed(self) -> bool:
        return self.state is RunState.COMPLETED

    @property
    def exit_code(self) -> int:
        if self.state is RunState.COMPLETED:
            return int(ExitCode.SUCCESS)
        if self.error is not None:
            return int(self.error.exit_code)
        return int(ExitCode.ABORTED)

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "environment": (
                self.environment.model_dump(mode="json") if self.environment else None
            ),
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "abort_reason": self.abort_reason or None,
            "duration_ms": self.duration_ms,
            "outcomes": {sid: o.model_dump(mode="json") for sid, o in self.outcomes.items()},
        }


ContextFactory = Callable[[HostEnvironment], StepContext]


class Orchestrator:
    """Runs a fixed, ordered list of steps against one host."""

    def __init__(
        self,
        config: InitConfig,
        ledger: ProgressLedger,
        prompter: Prompter,
        *,
        probe: Callable[[], HostEnvironment] = probe_environment,
        context_factory: ContextFactory | None = None,
        dry_run: bool = False,
    ):
        self._config = config
        self._ledger = ledger
        self._prompter = prompter
        self._probe = probe
        self._context_factory = context_factory or self._default_context
        self._dry_run = dry_run
        self.state = RunState.NOT_STARTED

    def _default_context(self, env: HostEnvironment) -> StepContext:
        shell = HostShell(env, dry_run=self._dry_run)
        fetcher = Fetcher(
            self._config.fetch,
            shell,
            trusted_scripts=self._config.trusted_scripts(),
            dry_run=self._dry_run,
        )
        return StepContext(
            env=env,
            config=self._config,
            shell=shell,
            fetcher=fetcher,
            prompter=self._prompter,
        )

    def execute(self, steps: Sequence[Step]) -> RunSummary:
        """Probe the host, then run every step in order.

        Raises:
            ValueError: If two steps share an id.
        """
        ids = [s.id for s in steps]
        dupes = sorted({sid for sid in ids if ids.count(sid) > 1})
        if dupes:
            raise ValueError(f"Duplicate step ids: {', '.join(dupes)}")

        start = time.monotonic()
        summary = RunSummary()

        # ── Probe ───────────────────────────────────────────────
        self._transition(summary, RunState.PROBING)
        try:
            env = self._probe()
        except ProbeError as e:
            logger.error("Environment probe failed: %s", e.message)
            summary.abort_reason = e.message
            summary.error = e
            self._transition(summary, RunState.ABORTED)
            summary.duration_ms = int((time.monotonic() - start) * 1000)
            return summary
        summary.environment = env

        ctx = self._context_factory(env)
        self._ledger.initialize(ids, {s.id: s.display_name for s in steps})
        self._ledger.note(env.summary())

        # ── Steps ───────────────────────────────────────────────
        self._transition(summary, RunState.RUNNING)
        escalated = frozenset(self._config.critical_steps)
        for index, step in enumerate(steps):
            summary.current_index = index
            try:
                summary.outcomes[step.id] = run_step(step, ctx, self._ledger, escalated)
            except CriticalStepError as e:
                summary.outcomes[step.id] = Outcome.failure(e.error)
                summary.abort_reason = e.message
                summary.error = e
                logger.error("%s — stopping", e.message)
                self._ledger.note(f"Run aborted at '{step.id}'")
                self._transition(summary, RunState.ABORTED)
                break
        else:
            summary.current_index = None
            self._ledger.note(
                f"Initialization finished: {summary.succeeded} done, "
                f"{summary.skipped} skipped, {summary.failed} failed"
            )
            self._transition(summary, RunState.COMPLETED)

        summary.duration_ms = int((time.monotonic() - start) * 1000)
        return summary

    def _transition(self, summary: RunSummary, state: RunState) -> None:
        logger.debug("Orchestrator: %s → %s", self.state.value, state.value)
        self.state = state
        summary.state = state
