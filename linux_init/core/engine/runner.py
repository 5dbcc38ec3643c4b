"""
Step runner — execute one step and classify what happened.

Whatever a step does, the runner hands back an Outcome and records it
in the ledger exactly once. Exceptions (including an operator's Ctrl-C
inside an external command) become ``Outcome.failure``. Only a
critical step's failure escapes, as CriticalStepError, after it has
been recorded.
"""

from __future__ import annotations

import logging
from collections.abc import Collection

from linux_init.core.errors import CriticalStepError
from linux_init.core.models.outcome import Outcome
from linux_init.core.models.step import Step, StepContext
from linux_init.core.persistence.ledger import ProgressLedger

logger = logging.getLogger(__name__)


def run_step(
    step: Step,
    ctx: StepContext,
    ledger: ProgressLedger,
    escalated: Collection[str] = (),
) -> Outcome:
    """Run ``step`` and record its outcome.

    Args:
        step: The step to execute.
        ctx: Collaborators for the step.
        ledger: Where the outcome is recorded.
        escalated: Step ids treated as critical in addition to
            ``step.critical``.

    Returns:
        The recorded outcome.

    Raises:
        CriticalStepError: If a critical step did not succeed or skip.
    """
    logger.info("── %s", step.display_name)

    try:
        outcome = step.run(ctx)
        if not isinstance(outcome, Outcome):
            outcome = Outcome.success(str(outcome) if outcome is not None else "")
    except KeyboardInterrupt:
        outcome = Outcome.failure("Interrupted by operator")
    except Exception as e:
        logger.debug("Step '%s' raised", step.id, exc_info=True)
        outcome = Outcome.failure(str(e) or type(e).__name__)

    ledger.record_outcome(step.id, outcome)

    if outcome.ok:
        logger.info("✓ %s%s", step.display_name, f": {outcome.message}" if outcome.message else "")
    elif outcome.skipped:
        logger.info("⊘ %s skipped: %s", step.display_name, outcome.message)
    else:
        logger.warning("✗ %s failed: %s", step.display_name, outcome.detail)
        if step.critical or step.id in escalated:
            raise CriticalStepError(step.id, outcome.detail)

    return outcome
