"""
Domain models for linux-init.

All models are re-exported here for convenient access:

    from linux_init.core.models import HostEnvironment, Outcome, Step
"""

from linux_init.core.models.environment import HostEnvironment, VirtKind
from linux_init.core.models.ledger import LedgerDocument, LedgerEntry, StepStatus
from linux_init.core.models.outcome import Outcome
from linux_init.core.models.step import Step, StepContext

__all__ = [
    # environment.py
    "HostEnvironment",
    # ledger.py
    "LedgerDocument",
    "LedgerEntry",
    # outcome.py
    "Outcome",
    # step.py
    "Step",
    "StepContext",
    "StepStatus",
    "VirtKind",
]
