"""
Step and StepContext — the unit of provisioning work.

A Step is a static registry entry: a stable id, a display name, a
critical flag, and a callable. The callable receives a StepContext that
bundles every collaborator the step may use, so nothing is read from
module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from linux_init.core.config.loader import InitConfig
from linux_init.core.models.environment import HostEnvironment
from linux_init.core.models.outcome import Outcome

if TYPE_CHECKING:
    from linux_init.core.services.fetcher import Fetcher
    from linux_init.core.services.prompts import Prompter
    from linux_init.core.services.shell import HostShell


@dataclass(frozen=True)
class StepContext:
    """Collaborators handed to every step."""

    env: HostEnvironment
    config: InitConfig
    shell: HostShell
    fetcher: Fetcher
    prompter: Prompter


@dataclass(frozen=True)
class Step:
    """A named provisioning action in the fixed pipeline."""

    id: str
    display_name: str
    run: Callable[[StepContext], Outcome]
    critical: bool = False
