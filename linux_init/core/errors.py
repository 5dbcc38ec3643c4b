"""
Error taxonomy for linux-init.

Every error carries a human message, a context dict for logs/JSON
output, and the process exit code the CLI should use when the error
reaches the top level.

Propagation policy:
    - ProbeError         → fatal, the run never starts
    - CriticalStepError  → fatal, the orchestrator stops
    - StepError          → caught by the step runner, recorded as Failed
    - FetchError         → same as StepError unless raised by a critical step
    - ConfigError        → fatal, raised before anything touches the host
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ExitCode(IntEnum):
    """linux-init exit codes."""

    SUCCESS = 0
    ABORTED = 1       # probe failure or critical step failure
    CONFIG_ERROR = 2  # unreadable/invalid configuration


class LinuxInitError(Exception):
    """Base exception for linux-init errors."""

    exit_code: ExitCode = ExitCode.ABORTED

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON output."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "exit_code": int(self.exit_code),
            **self.context,
        }


class ConfigError(LinuxInitError):
    """Raised when the configuration file is invalid or unreadable."""

    exit_code = ExitCode.CONFIG_ERROR


class ProbeError(LinuxInitError):
    """The host could not be identified; nothing downstream can run."""

    MISSING_OS_RELEASE = "missing-os-release"

    def __init__(self, message: str, reason: str, **context: Any) -> None:
        super().__init__(message, reason=reason, **context)
        self.reason = reason


class FetchError(LinuxInitError):
    """A network retrieval failed after every attempt, or was refused."""

    ALL_ATTEMPTS_FAILED = "all-attempts-failed"
    UNTRUSTED_SOURCE = "untrusted-source"

    def __init__(self, message: str, reason: str, url: str, **context: Any) -> None:
        super().__init__(message, reason=reason, url=url, **context)
        self.reason = reason
        self.url = url


class StepError(LinuxInitError):
    """An external command (or step precondition) failed."""

    def __init__(
        self,
        message: str,
        argv: list[str] | None = None,
        returncode: int | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message, argv=argv, returncode=returncode, **context)
        self.argv = argv
        self.returncode = returncode


class CriticalStepError(StepError):
    """A step flagged critical failed; the orchestrator halts."""

    def __init__(self, step_id: str, error: str) -> None:
        super().__init__(f"Critical step '{step_id}' failed: {error}", step_id=step_id)
        self.step_id = step_id
        self.error = error
