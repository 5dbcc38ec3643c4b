"""
External command boundary.

The SINGLE PLACE where provisioning steps start host processes
(package managers, service control, sysctl, chsh, git). Privilege
elevation, logging, dry-run and exit-code interpretation are
centralised here so steps only decide *what* to run.

Non-zero exits raise StepError; the step runner turns that into a
Failed outcome.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from linux_init.core.errors import StepError
from linux_init.core.models.environment import HostEnvironment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class HostShell:
    """Runs commands on the host on behalf of steps."""

    def __init__(self, env: HostEnvironment, dry_run: bool = False):
        self._env = env
        self._dry_run = dry_run

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def which(self, name: str) -> bool:
        """Whether ``name`` resolves on PATH."""
        return shutil.which(name) is not None

    def run(
        self,
        argv: Sequence[str],
        *,
        privileged: bool = False,
        input_text: str | None = None,
        interactive: bool = False,
        timeout: int | None = None,
    ) -> CmdResult:
        """Run a command with consistent logging.

        Args:
            argv: Command and arguments (never a shell string).
            privileged: Prefix with the elevation wrapper when the
                environment has one and we're not already root.
            input_text: Text piped to stdin.
            interactive: Inherit the terminal instead of capturing
                output (for tools that talk to the operator).
            timeout: Seconds before the command is abandoned.

        Returns:
            CmdResult with the exit code and captured output.

        Raises:
            StepError: On a non-zero exit, a missing binary, or a
                timeout.
        """
        cmd = list(argv)
        if privileged:
            cmd = self._env.elevation_prefix + cmd

        logger.info("CMD %s", fmt_argv(cmd))
        if self._dry_run:
            return CmdResult(argv=cmd, returncode=0)

        capture = not interactive
        try:
            p = subprocess.run(
                cmd,
                input=input_text,
                text=True,
                stdout=subprocess.PIPE if capture else None,
                stderr=subprocess.PIPE if capture else None,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise StepError(f"Command not found: {cmd[0]}", argv=cmd) from e
        except subprocess.TimeoutExpired as e:
            raise StepError(f"Command timed out ({timeout}s): {fmt_argv(cmd)}", argv=cmd) from e

        stdout = p.stdout or ""
        stderr = p.stderr or ""
        if stdout:
            logger.debug("STDOUT %s", stdout.strip()[-2000:])
        if stderr:
            logger.debug("STDERR %s", stderr.strip()[-2000:])

        if p.returncode != 0:
            detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
            message = f"Command failed (exit {p.returncode}): {fmt_argv(cmd)}"
            if detail:
                message += f" — {detail}"
            raise StepError(message, argv=cmd, returncode=p.returncode)

        return CmdResult(argv=cmd, returncode=p.returncode, stdout=stdout, stderr=stderr)

    def write_file(self, path: str | Path, content: str, *, privileged: bool = True) -> None:
        """Write a system file with fixed content through ``tee``.

        Going through a command (rather than ``open``) lets the
        elevation wrapper apply to root-owned locations.
        """
        path = str(path)
        parent = str(Path(path).parent)
        self.run(["mkdir", "-p", parent], privileged=privileged)
        self.run(["tee", path], privileged=privileged, input_text=content)
