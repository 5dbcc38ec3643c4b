"""
System steps — identity check, timezone, package update, base tools.

These run first: every later step assumes a supported distro with a
refreshed package database and the base tool set installed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from linux_init.core.errors import StepError
from linux_init.core.models.environment import HostEnvironment
from linux_init.core.models.outcome import Outcome
from linux_init.core.models.step import StepContext

logger = logging.getLogger(__name__)


# ── Package managers ─────────────────────────────────────────

@dataclass(frozen=True)
class PackageManager:
    name: str
    update: tuple[str, ...]
    upgrade: tuple[str, ...]
    install: tuple[str, ...]

    def install_cmd(self, package: str) -> list[str]:
        return [*self.install, package]


APT = PackageManager(
    name="apt",
    update=("apt", "update"),
    upgrade=("apt", "upgrade", "-y"),
    install=("apt", "install", "-y"),
)
APK = PackageManager(
    name="apk",
    update=("apk", "update"),
    upgrade=("apk", "-U", "upgrade"),
    install=("apk", "add"),
)

_MANAGERS = {"ubuntu": APT, "debian": APT, "alpine": APK}
SUPPORTED_DISTROS = tuple(_MANAGERS)


def package_manager_for(env: HostEnvironment) -> PackageManager:
    """Map the distro to its package manager.

    Raises:
        StepError: For distros other than Ubuntu, Debian and Alpine.
    """
    pm = _MANAGERS.get(env.distro_id)
    if pm is None:
        raise StepError(
            f"Unsupported system type: {env.distro_id} "
            f"(supported: {', '.join(SUPPORTED_DISTROS)})",
            distro=env.distro_id,
        )
    return pm


SERVICE_TIMEOUT = 60


def restart_service(ctx: StepContext, name: str) -> None:
    if ctx.env.distro_id == "alpine":
        argv = ["rc-service", name, "restart"]
    else:
        argv = ["systemctl", "restart", name]
    ctx.shell.run(argv, privileged=True, timeout=SERVICE_TIMEOUT)


# ── Steps ────────────────────────────────────────────────────

def detect_system(ctx: StepContext) -> Outcome:
    pm = package_manager_for(ctx.env)
    return Outcome.success(f"{ctx.env.summary()}, package manager: {pm.name}")


def set_timezone(ctx: StepContext) -> Outcome:
    tz = ctx.config.timezone
    if not tz:
        return Outcome.skip("No timezone configured")

    if ctx.shell.which("timedatectl"):
        ctx.shell.run(["timedatectl", "set-timezone", tz], privileged=True)
    elif ctx.shell.which("setup-timezone"):
        ctx.shell.run(["setup-timezone", "-z", tz], privileged=True)
    else:
        raise StepError("Neither timedatectl nor setup-timezone is available")
    return Outcome.success(f"Timezone set to {tz}")


def update_packages(ctx: StepContext) -> Outcome:
    """Refresh the package index and upgrade; try both even if one fails."""
    pm = package_manager_for(ctx.env)
    failures: list[str] = []

    for label, argv in (("update", pm.update), ("upgrade", pm.upgrade)):
        try:
            ctx.shell.run(list(argv), privileged=True, interactive=True)
        except StepError as e:
            logger.warning("Package %s failed, continuing: %s", label, e.message)
            failures.append(label)

    if failures:
        raise StepError(f"Package {' and '.join(failures)} failed")
    return Outcome.success("System packages updated and upgraded")


def install_base_tools(ctx: StepContext) -> Outcome:
    pm = package_manager_for(ctx.env)
    installed: list[str] = []
    present: list[str] = []
    failed: list[str] = []

    for pkg in ctx.config.packages:
        if ctx.shell.which(pkg):
            logger.info("%s already installed", pkg)
            present.append(pkg)
            continue
        logger.info("Installing %s...", pkg)
        try:
            ctx.shell.run(pm.install_cmd(pkg), privileged=True, interactive=True)
        except StepError as e:
            logger.warning("Installing %s failed: %s", pkg, e.message)
            failed.append(pkg)
        else:
            installed.append(pkg)

    if failed:
        raise StepError(f"Failed to install: {', '.join(failed)}", packages=failed)

    parts = []
    if installed:
        parts.append(f"installed {', '.join(installed)}")
    if present:
        parts.append(f"already present {', '.join(present)}")
    return Outcome.success("; ".join(parts) or "No packages configured")
