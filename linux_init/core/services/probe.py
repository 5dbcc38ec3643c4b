"""
Environment probe — read-only inspection of the host.

Runs once at startup and produces the frozen HostEnvironment every
step receives. Only the OS identity is mandatory: without
/etc/os-release no package manager can be chosen, so its absence is a
ProbeError. Every other probe degrades to a conservative default.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from pathlib import Path

from linux_init.core.errors import ProbeError
from linux_init.core.models.environment import HostEnvironment, VirtKind

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")
INIT_ENVIRON_PATH = Path("/proc/1/environ")

_VIRT_MAP = {
    "kvm": VirtKind.KVM,
    "qemu": VirtKind.KVM,
    "lxc": VirtKind.LXC,
    "lxc-libvirt": VirtKind.LXC,
    "docker": VirtKind.CONTAINER,
    "podman": VirtKind.CONTAINER,
    "openvz": VirtKind.CONTAINER,
    "systemd-nspawn": VirtKind.CONTAINER,
    "rkt": VirtKind.CONTAINER,
    "wsl": VirtKind.CONTAINER,
    "proot": VirtKind.CONTAINER,
    "pouch": VirtKind.CONTAINER,
    "container-other": VirtKind.CONTAINER,
}


# ── OS identity ──────────────────────────────────────────────

def parse_os_release(text: str) -> dict[str, str]:
    """Parse os-release ``KEY=value`` lines (values may be shell-quoted)."""
    result: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        result[key.strip()] = parts[0] if parts else ""
    return result


def read_os_release(path: Path = OS_RELEASE_PATH) -> dict[str, str]:
    """Read the release metadata file.

    Raises:
        ProbeError: If the file does not exist or cannot be read.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ProbeError(
            f"Cannot detect the system type: {path} does not exist",
            reason=ProbeError.MISSING_OS_RELEASE,
            path=str(path),
        ) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ProbeError(
            f"Cannot read {path}: {e}",
            reason=ProbeError.MISSING_OS_RELEASE,
            path=str(path),
        ) from e
    return parse_os_release(text)


# ── Virtualization ───────────────────────────────────────────

def classify_virt(raw: str) -> VirtKind:
    """Map ``systemd-detect-virt`` output to a VirtKind."""
    return _VIRT_MAP.get(raw.strip().lower(), VirtKind.UNKNOWN)


def detect_virtualization(init_environ: Path = INIT_ENVIRON_PATH) -> tuple[VirtKind, str]:
    """Detect the virtualization kind.

    Order: systemd-detect-virt, then container markers in PID 1's
    environment, then assume KVM.

    Returns:
        ``(kind, raw_signal)`` — never fails.
    """
    if shutil.which("systemd-detect-virt"):
        try:
            # Exits non-zero and prints "none" on bare metal.
            r = subprocess.run(
                ["systemd-detect-virt"],
                capture_output=True, text=True, timeout=10,
            )
            raw = r.stdout.strip()
            if raw:
                return classify_virt(raw), raw
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("systemd-detect-virt failed: %s", e)

    try:
        environ = init_environ.read_bytes().split(b"\0")
    except OSError:
        environ = []

    markers = [v.decode("utf-8", errors="replace") for v in environ if v.startswith(b"container")]
    if "container=lxc" in markers:
        return VirtKind.LXC, "container=lxc"
    if markers:
        return VirtKind.CONTAINER, markers[0]

    return VirtKind.KVM, ""


# ── Disk / privilege ─────────────────────────────────────────

def root_disk_size_bytes(mount: str = "/") -> int:
    try:
        return shutil.disk_usage(mount).total
    except OSError as e:
        logger.warning("Cannot read disk usage for %s: %s", mount, e)
        return 0


def detect_privilege_elevation() -> bool:
    if shutil.which("sudo"):
        logger.info("Found sudo")
        return True
    logger.warning("sudo not found, privileged commands will run without it")
    return False


# ── Entry point ──────────────────────────────────────────────

def probe_environment(
    os_release: Path = OS_RELEASE_PATH,
    init_environ: Path = INIT_ENVIRON_PATH,
    root_mount: str = "/",
) -> HostEnvironment:
    """Inspect the host once and return an immutable snapshot.

    Raises:
        ProbeError: If the OS identity cannot be determined.
    """
    logger.info("Detecting system environment...")

    release = read_os_release(os_release)
    distro_id = release.get("ID", "").lower()
    if not distro_id:
        raise ProbeError(
            f"{os_release} has no ID field",
            reason=ProbeError.MISSING_OS_RELEASE,
            path=str(os_release),
        )
    pretty = release.get("PRETTY_NAME", distro_id)
    logger.info("Detected system: %s", pretty)

    virt, virt_raw = detect_virtualization(init_environ)
    logger.info("Virtualization: %s%s", virt.value, f" ({virt_raw})" if virt_raw else "")

    disk = root_disk_size_bytes(root_mount)
    env = HostEnvironment(
        distro_id=distro_id,
        distro_version=release.get("VERSION_ID", ""),
        pretty_name=pretty,
        virtualization=virt,
        virtualization_raw=virt_raw,
        root_disk_size_bytes=disk,
        has_privilege_elevation=detect_privilege_elevation(),
        is_root=os.geteuid() == 0,
    )
    logger.info("Root filesystem size: %dGB", env.root_disk_size_gb)
    return env
