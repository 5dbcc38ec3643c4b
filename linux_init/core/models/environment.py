"""
HostEnvironment — immutable snapshot of host facts.

Produced exactly once by the environment probe before any step runs,
then handed to every step. The model is frozen: attempting to assign
a field raises, so no step can change what later steps observe.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict

GIB = 1024 ** 3


class VirtKind(str, Enum):
    """Virtualization flavour, as far as provisioning cares."""

    KVM = "kvm"
    LXC = "lxc"
    CONTAINER = "container"
    UNKNOWN = "unknown"

    @property
    def is_container(self) -> bool:
        return self in (VirtKind.LXC, VirtKind.CONTAINER)


class HostEnvironment(BaseModel):
    """What the probe found about the host."""

    model_config = ConfigDict(frozen=True)

    distro_id: str
    distro_version: str = ""
    pretty_name: str = ""

    virtualization: VirtKind = VirtKind.KVM
    virtualization_raw: str = ""

    root_disk_size_bytes: int = 0

    has_privilege_elevation: bool = False
    is_root: bool = False

    @property
    def root_disk_size_gb(self) -> int:
        """Root filesystem size in whole GiB (truncated, never rounded)."""
        return self.root_disk_size_bytes // GIB

    @property
    def major_version(self) -> int:
        """Leading integer of ``distro_version``, 0 when there is none."""
        m = re.match(r"\d+", self.distro_version)
        return int(m.group(0)) if m else 0

    @property
    def elevation_prefix(self) -> list[str]:
        """Argv prefix for privileged commands."""
        if self.has_privilege_elevation and not self.is_root:
            return ["sudo"]
        return []

    def summary(self) -> str:
        return (
            f"system: {self.distro_id} {self.distro_version}".rstrip()
            + f", virtualization: {self.virtualization.value}"
            + f", disk: {self.root_disk_size_gb}GB"
        )
