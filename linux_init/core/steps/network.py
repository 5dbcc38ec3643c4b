"""
Kernel-level tuning — BBR congestion control and zram swap.

Both need a real kernel: inside LXC or other containers they are
skipped without touching the network.
"""

from __future__ import annotations

import logging

from linux_init.core.models.environment import VirtKind
from linux_init.core.models.outcome import Outcome
from linux_init.core.models.step import StepContext
from linux_init.core.steps.system import SERVICE_TIMEOUT

logger = logging.getLogger(__name__)

BBR_SYSCTL_PATH = "/etc/sysctl.d/99-bbr.conf"
BBR_SYSCTL = "net.core.default_qdisc = fq\nnet.ipv4.tcp_congestion_control = bbr\n"

# Debian from this release on gets a sysctl drop-in instead of the external script.
NATIVE_BBR_DEBIAN = 13


def _container_skip(ctx: StepContext, what: str) -> Outcome | None:
    virt = ctx.env.virtualization
    if virt.is_container:
        return Outcome.skip(f"Container environment ({virt.value}), {what} skipped")
    return None


def configure_network(ctx: StepContext) -> Outcome:
    skipped = _container_skip(ctx, "network tuning")
    if skipped:
        return skipped

    env = ctx.env
    if env.distro_id == "debian" and env.major_version >= NATIVE_BBR_DEBIAN:
        logger.info("Enabling BBR on Debian %s", env.distro_version)
        ctx.shell.write_file(BBR_SYSCTL_PATH, BBR_SYSCTL)
        ctx.shell.run(["sysctl", "--system"], privileged=True, timeout=SERVICE_TIMEOUT)
        return Outcome.success("BBR congestion control enabled")

    logger.info("Using the external network tuning script")
    ctx.prompter.notice("The network tuning script is interactive; exit it to continue.")
    ctx.fetcher.fetch_and_execute(ctx.config.sources.network_tools, privileged=True)
    return Outcome.success("External network tuning script finished")


def configure_zram(ctx: StepContext) -> Outcome:
    skipped = _container_skip(ctx, "zram")
    if skipped:
        return skipped

    virt = ctx.env.virtualization
    if virt is not VirtKind.KVM:
        label = ctx.env.virtualization_raw or virt.value
        return Outcome.skip(f"Not a KVM guest ({label}), zram skipped")

    ctx.fetcher.fetch_and_execute(ctx.config.sources.zram, privileged=True)
    return Outcome.success("zram swap configured")
