"""
Step registry — the fixed provisioning pipeline.

Order matters and is not configurable: host identity and package
state first, optional and interactive steps next, and the login-shell
switch last.
"""

from linux_init.core.models.step import Step
from linux_init.core.steps.logrotate import configure_logrotate
from linux_init.core.steps.monitor import install_monitor_agent
from linux_init.core.steps.network import configure_network, configure_zram
from linux_init.core.steps.ssh import configure_ssh
from linux_init.core.steps.system import (
    detect_system,
    install_base_tools,
    set_timezone,
    update_packages,
)
from linux_init.core.steps.zsh import install_zsh


def build_steps() -> list[Step]:
    return [
        Step(id="system-detect", display_name="System detection", run=detect_system, critical=True),
        Step(id="timezone", display_name="Timezone", run=set_timezone),
        Step(id="package-update", display_name="Package update", run=update_packages),
        Step(id="base-tools", display_name="Base tools", run=install_base_tools),
        Step(id="ssh-hardening", display_name="SSH hardening", run=configure_ssh),
        Step(id="network-tuning", display_name="Network tuning", run=configure_network),
        Step(id="zram", display_name="zram swap", run=configure_zram),
        Step(id="monitor-agent", display_name="Monitoring agent", run=install_monitor_agent),
        Step(id="logrotate", display_name="Log rotation", run=configure_logrotate),
        Step(id="zsh-shell", display_name="zsh + oh-my-zsh", run=install_zsh),
    ]


__all__ = ["build_steps"]
