"""Aggressive log rotation for hosts with a small root disk."""

from __future__ import annotations

from linux_init.core.models.outcome import Outcome
from linux_init.core.models.step import StepContext

LOGROTATE_PATH = "/etc/logrotate.d/custom-vps"
SMALL_DISK_GB = 8

LOGROTATE_POLICY = """\
# System logs
/var/log/syslog
/var/log/kern.log
/var/log/auth.log
{
    daily
    rotate 3
    compress
    delaycompress
    missingok
    notifempty
    # rotate immediately at 50M, regardless of daily
    size 50M
    postrotate
        /usr/lib/rsyslog/rsyslog-rotate
    endscript
}

# systemd journal
/var/log/journal/*/*.journal
{
    daily
    rotate 2
    compress
    delaycompress
    missingok
    notifempty
    size 10M
    copytruncate
    postrotate
        systemctl kill --kill-who=main --signal=SIGUSR2 systemd-journald
    endscript
}
"""


def configure_logrotate(ctx: StepContext) -> Outcome:
    size_gb = ctx.env.root_disk_size_gb
    if size_gb >= SMALL_DISK_GB:
        return Outcome.skip(f"Root disk is {size_gb}GB (>= {SMALL_DISK_GB}GB), log rotation unchanged")

    ctx.shell.write_file(LOGROTATE_PATH, LOGROTATE_POLICY)
    return Outcome.success(f"Log rotation configured (root disk {size_gb}GB < {SMALL_DISK_GB}GB)")
