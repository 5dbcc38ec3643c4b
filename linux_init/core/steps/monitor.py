"""Monitoring agent installation (komari agent)."""

from __future__ import annotations

import logging

from linux_init.core.models.outcome import Outcome
from linux_init.core.models.step import StepContext

logger = logging.getLogger(__name__)


def install_monitor_agent(ctx: StepContext) -> Outcome:
    p = ctx.prompter
    settings = ctx.config.monitor

    p.notice("Enter the --auto-discovery key for the monitoring agent (empty to skip).")
    key = p.ask("auto-discovery")
    if not key:
        return Outcome.skip("No auto-discovery key entered, monitoring agent not installed")

    raw = p.ask("month-rotate", default=str(settings.default_month_rotate))
    try:
        month_rotate = int(raw)
    except ValueError:
        logger.warning(
            "Invalid month-rotate %r, using %d", raw, settings.default_month_rotate
        )
        month_rotate = settings.default_month_rotate

    args = [
        "-e", settings.endpoint,
        "--auto-discovery", key,
        "--disable-web-ssh",
        "--month-rotate", str(month_rotate),
    ]
    ctx.fetcher.fetch_and_execute(ctx.config.sources.monitor_installer, args, privileged=True)
    return Outcome.success(f"Monitoring agent installed (month-rotate: {month_rotate})")
