"""
zsh + oh-my-zsh.

Runs last: switching the login shell is the change most likely to
affect the operator's session, so everything else is done first.
"""

from __future__ import annotations

import getpass
import logging
import os
from pathlib import Path

from linux_init.core.errors import FetchError, StepError
from linux_init.core.models.outcome import Outcome
from linux_init.core.models.step import StepContext

logger = logging.getLogger(__name__)

ZSH_PATH = "/bin/zsh"


def switch_login_shell(ctx: StepContext) -> None:
    if ctx.env.distro_id == "alpine":
        ctx.shell.run(
            [
                "sed", "-i",
                "s|^root:x:0:0:root:/root:/bin/sh$|root:x:0:0:root:/root:/bin/zsh|",
                "/etc/passwd",
            ],
            privileged=True,
        )
    else:
        user = os.environ.get("USER") or getpass.getuser()
        ctx.shell.run(["chsh", "-s", ZSH_PATH, user], privileged=True)


def install_zsh(ctx: StepContext, home: Path | None = None) -> Outcome:
    if not ctx.shell.which("zsh"):
        raise StepError("zsh is not installed; the base tools step must install it first")

    home = home or Path.home()
    sources = ctx.config.sources
    problems: list[str] = []

    switch_login_shell(ctx)

    if (home / ".oh-my-zsh").is_dir():
        logger.info("oh-my-zsh already installed")
    else:
        try:
            # --unattended: don't exec into zsh or change the shell from inside the installer
            ctx.fetcher.fetch_and_execute(sources.ohmyzsh_installer, ["--unattended"])
        except FetchError as e:
            logger.warning("oh-my-zsh installation failed: %s", e.message)
            problems.append("oh-my-zsh")

    custom = Path(os.environ.get("ZSH_CUSTOM") or home / ".oh-my-zsh" / "custom")
    for name, url in sources.zsh_plugins.items():
        dest = custom / "plugins" / name
        if dest.is_dir():
            logger.info("%s plugin already present", name)
            continue
        try:
            ctx.fetcher.clone_repository(url, dest)
        except FetchError as e:
            logger.warning("Cloning %s failed: %s", name, e.message)
            problems.append(name)

    staged = home / ".zshrc.linux-init"
    try:
        ctx.fetcher.fetch_file(sources.zshrc, staged)
    except FetchError as e:
        logger.warning("Downloading .zshrc failed: %s", e.message)
        problems.append(".zshrc")
    else:
        if staged.exists():
            staged.replace(home / ".zshrc")

    if problems:
        raise StepError(f"zsh set as login shell, but failed: {', '.join(problems)}")
    return Outcome.success("zsh, oh-my-zsh and plugins installed; re-login to use zsh")
