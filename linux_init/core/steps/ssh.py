"""
SSH hardening — key-only authentication.

Interactive: the operator must confirm, since the step disables
password login. Declining is an intentional skip, not a failure, and
leaves sshd untouched. The drop-in is also withheld when no public key
is available, so the operator cannot be locked out.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from linux_init.core.errors import FetchError
from linux_init.core.models.outcome import Outcome
from linux_init.core.models.step import StepContext
from linux_init.core.steps.system import restart_service

logger = logging.getLogger(__name__)

SSHD_DROPIN_PATH = "/etc/ssh/sshd_config.d/00-custom_auth.conf"
SSHD_AUTH_CONFIG = "PasswordAuthentication no\nPubkeyAuthentication yes\n"

_PUBKEY_RE = re.compile(r"^(ssh-[a-z0-9-]+|ecdsa-sha2-\S+|sk-\S+)\s+[A-Za-z0-9+/=]+(\s+.*)?$")


def is_public_key(text: str) -> bool:
    return bool(_PUBKEY_RE.match(text.strip()))


def has_authorized_keys(ssh_dir: Path) -> bool:
    path = ssh_dir / "authorized_keys"
    try:
        return any(is_public_key(line) for line in path.read_text(encoding="utf-8").splitlines())
    except OSError:
        return False


def add_authorized_key(ssh_dir: Path, key: str) -> None:
    ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    ssh_dir.chmod(0o700)
    path = ssh_dir / "authorized_keys"
    with path.open("a", encoding="utf-8") as f:
        f.write(key.strip() + "\n")
    path.chmod(0o600)


def configure_ssh(ctx: StepContext, ssh_dir: Path | None = None) -> Outcome:
    p = ctx.prompter
    p.notice("SSH hardening disables password login and only allows key authentication.")
    p.notice("Make sure you already have an SSH key pair.")
    if not p.confirm("Continue with SSH configuration?", default=False):
        return Outcome.skip("Operator declined SSH configuration")

    ssh_dir = ssh_dir or Path.home() / ".ssh"
    notes: list[str] = []

    try:
        ctx.fetcher.fetch_and_execute(ctx.config.sources.openssh_upgrade, privileged=True)
    except FetchError as e:
        logger.warning("OpenSSH upgrade script failed: %s", e.message)
        notes.append("OpenSSH upgrade failed")

    key = p.ask("Paste your SSH public key (empty to skip)")
    if key and not is_public_key(key):
        logger.warning("Input does not look like an SSH public key, ignoring it")
        key = ""

    if key:
        if ctx.shell.dry_run:
            logger.info("[dry-run] would append a key to %s", ssh_dir / "authorized_keys")
        else:
            add_authorized_key(ssh_dir, key)
            logger.info("SSH public key added to %s", ssh_dir / "authorized_keys")
    elif not has_authorized_keys(ssh_dir):
        return Outcome.skip("No SSH public key available, password login left enabled")

    ctx.shell.write_file(SSHD_DROPIN_PATH, SSHD_AUTH_CONFIG)
    restart_service(ctx, "sshd")

    message = "Password login disabled, key authentication enabled"
    if notes:
        message += f" ({'; '.join(notes)})"
    return Outcome.success(message)
