"""
Fetcher — network retrieval with bounded retries and a mirror fallback.

Three operations share one policy:

    fetch_file(url, destination)        download to a path
    fetch_and_execute(url, args)        download a script, run it with bash
    clone_repository(url, destination)  git clone

Policy, per call:

    for attempt in 1..max_attempts:
        try primary url              → success: return
        try mirror url (if derived)  → success: return
        sleep backoff_seconds        (constant, not after the last attempt)
    raise FetchError(all-attempts-failed)

A mirror URL is derived only for hosts matching a configured
code-hosting pattern: ``mirror_base + original_url``.

Remote scripts are a capability boundary: only URLs in the trusted set
may be executed, arguments are a list (never a shell string), and the
script runs from a private temp file that is removed afterwards.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
import tempfile
import time
import urllib.request
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from linux_init import __version__
from linux_init.core.config.loader import FetchSettings
from linux_init.core.errors import FetchError
from linux_init.core.services.shell import HostShell

logger = logging.getLogger(__name__)

_USER_AGENT = f"linux-init/{__version__}"


@dataclass(frozen=True)
class FetchAttempt:
    """One cycle of the retry loop (not persisted)."""

    url: str
    mirror_url: str | None
    attempt: int
    max_attempts: int
    backoff_seconds: float

    @property
    def last(self) -> bool:
        return self.attempt >= self.max_attempts

    def candidates(self) -> list[str]:
        return [self.url] + ([self.mirror_url] if self.mirror_url else [])


class Fetcher:
    """Performs network retrievals for steps."""

    def __init__(
        self,
        settings: FetchSettings,
        shell: HostShell,
        trusted_scripts: Iterable[str] = (),
        sleep: Callable[[float], None] = time.sleep,
        dry_run: bool = False,
    ):
        self._settings = settings
        self._shell = shell
        self._trusted = frozenset(trusted_scripts)
        self._sleep = sleep
        self._dry_run = dry_run

    # ── Mirror derivation ───────────────────────────────────────

    def mirror_url_for(self, url: str) -> str | None:
        """Return the mirror URL for ``url``, or None if it isn't mirrored."""
        base = self._settings.mirror_base
        if not base or url.startswith(base):
            return None
        host = (urlparse(url).hostname or "").lower()
        if not host:
            return None
        for pattern in self._settings.mirror_domains:
            if fnmatch.fnmatch(host, pattern.lower()):
                return base + url
        return None

    # ── Public operations ───────────────────────────────────────

    def fetch_file(self, url: str, destination: str | Path) -> str:
        """Download ``url`` to ``destination``.

        A half-written file may remain on failure; callers treat the
        whole fetch as failed and don't consume it.

        Returns:
            The URL that succeeded (primary or mirror).

        Raises:
            FetchError: After every attempt failed.
        """
        dest = Path(destination)
        return self._with_fallback(url, f"download → {dest}", lambda u: self._download(u, dest))

    def fetch_and_execute(
        self,
        url: str,
        args: Sequence[str] = (),
        *,
        privileged: bool = False,
    ) -> str:
        """Download a trusted script and run it with ``bash``.

        The script's exit code decides success; a non-zero exit counts
        as a failed try and goes through the same retry policy.

        Raises:
            FetchError: If ``url`` is not trusted (no network access
                happens) or every attempt failed.
        """
        if url not in self._trusted:
            raise FetchError(
                f"Refusing to execute untrusted script source: {url}",
                reason=FetchError.UNTRUSTED_SOURCE,
                url=url,
            )
        argv = [str(a) for a in args]
        return self._with_fallback(
            url,
            "execute",
            lambda u: self._execute(u, argv, privileged),
        )

    def clone_repository(self, url: str, destination: str | Path) -> str:
        """Shallow-clone a git repository into ``destination``."""
        dest = Path(destination)
        return self._with_fallback(url, f"clone → {dest}", lambda u: self._clone(u, dest))

    # ── Retry loop ──────────────────────────────────────────────

    def _with_fallback(self, url: str, what: str, try_once: Callable[[str], None]) -> str:
        mirror = self.mirror_url_for(url)
        max_attempts = self._settings.max_attempts
        backoff = self._settings.backoff_seconds

        if self._dry_run:
            logger.info("[dry-run] would fetch %s (%s)", url, what)
            return url

        last_error = ""
        for n in range(1, max_attempts + 1):
            attempt = FetchAttempt(
                url=url,
                mirror_url=mirror,
                attempt=n,
                max_attempts=max_attempts,
                backoff_seconds=backoff,
            )
            for candidate in attempt.candidates():
                logger.info("Fetching %s (%s, attempt %d/%d)", candidate, what, n, max_attempts)
                try:
                    try_once(candidate)
                except Exception as e:
                    last_error = str(e) or type(e).__name__
                    logger.warning("Fetch failed for %s: %s", candidate, last_error)
                    continue
                return candidate

            if not attempt.last:
                logger.info("Retrying in %ss", backoff)
                self._sleep(backoff)

        raise FetchError(
            f"All {max_attempts} attempts failed for {url}: {last_error}",
            reason=FetchError.ALL_ATTEMPTS_FAILED,
            url=url,
            mirror_url=mirror,
            attempts=max_attempts,
        )

    # ── Single tries ────────────────────────────────────────────

    def _download(self, url: str, destination: Path) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        with urllib.request.urlopen(req, timeout=self._settings.timeout_seconds) as resp:
            with open(destination, "wb") as f:
                shutil.copyfileobj(resp, f)

    def _execute(self, url: str, args: list[str], privileged: bool) -> None:
        fd, path = tempfile.mkstemp(suffix=".sh", prefix="linux_init_script_")
        os.close(fd)
        script = Path(path)
        try:
            self._download(url, script)
            script.chmod(0o700)
            self._shell.run(["bash", str(script), *args], privileged=privileged, interactive=True)
        finally:
            script.unlink(missing_ok=True)

    def _clone(self, url: str, destination: Path) -> None:
        try:
            self._shell.run(["git", "clone", "--depth", "1", url, str(destination)])
        except Exception:
            # A partial checkout would make the next try fail immediately.
            if destination.exists():
                shutil.rmtree(destination, ignore_errors=True)
            raise
