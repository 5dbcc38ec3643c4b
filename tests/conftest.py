"""
Shared test fixtures and fakes.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from linux_init.core.config.loader import InitConfig, PathSettings
from linux_init.core.errors import FetchError, StepError
from linux_init.core.models.environment import GIB, HostEnvironment, VirtKind
from linux_init.core.models.step import StepContext
from linux_init.core.services.prompts import ScriptedPrompter
from linux_init.core.services.shell import CmdResult


class FakeShell:
    """Records commands instead of running them."""

    def __init__(self, available=(), fail_on=(), dry_run=False):
        self.available = set(available)
        self.fail_on = [tuple(f) for f in fail_on]
        self.dry_run = dry_run
        self.calls: list[list[str]] = []
        self.written: dict[str, str] = {}

    def which(self, name: str) -> bool:
        return name in self.available

    def run(self, argv, *, privileged=False, input_text=None,
            interactive=False, timeout=None):
        argv = list(argv)
        self.calls.append(argv)
        for prefix in self.fail_on:
            if tuple(argv[: len(prefix)]) == prefix:
                raise StepError(f"Command failed (exit 1): {' '.join(argv)}",
                                argv=argv, returncode=1)
        return CmdResult(argv=argv, returncode=0)

    def write_file(self, path, content, *, privileged=True):
        self.written[str(path)] = content


class FakeFetcher:
    """Records fetches; URLs in ``fail_urls`` raise FetchError."""

    def __init__(self, fail_urls=()):
        self.fail_urls = set(fail_urls)
        self.executed: list[tuple[str, list[str], bool]] = []
        self.files: list[tuple[str, Path]] = []
        self.clones: list[tuple[str, Path]] = []

    def _check(self, url):
        if url in self.fail_urls:
            raise FetchError(f"All 3 attempts failed for {url}",
                             reason=FetchError.ALL_ATTEMPTS_FAILED, url=url)

    def fetch_and_execute(self, url, args=(), *, privileged=False):
        self.executed.append((url, list(args), privileged))
        self._check(url)
        return url

    def fetch_file(self, url, destination):
        self.files.append((url, Path(destination)))
        self._check(url)
        return url

    def clone_repository(self, url, destination):
        self.clones.append((url, Path(destination)))
        self._check(url)
        return url

    @property
    def touched(self) -> int:
        return len(self.executed) + len(self.files) + len(self.clones)


def make_env(**overrides) -> HostEnvironment:
    data = dict(
        distro_id="debian",
        distro_version="12",
        pretty_name="Debian GNU/Linux 12 (bookworm)",
        virtualization=VirtKind.KVM,
        virtualization_raw="kvm",
        root_disk_size_bytes=20 * GIB,
        has_privilege_elevation=True,
        is_root=False,
    )
    data.update(overrides)
    return HostEnvironment(**data)


@pytest.fixture
def config(tmp_path: Path) -> InitConfig:
    """Defaults, with every artifact redirected under tmp_path."""
    return InitConfig(
        paths=PathSettings(
            progress_file=tmp_path / "progress.md",
            progress_state_file=tmp_path / "progress.json",
            log_file=tmp_path / "run.log",
        )
    )


@pytest.fixture
def shell() -> FakeShell:
    return FakeShell(available={"zsh", "timedatectl"})


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def make_ctx(config, shell, fetcher):
    """Build a StepContext around the fakes."""

    def _make(env: HostEnvironment | None = None, prompter=None, **env_overrides) -> StepContext:
        return StepContext(
            env=env or make_env(**env_overrides),
            config=config,
            shell=shell,
            fetcher=fetcher,
            prompter=prompter or ScriptedPrompter(),
        )

    return _make
