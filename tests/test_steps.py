"""
Tests for the provisioning steps, run against a fake shell and fetcher.
"""

from pathlib import Path

import pytest

from conftest import FakeFetcher, FakeShell, make_env
from linux_init.core.engine.orchestrator import Orchestrator, RunState
from linux_init.core.errors import FetchError, StepError
from linux_init.core.models.environment import GIB, VirtKind
from linux_init.core.models.ledger import StepStatus
from linux_init.core.models.step import StepContext
from linux_init.core.persistence.ledger import ProgressLedger
from linux_init.core.services.prompts import ScriptedPrompter
from linux_init.core.steps import build_steps
from linux_init.core.steps.logrotate import LOGROTATE_PATH, configure_logrotate
from linux_init.core.steps.monitor import install_monitor_agent
from linux_init.core.steps.network import BBR_SYSCTL_PATH, configure_network, configure_zram
from linux_init.core.steps.ssh import SSHD_DROPIN_PATH, configure_ssh, is_public_key
from linux_init.core.steps.system import (
    detect_system,
    install_base_tools,
    set_timezone,
    update_packages,
)
from linux_init.core.steps.zsh import install_zsh

PUBKEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIGZhaWtlLWtleS1mb3ItdGVzdHM= me@laptop"


# ── Registry ─────────────────────────────────────────────────────────


class TestRegistry:
    def test_order(self):
        ids = [s.id for s in build_steps()]
        assert ids[0] == "system-detect"
        assert ids[-1] == "zsh-shell"
        assert ids.index("package-update") < ids.index("base-tools") < ids.index("ssh-hardening")
        assert len(ids) == len(set(ids))

    def test_only_detection_is_critical(self):
        assert [s.id for s in build_steps() if s.critical] == ["system-detect"]


# ── System ───────────────────────────────────────────────────────────


class TestDetectSystem:
    @pytest.mark.parametrize("distro,pm", [("ubuntu", "apt"), ("debian", "apt"), ("alpine", "apk")])
    def test_supported(self, make_ctx, distro, pm):
        outcome = detect_system(make_ctx(distro_id=distro))
        assert outcome.ok
        assert f"package manager: {pm}" in outcome.message

    def test_unsupported(self, make_ctx):
        with pytest.raises(StepError, match="Unsupported system type: arch"):
            detect_system(make_ctx(distro_id="arch"))


class TestTimezone:
    def test_unset_is_skipped(self, make_ctx, shell):
        assert set_timezone(make_ctx()).skipped
        assert shell.calls == []

    def test_timedatectl(self, make_ctx, config, shell):
        config.timezone = "Asia/Shanghai"
        assert set_timezone(make_ctx()).ok
        assert shell.calls == [["timedatectl", "set-timezone", "Asia/Shanghai"]]

    def test_alpine_setup_timezone(self, make_ctx, config, shell):
        config.timezone = "UTC"
        shell.available = {"setup-timezone"}
        set_timezone(make_ctx(distro_id="alpine"))
        assert shell.calls == [["setup-timezone", "-z", "UTC"]]

    def test_no_tool(self, make_ctx, config, shell):
        config.timezone = "UTC"
        shell.available = set()
        with pytest.raises(StepError):
            set_timezone(make_ctx())


class TestUpdatePackages:
    def test_apt(self, make_ctx, shell):
        assert update_packages(make_ctx()).ok
        assert shell.calls == [["apt", "update"], ["apt", "upgrade", "-y"]]

    def test_apk(self, make_ctx, shell):
        update_packages(make_ctx(distro_id="alpine"))
        assert shell.calls == [["apk", "update"], ["apk", "-U", "upgrade"]]

    def test_update_failure_still_upgrades(self, make_ctx, shell):
        shell.fail_on = [("apt", "update")]
        with pytest.raises(StepError, match="Package update failed"):
            update_packages(make_ctx())
        assert ["apt", "upgrade", "-y"] in shell.calls


class TestBaseTools:
    def test_installs_missing_only(self, make_ctx, config, shell):
        config.packages = ["zsh", "jq", "git"]
        outcome = install_base_tools(make_ctx())
        assert outcome.ok
        assert shell.calls == [["apt", "install", "-y", "jq"], ["apt", "install", "-y", "git"]]
        assert "already present zsh" in outcome.message

    def test_collects_failures(self, make_ctx, config, shell):
        config.packages = ["jq", "vnstat", "git"]
        shell.fail_on = [("apt", "install", "-y", "vnstat")]
        with pytest.raises(StepError, match="Failed to install: vnstat"):
            install_base_tools(make_ctx())
        assert ["apt", "install", "-y", "git"] in shell.calls


# ── SSH ──────────────────────────────────────────────────────────────


class TestSSH:
    def test_public_key_check(self):
        assert is_public_key(PUBKEY)
        assert not is_public_key("hello")
        assert not is_public_key("")

    def test_declined_touches_nothing(self, make_ctx, shell, fetcher, tmp_path: Path):
        ctx = make_ctx(prompter=ScriptedPrompter(confirms=[False]))
        outcome = configure_ssh(ctx, ssh_dir=tmp_path / ".ssh")
        assert outcome.skipped
        assert "declined" in outcome.message
        assert shell.calls == []
        assert shell.written == {}
        assert fetcher.touched == 0
        assert not (tmp_path / ".ssh").exists()

    def test_key_added_and_password_login_disabled(self, make_ctx, shell, fetcher, tmp_path: Path):
        ssh_dir = tmp_path / ".ssh"
        ctx = make_ctx(prompter=ScriptedPrompter(confirms=[True], answers=[PUBKEY]))
        outcome = configure_ssh(ctx, ssh_dir=ssh_dir)

        assert outcome.ok
        assert (ssh_dir / "authorized_keys").read_text() == PUBKEY + "\n"
        assert (ssh_dir / "authorized_keys").stat().st_mode & 0o777 == 0o600
        assert "PasswordAuthentication no" in shell.written[SSHD_DROPIN_PATH]
        assert ["systemctl", "restart", "sshd"] in shell.calls
        assert fetcher.executed[0][0] == ctx.config.sources.openssh_upgrade

    def test_no_key_keeps_password_login(self, make_ctx, shell, tmp_path: Path):
        ctx = make_ctx(prompter=ScriptedPrompter(confirms=[True], answers=["not a key"]))
        outcome = configure_ssh(ctx, ssh_dir=tmp_path / ".ssh")
        assert outcome.skipped
        assert SSHD_DROPIN_PATH not in shell.written

    def test_existing_keys_are_enough(self, make_ctx, shell, tmp_path: Path):
        ssh_dir = tmp_path / ".ssh"
        ssh_dir.mkdir()
        (ssh_dir / "authorized_keys").write_text(PUBKEY + "\n")
        ctx = make_ctx(distro_id="alpine", prompter=ScriptedPrompter(confirms=[True]))
        assert configure_ssh(ctx, ssh_dir=ssh_dir).ok
        assert ["rc-service", "sshd", "restart"] in shell.calls

    def test_upgrade_script_failure_is_noted(self, make_ctx, config, shell, tmp_path: Path):
        fetcher = FakeFetcher(fail_urls={config.sources.openssh_upgrade})
        ctx = StepContext(
            env=make_env(),
            config=config,
            shell=shell,
            fetcher=fetcher,
            prompter=ScriptedPrompter(confirms=[True], answers=[PUBKEY]),
        )
        outcome = configure_ssh(ctx, ssh_dir=tmp_path / ".ssh")
        assert outcome.ok
        assert "OpenSSH upgrade failed" in outcome.message


# ── Network / zram ───────────────────────────────────────────────────


class TestNetwork:
    def test_debian_13_native_bbr(self, make_ctx, shell, fetcher):
        outcome = configure_network(make_ctx(distro_version="13"))
        assert outcome.ok
        assert "bbr" in shell.written[BBR_SYSCTL_PATH]
        assert ["sysctl", "--system"] in shell.calls
        assert fetcher.touched == 0

    def test_older_systems_use_script(self, make_ctx, fetcher, config):
        configure_network(make_ctx(distro_id="ubuntu", distro_version="24.04"))
        assert fetcher.executed == [(config.sources.network_tools, [], True)]

    @pytest.mark.parametrize("virt", [VirtKind.LXC, VirtKind.CONTAINER])
    def test_containers_skip(self, make_ctx, fetcher, shell, virt):
        ctx = make_ctx(virtualization=virt)
        assert configure_network(ctx).skipped
        assert configure_zram(ctx).skipped
        assert fetcher.touched == 0
        assert shell.written == {}

    def test_zram_on_kvm(self, make_ctx, fetcher, config):
        assert configure_zram(make_ctx()).ok
        assert fetcher.executed == [(config.sources.zram, [], True)]

    def test_zram_skipped_on_other_hypervisors(self, make_ctx, fetcher):
        outcome = configure_zram(make_ctx(virtualization=VirtKind.UNKNOWN, virtualization_raw="vmware"))
        assert outcome.skipped
        assert "vmware" in outcome.message
        assert fetcher.touched == 0


# ── Monitor ──────────────────────────────────────────────────────────


class TestMonitor:
    def test_empty_key_skips(self, make_ctx, fetcher):
        assert install_monitor_agent(make_ctx()).skipped
        assert fetcher.touched == 0

    def test_installs_with_defaults(self, make_ctx, fetcher, config):
        ctx = make_ctx(prompter=ScriptedPrompter(answers=["secret", ""]))
        assert install_monitor_agent(ctx).ok
        url, args, privileged = fetcher.executed[0]
        assert url == config.sources.monitor_installer
        assert privileged
        assert args == [
            "-e", "https://monitor.seaya.link",
            "--auto-discovery", "secret",
            "--disable-web-ssh",
            "--month-rotate", "12",
        ]

    def test_invalid_month_rotate_falls_back(self, make_ctx, fetcher):
        ctx = make_ctx(prompter=ScriptedPrompter(answers=["secret", "soon"]))
        install_monitor_agent(ctx)
        assert fetcher.executed[0][1][-1] == "12"

    def test_fetch_failure_propagates(self, make_ctx, config, shell):
        fetcher = FakeFetcher(fail_urls={config.sources.monitor_installer})
        ctx = StepContext(
            env=make_env(), config=config, shell=shell, fetcher=fetcher,
            prompter=ScriptedPrompter(answers=["secret", "6"]),
        )
        with pytest.raises(FetchError, match="All 3 attempts failed"):
            install_monitor_agent(ctx)


# ── Logrotate ────────────────────────────────────────────────────────


class TestLogrotate:
    def test_small_disk_writes_policy(self, make_ctx, shell):
        # 8_000_000 KiB is 7.63 GiB, so it counts as 7GB
        outcome = configure_logrotate(make_ctx(root_disk_size_bytes=8_000_000 * 1024))
        assert outcome.ok
        assert "rotate 3" in shell.written[LOGROTATE_PATH]

    def test_eight_gb_is_not_small(self, make_ctx, shell):
        assert configure_logrotate(make_ctx(root_disk_size_bytes=8 * GIB)).skipped
        assert shell.written == {}


# ── zsh ──────────────────────────────────────────────────────────────


class TestZsh:
    @pytest.fixture(autouse=True)
    def _no_zsh_custom(self, monkeypatch):
        monkeypatch.delenv("ZSH_CUSTOM", raising=False)
        monkeypatch.setenv("USER", "tester")

    def test_requires_zsh(self, make_ctx, shell, tmp_path: Path):
        shell.available = set()
        with pytest.raises(StepError, match="zsh is not installed"):
            install_zsh(make_ctx(), home=tmp_path)

    def test_full_install(self, make_ctx, shell, fetcher, config, tmp_path: Path):
        outcome = install_zsh(make_ctx(), home=tmp_path)
        assert outcome.ok
        assert ["chsh", "-s", "/bin/zsh", "tester"] in shell.calls
        assert fetcher.executed == [(config.sources.ohmyzsh_installer, ["--unattended"], False)]
        cloned = {dest.name for _, dest in fetcher.clones}
        assert cloned == {"zsh-autosuggestions", "zsh-syntax-highlighting"}
        assert all(dest.parent == tmp_path / ".oh-my-zsh" / "custom" / "plugins"
                   for _, dest in fetcher.clones)
        assert fetcher.files[0][0] == config.sources.zshrc

    def test_alpine_switches_root_shell(self, make_ctx, shell, tmp_path: Path):
        install_zsh(make_ctx(distro_id="alpine"), home=tmp_path)
        assert shell.calls[0][0] == "sed"
        assert shell.calls[0][-1] == "/etc/passwd"

    def test_existing_install_is_reused(self, make_ctx, fetcher, tmp_path: Path):
        plugins = tmp_path / ".oh-my-zsh" / "custom" / "plugins"
        (plugins / "zsh-autosuggestions").mkdir(parents=True)
        (plugins / "zsh-syntax-highlighting").mkdir()
        install_zsh(make_ctx(), home=tmp_path)
        assert fetcher.executed == []
        assert fetcher.clones == []

    def test_staged_zshrc_replaces_existing(self, make_ctx, tmp_path: Path):
        (tmp_path / ".zshrc").write_text("old")
        (tmp_path / ".zshrc.linux-init").write_text("new")
        install_zsh(make_ctx(), home=tmp_path)
        assert (tmp_path / ".zshrc").read_text() == "new"

    def test_partial_failure_reported(self, make_ctx, config, shell, tmp_path: Path):
        plugin_url = config.sources.zsh_plugins["zsh-autosuggestions"]
        fetcher = FakeFetcher(fail_urls={plugin_url})
        ctx = StepContext(
            env=make_env(), config=config, shell=shell, fetcher=fetcher,
            prompter=ScriptedPrompter(),
        )
        with pytest.raises(StepError, match="zsh-autosuggestions"):
            install_zsh(ctx, home=tmp_path)
        assert len(fetcher.clones) == 2


# ── Whole pipeline ───────────────────────────────────────────────────


class TestPipeline:
    def _run(self, config, env, prompter, tmp_path: Path):
        shell = FakeShell(available={"zsh", "timedatectl"})
        fetcher = FakeFetcher()
        ledger = ProgressLedger(tmp_path / "progress.md", tmp_path / "progress.json")
        orch = Orchestrator(
            config,
            ledger,
            prompter,
            probe=lambda: env,
            context_factory=lambda e: StepContext(
                env=e, config=config, shell=shell, fetcher=fetcher, prompter=prompter,
            ),
        )
        return orch.execute(build_steps()), ledger, shell, fetcher

    def test_lxc_host(self, config, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("USER", "tester")
        monkeypatch.delenv("ZSH_CUSTOM", raising=False)
        env = make_env(virtualization=VirtKind.LXC, virtualization_raw="lxc",
                       root_disk_size_bytes=30 * GIB)
        summary, ledger, _, fetcher = self._run(
            config, env, ScriptedPrompter(confirms=[False]), tmp_path
        )

        assert summary.state is RunState.COMPLETED
        assert ledger.status_of("network-tuning") is StepStatus.SKIPPED
        assert ledger.status_of("zram") is StepStatus.SKIPPED
        assert ledger.status_of("ssh-hardening") is StepStatus.SKIPPED
        assert ledger.status_of("zsh-shell") is StepStatus.DONE
        assert config.sources.network_tools not in [u for u, _, _ in fetcher.executed]
        assert config.sources.zram not in [u for u, _, _ in fetcher.executed]
        assert ledger.document.pending() == []

    def test_unsupported_distro_aborts(self, config, tmp_path: Path):
        env = make_env(distro_id="arch")
        summary, ledger, shell, fetcher = self._run(config, env, ScriptedPrompter(), tmp_path)

        assert summary.state is RunState.ABORTED
        assert ledger.status_of("system-detect") is StepStatus.FAILED
        assert len(ledger.document.pending()) == len(build_steps()) - 1
        assert shell.calls == []
        assert fetcher.touched == 0
