"""
Configuration loader — reads linux-init.yml into a validated model.

Every setting has a built-in default, so a config file is optional.
Lookup order:

    --config flag  >  $LINUX_INIT_CONFIG  >  /etc/linux-init.yml  >  defaults

The file is plain YAML validated against Pydantic schemas; unknown keys
are rejected.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from linux_init.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LINUX_INIT_CONFIG"
SYSTEM_CONFIG_FILE = Path("/etc/linux-init.yml")


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PathSettings(_Section):
    """Where run artifacts are written (overwritten on every run)."""

    progress_file: Path = Path("/tmp/linux-init-progress.md")
    progress_state_file: Path = Path("/tmp/linux-init-progress.json")
    log_file: Path = Path("/tmp/linux-init.log")


class FetchSettings(_Section):
    """Retry and mirror policy for network retrievals."""

    mirror_base: str = "https://ghfast.top/"
    mirror_domains: list[str] = Field(
        default_factory=lambda: [
            "github.com",
            "*.github.com",
            "*.githubusercontent.com",
        ]
    )
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=3.0, ge=0)
    timeout_seconds: int = Field(default=30, ge=1)


class SourceSettings(_Section):
    """Remote scripts and files the steps retrieve."""

    openssh_upgrade: str = (
        "https://gist.github.com/Seameee/2061e673132b05e5ed8dd6eb125f1fd1/raw/upgrade_openssh.sh"
    )
    network_tools: str = "http://sh.nekoneko.cloud/tools.sh"
    zram: str = "https://raw.githubusercontent.com/spiritLHLS/addzram/main/addzram.sh"
    monitor_installer: str = (
        "https://raw.githubusercontent.com/komari-monitor/komari-agent/refs/heads/main/install.sh"
    )
    ohmyzsh_installer: str = (
        "https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh"
    )
    zshrc: str = (
        "https://gist.githubusercontent.com/Seameee/ab0a81e3ef476e6059f35a0785f12a32/raw/.zshrc"
    )
    zsh_plugins: dict[str, str] = Field(
        default_factory=lambda: {
            "zsh-autosuggestions": "https://github.com/zsh-users/zsh-autosuggestions",
            "zsh-syntax-highlighting": "https://github.com/zsh-users/zsh-syntax-highlighting.git",
        }
    )


class MonitorSettings(_Section):
    """Monitoring agent registration."""

    endpoint: str = "https://monitor.seaya.link"
    default_month_rotate: int = Field(default=12, ge=0)


class InitConfig(_Section):
    """Root configuration model."""

    paths: PathSettings = Field(default_factory=PathSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    sources: SourceSettings = Field(default_factory=SourceSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)

    packages: list[str] = Field(
        default_factory=lambda: ["wget", "curl", "jq", "sudo", "vnstat", "nano", "zsh", "git"]
    )
    timezone: str | None = None
    # Step ids escalated to critical in addition to the built-in ones.
    critical_steps: list[str] = Field(default_factory=list)

    def trusted_scripts(self) -> frozenset[str]:
        """URLs that may be downloaded and executed."""
        s = self.sources
        return frozenset({
            s.openssh_upgrade,
            s.network_tools,
            s.zram,
            s.monitor_installer,
            s.ohmyzsh_installer,
        })


def find_config_file() -> Path | None:
    """Locate a config file via the environment variable or the system path.

    Returns:
        Path to the config file, or None when only defaults apply.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    if SYSTEM_CONFIG_FILE.is_file():
        return SYSTEM_CONFIG_FILE
    return None


def load_config(path: Path | None = None) -> InitConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config path. If None, searches the usual places
            and falls back to built-in defaults.

    Returns:
        Validated InitConfig.

    Raises:
        ConfigError: If an explicit/located file is missing or invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No config file found, using defaults")
        return InitConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}", path=str(path))

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", path=str(path)) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", path=str(path)) from e

    if data is None:
        return InitConfig()

    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a YAML mapping in {path}, got {type(data).__name__}",
            path=str(path),
        )

    try:
        config = InitConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}", path=str(path)) from e

    logger.info("Loaded configuration from %s", path)
    return config
