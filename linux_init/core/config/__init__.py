"""Configuration loading."""

from linux_init.core.config.loader import InitConfig, load_config

__all__ = ["InitConfig", "load_config"]
