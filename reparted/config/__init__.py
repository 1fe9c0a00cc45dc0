"""Configuration loading for resize runs."""

from .settings import RepartedConfig, load_config, save_config

__all__ = ["RepartedConfig", "load_config", "save_config"]
