"""Configuration module for reply-guard."""

from reply_guard.config.loader import get_config_path, load_config, save_config
from reply_guard.config.schema import CooperatingSettings, GuardConfig, RetrySettings

__all__ = [
    "GuardConfig",
    "RetrySettings",
    "CooperatingSettings",
    "load_config",
    "save_config",
    "get_config_path",
]
