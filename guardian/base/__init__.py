"""Shared base infrastructure: configuration and logging setup."""

from guardian.base.config import (
    AnalysisConfig,
    GuardianConfig,
    LLMConfig,
    LogConfig,
    StorageConfig,
    get_config,
    set_config,
    setup_logging,
)

__all__ = [
    "AnalysisConfig",
    "GuardianConfig",
    "LLMConfig",
    "LogConfig",
    "StorageConfig",
    "get_config",
    "set_config",
    "setup_logging",
]
