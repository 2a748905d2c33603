# ============================================================================
# guardian/base/config.py
# Application Configuration Management
# ============================================================================
#
# PURPOSE:
# Every tunable of the analysis engine lives here: the semantic-analysis
# service, the latency budget, share persistence and logging.
#
# KEY CONCEPTS:
# 1. Frozen dataclasses: each section is immutable once built
# 2. Environment Variables: GUARDIAN_* variables override defaults
# 3. Singleton: one process-wide config, replaceable in tests via set_config()
#
# ============================================================================

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Semantic Analysis (LLM) Configuration
# ============================================================================

@dataclass(frozen=True)
class LLMConfig:
    # "anthropic", "ollama" or "none"
    provider: str = "anthropic"

    # Empty means "use the provider's public default"
    base_url: str = ""

    model: str = "claude-3-haiku-20240307"

    # Only the anthropic provider needs a key; no key means augmentation is unconfigured
    api_key: str = ""

    # Master switch; False always produces an llm_skipped warning
    enabled: bool = True

    # Hard ceiling for one augmentation call (seconds); the remaining
    # analysis budget may shorten it further
    request_timeout: float = 8.0

    max_tokens: int = 1024

    # Local sliding-window limit on outbound calls
    rate_limit_per_minute: int = 20

    @property
    def is_configured(self) -> bool:
        if not self.enabled or self.provider == "none":
            return False
        if self.provider == "anthropic":
            return bool(self.api_key)
        return True


# ============================================================================
# Analysis Pipeline Configuration
# ============================================================================

@dataclass(frozen=True)
class AnalysisConfig:
    # Caller's overall latency budget for one check (milliseconds)
    total_budget_ms: int = 15000

    # Unmatched transactions above this complexity are sent to the LLM
    min_complexity_for_llm: int = 2

    # Skip the gating heuristics and always augment when configured
    always_use_llm: bool = False

    # Full node REST endpoint used for on-chain bytecode verification; empty disables it
    node_url: str = ""

    bytecode_timeout: float = 5.0


# ============================================================================
# Share Storage Configuration
# ============================================================================

@dataclass(frozen=True)
class StorageConfig:
    # "sqlite" or "memory"
    backend: str = "sqlite"

    base_dir: Path = field(default_factory=lambda: Path.home() / ".guardian")

    db_name: str = "guardian.db"

    # Reports older than this are no longer served
    result_ttl_days: int = 30

    share_id_length: int = 10

    @property
    def db_path(self) -> Path:
        return self.base_dir / self.db_name


# ============================================================================
# Logging Configuration
# ============================================================================

@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"

    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    file_enabled: bool = False

    file_name: str = "guardian.log"

    max_file_size_mb: int = 10

    backup_count: int = 5


# ============================================================================
# Master Configuration Container
# ============================================================================

@dataclass(frozen=True)
class GuardianConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)

    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    storage: StorageConfig = field(default_factory=StorageConfig)

    log: LogConfig = field(default_factory=LogConfig)

    debug: bool = False

    api_host: str = "127.0.0.1"

    api_port: int = 8765

    @classmethod
    def from_env(cls) -> "GuardianConfig":
        llm = LLMConfig(
            provider=os.getenv("GUARDIAN_LLM_PROVIDER", "anthropic").lower(),
            base_url=os.getenv("GUARDIAN_LLM_URL", ""),
            model=os.getenv("GUARDIAN_LLM_MODEL", "claude-3-haiku-20240307"),
            api_key=os.getenv("GUARDIAN_LLM_API_KEY") or os.getenv("ANTHROPIC_API_KEY", ""),
            enabled=os.getenv("GUARDIAN_LLM_ENABLED", "true").lower() == "true",
            request_timeout=float(os.getenv("GUARDIAN_LLM_TIMEOUT", "8")),
            max_tokens=int(os.getenv("GUARDIAN_LLM_MAX_TOKENS", "1024")),
            rate_limit_per_minute=int(os.getenv("GUARDIAN_LLM_RATE_LIMIT", "20")),
        )

        analysis = AnalysisConfig(
            total_budget_ms=int(os.getenv("GUARDIAN_BUDGET_MS", "15000")),
            min_complexity_for_llm=int(os.getenv("GUARDIAN_MIN_COMPLEXITY_FOR_LLM", "2")),
            always_use_llm=os.getenv("GUARDIAN_ALWAYS_USE_LLM", "false").lower() == "true",
            node_url=os.getenv("GUARDIAN_NODE_URL", ""),
            bytecode_timeout=float(os.getenv("GUARDIAN_BYTECODE_TIMEOUT", "5")),
        )

        base_dir = Path(os.getenv("GUARDIAN_DATA_DIR", str(Path.home() / ".guardian")))
        storage = StorageConfig(
            backend=os.getenv("GUARDIAN_STORE", "sqlite").lower(),
            base_dir=base_dir,
            result_ttl_days=int(os.getenv("GUARDIAN_RESULT_TTL_DAYS", "30")),
        )

        log = LogConfig(
            level=os.getenv("GUARDIAN_LOG_LEVEL", "INFO"),
            file_enabled=os.getenv("GUARDIAN_LOG_FILE", "false").lower() == "true",
        )

        return cls(
            llm=llm,
            analysis=analysis,
            storage=storage,
            log=log,
            debug=os.getenv("GUARDIAN_DEBUG", "false").lower() == "true",
            api_host=os.getenv("GUARDIAN_API_HOST", "127.0.0.1"),
            api_port=int(os.getenv("GUARDIAN_API_PORT", "8765")),
        )


# ============================================================================
# Global Configuration Singleton
# ============================================================================

_config: Optional[GuardianConfig] = None


def get_config() -> GuardianConfig:
    """
    Get the global configuration instance.

    Created from the environment on first use, then reused.
    """
    global _config
    if _config is None:
        _config = GuardianConfig.from_env()
    return _config


def set_config(config: Optional[GuardianConfig]) -> None:
    """
    Replace the global configuration (mainly used for testing).

    Passing None forces the next get_config() to re-read the environment.
    """
    global _config
    _config = config


def setup_logging(config: Optional[GuardianConfig] = None) -> None:
    """
    Configure Python's logging system based on our settings.

    Call this once at application startup.
    """
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_enabled:
        from logging.handlers import RotatingFileHandler
        cfg.storage.base_dir.mkdir(parents=True, exist_ok=True)
        log_path = cfg.storage.base_dir / cfg.log.file_name
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = "DEBUG" if cfg.debug else cfg.log.level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
