"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ClassifierConfig:
    """Oracle routing and retry settings."""
    mode: str = "local"
    relay_url: str = "http://127.0.0.1:7890"
    api_base_url: str = "https://api.anthropic.com/v1"
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    max_attempts: int = 2
    retry_delay: float = 1.0
    timeout: float = 60.0


@dataclass
class BatchingConfig:
    """Batch assembly bounds."""
    batch_size: int = 5
    batch_timeout: float = 3.0


@dataclass
class CacheConfig:
    """Verdict cache settings."""
    max_entries: int = 500
    ttl_seconds: float = 24 * 60 * 60
    flush_interval: float = 5.0


@dataclass
class QuotaConfig:
    """Daily usage budget."""
    time_limit_seconds: int = 900
    heartbeat_interval: int = 10
    lockout_close_delay: float = 3.0


@dataclass
class PresentationConfig:
    """Presentation policy switches."""
    feed_reordering_enabled: bool = True
    thread_override_enabled: bool = True
    classifier_retry_interval: float = 5.0


@dataclass
class LogConfig:
    """Classification history settings."""
    enabled: bool = False
    max_entries: int = 500
    max_persisted: int = 5000
    flush_interval: float = 10.0


@dataclass
class RelayConfig:
    """Local classification relay settings."""
    host: str = "127.0.0.1"
    port: int = 7890
    pool_size: int = 3
    max_body_bytes: int = 1024 * 1024
    command: str = "claude"
    model: str = "sonnet"
    timeout: float = 60.0


@dataclass
class PathsConfig:
    """Path settings."""
    state_file: Path = Path("state/feed_shield.yaml")


@dataclass
class Settings:
    """Application settings."""

    # API key (from environment only)
    anthropic_api_key: str = ""

    # Config sections
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    batching: BatchingConfig = field(default_factory=BatchingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    presentation: PresentationConfig = field(default_factory=PresentationConfig)
    log: LogConfig = field(default_factory=LogConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    @property
    def state_file(self) -> Path:
        return self.paths.state_file

    def runtime_defaults(self) -> dict:
        """User-adjustable settings, before any stored overrides."""
        return {
            "classification_mode": self.classifier.mode,
            "time_limit_seconds": self.quota.time_limit_seconds,
            "feed_reordering_enabled": self.presentation.feed_reordering_enabled,
            "logging_enabled": self.log.enabled,
        }


SECTIONS = ("classifier", "batching", "cache", "quota", "presentation", "log", "relay")


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings(anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""))

    for section in SECTIONS:
        for key, value in (config.get(section) or {}).items():
            target = getattr(settings, section)
            if not hasattr(target, key):
                raise ValueError(f"Unknown setting {section}.{key}")
            setattr(target, key, value)

    if "paths" in config:
        for key, value in config["paths"].items():
            setattr(settings.paths, key, Path(value))

    return settings
