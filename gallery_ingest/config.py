"""
Pipeline Configuration
======================

Pipeline settings loaded from a YAML file. Every section has defaults, so a
missing file or a partial file yields a usable configuration. Secrets are
never stored in YAML; they are read from the environment by the clients
that need them.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Per-domain rate limiting for the page-fetch service."""

    requests_per_second: float = 2.0
    burst_limit: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RateLimitConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            requests_per_second=float(data.get("requests_per_second", 2.0)),
            burst_limit=int(data.get("burst_limit", 5)),
        )


@dataclass
class FetcherConfig:
    """Page-fetch service settings."""

    base_url: str = "https://api.firecrawl.dev"
    request_timeout: int = 60
    max_retries: int = 3
    user_agent: str = "GalleryIngest/0.1"
    scrape_concurrency: int = 5
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FetcherConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            base_url=data.get("base_url", "https://api.firecrawl.dev"),
            request_timeout=int(data.get("request_timeout", 60)),
            max_retries=int(data.get("max_retries", 3)),
            user_agent=data.get("user_agent", "GalleryIngest/0.1"),
            scrape_concurrency=int(data.get("scrape_concurrency", 5)),
            rate_limit=RateLimitConfig.from_dict(data.get("rate_limit")),
        )


@dataclass
class AIConfig:
    """Completion service settings."""

    provider: str = "openai"
    chat_model: str | None = None
    embedding_model: str = "text-embedding-3-small"
    max_markdown_length: int = 50_000
    temperature: float = 0.0
    max_tokens: int = 4096
    timeout: float = 120.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AIConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            provider=data.get("provider", "openai"),
            chat_model=data.get("chat_model"),
            embedding_model=data.get("embedding_model", "text-embedding-3-small"),
            max_markdown_length=int(data.get("max_markdown_length", 50_000)),
            temperature=float(data.get("temperature", 0.0)),
            max_tokens=int(data.get("max_tokens", 4096)),
            timeout=float(data.get("timeout", 120.0)),
        )


@dataclass
class PollingConfig:
    """Bounded polling used by the composite workflows."""

    attempts: int = 24
    interval_seconds: float = 5.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PollingConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            attempts=int(data.get("attempts", 24)),
            interval_seconds=float(data.get("interval_seconds", 5.0)),
        )


@dataclass
class StepConfig:
    """Retry policy for durable workflow steps."""

    max_attempts: int = 3
    backoff_base_seconds: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> StepConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            max_attempts=max(1, int(data.get("max_attempts", 3))),
            backoff_base_seconds=float(data.get("backoff_base_seconds", 1.0)),
        )


@dataclass
class DiscoveryConfig:
    """Link discovery settings."""

    default_limit: int = 100

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DiscoveryConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(default_limit=int(data.get("default_limit", 100)))


@dataclass
class EventConfig:
    """Event materialization settings."""

    default_timezone: str = "Europe/Warsaw"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EventConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(default_timezone=data.get("default_timezone", "Europe/Warsaw"))


@dataclass
class PipelineConfig:
    """Top-level pipeline configuration."""

    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    steps: StepConfig = field(default_factory=StepConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    events: EventConfig = field(default_factory=EventConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PipelineConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            fetcher=FetcherConfig.from_dict(data.get("fetcher")),
            ai=AIConfig.from_dict(data.get("ai")),
            polling=PollingConfig.from_dict(data.get("polling")),
            steps=StepConfig.from_dict(data.get("steps")),
            discovery=DiscoveryConfig.from_dict(data.get("discovery")),
            events=EventConfig.from_dict(data.get("events")),
        )


def load_config(config_path: Path | str) -> PipelineConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the pipeline.yaml file

    Returns:
        Parsed PipelineConfig
    """
    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    logger.debug(f"Loaded pipeline config from {config_path}")
    return PipelineConfig.from_dict(data)


# Global config instance
_default_config: PipelineConfig | None = None


def get_default_config() -> PipelineConfig:
    """
    Get the default pipeline configuration.

    Loads configuration from the path specified in PIPELINE_CONFIG_PATH
    environment variable, or falls back to config/pipeline.yaml. Missing
    files yield the built-in defaults.
    """
    global _default_config

    if _default_config is None:
        config_path = os.environ.get("PIPELINE_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            project_root = Path(__file__).parent.parent
            path = project_root / "config" / "pipeline.yaml"

        if path.exists():
            _default_config = load_config(path)
        else:
            _default_config = PipelineConfig()

    return _default_config


def reset_default_config() -> None:
    """Reset the default config (useful for testing)."""
    global _default_config
    _default_config = None
