"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class StorageConfig:
    database_url: str = "sqlite:///templaito.db"


@dataclass
class AIConfig:
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    openai_model: str = "gpt-4o"
    anthropic_model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4000
    timeout_seconds: float = 120.0

    def to_provider_dict(self) -> dict:
        """Return a dict suitable for passing to get_provider()."""
        return {
            "openai_api_key": self.openai_api_key,
            "anthropic_api_key": self.anthropic_api_key,
            "openai_model": self.openai_model,
            "anthropic_model": self.anthropic_model,
            "max_tokens": self.max_tokens,
            "timeout_seconds": self.timeout_seconds,
        }


@dataclass
class ScrapeConfig:
    timeout_seconds: float = 30.0
    max_workers: int = 4


@dataclass
class ESPConfig:
    backend_url: str = ""
    service_token: str = ""
    timeout_seconds: float = 30.0


@dataclass
class SecurityConfig:
    encryption_key: str = ""


@dataclass
class PublishConfig:
    max_workers: int = 4
    default_campaign_name: str = "Newsletter"


@dataclass
class Config:
    storage: StorageConfig = field(default_factory=StorageConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    scrape: ScrapeConfig = field(default_factory=ScrapeConfig)
    esp: ESPConfig = field(default_factory=ESPConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)


def _dict_to_config(data: dict) -> Config:
    """Convert a raw dict to a Config dataclass, handling nested structures."""
    from dacite import Config as DaciteConfig, from_dict

    return from_dict(data_class=Config, data=data, config=DaciteConfig(cast=[float]))


def _find_config_file() -> Path | None:
    """Search for config file in standard locations."""
    # 1. Environment variable
    env_path = os.environ.get("TEMPLAITO_CONFIG")
    if env_path:
        p = Path(env_path)
        if p.exists():
            return p

    # 2. Current directory
    local = Path("config.yaml")
    if local.exists():
        return local

    # 3. XDG config dir
    xdg = Path.home() / ".config" / "templaito" / "config.yaml"
    if xdg.exists():
        return xdg

    return None


def _load_dotenv() -> None:
    """Load .env file from current directory if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        # Don't overwrite already-set env vars
        if key not in os.environ:
            os.environ[key] = value


def _apply_env_overrides(config: Config) -> Config:
    """Override config values from environment variables.

    Supports:
        DATABASE_URL             -> config.storage.database_url
        OPENAI_API_KEY           -> config.ai.openai_api_key
        ANTHROPIC_API_KEY        -> config.ai.anthropic_api_key (CLOUD_API_KEY also accepted)
        TEMPLAITO_BACKEND_URL    -> config.esp.backend_url
        TEMPLAITO_SERVICE_TOKEN  -> config.esp.service_token
        ENCRYPTION_KEY           -> config.security.encryption_key
    """
    if os.environ.get("DATABASE_URL"):
        config.storage.database_url = os.environ["DATABASE_URL"]
    if os.environ.get("OPENAI_API_KEY"):
        config.ai.openai_api_key = os.environ["OPENAI_API_KEY"]
    anthropic_key = os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("CLOUD_API_KEY")
    if anthropic_key:
        config.ai.anthropic_api_key = anthropic_key
    if os.environ.get("TEMPLAITO_BACKEND_URL"):
        config.esp.backend_url = os.environ["TEMPLAITO_BACKEND_URL"]
    if os.environ.get("TEMPLAITO_SERVICE_TOKEN"):
        config.esp.service_token = os.environ["TEMPLAITO_SERVICE_TOKEN"]
    if os.environ.get("ENCRYPTION_KEY"):
        config.security.encryption_key = os.environ["ENCRYPTION_KEY"]
    return config


def load_config(path: str | Path | None = None) -> Config:
    """Load configuration from YAML file, merging with defaults.

    Also loads .env file and applies environment variable overrides.
    """
    _load_dotenv()

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = _find_config_file()

    if config_path is None:
        config = Config()
    else:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        config = _dict_to_config(raw)

    return _apply_env_overrides(config)
