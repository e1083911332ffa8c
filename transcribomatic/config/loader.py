"""
Configuration management and loading.

Handles application settings and environment variables. The configuration
is read once at process start and is immutable afterwards.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from transcribomatic.core.pricing import TokenRates

CONFIG_PATH_ENV = "TRANSCRIBOMATIC_CONFIG"
SECRET_ENV = "TRANSCRIBOMATIC_HMAC_SECRET"
API_KEY_ENV = "OPENAI_API_KEY"
DEFAULT_CONFIG_PATH = "config.yaml"

PRICING_KEYS = {
    'text_input', 'text_cached', 'text_output',
    'audio_input', 'audio_cached', 'audio_output', 'image',
}


@dataclass(frozen=True)
class OpenAIConfig:
    """Credentials for the OpenAI API."""
    api_key: Optional[str] = None
    organization: Optional[str] = None
    project: Optional[str] = None
    timeout: float = 30.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    json: bool = True


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    signing_secret: str
    base_url: str = ""
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    rates: TokenRates = field(default_factory=TokenRates)
    weekly_cost_limit: Decimal = Decimal("2.00")
    db_path: str = "transcribomatic.db"
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Validate required values."""
        if not self.signing_secret:
            raise ValueError("signing secret must be set")
        if self.weekly_cost_limit <= 0:
            raise ValueError("weekly_cost limit must be > 0")


def resolve_config_path(path: Optional[str] = None) -> str:
    """Explicit path, else $TRANSCRIBOMATIC_CONFIG, else ./config.yaml."""
    return path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH


def load_app_config(path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration from a YAML file.

    Unknown keys are rejected so a typo in a rate or in the weekly limit
    cannot silently fall back to a default. The signing secret and the
    OpenAI API key may come from the environment instead of the file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(resolve_config_path(path))
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}")

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    return parse_app_config(raw_config)


def parse_app_config(raw_config: Dict[str, Any]) -> AppConfig:
    """Build an AppConfig from an already parsed mapping."""
    allowed_top_keys = {'base_url', 'signing', 'openai', 'pricing', 'limits', 'storage', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    signing = _section(raw_config, 'signing', {'secret'})
    secret = signing.get('secret') or os.getenv(SECRET_ENV)
    if not secret:
        raise ValueError(f"Missing signing secret: set 'signing.secret' or {SECRET_ENV}")

    openai_data = _section(raw_config, 'openai', {'api_key', 'organization', 'project', 'timeout'})
    openai = OpenAIConfig(
        api_key=openai_data.get('api_key') or os.getenv(API_KEY_ENV),
        organization=openai_data.get('organization') or None,
        project=openai_data.get('project') or None,
        timeout=float(openai_data.get('timeout', 30.0)),
    )

    pricing = _section(raw_config, 'pricing', PRICING_KEYS)
    rates = TokenRates(**{key: _decimal(value, f"pricing.{key}") for key, value in pricing.items()})

    limits = _section(raw_config, 'limits', {'weekly_cost'})
    weekly_cost = _decimal(limits.get('weekly_cost', "2.00"), "limits.weekly_cost")

    storage = _section(raw_config, 'storage', {'db_path'})

    logging_data = _section(raw_config, 'logging', {'level', 'json'})
    logging = LoggingConfig(
        level=str(logging_data.get('level', 'INFO')).upper(),
        json=_flag(logging_data.get('json', True), "logging.json"),
    )

    base_url = raw_config.get('base_url') or ""
    if not isinstance(base_url, str):
        raise ValueError("'base_url' must be a string")

    return AppConfig(
        signing_secret=str(secret),
        base_url=base_url.rstrip('/'),
        openai=openai,
        rates=rates,
        weekly_cost_limit=weekly_cost,
        db_path=str(storage.get('db_path', 'transcribomatic.db')),
        logging=logging,
    )


def _section(raw_config: Dict[str, Any], name: str, allowed_keys: set) -> Dict[str, Any]:
    """Return an optional sub-mapping, rejecting unknown keys.

    Raises:
        ValueError: If the section is not a mapping or has unknown keys
    """
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown {name} keys: {unknown_keys}")
    return data


def _flag(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{path}' must be true or false")
    return value


def _decimal(value: Any, path: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValueError(f"'{path}' must be a number")
    try:
        # str() first so 0.011 stays 0.011 instead of its binary expansion
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")
    if not result.is_finite() or result < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return result
