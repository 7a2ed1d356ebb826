"""
Configuration management and loading.

Handles application settings from YAML files and environment variables.
Secrets (API keys, worker secret) are only ever read from the environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


DEFAULT_WORKER_SECRET = "dev-secret"


@dataclass(frozen=True)
class QuotaConfig:
    """Free usage allowance per billing period."""
    free_monthly_calls: int = 5

    def __post_init__(self):
        """Validate quota is positive."""
        if self.free_monthly_calls <= 0:
            raise ValueError("free_monthly_calls must be > 0")


@dataclass(frozen=True)
class StorageConfig:
    """Location of the SQLite database."""
    db_path: str = "memorybook.db"


@dataclass(frozen=True)
class GeneratorConfig:
    """Language model settings for story generation."""
    model: str = "gpt-4o"
    max_tokens: int = 1200
    timeout_seconds: float = 60.0
    base_url: Optional[str] = None
    api_key: Optional[str] = None

    def __post_init__(self):
        """Validate generator values."""
        if not self.model or not self.model.strip():
            raise ValueError("model is required and cannot be empty")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if self.timeout_seconds <= 0:
            raise ValueError("generator timeout_seconds must be > 0")


@dataclass(frozen=True)
class DelegateConfig:
    """Where and how to reach the PDF rendering worker."""
    url: Optional[str] = None
    secret: str = DEFAULT_WORKER_SECRET
    timeout_seconds: float = 120.0

    def __post_init__(self):
        """Validate delegate timeout."""
        if self.timeout_seconds <= 0:
            raise ValueError("delegate timeout_seconds must be > 0")

    @property
    def enabled(self) -> bool:
        """True when a worker endpoint is configured."""
        return bool(self.url)


@dataclass(frozen=True)
class WorkerConfig:
    """Settings for the PDF rendering worker service."""
    secret: str = DEFAULT_WORKER_SECRET
    bucket: Optional[str] = None
    endpoint_url: Optional[str] = None
    region: Optional[str] = None
    url_ttl_seconds: int = 60 * 60 * 24 * 7

    def __post_init__(self):
        """Validate signed URL lifetime."""
        if self.url_ttl_seconds <= 0:
            raise ValueError("url_ttl_seconds must be > 0")

    @property
    def storage_enabled(self) -> bool:
        """True when rendered PDFs should be uploaded to a bucket."""
        return bool(self.bucket)


@dataclass(frozen=True)
class LoggingConfig:
    """Log verbosity."""
    level: str = "INFO"

    def __post_init__(self):
        """Validate log level name."""
        if self.level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {self.level}")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    delegate: DelegateConfig = field(default_factory=DelegateConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Allowed keys per section; secrets are deliberately absent.
_SECTION_KEYS = {
    'quota': {'free_monthly_calls'},
    'storage': {'db_path'},
    'generator': {'model', 'max_tokens', 'timeout_seconds', 'base_url'},
    'delegate': {'url', 'timeout_seconds'},
    'worker': {'bucket', 'endpoint_url', 'region', 'url_ttl_seconds'},
    'logging': {'level'},
}

_NUMERIC_KEYS = {
    'free_monthly_calls': int,
    'max_tokens': int,
    'url_ttl_seconds': int,
    'timeout_seconds': float,
}


def load_app_config(path: Optional[str] = None,
                    env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load and validate application configuration.

    Values come from the optional YAML file first, then environment
    variables override them. Unknown keys are rejected so a typo can never
    silently fall back to a default quota.

    Args:
        path: Optional path to YAML configuration file
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If a path is given and the file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    env = os.environ if env is None else env
    sections: Dict[str, Dict[str, Any]] = {name: {} for name in _SECTION_KEYS}

    if path is not None:
        for name, values in _read_yaml(path).items():
            sections[name] = values

    _apply_env_overrides(sections, env)

    return AppConfig(
        quota=QuotaConfig(**sections['quota']),
        storage=StorageConfig(**sections['storage']),
        generator=GeneratorConfig(**sections['generator']),
        delegate=DelegateConfig(**sections['delegate']),
        worker=WorkerConfig(**sections['worker']),
        logging=LoggingConfig(**sections['logging']),
    )


def _read_yaml(path: str) -> Dict[str, Dict[str, Any]]:
    """Read a YAML config file and validate its structure."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    unknown_keys = set(raw_config.keys()) - set(_SECTION_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {}
    for name, data in raw_config.items():
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"'{name}' must be a dictionary")
        sections[name] = _parse_section(name, data)
    return sections


def _parse_section(name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate keys and coerce numeric values of a single section.

    Args:
        name: Section name for error messages
        data: Raw section mapping

    Returns:
        Keyword arguments for the section's dataclass

    Raises:
        ValueError: If the section has unknown keys or bad values
    """
    unknown_keys = set(data.keys()) - _SECTION_KEYS[name]
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")

    parsed = {}
    for key, value in data.items():
        caster = _NUMERIC_KEYS.get(key)
        if caster is not None:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{key}' in {name} must be a number")
            value = caster(value)
        elif value is not None and not isinstance(value, str):
            raise ValueError(f"'{key}' in {name} must be a string")
        parsed[key] = value
    return parsed


def _apply_env_overrides(sections: Dict[str, Dict[str, Any]], env: Mapping[str, str]) -> None:
    """Overlay environment variables onto parsed sections."""
    api_key = env.get('OPENAI_API_KEY')
    if api_key:
        sections['generator']['api_key'] = api_key

    worker_url = env.get('WORKER_URL')
    if worker_url:
        sections['delegate']['url'] = worker_url.rstrip('/')

    worker_secret = env.get('WORKER_SECRET')
    if worker_secret:
        sections['delegate']['secret'] = worker_secret
        sections['worker']['secret'] = worker_secret

    bucket = env.get('STORAGE_BUCKET')
    if bucket:
        sections['worker']['bucket'] = bucket

    endpoint_url = env.get('STORAGE_ENDPOINT_URL')
    if endpoint_url:
        sections['worker']['endpoint_url'] = endpoint_url.rstrip('/')

    db_path = env.get('MEMORYBOOK_DB_PATH')
    if db_path:
        sections['storage']['db_path'] = db_path

    log_level = env.get('MEMORYBOOK_LOG_LEVEL')
    if log_level:
        sections['logging']['level'] = log_level
