"""Configuration management for the registration panel."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

DEFAULT_EMAIL_VALIDATION_URL = "https://emailvalidation.abstractapi.com/v1/"

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the web service and its collaborators."""

    admin_username: str = "admin"
    admin_password: str = "admin123"
    session_secret: str = "formpanel_secret"
    session_max_age: int = 24 * 60 * 60
    production: bool = False
    database_path: Path = _PROJECT_ROOT / "data" / "formpanel.sqlite3"
    connect_timeout: float = 30.0
    selection_timeout: float = 30.0
    pool_size: int = 10
    retry_delay: float = 5.0
    host: str = "0.0.0.0"
    port: int = 3000
    email_validation_api_key: Optional[str] = None
    email_validation_url: str = DEFAULT_EMAIL_VALIDATION_URL
    email_validation_timeout: float = 10.0
    access_log_path: Path = _PROJECT_ROOT / "access.log"
    validate_rate_limit: str = "100 per 15 minutes"

    @property
    def session_secure(self) -> bool:
        return self.production

    def with_overrides(self, **overrides: Any) -> "Settings":
        return replace(self, **overrides)


# Environment variable -> setting name
_ENV_VARS = {
    "FORMPANEL_ADMIN_USER": "admin_username",
    "FORMPANEL_ADMIN_PASS": "admin_password",
    "FORMPANEL_SESSION_SECRET": "session_secret",
    "FORMPANEL_SESSION_MAX_AGE": "session_max_age",
    "FORMPANEL_DB_PATH": "database_path",
    "FORMPANEL_DB_CONNECT_TIMEOUT": "connect_timeout",
    "FORMPANEL_DB_SELECTION_TIMEOUT": "selection_timeout",
    "FORMPANEL_DB_POOL_SIZE": "pool_size",
    "FORMPANEL_DB_RETRY_DELAY": "retry_delay",
    "FORMPANEL_HOST": "host",
    "FORMPANEL_PORT": "port",
    "EMAIL_VALIDATION_API_KEY": "email_validation_api_key",
    "FORMPANEL_EMAIL_VALIDATION_URL": "email_validation_url",
    "FORMPANEL_EMAIL_VALIDATION_TIMEOUT": "email_validation_timeout",
    "FORMPANEL_ACCESS_LOG": "access_log_path",
    "FORMPANEL_VALIDATE_RATE_LIMIT": "validate_rate_limit",
}

_INT_SETTINGS = {"session_max_age", "pool_size", "port"}
_FLOAT_SETTINGS = {"connect_timeout", "selection_timeout", "retry_delay", "email_validation_timeout"}
_PATH_SETTINGS = {"database_path", "access_log_path"}


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on", "production"}


def _coerce(name: str, raw: object, source: str, base_path: Optional[Path]) -> object:
    if name in _INT_SETTINGS:
        try:
            value = int(str(raw).strip())
        except ValueError as exc:
            raise ValueError(f"{source} must be an integer, got {raw!r}") from exc
        if value <= 0:
            raise ValueError(f"{source} must be positive, got {value}")
        return value
    if name in _FLOAT_SETTINGS:
        try:
            value = float(str(raw).strip())
        except ValueError as exc:
            raise ValueError(f"{source} must be a number, got {raw!r}") from exc
        if value < 0:
            raise ValueError(f"{source} must not be negative, got {value}")
        return value
    if name in _PATH_SETTINGS:
        path = Path(str(raw)).expanduser()
        if not path.is_absolute() and base_path is not None:
            path = base_path / path
        return path.resolve(strict=False)
    if name == "production":
        return raw if isinstance(raw, bool) else _env_flag(str(raw))
    text = str(raw).strip()
    if name == "email_validation_api_key":
        return text or None
    return text


def _load_yaml(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")

    known = {field.name for field in fields(Settings)}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
    return raw


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    candidate = (_PROJECT_ROOT / "config" / "formpanel.yaml").resolve(strict=False)
    return candidate if candidate.exists() else None


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from an optional YAML file and the environment.

    Environment variables take precedence over values from the file.
    """
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get("FORMPANEL_CONFIG"))

    values: Dict[str, object] = {}
    if config_path is not None:
        for name, raw in _load_yaml(config_path).items():
            if raw is None:
                continue
            values[name] = _coerce(name, raw, f"{config_path}:{name}", config_path.parent)

    for variable, name in _ENV_VARS.items():
        raw = env.get(variable)
        if raw is None or raw == "":
            continue
        values[name] = _coerce(name, raw, variable, None)

    if "FORMPANEL_ENV" in env:
        values["production"] = env["FORMPANEL_ENV"].strip().lower() == "production"

    return Settings(**values)


__all__ = ["DEFAULT_EMAIL_VALIDATION_URL", "Settings", "load_settings", "resolve_config_path"]
