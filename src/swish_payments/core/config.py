"""
Configuration objects and helpers for the Swish client.
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .environment import build_environment

__all__ = [
    "ClientConfig",
    "ClientParameters",
    "ConfigError",
    "Environment",
    "load_client_config",
]


class Environment(str, enum.Enum):
    PRODUCTION = "production"
    TEST = "test"
    SANDBOX = "sandbox"

    @property
    def base_url(self) -> str:
        return _BASE_URLS[self]


_BASE_URLS = {
    Environment.PRODUCTION: "https://cpc.getswish.net",
    Environment.TEST: "https://mss.cpc.getswish.net",
    Environment.SANDBOX: "https://staging.getswish.pub.tds.tieto.com",
}

_PARAMETER_TO_ENV_KEY = {
    "cert_path": "SWISH_CERT_PATH",
    "key_path": "SWISH_KEY_PATH",
    "payee_alias": "SWISH_PAYEE_ALIAS",
    "ca_path": "SWISH_CA_PATH",
    "passphrase": "SWISH_PASSPHRASE",
    "environment": "SWISH_ENVIRONMENT",
    "base_url": "SWISH_BASE_URL",
    "timeout": "SWISH_TIMEOUT",
    "connect_timeout": "SWISH_CONNECT_TIMEOUT",
    "max_retries": "SWISH_MAX_RETRIES",
    "verify_cert_files": "SWISH_VERIFY_CERT_FILES",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(Exception):
    """Raised when the supplied configuration is invalid."""


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Environment):
        return value.value
    return str(value)


@dataclass(frozen=True)
class ClientParameters:
    """
    Explicit parameter bundle for :meth:`ClientConfig.from_env`.

    Values set here take precedence over the environment and the ``.env`` file.
    """

    cert_path: Optional[str] = None
    key_path: Optional[str] = None
    payee_alias: Optional[str] = None
    ca_path: Optional[str] = None
    passphrase: Optional[str] = None
    environment: Optional[Environment | str] = None
    base_url: Optional[str] = None
    timeout: Optional[int | str] = None
    connect_timeout: Optional[int | str] = None
    max_retries: Optional[int | str] = None
    verify_cert_files: Optional[bool | str] = None

    def as_overrides(self) -> Dict[str, str]:
        overrides: Dict[str, str] = {}
        for field_name, env_key in _PARAMETER_TO_ENV_KEY.items():
            value = getattr(self, field_name)
            if value is None:
                continue
            overrides[env_key] = _stringify(value)
        return overrides


def _collect_parameter_overrides(
    parameters: Optional[ClientParameters],
    explicit: Mapping[str, Any],
) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    if parameters is not None:
        overrides.update(parameters.as_overrides())

    for key, value in explicit.items():
        if value is None:
            continue
        try:
            env_key = _PARAMETER_TO_ENV_KEY[key]
        except KeyError as exc:
            raise TypeError(f"Unknown client parameter '{key}'") from exc
        overrides[env_key] = _stringify(value)
    return overrides


def _parse_int(values: Mapping[str, str], key: str, default: int) -> int:
    raw = values.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got '{raw}'") from exc


def _parse_bool(values: Mapping[str, str], key: str, default: bool) -> bool:
    raw = values.get(key)
    if raw is None or raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{key} must be a boolean, got '{raw}'")


def _parse_environment(raw: Optional[str]) -> Environment:
    if raw is None or raw.strip() == "":
        return Environment.PRODUCTION
    try:
        return Environment(raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(env.value for env in Environment)
        raise ConfigError(f"SWISH_ENVIRONMENT must be one of {choices}, got '{raw}'") from exc


def _is_readable_file(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.R_OK)


@dataclass(frozen=True)
class ClientConfig:
    """
    Immutable client configuration.

    Validation runs at construction so a bad certificate path fails at startup
    instead of on the first request.
    """

    cert_path: str
    key_path: str
    payee_alias: str
    ca_path: Optional[str] = None
    passphrase: Optional[str] = None
    environment: Environment = Environment.PRODUCTION
    base_url_override: Optional[str] = None
    timeout: int = 30
    connect_timeout: int = 10
    max_retries: int = 3
    verify_cert_files: bool = True

    def __post_init__(self) -> None:
        if not self.cert_path.strip():
            raise ConfigError("cert_path must not be empty")
        if not self.key_path.strip():
            raise ConfigError("key_path must not be empty")
        if not self.payee_alias.strip():
            raise ConfigError("payee_alias must not be empty")
        if self.timeout < 1:
            raise ConfigError("timeout must be at least 1 second")
        if self.connect_timeout < 1:
            raise ConfigError("connect_timeout must be at least 1 second")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")
        if self.base_url_override and not self.base_url_override.lower().startswith("https://"):
            raise ConfigError("base_url must use https://")

        if self.verify_cert_files:
            if not _is_readable_file(self.cert_path):
                raise ConfigError(f"Certificate file not found or not readable: {self.cert_path}")
            if not _is_readable_file(self.key_path):
                raise ConfigError(f"Key file not found or not readable: {self.key_path}")
            if self.ca_path is not None and not _is_readable_file(self.ca_path):
                raise ConfigError(f"CA bundle file not found or not readable: {self.ca_path}")

    @property
    def base_url(self) -> str:
        if self.base_url_override:
            return self.base_url_override.rstrip("/")
        return self.environment.base_url

    def __repr__(self) -> str:
        return (
            f"ClientConfig(cert_path={self.cert_path!r}, key_path={self.key_path!r}, "
            f"payee_alias={self.payee_alias!r}, environment={self.environment.value!r}, "
            f"base_url={self.base_url!r}, passphrase={'***' if self.passphrase else None})"
        )

    @classmethod
    def for_test(
        cls,
        cert_path: str,
        key_path: str,
        payee_alias: str,
        *,
        ca_path: Optional[str] = None,
        passphrase: Optional[str] = None,
    ) -> "ClientConfig":
        """Preset for the Swish merchant simulator; file checks are skipped."""
        return cls(
            cert_path=cert_path,
            key_path=key_path,
            payee_alias=payee_alias,
            ca_path=ca_path,
            passphrase=passphrase,
            environment=Environment.TEST,
            verify_cert_files=False,
        )

    @classmethod
    def for_sandbox(
        cls,
        cert_path: str,
        key_path: str,
        payee_alias: str,
        *,
        ca_path: Optional[str] = None,
        passphrase: Optional[str] = None,
    ) -> "ClientConfig":
        return cls(
            cert_path=cert_path,
            key_path=key_path,
            payee_alias=payee_alias,
            ca_path=ca_path,
            passphrase=passphrase,
            environment=Environment.SANDBOX,
        )

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "ClientConfig":
        missing = [
            key
            for key in ("SWISH_CERT_PATH", "SWISH_KEY_PATH", "SWISH_PAYEE_ALIAS")
            if not values.get(key)
        ]
        if missing:
            raise ConfigError(f"Missing required settings: {', '.join(missing)}")

        return cls(
            cert_path=values["SWISH_CERT_PATH"],
            key_path=values["SWISH_KEY_PATH"],
            payee_alias=values["SWISH_PAYEE_ALIAS"].strip(),
            ca_path=values.get("SWISH_CA_PATH") or None,
            passphrase=values.get("SWISH_PASSPHRASE") or None,
            environment=_parse_environment(values.get("SWISH_ENVIRONMENT")),
            base_url_override=values.get("SWISH_BASE_URL") or None,
            timeout=_parse_int(values, "SWISH_TIMEOUT", 30),
            connect_timeout=_parse_int(values, "SWISH_CONNECT_TIMEOUT", 10),
            max_retries=_parse_int(values, "SWISH_MAX_RETRIES", 3),
            verify_cert_files=_parse_bool(values, "SWISH_VERIFY_CERT_FILES", True),
        )

    @classmethod
    def from_env(
        cls,
        *,
        env_file: Optional[str] = ".env",
        overrides: Optional[Mapping[str, str]] = None,
        base: Optional[Mapping[str, str]] = None,
        parameters: Optional[ClientParameters] = None,
        **kwargs: Any,
    ) -> "ClientConfig":
        parameter_overrides = _collect_parameter_overrides(parameters, kwargs)
        merged_overrides = dict(overrides or {})
        merged_overrides.update(parameter_overrides)

        environment = build_environment(
            env_file=env_file,
            base=base,
            overrides=merged_overrides,
        )
        return cls.from_mapping(environment.variables)


def load_client_config(
    *,
    env_file: Optional[str] = ".env",
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
    parameters: Optional[ClientParameters] = None,
    **kwargs: Any,
) -> ClientConfig:
    """
    Convenience wrapper that mirrors :meth:`ClientConfig.from_env`.

    Keyword arguments use the :class:`ClientParameters` field names, e.g.
    ``load_client_config(cert_path="client.pem", payee_alias="1231181189")``.
    """
    return ClientConfig.from_env(
        env_file=env_file,
        overrides=overrides,
        base=base,
        parameters=parameters,
        **kwargs,
    )
