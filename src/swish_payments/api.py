"""
Public, high-level helpers for talking to the Swish API.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import requests

from .core.callbacks import CallbackData, CallbackService
from .core.client import InstructionResult, SwishClient
from .core.config import ClientConfig, ClientParameters, ConfigError, Environment, load_client_config
from .core.environment import ResolvedEnvironment, build_environment, load_env_file
from .core.errors import ErrorKind, ErrorMapper, ErrorRecord, SwishError
from .core.payloads import generate_instruction_uuid
from .core.response import ResponseEnvelope
from .core.retry import RetryDecision, RetryPolicy
from .core.signing import SignatureService, get_certificate_serial_number, sign_payload
from .core.status import PaymentStatus, PayoutStatus, PayoutType, RefundStatus
from .core.transport import RequestOptions, TransportClient

__all__ = [
    "CallbackData",
    "CallbackService",
    "ClientConfig",
    "ClientParameters",
    "ConfigError",
    "Environment",
    "ErrorKind",
    "ErrorMapper",
    "ErrorRecord",
    "InstructionResult",
    "PaymentStatus",
    "PayoutStatus",
    "PayoutType",
    "RefundStatus",
    "RequestOptions",
    "ResolvedEnvironment",
    "ResponseEnvelope",
    "RetryDecision",
    "RetryPolicy",
    "SignatureService",
    "SwishClient",
    "SwishError",
    "TransportClient",
    "build_environment",
    "create_swish_client",
    "generate_instruction_uuid",
    "get_certificate_serial_number",
    "load_client_config",
    "load_env_file",
    "sign_payload",
]


def create_swish_client(
    *,
    config: Optional[ClientConfig] = None,
    session: Optional[requests.Session] = None,
    env_file: Optional[str] = ".env",
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
    parameters: Optional[ClientParameters] = None,
    **kwargs: Any,
) -> SwishClient:
    """
    Instantiate a :class:`SwishClient`.

    Supply ``config`` directly or let the helper resolve one from the
    environment, a ``.env`` file and keyword overrides.
    """
    if config is None:
        config = load_client_config(
            env_file=env_file,
            overrides=overrides,
            base=base,
            parameters=parameters,
            **kwargs,
        )
    elif kwargs or overrides or parameters is not None:
        raise TypeError("Pass either config or configuration overrides, not both")

    return SwishClient(config, session=session)
