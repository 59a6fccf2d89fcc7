"""
Core primitives: transport, retries, error mapping and payout signing.
"""

from .callbacks import CallbackData, CallbackService
from .client import (
    InstructionResult,
    PaymentService,
    PayoutService,
    RefundService,
    SwishClient,
)
from .config import (
    ClientConfig,
    ClientParameters,
    ConfigError,
    Environment,
    load_client_config,
)
from .environment import ResolvedEnvironment, build_environment, load_env_file
from .errors import ErrorKind, ErrorMapper, ErrorRecord, SwishError, parse_error_records
from .payloads import canonical_json, generate_instruction_uuid
from .response import ResponseEnvelope
from .retry import RetryDecision, RetryPolicy, RetryState
from .signing import (
    CredentialProvider,
    FileCredentialProvider,
    SignatureService,
    get_certificate_serial_number,
    sign_payload,
)
from .status import PaymentStatus, PayoutStatus, PayoutType, RefundStatus
from .transport import RequestOptions, TransportClient, build_session, build_ssl_context

__all__ = [
    "CallbackData",
    "CallbackService",
    "ClientConfig",
    "ClientParameters",
    "ConfigError",
    "CredentialProvider",
    "Environment",
    "ErrorKind",
    "ErrorMapper",
    "ErrorRecord",
    "FileCredentialProvider",
    "InstructionResult",
    "PaymentService",
    "PaymentStatus",
    "PayoutService",
    "PayoutStatus",
    "PayoutType",
    "RefundService",
    "RefundStatus",
    "RequestOptions",
    "ResolvedEnvironment",
    "ResponseEnvelope",
    "RetryDecision",
    "RetryPolicy",
    "RetryState",
    "SignatureService",
    "SwishClient",
    "SwishError",
    "TransportClient",
    "build_environment",
    "build_session",
    "build_ssl_context",
    "canonical_json",
    "generate_instruction_uuid",
    "get_certificate_serial_number",
    "load_client_config",
    "load_env_file",
    "parse_error_records",
    "sign_payload",
]
