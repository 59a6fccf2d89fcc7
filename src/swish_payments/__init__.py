"""
Public facade for the Swish payment client package.

Integrators can ``from swish_payments import ...`` without navigating the
package layout.
"""

from .api import create_swish_client
from .core import (
    CallbackData,
    CallbackService,
    ClientConfig,
    ClientParameters,
    ConfigError,
    Environment,
    ErrorKind,
    ErrorMapper,
    ErrorRecord,
    InstructionResult,
    PaymentStatus,
    PayoutStatus,
    PayoutType,
    RefundStatus,
    RequestOptions,
    ResponseEnvelope,
    RetryPolicy,
    SignatureService,
    SwishClient,
    SwishError,
    TransportClient,
    generate_instruction_uuid,
    get_certificate_serial_number,
    load_client_config,
    sign_payload,
)

__all__ = (
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
    "ResponseEnvelope",
    "RetryPolicy",
    "SignatureService",
    "SwishClient",
    "SwishError",
    "TransportClient",
    "create_swish_client",
    "generate_instruction_uuid",
    "get_certificate_serial_number",
    "load_client_config",
    "sign_payload",
)
