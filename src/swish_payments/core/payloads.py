"""
Helpers for constructing the JSON documents sent to the Swish API.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Mapping, Optional

from .status import PayoutType

__all__ = [
    "JSON_CONTENT_TYPE",
    "JSON_PATCH_CONTENT_TYPE",
    "build_cancel_patch",
    "build_payment_request_payload",
    "build_payout_payload",
    "build_refund_payload",
    "canonical_json",
    "generate_instruction_uuid",
]

JSON_CONTENT_TYPE = "application/json"
JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"

DEFAULT_CURRENCY = "SEK"
DEFAULT_PAYOUT_TYPE = PayoutType.PAYOUT.value

_PAYMENT_FIELDS = (
    "payeePaymentReference",
    "callbackUrl",
    "payerAlias",
    "payeeAlias",
    "amount",
    "currency",
    "message",
    "callbackIdentifier",
)

_REFUND_FIELDS = (
    "originalPaymentReference",
    "callbackUrl",
    "payerAlias",
    "amount",
    "currency",
    "payerPaymentReference",
    "message",
    "callbackIdentifier",
)

# Order is significant: the payout payload is signed byte for byte.
_PAYOUT_FIELDS = (
    "payoutInstructionUUID",
    "payerPaymentReference",
    "payerAlias",
    "payeeAlias",
    "payeeSSN",
    "amount",
    "currency",
    "payoutType",
    "instructionDate",
    "signingCertificateSerialNumber",
    "message",
)


def canonical_json(payload: Any) -> str:
    """Serialize ``payload`` compactly, keeping key order and raw Unicode."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def generate_instruction_uuid() -> str:
    """Return a 32-character uppercase hex instruction id (UUID4, no hyphens)."""
    return uuid.uuid4().hex.upper()


def _pick(data: Mapping[str, Any], fields: tuple) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for name in fields:
        value = data.get(name)
        if value is None:
            continue
        payload[name] = str(value)
    return payload


def build_payment_request_payload(
    data: Mapping[str, Any],
    *,
    default_payee_alias: Optional[str] = None,
) -> Dict[str, Any]:
    merged = dict(data)
    if merged.get("payeeAlias") is None and default_payee_alias is not None:
        merged["payeeAlias"] = default_payee_alias
    merged.setdefault("currency", DEFAULT_CURRENCY)
    return _pick(merged, _PAYMENT_FIELDS)


def build_refund_payload(
    data: Mapping[str, Any],
    *,
    default_payer_alias: Optional[str] = None,
) -> Dict[str, Any]:
    # The merchant is the payer of a refund.
    merged = dict(data)
    if merged.get("payerAlias") is None and default_payer_alias is not None:
        merged["payerAlias"] = default_payer_alias
    merged.setdefault("currency", DEFAULT_CURRENCY)
    return _pick(merged, _REFUND_FIELDS)


def build_payout_payload(
    data: Mapping[str, Any],
    *,
    default_payer_alias: Optional[str] = None,
) -> Dict[str, Any]:
    merged = dict(data)
    if merged.get("payerAlias") is None and default_payer_alias is not None:
        merged["payerAlias"] = default_payer_alias
    merged.setdefault("currency", DEFAULT_CURRENCY)
    merged.setdefault("payoutType", DEFAULT_PAYOUT_TYPE)
    return _pick(merged, _PAYOUT_FIELDS)


def build_cancel_patch() -> List[Dict[str, str]]:
    return [{"op": "replace", "path": "/status", "value": "cancelled"}]
