"""
Parsing of the callback documents Swish POSTs to a merchant's ``callbackUrl``.

Parsing does not authenticate the sender. The callback endpoint must require
the Swish client certificate at the TLS layer, and the reported status should
be confirmed with a ``get`` call before it is trusted.
"""

from __future__ import annotations

import datetime
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ErrorKind, SwishError
from .status import PaymentStatus

logger = logging.getLogger(__name__)

__all__ = [
    "MAX_CALLBACK_BODY_SIZE",
    "CallbackData",
    "CallbackService",
]

MAX_CALLBACK_BODY_SIZE = 65536

_ID_FIELDS = ("id", "instructionUUID", "payoutInstructionUUID")
_NUMERIC_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def _validation_error(message: str) -> SwishError:
    return SwishError(ErrorKind.VALIDATION, message)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _parse_timestamp(value: Any, name: str) -> Optional[datetime.datetime]:
    """Accept ISO 8601 timestamps with ``Z``, ``+01:00`` or ``+0100`` offsets."""
    if value is None:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _NUMERIC_OFFSET.sub(r"\1:\2", text)
    try:
        return datetime.datetime.fromisoformat(text)
    except ValueError:
        raise _validation_error(f"Callback field {name} is not a valid timestamp") from None


def _first_present(data: Mapping[str, Any]) -> Any:
    for key in _ID_FIELDS:
        if data.get(key) is not None:
            return data[key]
    return None


@dataclass(frozen=True)
class CallbackData:
    """A parsed payment, refund or payout callback."""

    id: str
    status: str
    payment_reference: Optional[str] = None
    payee_payment_reference: Optional[str] = None
    payer_payment_reference: Optional[str] = None
    payer_alias: Optional[str] = None
    payee_alias: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    original_payment_reference: Optional[str] = None
    date_created: Optional[datetime.datetime] = None
    date_paid: Optional[datetime.datetime] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CallbackData":
        return cls(
            id=_optional_text(_first_present(data)) or "",
            status=_optional_text(data.get("status")) or "",
            payment_reference=_optional_text(data.get("paymentReference")),
            payee_payment_reference=_optional_text(data.get("payeePaymentReference")),
            payer_payment_reference=_optional_text(data.get("payerPaymentReference")),
            payer_alias=_optional_text(data.get("payerAlias")),
            payee_alias=_optional_text(data.get("payeeAlias")),
            amount=_optional_text(data.get("amount")),
            currency=_optional_text(data.get("currency")),
            message=_optional_text(data.get("message")),
            error_code=_optional_text(data.get("errorCode")),
            error_message=_optional_text(data.get("errorMessage")),
            original_payment_reference=_optional_text(data.get("originalPaymentReference")),
            date_created=_parse_timestamp(data.get("dateCreated"), "dateCreated"),
            date_paid=_parse_timestamp(data.get("datePaid"), "datePaid"),
            raw=dict(data),
        )

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    @property
    def is_declined(self) -> bool:
        return self.status == PaymentStatus.DECLINED

    @property
    def is_error(self) -> bool:
        return self.status == PaymentStatus.ERROR

    @property
    def is_cancelled(self) -> bool:
        return self.status == PaymentStatus.CANCELLED

    @property
    def is_refund(self) -> bool:
        return self.original_payment_reference is not None


class CallbackService:
    """
    Validates callback bodies and turns them into :class:`CallbackData`.

    Every rejection is a VALIDATION :class:`SwishError`.
    """

    def __init__(self, max_body_size: int = MAX_CALLBACK_BODY_SIZE) -> None:
        self.max_body_size = max_body_size

    def parse(self, body: Union[str, bytes]) -> CallbackData:
        raw = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        if not raw:
            raise _validation_error("Empty callback request body")
        if len(raw) > self.max_body_size:
            raise _validation_error(
                f"Callback payload exceeds maximum allowed size of {self.max_body_size} bytes"
            )
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise _validation_error(f"Invalid callback JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise _validation_error("Callback payload must be a JSON object")
        return self.parse_mapping(data)

    def parse_mapping(self, data: Mapping[str, Any]) -> CallbackData:
        """Validate an already decoded callback document."""
        if not isinstance(data, Mapping):
            raise _validation_error("Callback payload must be a JSON object")

        identifier = _first_present(data)
        if identifier is None or str(identifier) == "":
            raise _validation_error(
                "Callback payload missing required field: id (or instructionUUID/payoutInstructionUUID)"
            )
        status = data.get("status")
        if status is None or str(status) == "":
            raise _validation_error("Callback payload missing required field: status")

        callback = CallbackData.from_mapping(data)
        logger.debug(
            "Parsed Swish callback %s with status %s",
            callback.id,
            callback.status,
            extra={"instruction_id": callback.id, "status": callback.status},
        )
        return callback
