"""
Error types and the classifier that turns terminal failures into them.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

__all__ = [
    "ErrorKind",
    "ErrorMapper",
    "ErrorRecord",
    "SwishError",
    "parse_error_records",
]


class ErrorKind(str, enum.Enum):
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    API = "api"
    SIGNING = "signing"


@dataclass(frozen=True)
class ErrorRecord:
    """A single entry of the error list returned by the Swish API."""

    error_code: str = ""
    error_message: str = ""
    additional_information: str = ""

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "ErrorRecord":
        return cls(
            error_code=_as_text(data.get("errorCode")),
            error_message=_as_text(data.get("errorMessage")),
            additional_information=_as_text(data.get("additionalInformation")),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "additionalInformation": self.additional_information,
        }


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class SwishError(Exception):
    """
    The only exception raised by the transport and signing layers.

    Callers dispatch on :attr:`kind` instead of on subclasses. The message is
    safe to log: it never contains request or response bodies.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: Optional[int] = None,
        errors: Iterable[ErrorRecord] = (),
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.errors: Tuple[ErrorRecord, ...] = tuple(errors)
        self.cause = cause

    def __repr__(self) -> str:
        return (
            f"SwishError(kind={self.kind.value!r}, message={self.message!r}, "
            f"status_code={self.status_code!r}, errors={len(self.errors)})"
        )


def parse_error_records(body: bytes) -> List[ErrorRecord]:
    """
    Decode the error list carried by a failed response.

    A lone object is treated as a one-element list. Anything that does not
    decode to objects yields an empty list.
    """
    if not body:
        return []
    try:
        decoded = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return []

    if isinstance(decoded, dict):
        decoded = [decoded]
    if not isinstance(decoded, list):
        return []
    return [ErrorRecord.from_mapping(item) for item in decoded if isinstance(item, dict)]


class ErrorMapper:
    """Classify a terminal HTTP failure into a :class:`SwishError`."""

    def classify(
        self,
        status_code: Optional[int],
        errors: Iterable[ErrorRecord] = (),
        cause: Optional[BaseException] = None,
    ) -> SwishError:
        records = list(errors)
        if status_code is None:
            return SwishError(
                ErrorKind.NETWORK,
                "Failed to reach the Swish API",
                errors=records,
                cause=cause,
            )

        message = f"API error (HTTP {status_code})"
        if records:
            first = records[0]
            detail = first.error_message or first.error_code
            if detail:
                message = f"{message}: {detail}"

        if status_code in (401, 403):
            kind = ErrorKind.AUTHENTICATION
        elif status_code == 422:
            kind = ErrorKind.VALIDATION
        else:
            kind = ErrorKind.API

        return SwishError(
            kind,
            message,
            status_code=status_code,
            errors=records,
            cause=cause,
        )
