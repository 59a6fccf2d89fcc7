"""
Status and type vocabularies used by the Swish API.

The members are ``str`` enums, so they compare equal to the raw strings the
API sends.
"""

from __future__ import annotations

import enum
from typing import Optional, Type, TypeVar, Union

__all__ = [
    "PaymentStatus",
    "PayoutStatus",
    "PayoutType",
    "RefundStatus",
    "coerce_status",
]


class _ApiValue(str, enum.Enum):
    def __str__(self) -> str:
        return self.value


class PaymentStatus(_ApiValue):
    CREATED = "CREATED"
    PAID = "PAID"
    DECLINED = "DECLINED"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class RefundStatus(_ApiValue):
    CREATED = "CREATED"
    DEBITED = "DEBITED"
    PAID = "PAID"
    ERROR = "ERROR"


class PayoutStatus(_ApiValue):
    CREATED = "CREATED"
    DEBITED = "DEBITED"
    PAID = "PAID"
    ERROR = "ERROR"


class PayoutType(_ApiValue):
    PAYOUT = "PAYOUT"


StatusT = TypeVar("StatusT", bound=enum.Enum)


def coerce_status(
    value: Optional[str],
    status_type: Optional[Type[StatusT]],
) -> Union[StatusT, str, None]:
    """
    Map ``value`` onto ``status_type``.

    Values the enum does not know are returned unchanged.
    """
    if value is None or status_type is None:
        return value
    try:
        return status_type(value)
    except ValueError:
        return value
