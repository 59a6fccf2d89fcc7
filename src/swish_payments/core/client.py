"""
Endpoint helpers for payment requests, refunds and payouts.

These are thin mapping layers: they build payloads, call
:meth:`TransportClient.send` and shape the result.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Type

import requests

from .callbacks import CallbackService
from .config import ClientConfig
from .payloads import (
    JSON_CONTENT_TYPE,
    JSON_PATCH_CONTENT_TYPE,
    build_cancel_patch,
    build_payment_request_payload,
    build_payout_payload,
    build_refund_payload,
    generate_instruction_uuid,
)
from .response import ResponseEnvelope
from .signing import SignatureService
from .status import PaymentStatus, PayoutStatus, RefundStatus, coerce_status
from .transport import RequestOptions, TransportClient

logger = logging.getLogger(__name__)

__all__ = [
    "InstructionResult",
    "PaymentService",
    "PayoutService",
    "RefundService",
    "SwishClient",
]

PAYMENT_CREATE_ENDPOINT = "/swish-cpcapi/api/v2/paymentrequests/"
PAYMENT_ENDPOINT = "/swish-cpcapi/api/v1/paymentrequests/"
REFUND_CREATE_ENDPOINT = "/swish-cpcapi/api/v2/refunds/"
REFUND_ENDPOINT = "/swish-cpcapi/api/v1/refunds/"
PAYOUT_ENDPOINT = "/swish-cpcapi/api/v1/payouts/"


@dataclass(frozen=True)
class InstructionResult:
    id: Optional[str]
    status: Optional[str]
    location: Optional[str]
    token: Optional[str]
    raw: Dict[str, Any]

    @classmethod
    def from_response(
        cls,
        response: ResponseEnvelope,
        defaults: Optional[Mapping[str, Any]] = None,
        *,
        id_field: str = "id",
        status_type: Optional[Type[enum.Enum]] = None,
    ) -> "InstructionResult":
        """
        Merge the request-side ``defaults`` with the API body; the API wins.

        With ``status_type`` the status becomes a member of that enum when the
        value is known to it.
        """
        data: Dict[str, Any] = {
            key: value for key, value in (defaults or {}).items() if value is not None
        }
        data.update(response.json() or {})
        token = response.header("PaymentRequestToken")
        if token is not None:
            data.setdefault("paymentRequestToken", token)
        return cls(
            id=data.get(id_field),
            status=coerce_status(data.get("status"), status_type),
            location=response.header("Location"),
            token=data.get("paymentRequestToken"),
            raw=data,
        )


def _require_id(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{label} must not be empty")
    return value.strip()


def _json_options(body: Any, content_type: str = JSON_CONTENT_TYPE) -> RequestOptions:
    return RequestOptions(body=body, headers={"Content-Type": content_type})


class PaymentService:
    def __init__(self, transport: TransportClient, default_payee_alias: Optional[str] = None) -> None:
        self._transport = transport
        self._default_payee_alias = default_payee_alias

    def create(
        self,
        data: Mapping[str, Any],
        instruction_uuid: Optional[str] = None,
    ) -> InstructionResult:
        uuid = _require_id(instruction_uuid or generate_instruction_uuid(), "instruction_uuid")
        payload = build_payment_request_payload(data, default_payee_alias=self._default_payee_alias)
        response = self._transport.send(
            "PUT",
            PAYMENT_CREATE_ENDPOINT + uuid,
            _json_options(payload),
        )
        return InstructionResult.from_response(
            response,
            {"id": uuid, "status": PaymentStatus.CREATED.value, **payload},
            status_type=PaymentStatus,
        )

    def get(self, payment_id: str) -> InstructionResult:
        payment_id = _require_id(payment_id, "Payment ID")
        response = self._transport.send("GET", PAYMENT_ENDPOINT + payment_id)
        return InstructionResult.from_response(response, status_type=PaymentStatus)

    def cancel(self, payment_id: str) -> InstructionResult:
        """Cancel a payment request that is still CREATED and return its new state."""
        payment_id = _require_id(payment_id, "Payment ID")
        self._transport.send(
            "PATCH",
            PAYMENT_ENDPOINT + payment_id,
            _json_options(build_cancel_patch(), JSON_PATCH_CONTENT_TYPE),
        )
        # PATCH answers without a body.
        return self.get(payment_id)


class RefundService:
    def __init__(self, transport: TransportClient, default_payer_alias: Optional[str] = None) -> None:
        self._transport = transport
        self._default_payer_alias = default_payer_alias

    def create(
        self,
        data: Mapping[str, Any],
        instruction_uuid: Optional[str] = None,
    ) -> InstructionResult:
        uuid = _require_id(instruction_uuid or generate_instruction_uuid(), "instruction_uuid")
        payload = build_refund_payload(data, default_payer_alias=self._default_payer_alias)
        response = self._transport.send(
            "PUT",
            REFUND_CREATE_ENDPOINT + uuid,
            _json_options(payload),
        )
        return InstructionResult.from_response(
            response,
            {"id": uuid, "status": RefundStatus.CREATED.value, **payload},
            status_type=RefundStatus,
        )

    def get(self, refund_id: str) -> InstructionResult:
        refund_id = _require_id(refund_id, "Refund ID")
        response = self._transport.send("GET", REFUND_ENDPOINT + refund_id)
        return InstructionResult.from_response(response, status_type=RefundStatus)


class PayoutService:
    def __init__(
        self,
        transport: TransportClient,
        signer: SignatureService,
        default_payer_alias: Optional[str] = None,
    ) -> None:
        self._transport = transport
        self._signer = signer
        self._default_payer_alias = default_payer_alias

    def build_payload(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        merged = dict(data)
        merged.setdefault("payoutInstructionUUID", generate_instruction_uuid())
        return build_payout_payload(merged, default_payer_alias=self._default_payer_alias)

    def create(
        self,
        payload: Mapping[str, Any],
        signature: str,
        callback_url: str,
    ) -> InstructionResult:
        """
        Submit an already built and signed payout ``payload``.
        """
        signature = _require_id(signature, "signature")
        callback_url = _require_id(callback_url, "callback_url")
        body = {
            "payload": dict(payload),
            "signature": signature,
            "callbackUrl": callback_url,
        }
        response = self._transport.send("POST", PAYOUT_ENDPOINT, _json_options(body))
        return InstructionResult.from_response(
            response,
            {"status": PayoutStatus.CREATED.value, "callbackUrl": callback_url, **payload},
            id_field="payoutInstructionUUID",
            status_type=PayoutStatus,
        )

    def create_signed(
        self,
        data: Mapping[str, Any],
        callback_url: str,
        signing_key_path: str,
        signing_passphrase: Optional[str] = None,
    ) -> InstructionResult:
        payload = self.build_payload(data)
        signature = self._signer.sign(payload, signing_key_path, signing_passphrase)
        logger.info("Submitting signed payout %s", payload["payoutInstructionUUID"])
        return self.create(payload, signature, callback_url)

    def get(self, payout_id: str) -> InstructionResult:
        payout_id = _require_id(payout_id, "Payout ID")
        response = self._transport.send("GET", PAYOUT_ENDPOINT + payout_id)
        return InstructionResult.from_response(
            response,
            id_field="payoutInstructionUUID",
            status_type=PayoutStatus,
        )


class SwishClient:
    """
    Facade bundling the transport with the endpoint services.

    All services share one :class:`TransportClient` and are built eagerly.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        session: Optional[requests.Session] = None,
        transport: Optional[TransportClient] = None,
        signer: Optional[SignatureService] = None,
    ) -> None:
        self.config = config
        self.transport = transport or TransportClient(config, session=session)
        self.signer = signer or SignatureService()
        self.payments = PaymentService(self.transport, config.payee_alias)
        self.refunds = RefundService(self.transport, config.payee_alias)
        self.payouts = PayoutService(self.transport, self.signer, config.payee_alias)
        self.callbacks = CallbackService()

    def __enter__(self) -> "SwishClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self.transport.close()
