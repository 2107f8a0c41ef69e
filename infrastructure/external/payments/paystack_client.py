"""
Paystack transaction adapter over the REST API (httpx + tenacity).

Notes on the API:
- Amounts are sent and returned in kobo (minor unit); this adapter converts
  to/from naira so the rest of the system only sees major units.
- Every response is wrapped as `{"status": bool, "message": str, "data": {...}}`.
- Webhooks are signed with `x-paystack-signature`, the hex HMAC-SHA512 of the
  raw body keyed by the secret key.
"""
from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    InitializeTransaction,
    InitializedTransaction,
    RefundRequest,
    RefundResult,
    VerifiedTransaction,
    WebhookEvent,
)
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
    PaymentTimeoutError,
)
from core.settings import payment_settings
from core.logging_config import get_logger


logger = get_logger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"
MINOR_UNIT = 100


def to_minor(amount: int) -> int:
    return int(amount) * MINOR_UNIT


def from_minor(amount: Any) -> Decimal:
    return Decimal(str(amount or 0)) / MINOR_UNIT


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class PaystackClient(BasePaymentClient):
    provider = "paystack"

    def __init__(
        self,
        secret_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self.secret_key = secret_key or payment_settings.paystack.secret_key
        if not self.secret_key:
            raise RuntimeError("PAYMENT__PAYSTACK__SECRET_KEY not configured")
        self.base_url = (base_url or payment_settings.paystack.base_url).rstrip("/")

    def _client_kwargs(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "headers": {
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
        }

    async def _request(self, method: str, path: str, *, operation: str, json_body: Optional[dict] = None) -> dict:
        """发送请求并解包 data；网关原始错误只写日志"""
        async with self.client() as http:
            try:
                resp = await self._retry(
                    lambda: http.request(method, path, json=json_body),
                    idempotent=method == "GET",
                )
            except httpx.TimeoutException as exc:
                logger.error("paystack_timeout", operation=operation, path=path)
                raise PaymentTimeoutError(
                    f"Payment gateway timed out during {operation}", provider=self.provider
                ) from exc
            except httpx.HTTPError as exc:
                logger.error("paystack_transport_error", operation=operation, path=path, error=str(exc))
                raise PaymentRecoverableError(
                    f"Payment gateway unreachable during {operation}", provider=self.provider
                ) from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = {}

        if resp.status_code == 429 or resp.status_code >= 500:
            logger.error("paystack_upstream_error", operation=operation, status_code=resp.status_code, body=resp.text)
            raise PaymentRecoverableError(
                f"Payment gateway error during {operation}",
                provider=self.provider,
                provider_code=str(resp.status_code),
            )
        if resp.status_code >= 400 or not payload.get("status"):
            logger.error("paystack_request_failed", operation=operation, status_code=resp.status_code, body=resp.text)
            raise PaymentProviderError(
                f"Failed to {operation}: {payload.get('message') or 'unexpected gateway response'}",
                provider=self.provider,
                provider_code=str(resp.status_code),
            )
        data = payload.get("data")
        if not isinstance(data, dict):
            logger.error("paystack_unexpected_shape", operation=operation, body=resp.text)
            raise PaymentProviderError(
                f"Failed to {operation}: unexpected gateway response", provider=self.provider
            )
        return data

    async def initialize_transaction(self, req: InitializeTransaction) -> InitializedTransaction:  # type: ignore[override]
        body = {
            "email": req.email,
            "amount": to_minor(req.amount),
            "currency": req.currency,
            "reference": req.reference,
            "metadata": req.metadata,
        }
        if req.callback_url:
            body["callback_url"] = req.callback_url
        data = await self._request("POST", "/transaction/initialize", operation="initialize payment", json_body=body)
        self._log("paystack_transaction_initialized", reference=req.reference, amount=req.amount)
        return InitializedTransaction(
            reference=str(data.get("reference") or req.reference),
            authorization_url=str(data.get("authorization_url") or ""),
            access_code=data.get("access_code"),
            provider=self.provider,
        )

    def _to_verified(self, data: dict[str, Any], reference: str) -> VerifiedTransaction:
        status = self._map_status(str(data.get("status") or ""))
        amount = data.get("amount")
        return VerifiedTransaction(
            reference=str(data.get("reference") or reference),
            status=status,
            provider=self.provider,
            transaction_id=str(data["id"]) if data.get("id") is not None else None,
            gateway_response=data.get("gateway_response"),
            message=data.get("message") or data.get("gateway_response"),
            method=self._map_method(data.get("channel")),
            amount=int(from_minor(amount)) if amount is not None else None,
            fees=from_minor(data.get("fees")),
            paid_at=_parse_time(data.get("paid_at") or data.get("paidAt")),
            customer=data.get("customer") or {},
            authorization=data.get("authorization") or {},
            ip_address=data.get("ip_address"),
            risk_action=(data.get("customer") or {}).get("risk_action"),
            raw=data,
        )

    async def verify_transaction(self, reference: str) -> VerifiedTransaction:  # type: ignore[override]
        data = await self._request("GET", f"/transaction/verify/{reference}", operation="verify payment")
        result = self._to_verified(data, reference)
        self._log("paystack_transaction_verified", reference=reference, status=result.status)
        return result

    async def refund(self, req: RefundRequest) -> RefundResult:  # type: ignore[override]
        body: dict[str, Any] = {"transaction": req.transaction_id}
        if req.amount is not None:
            body["amount"] = to_minor(req.amount)
        if req.reason:
            body["merchant_note"] = req.reason
        data = await self._request("POST", "/refund", operation="process refund", json_body=body)
        transaction = data.get("transaction") or {}
        refund_id = data.get("id") or transaction.get("reference") or req.transaction_id
        self._log("paystack_refund_created", transaction_id=req.transaction_id, refund_id=refund_id)
        amount = data.get("amount")
        return RefundResult(
            refund_id=str(refund_id),
            status=str(data.get("status") or "pending"),
            provider=self.provider,
            amount=int(from_minor(amount)) if amount is not None else req.amount,
        )

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not signature:
            return False
        expected = compute_signature(self.secret_key, body)
        return hmac.compare_digest(expected, signature.strip().lower())

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        lowered = {str(k).lower(): v for k, v in headers.items()}
        signature = lowered.get(SIGNATURE_HEADER)
        if not signature:
            raise PaymentSignatureError("Missing x-paystack-signature header", provider=self.provider)
        if not self.verify_signature(body, signature):
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise PaymentProviderError("Malformed webhook payload", provider=self.provider) from exc
        data = payload.get("data") or {}
        event_id = data.get("id") or hashlib.sha256(body).hexdigest()
        return WebhookEvent(
            id=str(event_id),
            type=str(payload.get("event") or ""),
            provider=self.provider,
            data=data,
            raw_headers=lowered,
            raw_body=body,
        )

    def to_verified(self, event: WebhookEvent) -> VerifiedTransaction:
        """把 charge.* webhook 的 data 归一化为验证结果"""
        return self._to_verified(event.data, event.reference or "")
