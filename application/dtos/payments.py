"""
Payment DTOs (Pydantic v2) used at the gateway port boundary.

Amounts are major-unit integers (naira); adapters convert to the
provider's minor unit (kobo) on the wire.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from domain.order.entity import PaymentMethod
from domain.payment.entity import GatewayCharge


# Currencies the marketplace settles in (extend as needed)
ISO_4217 = {"NGN", "GHS", "ZAR", "KES", "USD"}


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class InitializeTransaction(BaseModel):
    reference: str
    email: EmailStr
    amount: int = Field(gt=0)
    currency: str = Field(default="NGN")
    callback_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class InitializedTransaction(BaseModel):
    reference: str
    authorization_url: str
    access_code: Optional[str] = None
    provider: str


class VerifiedTransaction(BaseModel):
    """网关验证结果（已归一化为内部状态与主币单位）"""
    reference: str
    status: str
    provider: str
    transaction_id: Optional[str] = None
    gateway_response: Optional[str] = None
    message: Optional[str] = None
    method: Optional[PaymentMethod] = None
    amount: Optional[int] = None
    fees: Decimal = Decimal("0")
    paid_at: Optional[datetime] = None
    customer: dict[str, Any] = Field(default_factory=dict)
    authorization: dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    risk_action: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    def to_charge(self) -> GatewayCharge:
        return GatewayCharge(
            succeeded=self.succeeded,
            reference=self.reference,
            transaction_id=self.transaction_id,
            gateway_response=self.gateway_response,
            message=self.message or self.gateway_response,
            method=self.method,
            fees=self.fees,
            paid_at=self.paid_at,
            customer=self.customer,
            authorization=self.authorization,
            ip_address=self.ip_address,
            risk_action=self.risk_action,
            raw=self.raw,
        )


class RefundRequest(BaseModel):
    transaction_id: str
    amount: Optional[int] = Field(default=None, gt=0)
    currency: str = Field(default="NGN")
    reason: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency_refund(cls, v: str) -> str:
        return _validate_currency(v)


class RefundResult(BaseModel):
    refund_id: str
    status: str
    provider: str
    amount: Optional[int] = None


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]
    # raw fields for traceability (optional)
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def reference(self) -> Optional[str]:
        ref = self.data.get("reference")
        return str(ref) if ref else None
