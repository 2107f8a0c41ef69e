"""
Exceptions for payment providers mapped to unified BusinessException variants.

Messages surfaced to callers are generic; the provider's raw response is kept
in logs only.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


def _details(provider: str, provider_code: Optional[str], details: Optional[dict]) -> dict:
    full_details = {"provider": provider, "provider_code": provider_code}
    if details:
        full_details.update(details)
    return full_details


class PaymentProviderError(BusinessException):
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=_details(provider, provider_code, details),
        )


class PaymentRecoverableError(BusinessException):
    """可重试的网关错误（限流、5xx）"""
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="PaymentRecoverableError",
            details=_details(provider, provider_code, details),
        )


class PaymentTimeoutError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.TIMEOUT,
            message=message,
            error_type="PaymentTimeoutError",
            details=_details(provider, None, details),
        )


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=full_details,
        )
