"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    TOKEN_INVALID = 20004
    TOKEN_EXPIRED = 20005
    NOT_FOUND = 20006  # Generic resource not found
    CONFLICT = 20007  # Generic state/uniqueness conflict

    # Orders (21xxx)
    ORDER_NOT_FOUND = 21000
    ORDER_INVALID_TRANSITION = 21001
    ORDER_ITEMS_UNAVAILABLE = 21002
    ORDER_ALREADY_PAID = 21003
    ORDER_NUMBER_CONFLICT = 21004
    SELLER_PAYOUT_NOT_FOUND = 21005

    # Payments (22xxx)
    PAYMENT_NOT_FOUND = 22000
    PAYMENT_NOT_REFUNDABLE = 22001
    PAYMENT_ALREADY_REFUNDED = 22002
    PAYMENT_GATEWAY_UNSUPPORTED = 22003

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003

    # Rate limiting (5xxxx)
    RATE_LIMIT_ERROR = 50000
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
