"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# Provider transaction status -> internal payment status
PROVIDER_STATUS_TO_INTERNAL = {
    "paystack": {
        "success": "completed",
        "failed": "failed",
        "abandoned": "failed",
        "reversed": "refunded",
        "ongoing": "pending",
        "pending": "pending",
        "processing": "pending",
        "queued": "pending",
    },
}

# Provider payment channel -> internal payment method
PROVIDER_CHANNEL_TO_METHOD = {
    "paystack": {
        "card": "card",
        "bank": "bank_transfer",
        "bank_transfer": "bank_transfer",
        "ussd": "wallet",
        "mobile_money": "wallet",
    },
}
