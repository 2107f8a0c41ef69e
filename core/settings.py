"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials can be loaded
(and overridden in tests) independently, e.g. PAYMENT__PAYSTACK__SECRET_KEY.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 5.0
    read: float = 30.0
    write: float = 30.0
    total: float = 30.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks
    dedupe_ttl_seconds: int = 24 * 3600


class PaystackSettings(BaseModel):
    secret_key: Optional[str] = None
    base_url: str = "https://api.paystack.co"


class PaymentSettings(BaseSettings):
    default_provider: str = "paystack"
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    paystack: PaystackSettings = Field(default_factory=PaystackSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
