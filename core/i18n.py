from __future__ import annotations

import gettext
from contextvars import ContextVar
from pathlib import Path

import structlog

_current_locale: ContextVar[str] = ContextVar("current_locale", default="en")
_translators: dict[str, gettext.NullTranslations] = {}
_logger = structlog.get_logger(__name__)

# Built-in English catalogue used when no gettext catalogue provides the key.
DEFAULT_MESSAGES: dict[str, str] = {
    "auth.unauthorized": "Unauthorized",
    "auth.token.invalid": "Invalid authentication token",
    "auth.token.expired": "Token expired",
    "rate.limited": "Too many requests, please try again later",
    "validation.failed": "Validation failed: {reason}",
    "error.internal": "Internal server error",
    "user.inactive": "User account is inactive",
    "order.not_found": "Order not found",
    "order.status.invalid_transition": "Invalid status transition from {current} to {target}",
    "order.items.unavailable": "Some items are no longer available: {product_ids}",
    "order.already_paid": "Order has already been paid",
    "order.payout.seller_not_found": "Seller not found in this order",
    "payment.not_found": "Payment not found",
    "payment.record_not_found": "Payment record not found",
    "payment.refund.not_completed": "Only completed payments can be refunded",
    "payment.refund.already_refunded": "Payment has already been refunded",
    "order.calculate.success": "Order calculated successfully",
    "order.create.success": "Order created successfully",
    "order.get.success": "Order retrieved successfully",
    "order.list.success": "Orders retrieved successfully",
    "order.status.update.success": "Order status updated successfully",
    "order.cancel.success": "Order cancelled successfully",
    "order.payout.success": "Seller payout processed successfully",
    "payment.initialize.success": "Payment initialized successfully",
    "payment.verify.success": "Payment verified successfully",
    "payment.verify.failed": "Payment verification failed",
    "payment.verify.already": "Payment already verified",
    "payment.refund.success": "Refund processed successfully",
    "payment.get.success": "Payment retrieved successfully",
    "payment.history.success": "Payment history retrieved successfully",
    "payment.webhook.received": "Webhook received",
    "welcome": "Welcome to {name}",
    "health.ok": "Service is healthy",
}


def set_locale(locale: str) -> None:
    """Set current request locale (fallback to 'en')."""
    _current_locale.set(locale or "en")


def get_locale() -> str:
    """Get current request locale (default 'en')."""
    return _current_locale.get()


def _get_translator(locale: str) -> gettext.NullTranslations:
    tr = _translators.get(locale)
    if tr is not None:
        return tr
    localedir = Path(__file__).resolve().parent.parent / "locales"
    tr = gettext.translation(
        domain="messages",
        localedir=str(localedir),
        languages=[locale],
        fallback=True,
    )
    _translators[locale] = tr
    return tr


def t(msgid: str, **params) -> str:
    """Translate msgid using current locale and format with params.

    Lookup order: gettext catalogue for the locale, built-in English
    catalogue, then msgid itself.
    """
    text = _get_translator(get_locale()).gettext(msgid)
    if text == msgid:
        text = DEFAULT_MESSAGES.get(msgid, msgid)
    if not params:
        return text
    try:
        return text.format(**params)
    except (KeyError, IndexError, ValueError) as exc:
        _logger.warning("i18n_format_failed", msgid=msgid, params=list(params.keys()), error=str(exc))
        return text
