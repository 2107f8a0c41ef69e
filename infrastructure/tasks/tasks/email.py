"""Email related Celery tasks

Messages are delivered through the Resend-compatible HTTP API configured in
``settings.email``. When no API key is configured the message is only logged.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from celery import shared_task

from ..utils.base_task import BaseTask
from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


def _money(amount: int, currency: str) -> str:
    return f"{currency} {amount:,}"


def deliver_email(to: str, subject: str, html: str, *, client: Optional[httpx.Client] = None) -> Optional[str]:
    """Send a single message; returns the provider message id if any."""
    cfg = settings.email
    if not cfg.api_key:
        logger.info("email_delivery_skipped", subject=subject, reason="email api key not configured")
        return None

    owns_client = client is None
    http = client or httpx.Client(base_url=cfg.base_url, timeout=cfg.timeout)
    try:
        resp = http.post(
            "/emails",
            headers={"Authorization": f"Bearer {cfg.api_key}"},
            json={"from": cfg.from_address, "to": [to], "subject": subject, "html": html},
        )
        resp.raise_for_status()
        message_id = (resp.json() or {}).get("id")
        logger.info("email_delivered", subject=subject, message_id=message_id)
        return message_id
    finally:
        if owns_client:
            http.close()


_RETRY_OPTIONS: Dict[str, Any] = dict(
    bind=True,
    base=BaseTask,
    autoretry_for=(httpx.HTTPError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)


@shared_task(**_RETRY_OPTIONS)
def send_order_placed_email(
    self,
    email: str,
    buyer_name: str,
    order_number: str,
    total_amount: int,
    currency: str,
    item_count: int,
) -> Optional[str]:
    """订单已创建，通知买家完成支付"""
    html = (
        f"<p>Hi {buyer_name},</p>"
        f"<p>Your order <strong>{order_number}</strong> with {item_count} item(s) has been placed.</p>"
        f"<p>Total due: {_money(total_amount, currency)}.</p>"
        f"<p><a href=\"{settings.FRONTEND_URL}/checkout?ordno={order_number}\">Complete your payment</a></p>"
    )
    return deliver_email(email, f"Order {order_number} placed", html)


@shared_task(**_RETRY_OPTIONS)
def send_payment_confirmed_email(
    self,
    email: str,
    buyer_name: str,
    order_number: str,
    total_amount: int,
    currency: str,
    payment_reference: str,
) -> Optional[str]:
    html = (
        f"<p>Hi {buyer_name},</p>"
        f"<p>We received your payment of {_money(total_amount, currency)} for order "
        f"<strong>{order_number}</strong> (reference {payment_reference}).</p>"
    )
    return deliver_email(email, f"Payment confirmed for {order_number}", html)


@shared_task(**_RETRY_OPTIONS)
def send_seller_sale_email(
    self,
    email: str,
    seller_name: str,
    order_number: str,
    items: List[Dict[str, Any]],
    revenue: int,
    currency: str,
) -> Optional[str]:
    """通知卖家有新的已支付订单"""
    lines = "".join(
        f"<li>{item.get('title')} x {item.get('quantity')}</li>" for item in items
    )
    html = (
        f"<p>Hi {seller_name},</p>"
        f"<p>Order <strong>{order_number}</strong> has been paid and is ready to process:</p>"
        f"<ul>{lines}</ul>"
        f"<p>Your revenue: {_money(revenue, currency)}.</p>"
    )
    return deliver_email(email, f"New sale: {order_number}", html)


@shared_task(**_RETRY_OPTIONS)
def send_order_status_email(
    self,
    email: str,
    buyer_name: str,
    order_number: str,
    status: str,
    reason: Optional[str] = None,
    tracking_number: Optional[str] = None,
) -> Optional[str]:
    extra = ""
    if tracking_number:
        extra += f"<p>Tracking number: {tracking_number}</p>"
    if reason:
        extra += f"<p>Reason: {reason}</p>"
    html = (
        f"<p>Hi {buyer_name},</p>"
        f"<p>Your order <strong>{order_number}</strong> is now <strong>{status}</strong>.</p>"
        f"{extra}"
    )
    return deliver_email(email, f"Order {order_number} {status}", html)
