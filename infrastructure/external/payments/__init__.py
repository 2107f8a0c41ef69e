"""
Factory for payment gateway clients.

Clients are created once per provider and reused for the life of the
process; close_payment_gateways() releases their HTTP pools at shutdown.
"""
from __future__ import annotations

from typing import Dict, Optional

from core.settings import payment_settings
from application.ports.payment_gateway import PaymentGateway

_gateways: Dict[str, PaymentGateway] = {}


def get_payment_gateway(provider: Optional[str] = None) -> PaymentGateway:
    name = (provider or payment_settings.default_provider).lower()
    gateway = _gateways.get(name)
    if gateway is not None:
        return gateway
    if name == "paystack":
        from .paystack_client import PaystackClient
        gateway = PaystackClient()
    else:
        raise ValueError(f"Unsupported payment provider: {name}")
    _gateways[name] = gateway
    return gateway


async def close_payment_gateways() -> None:
    while _gateways:
        _, gateway = _gateways.popitem()
        await gateway.aclose()
