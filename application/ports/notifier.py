"""Notification port used by order/payment use cases.

Implementations are best effort: callers log and swallow their failures.
"""
from __future__ import annotations

from typing import Dict, Protocol, runtime_checkable

from domain.order.entity import Order
from domain.user.entity import User


@runtime_checkable
class OrderNotifier(Protocol):
    async def order_placed(self, order: Order, buyer: User) -> None: ...

    async def payment_confirmed(self, order: Order, buyer: User, sellers: Dict[int, User]) -> None: ...

    async def status_changed(self, order: Order, buyer: User, reason: str | None = None) -> None: ...
