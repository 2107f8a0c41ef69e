"""Infrastructure adapter that implements the application OrderNotifier
by scheduling Celery email tasks through the TaskDispatcher.
"""
from __future__ import annotations

from typing import Dict, Optional

from application.ports.notifier import OrderNotifier
from domain.order.entity import Order
from domain.user.entity import User
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


class CeleryOrderNotifier(OrderNotifier):
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None):
        self.dispatcher = dispatcher or TaskDispatcher()

    async def order_placed(self, order: Order, buyer: User) -> None:
        self.dispatcher.send_email_task(
            "send_order_placed_email",
            email=buyer.email,
            buyer_name=buyer.full_name,
            order_number=order.order_number,
            total_amount=order.total_amount,
            currency=order.currency,
            item_count=order.item_count,
        )

    async def payment_confirmed(self, order: Order, buyer: User, sellers: Dict[int, User]) -> None:
        self.dispatcher.send_email_task(
            "send_payment_confirmed_email",
            email=buyer.email,
            buyer_name=buyer.full_name,
            order_number=order.order_number,
            total_amount=order.total_amount,
            currency=order.currency,
            payment_reference=order.payment_reference or "",
        )
        for payout in order.seller_payouts:
            seller = sellers.get(payout.seller_id)
            if seller is None:
                continue
            items = [
                {"title": item.product_title, "quantity": item.quantity}
                for item in order.items
                if item.seller_id == payout.seller_id
            ]
            self.dispatcher.send_email_task(
                "send_seller_sale_email",
                email=seller.email,
                seller_name=seller.full_name,
                order_number=order.order_number,
                items=items,
                revenue=payout.revenue,
                currency=order.currency,
            )

    async def status_changed(self, order: Order, buyer: User, reason: str | None = None) -> None:
        self.dispatcher.send_email_task(
            "send_order_status_email",
            email=buyer.email,
            buyer_name=buyer.full_name,
            order_number=order.order_number,
            status=order.status.value,
            reason=reason,
            tracking_number=order.tracking_number,
        )
