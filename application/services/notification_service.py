"""
通知发布 - 把领域事件转换为尽力而为的通知

事务提交之后调用；任何失败只记录 warning，不影响主流程的结果。
"""
from __future__ import annotations

from typing import Callable, Iterable, Optional

from application.ports.notifier import OrderNotifier
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.events import OrderCreated, OrderPaymentConfirmed, OrderStatusChanged

logger = get_logger(__name__)


class OrderNotificationPublisher:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        notifier: Optional[OrderNotifier] = None,
    ):
        self._uow_factory = uow_factory
        self._notifier = notifier

    async def publish(self, events: Iterable) -> None:
        if self._notifier is None:
            return
        for event in events:
            try:
                await self._publish_one(event)
            except Exception:
                logger.warning(
                    "order_notification_failed",
                    event_type=type(event).__name__,
                    order_id=getattr(event, "order_id", None),
                    exc_info=True,
                )

    async def _publish_one(self, event) -> None:
        if not isinstance(event, (OrderCreated, OrderStatusChanged, OrderPaymentConfirmed)):
            return
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(event.order_id)
            if order is None:
                return
            users = await uow.user_repository.get_many({order.buyer_id, *order.seller_ids})
        buyer = users.get(order.buyer_id)
        if buyer is None:
            logger.info("order_notification_skipped", order_id=order.id, reason="buyer not found")
            return

        if isinstance(event, OrderCreated):
            await self._notifier.order_placed(order, buyer)
        elif isinstance(event, OrderStatusChanged):
            await self._notifier.status_changed(order, buyer, event.reason)
        else:
            sellers = {sid: users[sid] for sid in order.seller_ids if sid in users}
            await self._notifier.payment_confirmed(order, buyer, sellers)
        logger.info("order_notification_sent", event_type=type(event).__name__, order_id=order.id)
