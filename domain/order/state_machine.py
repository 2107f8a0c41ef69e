"""
订单状态机与状态变更权限
"""
from __future__ import annotations

from typing import Dict, FrozenSet

from domain.common.exceptions import InvalidStatusTransitionException, OrderPermissionDeniedException
from .entity import Order, OrderStatus

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

BUYER_TARGETS = frozenset({OrderStatus.CANCELLED})
SELLER_TARGETS = frozenset({OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED})

# 取消接口额外拒绝的状态
NON_CANCELLABLE = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStatusTransitionException(current.value, target.value)


def can_set_status(order: Order, actor_id: int, is_admin: bool, target: OrderStatus) -> bool:
    """管理员可执行任意合法流转；买家只能取消；卖家只能确认、处理、发货"""
    if is_admin:
        return True
    if order.is_buyer(actor_id) and target in BUYER_TARGETS:
        return True
    if order.is_seller(actor_id) and target in SELLER_TARGETS:
        return True
    return False


def ensure_can_set_status(order: Order, actor_id: int, is_admin: bool, target: OrderStatus) -> None:
    if not can_set_status(order, actor_id, is_admin, target):
        raise OrderPermissionDeniedException()
