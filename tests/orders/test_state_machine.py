import pytest

from domain.common.exceptions import InvalidStatusTransitionException, OrderPermissionDeniedException
from domain.order.entity import Order, OrderStatus, ShippingAddress
from domain.order.state_machine import (
    ALLOWED_TRANSITIONS,
    can_set_status,
    can_transition,
    ensure_can_set_status,
    ensure_transition,
)

BUYER, SELLER, STRANGER, ADMIN = 1, 2, 3, 4

EXPECTED = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}


def _order(status=OrderStatus.PENDING) -> Order:
    return Order(
        id=1,
        order_number="ORD1",
        buyer_id=BUYER,
        shipping_address=ShippingAddress("Ada", "Obi", "buyer@example.com", "0801", "1 Way", "Lekki", "Lagos", "Nigeria"),
        status=status,
        seller_ids=[SELLER],
    )


def test_transition_table_is_closed():
    assert set(ALLOWED_TRANSITIONS) == set(OrderStatus)
    for current in OrderStatus:
        for target in OrderStatus:
            assert can_transition(current, target) == (target in EXPECTED[current]), (current, target)


def test_invalid_transition_raises():
    with pytest.raises(InvalidStatusTransitionException) as exc:
        ensure_transition(OrderStatus.PENDING, OrderStatus.SHIPPED)
    assert exc.value.details == {"current": "pending", "target": "shipped"}
    ensure_transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED)


@pytest.mark.parametrize(
    "actor,is_admin,target,allowed",
    [
        (BUYER, False, OrderStatus.CANCELLED, True),
        (BUYER, False, OrderStatus.CONFIRMED, False),
        (BUYER, False, OrderStatus.DELIVERED, False),
        (SELLER, False, OrderStatus.CONFIRMED, True),
        (SELLER, False, OrderStatus.PROCESSING, True),
        (SELLER, False, OrderStatus.SHIPPED, True),
        (SELLER, False, OrderStatus.DELIVERED, False),
        (SELLER, False, OrderStatus.CANCELLED, False),
        (STRANGER, False, OrderStatus.CANCELLED, False),
        (ADMIN, True, OrderStatus.DELIVERED, True),
        (ADMIN, True, OrderStatus.REFUNDED, True),
    ],
)
def test_status_permissions(actor, is_admin, target, allowed):
    assert can_set_status(_order(), actor, is_admin, target) is allowed


def test_permission_denied_exception():
    with pytest.raises(OrderPermissionDeniedException):
        ensure_can_set_status(_order(), STRANGER, False, OrderStatus.CONFIRMED)


def test_apply_status_records_history_and_side_effects():
    order = _order(OrderStatus.PROCESSING)
    order.apply_status(
        OrderStatus.SHIPPED,
        actor_id=SELLER,
        is_admin=False,
        tracking_number="GIG-123",
        carrier_name="GIG Logistics",
        admin_notes="ignored for non-admins",
    )
    assert order.shipped_at is not None
    assert order.tracking_number == "GIG-123"
    assert order.admin_notes is None
    assert order.status_history[-1].startswith("Status changed to shipped - ")
