import logging

import pytest
import pytest_asyncio

from application.dto import InitializePaymentDTO
from application.dtos.orders import (
    CalculateOrderDTO,
    CancelOrderDTO,
    CreateOrderDTO,
    OrderQueryParams,
    SellerPayoutDTO,
    UpdateOrderStatusDTO,
)
from domain.common.exceptions import (
    DomainValidationException,
    DuplicateOrderNumberException,
    ForbiddenException,
    InvalidStatusTransitionException,
    ItemsUnavailableException,
    OrderNotFoundException,
    OrderPermissionDeniedException,
    SellerPayoutNotFoundException,
)
from domain.order.entity import OrderStatus, PaymentMethod
from domain.order.service import OrderDomainService
from domain.user.entity import UserRole


@pytest_asyncio.fixture
async def people(market):
    buyer = await market.add_user("buyer@example.com")
    seller = await market.add_user("seller@example.com", "Tunde", "Bello")
    stranger = await market.add_user("stranger@example.com", "Sade", "Ola")
    admin = await market.add_user("admin@example.com", "Root", "Admin", role=UserRole.ADMIN)
    return buyer, seller, stranger, admin


async def _place(order_service, buyer, product, shipping_address, **extra):
    dto = CreateOrderDTO(
        items=[{"product_id": product.id, "quantity": 1}],
        shipping_address=shipping_address,
        **extra,
    )
    return await order_service.create_order(dto, buyer)


@pytest.mark.asyncio
async def test_calculate_is_read_only(market, order_service, people):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=50000, shipping=2500)

    result = await order_service.calculate(
        CalculateOrderDTO(items=[{"product_id": product.id, "quantity": 1}]), buyer
    )

    assert result.total_amount == 58131
    assert result.items[0].seller_name == "Tunde Bello"
    assert market.orders.rows == {}
    assert market.commits == 0


@pytest.mark.asyncio
async def test_create_order_end_to_end(market, order_service, notifier, people, shipping_address):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=50000, shipping=2500)

    result = await _place(order_service, buyer, product, shipping_address, buyer_notes="Leave at gate")
    order = result.order

    assert result.payment is None
    assert order.status == OrderStatus.PENDING
    assert (order.subtotal, order.total_shipping_cost, order.total_service_fee, order.total_taxes) == (50000, 2500, 1750, 3881)
    assert order.total_amount == 58131
    assert order.seller_ids == [seller.id]
    assert order.seller_payouts[0].revenue == 48250
    assert order.items[0].item_total == 58131
    assert order.buyer_notes == "Leave at gate"
    # 下单不扣库存
    assert market.products.rows[product.id].quantity == 1
    assert notifier.calls == [("order_placed", order.order_number, buyer.id)]


@pytest.mark.asyncio
async def test_create_order_with_payment_initializes_gateway(market, order_service, paystack_api, people, shipping_address):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=50000, shipping=2500)

    result = await _place(order_service, buyer, product, shipping_address, payment_method="paystack")

    assert result.payment is not None
    assert result.payment.reference.startswith("PAY_")
    assert result.payment.amount == 58131
    payment = market.payments.rows[1]
    assert payment.callback_url == f"http://localhost:3000/checkout?ordno={result.order.order_number}"
    request = paystack_api.requests[0]
    assert request.headers["Authorization"] == "Bearer sk_test_marketplace"


@pytest.mark.asyncio
async def test_payment_failure_does_not_roll_back_order(market, order_service, paystack_api, people, shipping_address):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=50000)
    paystack_api.initialize_error = 401

    result = await _place(order_service, buyer, product, shipping_address, payment_method="paystack")

    assert result.payment is None
    assert market.orders.rows[result.order.id].order_number == result.order.order_number
    assert market.payments.rows == {}


@pytest.mark.asyncio
async def test_self_purchase_is_rejected(market, order_service, people, shipping_address):
    _, seller, _, _ = people
    product = await market.add_product(seller.id, price=1000)

    with pytest.raises(ItemsUnavailableException) as exc:
        await _place(order_service, seller, product, shipping_address)
    assert exc.value.details == {"product_ids": [product.id]}


@pytest.mark.asyncio
async def test_missing_product_fails_validation(order_service, people, shipping_address):
    buyer = people[0]
    dto = CreateOrderDTO(items=[{"product_id": 999, "quantity": 1}], shipping_address=shipping_address)

    with pytest.raises(DomainValidationException) as exc:
        await order_service.create_order(dto, buyer)
    assert "Product not found: 999" in exc.value.message


@pytest.mark.asyncio
async def test_order_number_collision_is_retried(market, order_service, people, shipping_address):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=1000, quantity=5)

    market.orders.forced_conflicts = 2
    result = await _place(order_service, buyer, product, shipping_address)
    assert result.order.id == 1

    market.orders.forced_conflicts = 3
    with pytest.raises(DuplicateOrderNumberException):
        await _place(order_service, buyer, product, shipping_address)


@pytest.mark.asyncio
async def test_seller_and_admin_drive_fulfilment(market, order_service, notifier, people, shipping_address):
    buyer, seller, _, admin = people
    product = await market.add_product(seller.id, price=50000, shipping=2500)
    order = (await _place(order_service, buyer, product, shipping_address)).order

    await order_service.update_status(order.id, UpdateOrderStatusDTO(status="confirmed"), seller)
    await order_service.update_status(order.id, UpdateOrderStatusDTO(status="processing"), seller)
    shipped = await order_service.update_status(
        order.id,
        UpdateOrderStatusDTO(status="shipped", tracking_number="GIG-123", carrier_name="GIG Logistics"),
        seller,
    )
    assert shipped.tracking_number == "GIG-123"

    with pytest.raises(OrderPermissionDeniedException):
        await order_service.update_status(order.id, UpdateOrderStatusDTO(status="delivered"), buyer)

    delivered = await order_service.update_status(
        order.id, UpdateOrderStatusDTO(status="delivered", admin_notes="POD received"), admin
    )
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.admin_notes == "POD received"
    assert [c[1] for c in notifier.calls if c[0] == "status_changed"] == [
        "confirmed", "processing", "shipped", "delivered",
    ]


@pytest.mark.asyncio
async def test_invalid_transition_even_for_admin(market, order_service, people, shipping_address):
    buyer, seller, _, admin = people
    product = await market.add_product(seller.id, price=1000)
    order = (await _place(order_service, buyer, product, shipping_address)).order

    with pytest.raises(InvalidStatusTransitionException):
        await order_service.update_status(order.id, UpdateOrderStatusDTO(status="shipped"), admin)


@pytest.mark.asyncio
async def test_cancel_unpaid_order_keeps_stock(market, order_service, people, shipping_address):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=1000, quantity=2)
    order = (await _place(order_service, buyer, product, shipping_address)).order

    cancelled = await order_service.cancel_order(order.id, CancelOrderDTO(reason="Changed my mind"), buyer)

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancelled_by == buyer.id
    assert all(i.item_status == "cancelled" for i in cancelled.items)
    assert cancelled.status_history[-1].endswith("Changed my mind")
    assert market.products.rows[product.id].quantity == 2


@pytest.mark.asyncio
async def test_cancel_paid_order_restores_stock(market, order_service, payment_service, people, shipping_address):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=50000, shipping=2500)
    result = await _place(order_service, buyer, product, shipping_address, payment_method="paystack")
    await payment_service.verify_payment(result.payment.reference)
    assert market.products.rows[product.id].sold is True

    with pytest.raises(OrderPermissionDeniedException):
        await order_service.cancel_order(result.order.id, CancelOrderDTO(reason="Seller cannot ship"), seller)
    await order_service.cancel_order(result.order.id, CancelOrderDTO(reason="Found it cheaper"), buyer)

    restored = market.products.rows[product.id]
    assert restored.quantity == 1
    assert restored.sold is False
    assert market.orders.rows[result.order.id].items[0].inventory_applied is False


@pytest.mark.asyncio
async def test_cancel_rules(market, order_service, people, shipping_address):
    buyer, seller, stranger, admin = people
    product = await market.add_product(seller.id, price=1000)
    order = (await _place(order_service, buyer, product, shipping_address)).order

    with pytest.raises(ForbiddenException):
        await order_service.cancel_order(order.id, CancelOrderDTO(reason="not mine at all"), stranger)

    for status in ("confirmed", "processing", "shipped", "delivered"):
        await order_service.update_status(order.id, UpdateOrderStatusDTO(status=status), admin)
    with pytest.raises(DomainValidationException):
        await order_service.cancel_order(order.id, CancelOrderDTO(reason="Too late now"), buyer)

    with pytest.raises(OrderNotFoundException):
        await order_service.cancel_order(404, CancelOrderDTO(reason="No such order"), buyer)


@pytest.mark.asyncio
async def test_visibility_and_listing(market, order_service, people, shipping_address):
    buyer, seller, stranger, admin = people
    cheap = await market.add_product(seller.id, price=1000, title="Canvas tote")
    dear = await market.add_product(seller.id, price=90000, title="Leather boots")
    first = (await _place(order_service, buyer, cheap, shipping_address)).order
    second = (await _place(order_service, buyer, dear, shipping_address)).order

    assert (await order_service.get_order(first.id, seller)).id == first.id
    assert (await order_service.get_order_by_number(second.order_number, buyer)).id == second.id
    with pytest.raises(ForbiddenException):
        await order_service.get_order(first.id, stranger)

    items, total = await order_service.list_purchases(OrderQueryParams(sort_by="amount-high"), buyer)
    assert total == 2
    assert [o.id for o in items] == [second.id, first.id]

    items, total = await order_service.list_sales(OrderQueryParams(search="boots"), seller)
    assert [o.id for o in items] == [second.id]

    assert (await order_service.list_orders(OrderQueryParams(), stranger))[1] == 0
    assert (await order_service.list_orders(OrderQueryParams(), admin))[1] == 2

    items, total = await order_service.list_user_orders(buyer.id, OrderQueryParams(limit=1), admin)
    assert total == 2 and len(items) == 1
    with pytest.raises(ForbiddenException):
        await order_service.list_user_orders(buyer.id, OrderQueryParams(), buyer)


@pytest.mark.asyncio
async def test_seller_payout(market, order_service, people, shipping_address):
    buyer, seller, _, admin = people
    product = await market.add_product(seller.id, price=50000, shipping=2500)
    order = (await _place(order_service, buyer, product, shipping_address)).order

    with pytest.raises(ForbiddenException):
        await order_service.process_payout(order.id, SellerPayoutDTO(seller_id=seller.id, payout_reference="TRF_1"), seller)

    payout = await order_service.process_payout(
        order.id, SellerPayoutDTO(seller_id=seller.id, payout_reference="TRF_1"), admin
    )
    assert payout.paid is True
    assert payout.revenue == 48250
    stored = market.orders.rows[order.id]
    assert stored.items[0].seller_paid is True
    assert stored.items[0].seller_payout_reference == "TRF_1"

    with pytest.raises(SellerPayoutNotFoundException):
        await order_service.process_payout(order.id, SellerPayoutDTO(seller_id=buyer.id, payout_reference="TRF_2"), admin)


@pytest.mark.asyncio
async def test_notification_failures_are_swallowed(market, people, shipping_address, failing_notifier):
    from application.services.order_service import OrderApplicationService

    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=1000)
    service = OrderApplicationService(market.uow_factory, notifier=failing_notifier)

    result = await _place(service, buyer, product, shipping_address)
    assert result.order.id == 1


def _structured(caplog, event):
    return [r.msg for r in caplog.records if isinstance(r.msg, dict) and r.msg.get("event") == event]


@pytest.mark.asyncio
async def test_sent_notifications_are_logged(market, order_service, notifier, people, shipping_address, caplog):
    caplog.set_level(logging.INFO)
    buyer, seller, _, admin = people
    product = await market.add_product(seller.id, price=1000)

    order = (await _place(order_service, buyer, product, shipping_address)).order
    await order_service.update_status(order.id, UpdateOrderStatusDTO(status="confirmed"), admin)

    sent = _structured(caplog, "order_notification_sent")
    assert [(e["event_type"], e["order_id"]) for e in sent] == [
        ("OrderCreated", order.id),
        ("OrderStatusChanged", order.id),
    ]
    assert [c[0] for c in notifier.calls] == ["order_placed", "status_changed"]


@pytest.mark.asyncio
async def test_failed_notifications_are_logged(market, people, shipping_address, failing_notifier, caplog):
    from application.services.order_service import OrderApplicationService

    caplog.set_level(logging.INFO)
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=1000)
    service = OrderApplicationService(market.uow_factory, notifier=failing_notifier)

    order = (await _place(service, buyer, product, shipping_address)).order

    failed = _structured(caplog, "order_notification_failed")
    assert [(e["event_type"], e["order_id"]) for e in failed] == [("OrderCreated", order.id)]


@pytest.mark.asyncio
async def test_payment_after_cancellation_keeps_stock(market, order_service, payment_service, notifier, people, shipping_address):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=50000, shipping=2500)
    result = await _place(order_service, buyer, product, shipping_address, payment_method="paystack")
    await order_service.cancel_order(result.order.id, CancelOrderDTO(reason="Changed my mind"), buyer)

    # 买家取消后网关才回报支付成功
    await payment_service.verify_payment(result.payment.reference)

    stored = market.orders.rows[result.order.id]
    assert stored.status == OrderStatus.CANCELLED
    assert stored.is_paid
    assert stored.items[0].item_status == "cancelled"
    assert stored.items[0].inventory_applied is False
    assert "Payment received after order was cancelled" in stored.status_history[-1]
    kept = market.products.rows[product.id]
    assert (kept.quantity, kept.sold) == (1, False)
    assert "payment_confirmed" not in [c[0] for c in notifier.calls]


@pytest.mark.asyncio
async def test_cancelled_order_cannot_be_paid(market, order_service, payment_service, people, shipping_address):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=1000)
    order = (await _place(order_service, buyer, product, shipping_address)).order
    await order_service.cancel_order(order.id, CancelOrderDTO(reason="Changed my mind"), buyer)

    with pytest.raises(DomainValidationException) as exc:
        await payment_service.initialize_payment(InitializePaymentDTO(order_id=order.id), buyer)
    assert exc.value.message == "Cannot pay for a cancelled order"
    assert market.payments.rows == {}


@pytest.mark.asyncio
async def test_confirm_payment_decrements_stock_once(market, order_service, people, shipping_address):
    buyer, seller, _, _ = people
    product = await market.add_product(seller.id, price=1000, quantity=5)
    order = (await _place(order_service, buyer, product, shipping_address)).order
    domain = OrderDomainService(market.orders, market.products, market.users)

    first = await domain.confirm_payment(order.id, reference="PAY_1_1", method=PaymentMethod.CARD, gateway="paystack")
    # 网关回调与主动校验先后到达
    second = await domain.confirm_payment(order.id, reference="PAY_1_1", method=PaymentMethod.CARD, gateway="paystack")

    assert first.stock_conflicts == second.stock_conflicts == []
    assert market.products.rows[product.id].quantity == 4
    assert market.orders.rows[order.id].items[0].inventory_applied is True
    assert market.orders.rows[order.id].status == OrderStatus.CONFIRMED
