import json

import httpx
import pytest

from application.dto import InitializePaymentDTO
from application.dtos.orders import CreateOrderDTO
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentApplicationService
from core.config import settings
from infrastructure.adapters.notifier_port import CeleryOrderNotifier
from infrastructure.tasks.tasks.email import deliver_email


class RecordingDispatcher:
    def __init__(self):
        self.sent = []

    def send_email_task(self, name, **kwargs):
        self.sent.append((name, kwargs))


@pytest.mark.asyncio
async def test_checkout_schedules_emails(market, paystack, shipping_address):
    dispatcher = RecordingDispatcher()
    notifier = CeleryOrderNotifier(dispatcher=dispatcher)
    payments = PaymentApplicationService(market.uow_factory, lambda name: paystack, notifier=notifier)
    orders = OrderApplicationService(market.uow_factory, notifier=notifier, payment_service=payments)

    buyer = await market.add_user("buyer@example.com")
    seller = await market.add_user("seller@example.com", "Tunde", "Bello")
    product = await market.add_product(seller.id, price=50000, shipping=2500)
    order = (await orders.create_order(
        CreateOrderDTO(items=[{"product_id": product.id, "quantity": 1}], shipping_address=shipping_address),
        buyer,
    )).order

    name, placed = dispatcher.sent[0]
    assert name == "send_order_placed_email"
    assert placed["email"] == "buyer@example.com"
    assert placed["total_amount"] == 58131
    assert placed["order_number"] == order.order_number

    init = await payments.initialize_payment(InitializePaymentDTO(order_id=order.id), buyer)
    await payments.verify_payment(init.reference)

    names = [n for n, _ in dispatcher.sent]
    assert names == ["send_order_placed_email", "send_payment_confirmed_email", "send_seller_sale_email"]
    sale = dispatcher.sent[-1][1]
    assert sale["email"] == "seller@example.com"
    assert sale["revenue"] == 48250
    assert sale["items"] == [{"title": "Vintage denim jacket", "quantity": 1}]


def test_deliver_email_without_api_key_is_skipped(monkeypatch):
    monkeypatch.setattr(settings.email, "api_key", None)
    assert deliver_email("buyer@example.com", "Order placed", "<p>hi</p>") is None


def test_deliver_email_posts_message(monkeypatch):
    monkeypatch.setattr(settings.email, "api_key", "re_test")
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "msg_1"})

    client = httpx.Client(base_url="https://api.resend.test", transport=httpx.MockTransport(handler))
    message_id = deliver_email("buyer@example.com", "Order placed", "<p>hi</p>", client=client)

    assert message_id == "msg_1"
    assert seen[0].headers["Authorization"] == "Bearer re_test"
    payload = json.loads(seen[0].content)
    assert payload["to"] == ["buyer@example.com"]
    assert payload["subject"] == "Order placed"
