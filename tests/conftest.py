"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.

The fixtures below wire application services to in-memory repositories
and to a PaystackClient backed by httpx.MockTransport, so use cases run
end to end without a database or network.
"""
import copy
import json
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import httpx
import pytest

from application.dto import CurrentUserDTO
from domain.common.exceptions import DuplicateOrderNumberException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.order.repository import OrderQuery, OrderRepository, OrderScope, OrderSort
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.repository import PaymentRepository
from domain.product.entity import Product
from domain.product.repository import ProductRepository
from domain.user.entity import User, UserRole
from domain.user.repository import UserRepository
from infrastructure.external.payments.paystack_client import PaystackClient

PAYSTACK_SECRET = "sk_test_marketplace"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryUserRepository(UserRepository):
    def __init__(self):
        self.rows: Dict[int, User] = {}

    async def create(self, user: User) -> User:
        user = copy.deepcopy(user)
        user.id = len(self.rows) + 1
        user.created_at = user.updated_at = _now()
        self.rows[user.id] = user
        return copy.deepcopy(user)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        return copy.deepcopy(self.rows.get(user_id))

    async def get_by_email(self, email: str) -> Optional[User]:
        for user in self.rows.values():
            if user.email == email:
                return copy.deepcopy(user)
        return None

    async def get_many(self, user_ids) -> Dict[int, User]:
        return {i: copy.deepcopy(self.rows[i]) for i in user_ids if i in self.rows}


class InMemoryProductRepository(ProductRepository):
    def __init__(self):
        self.rows: Dict[int, Product] = {}

    async def create(self, product: Product) -> Product:
        product = copy.deepcopy(product)
        product.id = len(self.rows) + 1
        self.rows[product.id] = product
        return copy.deepcopy(product)

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        return copy.deepcopy(self.rows.get(product_id))

    async def get_many(self, product_ids) -> Dict[int, Product]:
        return {i: copy.deepcopy(self.rows[i]) for i in product_ids if i in self.rows}

    async def decrement_stock(self, product_id: int, quantity: int) -> bool:
        product = self.rows.get(product_id)
        if product is None or not product.can_supply(quantity):
            return False
        product.consume(quantity)
        return True

    async def restore_stock(self, product_id: int, quantity: int) -> None:
        product = self.rows.get(product_id)
        if product is not None:
            product.restore(quantity)


class InMemoryOrderRepository(OrderRepository):
    def __init__(self):
        self.rows: Dict[int, Order] = {}
        self.item_seq = 0
        self.updates = 0
        # 预置的冲突订单号次数，用于模拟唯一约束冲突
        self.forced_conflicts = 0

    async def create(self, order: Order) -> Order:
        if self.forced_conflicts > 0:
            self.forced_conflicts -= 1
            raise DuplicateOrderNumberException(order.order_number)
        if any(o.order_number == order.order_number for o in self.rows.values()):
            raise DuplicateOrderNumberException(order.order_number)
        stored = copy.deepcopy(order)
        stored.id = len(self.rows) + 1
        for item in stored.items:
            self.item_seq += 1
            item.id = self.item_seq
            item.order_id = stored.id
        self.rows[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        return copy.deepcopy(self.rows.get(order_id))

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        for order in self.rows.values():
            if order.order_number == order_number:
                return copy.deepcopy(order)
        return None

    async def update(self, order: Order) -> Order:
        self.updates += 1
        self.rows[order.id] = copy.deepcopy(order)
        return copy.deepcopy(order)

    async def list(self, query: OrderQuery) -> Tuple[List[Order], int]:
        def visible(o: Order) -> bool:
            sold = any(i.seller_id == query.user_id for i in o.items)
            if query.scope == OrderScope.BUYER:
                return o.buyer_id == query.user_id
            if query.scope == OrderScope.SELLER:
                return sold
            if query.scope == OrderScope.PARTICIPANT:
                return o.buyer_id == query.user_id or sold
            return True

        rows = [o for o in self.rows.values() if visible(o)]
        if query.status is not None:
            rows = [o for o in rows if o.status == query.status]
        if query.search:
            needle = query.search.lower()
            rows = [
                o for o in rows
                if needle in o.order_number.lower()
                or any(needle in i.product_title.lower() for i in o.items)
            ]
        key, reverse = {
            OrderSort.NEWEST: (lambda o: (o.created_at, o.id), True),
            OrderSort.OLDEST: (lambda o: (o.created_at, o.id), False),
            OrderSort.AMOUNT_HIGH: (lambda o: (o.total_amount, o.id), True),
            OrderSort.AMOUNT_LOW: (lambda o: (o.total_amount, o.id), False),
        }[query.sort_by]
        rows.sort(key=key, reverse=reverse)
        page = rows[query.offset:query.offset + query.limit]
        return [copy.deepcopy(o) for o in page], len(rows)


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self):
        self.rows: Dict[int, Payment] = {}
        self.updates = 0

    async def create(self, payment: Payment) -> Payment:
        stored = copy.deepcopy(payment)
        stored.id = len(self.rows) + 1
        stored.created_at = stored.created_at or _now()
        self.rows[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        return copy.deepcopy(self.rows.get(payment_id))

    async def get_by_reference(self, reference: str) -> Optional[Payment]:
        for payment in self.rows.values():
            if payment.reference == reference:
                return copy.deepcopy(payment)
        return None

    async def get_latest_for_order(self, order_id: int, status: Optional[PaymentStatus] = None) -> Optional[Payment]:
        rows = [
            p for p in self.rows.values()
            if p.order_id == order_id and (status is None or p.status == status)
        ]
        if not rows:
            return None
        return copy.deepcopy(max(rows, key=lambda p: (p.created_at, p.id)))

    async def list_by_user(self, user_id: int, skip: int = 0, limit: int = 20) -> Tuple[List[Payment], int]:
        rows = sorted(
            (p for p in self.rows.values() if p.user_id == user_id),
            key=lambda p: (p.created_at, p.id),
            reverse=True,
        )
        return [copy.deepcopy(p) for p in rows[skip:skip + limit]], len(rows)

    async def update(self, payment: Payment) -> Payment:
        self.updates += 1
        self.rows[payment.id] = copy.deepcopy(payment)
        return copy.deepcopy(payment)


class Marketplace:
    """共享的内存存储；每次 uow_factory() 调用返回一个新的工作单元"""

    def __init__(self):
        self.users = InMemoryUserRepository()
        self.products = InMemoryProductRepository()
        self.orders = InMemoryOrderRepository()
        self.payments = InMemoryPaymentRepository()
        self.commits = 0
        self.rollbacks = 0

    def uow_factory(self, readonly: bool = False) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self, readonly=readonly)

    async def add_user(self, email: str, first_name: str = "Ada", last_name: str = "Obi", *, role=UserRole.USER, active=True) -> CurrentUserDTO:
        user = await self.users.create(User(
            id=None,
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone="+2348000000000",
            role=role,
            is_active=active,
        ))
        return CurrentUserDTO.model_validate(user)

    async def add_product(self, seller_id: int, *, price: int, shipping: int = 0, quantity: int = 1, title: str = "Vintage denim jacket") -> Product:
        return await self.products.create(Product(
            id=None,
            seller_id=seller_id,
            title=title,
            brand="Levi's",
            size="M",
            condition="good",
            category="jackets",
            images=["https://cdn.example.com/p/1.jpg"],
            selling_price=price,
            domestic_shipping=shipping,
            quantity=quantity,
        ))


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: Marketplace, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self._store = store
        self.user_repository = store.users
        self.product_repository = store.products
        self.order_repository = store.orders
        self.payment_repository = store.payments

    async def commit(self) -> None:
        self._store.commits += 1
        self._committed = True

    async def rollback(self) -> None:
        self._store.rollbacks += 1


class PaystackAPI:
    """httpx.MockTransport 后端，模拟 Paystack 的 initialize/verify/refund 接口"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.verify_status = "success"
        self.channel = "card"
        self.initialize_error: Optional[int] = None
        self.transaction_id = 4099260516

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/transaction/initialize":
            if self.initialize_error:
                return httpx.Response(self.initialize_error, json={"status": False, "message": "Invalid key"})
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": f"https://checkout.paystack.com/{body['reference']}",
                    "access_code": "ac_0peioxfhpn",
                    "reference": body["reference"],
                },
            })
        if path.startswith("/transaction/verify/"):
            reference = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={
                "status": True,
                "message": "Verification successful",
                "data": {
                    "id": self.transaction_id,
                    "status": self.verify_status,
                    "reference": reference,
                    "amount": 5813100,
                    "fees": 97197,
                    "channel": self.channel,
                    "gateway_response": "Successful" if self.verify_status == "success" else "Declined",
                    "paid_at": "2026-10-19T10:00:00.000Z",
                    "ip_address": "102.89.1.10",
                    "customer": {"email": "buyer@example.com", "risk_action": "default"},
                    "authorization": {"last4": "4081", "card_type": "visa"},
                },
            })
        if path == "/refund":
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "status": True,
                "message": "Refund has been queued for processing",
                "data": {
                    "id": 3018284,
                    "status": "pending",
                    "amount": body.get("amount", 5813100),
                    "transaction": {"id": self.transaction_id},
                },
            })
        return httpx.Response(404, json={"status": False, "message": "Not found"})


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.calls: List[tuple] = []
        self.fail = fail

    async def order_placed(self, order, buyer) -> None:
        self._record("order_placed", order.order_number, buyer.id)

    async def payment_confirmed(self, order, buyer, sellers) -> None:
        self._record("payment_confirmed", order.order_number, sorted(sellers))

    async def status_changed(self, order, buyer, reason=None) -> None:
        self._record("status_changed", order.status.value, reason)

    def _record(self, *call) -> None:
        if self.fail:
            raise RuntimeError("smtp down")
        self.calls.append(call)


def sign(body: bytes, secret: str = PAYSTACK_SECRET) -> str:
    from infrastructure.external.payments.paystack_client import compute_signature
    return compute_signature(secret, body)


@pytest.fixture
def market() -> Marketplace:
    return Marketplace()


@pytest.fixture
def paystack_api() -> PaystackAPI:
    return PaystackAPI()


@pytest.fixture
def paystack(paystack_api) -> PaystackClient:
    return PaystackClient(
        PAYSTACK_SECRET,
        base_url="https://api.paystack.test",
        transport=httpx.MockTransport(paystack_api.handler),
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


@pytest.fixture
def signer():
    return sign


@pytest.fixture
def payment_service(market, paystack, notifier):
    from application.services.payment_service import PaymentApplicationService
    return PaymentApplicationService(market.uow_factory, lambda name: paystack, notifier=notifier)


@pytest.fixture
def order_service(market, notifier, payment_service):
    from application.services.order_service import OrderApplicationService
    return OrderApplicationService(market.uow_factory, notifier=notifier, payment_service=payment_service)


@pytest.fixture
def shipping_address() -> dict:
    return {
        "first_name": "Ada",
        "last_name": "Obi",
        "email": "buyer@example.com",
        "phone": "+2348012345678",
        "address": "12 Admiralty Way",
        "city": "Lekki",
        "state": "Lagos",
        "country": "Nigeria",
    }
