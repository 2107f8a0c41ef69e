"""
订单领域实体 - 订单聚合根、订单项与卖家结算记录
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from domain.common.exceptions import DomainValidationException, SellerPayoutNotFoundException


class OrderStatus(str, Enum):
    """订单状态"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class ItemStatus(str, Enum):
    """订单项状态，与订单状态独立跟踪"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    WALLET = "wallet"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class ShippingAddress:
    """收货地址值对象"""

    first_name: str
    last_name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    country: str
    postal_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShippingAddress":
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__})


@dataclass
class SellerPayout:
    """卖家结算记录（内嵌于订单）"""

    seller_id: int
    seller_name: Optional[str] = None
    item_count: int = 0
    revenue: int = 0
    service_fee: int = 0
    paid: bool = False
    payout_reference: Optional[str] = None
    paid_at: Optional[datetime] = None

    def mark_paid(self, reference: str, at: Optional[datetime] = None) -> None:
        self.paid = True
        self.payout_reference = reference
        self.paid_at = at or _utcnow()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["paid_at"] = _iso(self.paid_at) if self.paid_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SellerPayout":
        return cls(
            seller_id=int(data["seller_id"]),
            seller_name=data.get("seller_name"),
            item_count=int(data.get("item_count", 0)),
            revenue=int(data.get("revenue", 0)),
            service_fee=int(data.get("service_fee", 0)),
            paid=bool(data.get("paid", False)),
            payout_reference=data.get("payout_reference"),
            paid_at=_parse_dt(data.get("paid_at")),
        )


@dataclass
class OrderItem:
    """
    订单项 - 下单时的商品快照

    不变量：
    - item_total == total_price + shipping_cost + item_service_fee + item_taxes
    - seller_revenue == total_price - item_service_fee
    """

    id: Optional[int]
    order_id: Optional[int]
    product_id: int
    seller_id: int
    product_title: str
    quantity: int
    unit_price: int
    total_price: int
    shipping_cost: int
    item_service_fee: int
    item_taxes: int
    item_total: int
    seller_revenue: int
    product_image: Optional[str] = None
    product_brand: Optional[str] = None
    product_size: Optional[str] = None
    product_condition: Optional[str] = None
    product_category: Optional[str] = None
    seller_name: Optional[str] = None
    seller_email: Optional[str] = None
    seller_phone: Optional[str] = None
    seller_paid: bool = False
    seller_payout_reference: Optional[str] = None
    seller_paid_at: Optional[datetime] = None
    item_status: ItemStatus = ItemStatus.PENDING
    tracking_number: Optional[str] = None
    carrier_name: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    available: bool = True
    availability_message: Optional[str] = None
    inventory_applied: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise DomainValidationException("Quantity must be at least 1", field="quantity")
        expected_total = self.total_price + self.shipping_cost + self.item_service_fee + self.item_taxes
        if self.item_total != expected_total:
            raise DomainValidationException("Item total does not match its components", field="item_total")
        if self.seller_revenue != self.total_price - self.item_service_fee:
            raise DomainValidationException("Seller revenue does not match item price", field="seller_revenue")

    def mark_confirmed(self) -> None:
        self.item_status = ItemStatus.CONFIRMED
        self.updated_at = _utcnow()

    def mark_cancelled(self, reason: Optional[str], at: datetime) -> None:
        self.item_status = ItemStatus.CANCELLED
        self.cancelled_at = at
        self.cancellation_reason = reason
        self.updated_at = at

    def mark_inventory_applied(self) -> None:
        self.inventory_applied = True
        self.updated_at = _utcnow()

    def mark_stock_conflict(self, message: str) -> None:
        self.available = False
        self.availability_message = message
        self.updated_at = _utcnow()

    def mark_seller_paid(self, reference: str, at: datetime) -> None:
        self.seller_paid = True
        self.seller_payout_reference = reference
        self.seller_paid_at = at
        self.updated_at = at


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. total_amount == subtotal + total_shipping_cost + total_service_fee + total_taxes - coupon_discount
    2. seller_count == 订单项中不同卖家的数量
    3. 状态流转受状态机约束（见 state_machine）
    4. status_history 只追加，不修改
    """

    id: Optional[int]
    order_number: str
    buyer_id: int
    shipping_address: ShippingAddress
    status: OrderStatus = OrderStatus.PENDING
    subtotal: int = 0
    total_shipping_cost: int = 0
    total_service_fee: int = 0
    total_taxes: int = 0
    coupon_discount: int = 0
    total_amount: int = 0
    currency: str = "NGN"
    item_count: int = 0
    seller_count: int = 0
    seller_ids: List[int] = field(default_factory=list)
    seller_payouts: List[SellerPayout] = field(default_factory=list)
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    payment_method: Optional[PaymentMethod] = None
    payment_reference: Optional[str] = None
    payment_gateway: Optional[str] = None
    paid_at: Optional[datetime] = None
    shipping_method: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier_name: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    processing_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    admin_notes: Optional[str] = None
    buyer_notes: Optional[str] = None
    status_history: List[str] = field(default_factory=list)
    items: List[OrderItem] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.status_history is None:
            self.status_history = []
        if self.items is None:
            self.items = []
        self._validate_totals()

    def _validate_totals(self) -> None:
        expected = (
            self.subtotal
            + self.total_shipping_cost
            + self.total_service_fee
            + self.total_taxes
            - self.coupon_discount
        )
        if self.total_amount != expected:
            raise DomainValidationException(
                f"Order total {self.total_amount} does not match its components ({expected})",
                field="total_amount",
            )

    # ---- participants ----

    def is_buyer(self, user_id: int) -> bool:
        return self.buyer_id == user_id

    def is_seller(self, user_id: int) -> bool:
        return user_id in self.seller_ids

    def is_participant(self, user_id: int) -> bool:
        return self.is_buyer(user_id) or self.is_seller(user_id)

    # ---- history ----

    def add_history(self, entry: str, at: Optional[datetime] = None) -> None:
        self.status_history.append(f"{entry} - {_iso(at or _utcnow())}")

    def record_status_history(self, status: OrderStatus, at: datetime, reason: Optional[str] = None) -> None:
        line = f"Status changed to {status.value} - {_iso(at)}"
        if reason:
            line += f" - {reason}"
        self.status_history.append(line)

    # ---- status side effects ----

    def apply_status(
        self,
        target: OrderStatus,
        *,
        actor_id: int,
        is_admin: bool,
        reason: Optional[str] = None,
        tracking_number: Optional[str] = None,
        carrier_name: Optional[str] = None,
        admin_notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> None:
        """
        写入目标状态及其附带字段

        调用方负责先完成权限与状态机校验；库存归还由领域服务通过仓储完成。
        """
        now = at or _utcnow()
        self.status = target
        if target == OrderStatus.CONFIRMED:
            self.confirmed_at = now
        elif target == OrderStatus.PROCESSING:
            self.processing_at = now
        elif target == OrderStatus.SHIPPED:
            self.shipped_at = now
            if tracking_number:
                self.tracking_number = tracking_number
            if carrier_name:
                self.carrier_name = carrier_name
        elif target == OrderStatus.DELIVERED:
            self.delivered_at = now
        elif target == OrderStatus.CANCELLED:
            self.cancelled_at = now
            self.cancellation_reason = reason
            self.cancelled_by = actor_id
            for item in self.items:
                item.mark_cancelled(reason, now)

        if admin_notes and is_admin:
            self.admin_notes = admin_notes

        self.record_status_history(target, now, reason)
        self.updated_at = now

    def record_payment(
        self,
        *,
        reference: str,
        method: Optional[PaymentMethod],
        gateway: str,
        at: Optional[datetime] = None,
    ) -> None:
        """支付确认：写入支付信息，PENDING 订单推进为 CONFIRMED，并确认所有订单项"""
        now = at or _utcnow()
        self.payment_status = OrderPaymentStatus.COMPLETED
        self.paid_at = now
        self.payment_reference = reference
        self.payment_method = method
        self.payment_gateway = gateway
        if self.is_closed:
            # 已关闭的订单只记录到账，不再确认订单项
            self.add_history(f"Payment received after order was {self.status.value}", now)
            self.updated_at = now
            return
        if self.status == OrderStatus.PENDING:
            self.status = OrderStatus.CONFIRMED
            self.confirmed_at = now
        self.add_history("Payment confirmed", now)
        for item in self.items:
            item.mark_confirmed()
        self.updated_at = now

    # ---- payouts ----

    def payout_for(self, seller_id: int) -> SellerPayout:
        for payout in self.seller_payouts:
            if payout.seller_id == seller_id:
                return payout
        raise SellerPayoutNotFoundException(seller_id)

    def mark_seller_paid(self, seller_id: int, reference: str, at: Optional[datetime] = None) -> SellerPayout:
        now = at or _utcnow()
        payout = self.payout_for(seller_id)
        payout.mark_paid(reference, now)
        for item in self.items:
            if item.seller_id == seller_id:
                item.mark_seller_paid(reference, now)
        self.updated_at = now
        return payout

    @property
    def is_paid(self) -> bool:
        return self.payment_status == OrderPaymentStatus.COMPLETED

    @property
    def is_closed(self) -> bool:
        return self.status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED)
