"""
订单相关 DTO - 下单、查询、状态流转与结算
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import ConfigDict, EmailStr, Field

from application.dto import DTOBase, PaymentInitializationDTO
from domain.order.entity import ItemStatus, OrderPaymentStatus, OrderStatus, PaymentMethod


SORT_OPTIONS = ("newest", "oldest", "amount-high", "amount-low")


# ---- requests -------------------------------------------------------------


class CartItemDTO(DTOBase):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    selected_size: Optional[str] = Field(default=None, max_length=50)


class CalculateOrderDTO(DTOBase):
    items: List[CartItemDTO] = Field(..., min_length=1)


class ShippingAddressDTO(DTOBase):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=5, max_length=30)
    address: str = Field(..., min_length=1, max_length=500)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=1, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)

    model_config = ConfigDict(from_attributes=True)


class CreateOrderDTO(DTOBase):
    """下单请求；payment_method 为支付网关名称（例如 paystack），提供时会同时初始化支付"""
    items: List[CartItemDTO] = Field(..., min_length=1)
    shipping_address: ShippingAddressDTO
    shipping_method: Optional[str] = Field(default=None, max_length=50)
    buyer_notes: Optional[str] = Field(default=None, max_length=1000)
    coupon_code: Optional[str] = Field(default=None, max_length=50)
    payment_method: Optional[str] = Field(default=None, max_length=30)


class UpdateOrderStatusDTO(DTOBase):
    status: OrderStatus
    reason: Optional[str] = Field(default=None, max_length=500)
    tracking_number: Optional[str] = Field(default=None, max_length=100)
    carrier_name: Optional[str] = Field(default=None, max_length=100)
    admin_notes: Optional[str] = Field(default=None, max_length=1000)


class CancelOrderDTO(DTOBase):
    reason: str = Field(..., min_length=5, max_length=500)


class SellerPayoutDTO(DTOBase):
    seller_id: int = Field(..., gt=0)
    payout_reference: str = Field(..., min_length=1, max_length=100)


class OrderQueryParams(DTOBase):
    """订单列表查询参数"""
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    status: Optional[OrderStatus] = None
    search: Optional[str] = Field(default=None, max_length=100)
    sort_by: str = Field(default="newest", pattern="^(newest|oldest|amount-high|amount-low)$")

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


# ---- responses ------------------------------------------------------------


class CalculatedItemDTO(DTOBase):
    product_id: int
    product_title: str
    unit_price: int
    quantity: int
    total_price: int
    shipping_cost: int
    item_service_fee: int
    item_taxes: int
    item_total: int
    seller_id: int
    seller_name: Optional[str] = None
    available: bool
    availability_message: Optional[str] = None
    selected_size: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderCalculationDTO(DTOBase):
    items: List[CalculatedItemDTO]
    subtotal: int
    total_shipping_cost: int
    total_service_fee: int
    total_taxes: int
    coupon_discount: int
    total_amount: int
    currency: str
    item_count: int
    seller_count: int
    unavailable_items: List[int]
    errors: List[str]

    model_config = ConfigDict(from_attributes=True)


class OrderItemDTO(DTOBase):
    id: Optional[int] = None
    product_id: int
    seller_id: int
    product_title: str
    product_image: Optional[str] = None
    product_brand: Optional[str] = None
    product_size: Optional[str] = None
    product_condition: Optional[str] = None
    product_category: Optional[str] = None
    quantity: int
    unit_price: int
    total_price: int
    shipping_cost: int
    item_service_fee: int
    item_taxes: int
    item_total: int
    seller_revenue: int
    seller_name: Optional[str] = None
    seller_paid: bool
    seller_payout_reference: Optional[str] = None
    seller_paid_at: Optional[datetime] = None
    item_status: ItemStatus
    tracking_number: Optional[str] = None
    carrier_name: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    available: bool
    availability_message: Optional[str] = None
    inventory_applied: bool

    model_config = ConfigDict(from_attributes=True)


class SellerPayoutResponseDTO(DTOBase):
    seller_id: int
    seller_name: Optional[str] = None
    item_count: int
    revenue: int
    service_fee: int
    paid: bool
    payout_reference: Optional[str] = None
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderResponseDTO(DTOBase):
    id: int
    order_number: str
    buyer_id: int
    status: OrderStatus
    subtotal: int
    total_shipping_cost: int
    total_service_fee: int
    total_taxes: int
    coupon_discount: int
    total_amount: int
    currency: str
    item_count: int
    seller_count: int
    seller_ids: List[int]
    seller_payouts: List[SellerPayoutResponseDTO]
    shipping_address: ShippingAddressDTO
    payment_status: OrderPaymentStatus
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
    status_history: List[str]
    items: List[OrderItemDTO]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CreateOrderResponseDTO(DTOBase):
    """下单结果；支付初始化失败时 payment 为空，订单仍然有效"""
    order: OrderResponseDTO
    payment: Optional[PaymentInitializationDTO] = None
