"""
Order domain events.

Collected by the order domain service and drained by the application layer,
which turns them into best-effort notifications.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
import uuid


@dataclass
class OrderEvent:
    order_id: int
    order_number: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderCreated(OrderEvent):
    buyer_id: int = 0
    total_amount: int = 0


@dataclass
class OrderStatusChanged(OrderEvent):
    buyer_id: int = 0
    previous_status: str = ""
    new_status: str = ""
    reason: Optional[str] = None


@dataclass
class OrderPaymentConfirmed(OrderEvent):
    buyer_id: int = 0
    seller_ids: List[int] = field(default_factory=list)
    payment_reference: str = ""
    stock_conflicts: List[int] = field(default_factory=list)


@dataclass
class SellerPayoutProcessed(OrderEvent):
    seller_id: int = 0
    payout_reference: str = ""
