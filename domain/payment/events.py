"""
Payment domain events.

Dataclass events record payment lifecycle facts for downstream handling
(notifications, projections). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    order_id: int
    reference: str
    gateway: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentInitialized(PaymentEvent):
    amount: int = 0


@dataclass
class PaymentSucceeded(PaymentEvent):
    transaction_id: Optional[str] = None


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentRefunded(PaymentEvent):
    amount: int = 0
