# orders/events.py

"""
ORDER DOMAIN EVENTS

Each Order transition method returns the event it emitted. Callers collect the
events and hand them to orders.services.order_events.publish_order_events()
after the state change is persisted. The entity keeps no event list of its own.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from django.utils import timezone


@dataclass(frozen=True, kw_only=True)
class OrderEvent:
    order_id: uuid.UUID
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    occurred_at: datetime = field(default_factory=timezone.now)


@dataclass(frozen=True, kw_only=True)
class OrderCreated(OrderEvent):
    order_no: str
    total_amount: Decimal


@dataclass(frozen=True, kw_only=True)
class OrderPaid(OrderEvent):
    order_no: str
    total_amount: Decimal


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(OrderEvent):
    old_status: str
    new_status: str


@dataclass(frozen=True, kw_only=True)
class OrderCompleted(OrderEvent):
    pass


@dataclass(frozen=True, kw_only=True)
class OrderCancelled(OrderEvent):
    reason: str
    cancelled_by_id: uuid.UUID | None = None
    refund_required: bool = False


@dataclass(frozen=True, kw_only=True)
class OrderRefunded(OrderEvent):
    amount: Decimal
