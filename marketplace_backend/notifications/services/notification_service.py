# notifications/services/notification_service.py

"""
NOTIFICATION SERVICE

send_order_notification() is fire-and-forget for callers:
- the row is written inside its own savepoint, so a failure here never
  poisons the caller's transaction (checkout, webhook reconciliation)
- failures are logged, never raised
"""

from __future__ import annotations

import json
import logging

from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError, transaction

from notifications.models import Notification

logger = logging.getLogger(__name__)


def _json_safe(data) -> dict:
    # UUID / Decimal values are common in order payloads; JSONField needs plain types.
    return json.loads(json.dumps(data or {}, cls=DjangoJSONEncoder))


def send_order_notification(*, user_id, notification_type: str, title: str, message: str, data=None):
    try:
        with transaction.atomic():
            notification = Notification.objects.create(
                user_id=user_id,
                type=notification_type,
                title=title,
                message=message,
                data=_json_safe(data),
            )
    except DatabaseError:
        logger.exception(
            "Failed to store notification",
            extra={"user_id": str(user_id), "type": notification_type},
        )
        return None

    logger.info(
        "Notification stored",
        extra={"user_id": str(user_id), "type": notification_type, "notification_id": str(notification.id)},
    )
    return notification
