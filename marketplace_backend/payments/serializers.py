# payments/serializers.py

"""
PAYMENTS SERIALIZERS

Transport layer only: request/response shapes, no business rules.
Provider webhooks are parsed by the orchestrator, not here, because
their payloads belong to the provider and must be accepted as sent.
"""

from __future__ import annotations

from rest_framework import serializers

from payments.constants import PROVIDER_CHOICES
from payments.models import Payment


class PaymentCreateSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    provider = serializers.ChoiceField(choices=PROVIDER_CHOICES)
    return_url = serializers.URLField(required=False, allow_blank=True, allow_null=True)


class PaymentResultSerializer(serializers.Serializer):
    """
    Returned by create: the client opens confirmation_url
    (redirect for card gateways, invoice link for Stars).
    """

    payment_id = serializers.UUIDField()
    order_id = serializers.UUIDField()
    provider = serializers.CharField()
    status = serializers.CharField()
    confirmation_url = serializers.CharField(allow_blank=True)
    message = serializers.CharField(allow_blank=True, required=False)


class PaymentSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "order_id",
            "amount",
            "currency",
            "provider",
            "status",
            "external_id",
            "confirmation_url",
            "error_code",
            "error_message",
            "created_at",
            "completed_at",
        ]
        read_only_fields = fields


class WebhookAckSerializer(serializers.Serializer):
    ok = serializers.BooleanField()
    detail = serializers.CharField(required=False)
