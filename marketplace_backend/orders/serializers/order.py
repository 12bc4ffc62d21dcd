# orders/serializers/order.py

from rest_framework import serializers

from orders.models import Order, OrderItem
from payments.constants import PROVIDER_CHOICES


class OrderItemSerializer(serializers.ModelSerializer):
    """
    Order line (read-only). Title/description are snapshots taken at checkout.
    """

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "service",
            "service_title",
            "service_description",
            "quantity",
            "unit_price",
            "total_price",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    buyer_name = serializers.SerializerMethodField()
    seller_name = serializers.SerializerMethodField()
    payment_id = serializers.SerializerMethodField()
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_no",
            "buyer",
            "buyer_name",
            "seller",
            "seller_name",
            "status",
            "payment_status",
            "payment_method",
            "payment_id",
            "sub_total",
            "commission",
            "discount_amount",
            "total_amount",
            "promo_code",
            "notes",
            "items",
            "created_at",
            "paid_at",
            "completed_at",
            "cancelled_at",
            "cancellation_reason",
        ]
        read_only_fields = fields

    def get_buyer_name(self, obj):
        return getattr(obj.buyer, "display_name", None)

    def get_seller_name(self, obj):
        return getattr(obj.seller, "display_name", None)

    def get_payment_id(self, obj):
        payment = getattr(obj, "payment", None) if hasattr(obj, "payment") else None
        return str(payment.id) if payment else None


class OrderCreateSerializer(serializers.Serializer):
    """
    Checkout command. Items and prices come from the server-side cart.
    """

    payment_method = serializers.ChoiceField(choices=PROVIDER_CHOICES)
    promo_code = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=50)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class OrderCheckoutResponseSerializer(OrderSerializer):
    related_order_ids = serializers.ListField(child=serializers.UUIDField(), read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["related_order_ids"]
        read_only_fields = fields


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.CharField()


class OrderCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
