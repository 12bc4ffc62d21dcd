# payments/views/payment.py

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.responses import service_error_response
from orders.services.exceptions import OrderServiceError
from payments.models import Payment
from payments.serializers import (
    PaymentCreateSerializer,
    PaymentResultSerializer,
    PaymentSerializer,
)
from payments.services.exceptions import PaymentServiceError
from payments.services.payment_orchestrator import create_payment, get_payment_status
from payments.services.refund_orchestrator import refund_payment

logger = logging.getLogger(__name__)


# ======================================================
# PAYMENTS (CREATE / STATUS / REFUND)
# ======================================================


class PaymentViewSet(viewsets.GenericViewSet):
    """
    - create: buyer opens a provider payment for one of their orders
    - retrieve: status (YooKassa attempts are polled and reconciled first)
    - refund: seller or staff refunds a completed payment
    """

    queryset = Payment.objects.select_related("order")
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = "[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

    def get_serializer_class(self):
        if self.action == "create":
            return PaymentCreateSerializer
        return PaymentSerializer

    @extend_schema(
        tags=["Payments"],
        request=PaymentCreateSerializer,
        responses={
            201: PaymentResultSerializer,
            400: OpenApiResponse(description="Validation error / cancelled order"),
            403: OpenApiResponse(description="Not the buyer"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Order already paid or payment in progress"),
            502: OpenApiResponse(description="Payment provider error"),
        },
    )
    def create(self, request, *args, **kwargs):
        s = PaymentCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            result = create_payment(
                order_id=s.validated_data["order_id"],
                provider=s.validated_data["provider"],
                return_url=s.validated_data.get("return_url") or None,
                actor=request.user,
            )
        except (PaymentServiceError, OrderServiceError) as exc:
            return service_error_response(exc)

        return Response(
            PaymentResultSerializer(result.as_dict()).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        tags=["Payments"],
        responses={
            200: PaymentSerializer,
            403: OpenApiResponse(description="Not a party to the order"),
            404: OpenApiResponse(description="Payment not found"),
        },
    )
    def retrieve(self, request, pk=None):
        try:
            payment = get_payment_status(payment_id=pk, actor=request.user)
        except PaymentServiceError as exc:
            return service_error_response(exc)

        return Response(PaymentSerializer(payment).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Payments"],
        request=None,
        responses={
            200: PaymentSerializer,
            400: OpenApiResponse(description="Payment is not completed"),
            403: OpenApiResponse(description="Not the seller"),
            404: OpenApiResponse(description="Payment not found"),
            409: OpenApiResponse(description="Manual refund required"),
            502: OpenApiResponse(description="Provider refund failed"),
        },
    )
    @action(detail=True, methods=["post"], url_path="refund")
    def refund(self, request, pk=None):
        try:
            payment = refund_payment(payment_id=pk, actor=request.user)
        except PaymentServiceError as exc:
            logger.warning(
                "Refund rejected",
                extra={"payment_id": str(pk), "code": getattr(exc, "code", "")},
            )
            return service_error_response(exc)

        return Response(PaymentSerializer(payment).data, status=status.HTTP_200_OK)
