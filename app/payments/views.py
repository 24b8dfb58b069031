"""
DRF views for payments app.

This module provides API views for:
- PicPay checkout creation
- Checkout reconciliation (browser poller)
- Subscription reconciliation
- Refund requests (intake, history, admin review)
- Direct refunds by store staff

Related files:
    - services/: ReconciliationService, SubscriptionReconciliationService,
      RefundOrchestrator, CheckoutService
    - serializers.py: Request/response serializers
    - webhooks/views.py: Provider notification endpoints
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/checkout/picpay/ - Start a PicPay checkout
    POST /api/v1/payments/reconcile/ - Reconcile a checkout payment
    POST /api/v1/payments/subscriptions/reconcile/ - Reconcile a plan charge
    GET  /api/v1/payments/refunds/ - List refund requests
    POST /api/v1/payments/refunds/ - Create a refund request
    POST /api/v1/payments/refunds/process/ - Approve or reject (admin)
    POST /api/v1/payments/refunds/direct/ - Direct refund (owner/staff)

Security:
    - Checkout and reconcile are public customer endpoints
    - Reconcile needs the unguessable pending payment id and the matching
      company id
    - Every other endpoint requires a JWT bearer token
"""

from __future__ import annotations

import logging

from django.db.models import Q
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exception_handlers import flatten_error_detail
from core.exceptions import BaseApplicationError, http_status_for

from payments.exceptions import ForbiddenError
from payments.filters import RefundRequestFilter
from payments.models import RefundRequest, SubscriptionPayment
from payments.serializers import (
    CheckoutResponseSerializer,
    CreateCheckoutSerializer,
    CreateRefundRequestSerializer,
    DirectRefundSerializer,
    ErrorResponseSerializer,
    ProcessRefundRequestSerializer,
    ReconcileRequestSerializer,
    ReconcileResponseSerializer,
    RefundOutcomeSerializer,
    RefundRequestSerializer,
    SubscriptionReconcileRequestSerializer,
    SubscriptionReconcileResponseSerializer,
)
from payments.services import (
    CheckoutService,
    ReconciliationService,
    RefundOrchestrator,
    SubscriptionReconciliationService,
)

logger = logging.getLogger(__name__)


class CheckoutView(APIView):
    """
    Start a PicPay checkout.

    POST /api/v1/payments/checkout/picpay/

    Request body:
        {"companyId": "<uuid>", "customerName": "...", "items": [...],
         "subtotal": "40.00", "deliveryFee": "5.00", "total": "45.00", ...}

    Returns:
        {"pendingId": "<uuid>", "paymentUrl": "...", "qrCode": "...", "mode": "embedded", ...}
        {"error": "..."} with 400/404/502
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        operation_id="create_picpay_checkout",
        summary="Create PicPay checkout",
        request=CreateCheckoutSerializer,
        responses={
            200: CheckoutResponseSerializer,
            400: ErrorResponseSerializer,
            404: ErrorResponseSerializer,
            502: ErrorResponseSerializer,
        },
        tags=["Payments - Checkout"],
    )
    def post(self, request):
        serializer = CreateCheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        checkout = CheckoutService().create_picpay_checkout(
            serializer.validated_data["companyId"],
            serializer.to_order_payload(),
        )
        return Response(checkout.to_response())


class ReconcileView(APIView):
    """
    Reconcile a checkout payment against its provider.

    POST /api/v1/payments/reconcile/

    Request body:
        {"pendingId": "<uuid>", "companyId": "<uuid>", "providerReference": "..."}

    Returns:
        {"approved": true, "orderId": "<uuid>", "status": "completed"}
        {"approved": false, "status": "pending"}
        400/404/500 {"error": "...", "approved": false}
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        operation_id="reconcile_pending_payment",
        summary="Reconcile checkout payment",
        request=ReconcileRequestSerializer,
        responses={
            200: ReconcileResponseSerializer,
            400: OpenApiResponse(description="Invalid body"),
            404: OpenApiResponse(description="Pending payment not found"),
            500: OpenApiResponse(description="Order could not be created"),
        },
        tags=["Payments - Reconciliation"],
    )
    def post(self, request):
        serializer = ReconcileRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"error": flatten_error_detail(serializer.errors), "approved": False},
                status=status.HTTP_400_BAD_REQUEST,
            )

        data = serializer.validated_data
        try:
            outcome = ReconciliationService().reconcile(
                data["pendingId"],
                data["companyId"],
                provider_reference=data.get("providerReference") or None,
            )
        except BaseApplicationError as e:
            return Response(
                {"error": e.message, "approved": False},
                status=int(http_status_for(e)),
            )

        return Response(outcome.to_response())


class SubscriptionReconcileView(APIView):
    """
    Reconcile a platform subscription charge.

    POST /api/v1/payments/subscriptions/reconcile/

    Request body:
        {"subscriptionPaymentId": "<uuid>"}

    Returns:
        {"paid": true, "status": "paid", "plan": "pro", "message": "...", "clear_reference": true}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="reconcile_subscription_payment",
        summary="Reconcile subscription charge",
        request=SubscriptionReconcileRequestSerializer,
        responses={
            200: SubscriptionReconcileResponseSerializer,
            403: ErrorResponseSerializer,
            404: ErrorResponseSerializer,
        },
        tags=["Payments - Reconciliation"],
    )
    def post(self, request):
        serializer = SubscriptionReconcileRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment_id = serializer.validated_data["subscriptionPaymentId"]

        payment = SubscriptionPayment.objects.select_related("company").filter(pk=payment_id).first()
        if payment is not None and payment.company.owner_id != request.user.pk:
            raise ForbiddenError("You cannot reconcile charges of this store")

        company_id = payment.company_id if payment is not None else None
        outcome = SubscriptionReconciliationService().reconcile(payment_id, company_id)
        return Response(outcome.to_response())


class RefundRequestListCreateView(APIView):
    """
    List or create refund requests.

    GET /api/v1/payments/refunds/
        Platform admins see every request; other users see requests of
        the stores they manage. Filters: status, refund_kind, company,
        created_after, created_before (see filters.py).

    POST /api/v1/payments/refunds/
        {"order_id": "<uuid>", "amount": "50.00", "reason": "..."}
        {"subscription_payment_id": "<uuid>", "reason": "..."}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_refund_requests",
        summary="List refund requests",
        responses={200: RefundRequestSerializer(many=True)},
        tags=["Payments - Refunds"],
    )
    def get(self, request):
        queryset = RefundRequest.objects.all()
        if not request.user.is_platform_admin:
            queryset = queryset.filter(
                Q(company__owner=request.user) | Q(company__members=request.user)
            ).distinct()

        filterset = RefundRequestFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            raise ValidationError(filterset.errors)

        serializer = RefundRequestSerializer(filterset.qs.order_by("-created_at")[:100], many=True)
        return Response(serializer.data)

    @extend_schema(
        operation_id="create_refund_request",
        summary="Request a refund",
        request=CreateRefundRequestSerializer,
        responses={
            201: RefundRequestSerializer,
            400: ErrorResponseSerializer,
            403: ErrorResponseSerializer,
            404: ErrorResponseSerializer,
            409: ErrorResponseSerializer,
        },
        tags=["Payments - Refunds"],
    )
    def post(self, request):
        serializer = CreateRefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        refund_request = RefundOrchestrator().create_refund_request(
            request.user,
            order_id=data.get("order_id"),
            subscription_payment_id=data.get("subscription_payment_id"),
            amount=data.get("amount"),
            reason=data.get("reason", ""),
        )
        return Response(
            RefundRequestSerializer(refund_request).data,
            status=status.HTTP_201_CREATED,
        )


class ProcessRefundRequestView(APIView):
    """
    Approve or reject a refund request (platform admins only).

    POST /api/v1/payments/refunds/process/

    Request body:
        {"request_id": "<uuid>", "action": "approve"}
        {"request_id": "<uuid>", "action": "reject", "rejection_reason": "..."}

    Returns:
        {"success": true, "refund_id": "...", "amount": 50.0, "provider": "...", "message": "..."}
        {"error": "..."} with 400/401/403/404/409/502
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="process_refund_request",
        summary="Approve or reject refund request",
        request=ProcessRefundRequestSerializer,
        responses={
            200: RefundOutcomeSerializer,
            400: ErrorResponseSerializer,
            403: ErrorResponseSerializer,
            404: ErrorResponseSerializer,
            409: ErrorResponseSerializer,
            502: ErrorResponseSerializer,
        },
        tags=["Payments - Refunds"],
    )
    def post(self, request):
        if not request.user.is_platform_admin:
            raise ForbiddenError("Only platform admins can review refund requests")

        serializer = ProcessRefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        outcome = RefundOrchestrator().process_refund_request(
            data["request_id"],
            data["action"],
            rejection_reason=data.get("rejection_reason"),
            actor=request.user,
        )
        return Response(outcome.to_response())


class DirectRefundView(APIView):
    """
    Fully refund a paid order without admin review.

    POST /api/v1/payments/refunds/direct/

    Request body:
        {"order_id": "<uuid>", "reason": "..."}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="direct_refund",
        summary="Direct refund",
        request=DirectRefundSerializer,
        responses={
            200: RefundOutcomeSerializer,
            400: ErrorResponseSerializer,
            403: ErrorResponseSerializer,
            404: ErrorResponseSerializer,
            409: ErrorResponseSerializer,
            502: ErrorResponseSerializer,
        },
        tags=["Payments - Refunds"],
    )
    def post(self, request):
        serializer = DirectRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        outcome = RefundOrchestrator().direct_refund(
            data["order_id"],
            reason=data.get("reason", ""),
            actor=request.user,
        )
        return Response(outcome.to_response())
