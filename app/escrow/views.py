"""
DRF views for the escrow app.

This module provides API views for:
- Transaction listing and detail for buyers and sellers
- Transaction actions (ship, deliver, confirm, request release)
- Seller payout account verification
- External cron trigger for the payout sweep

Related files:
    - services/: EscrowTransactionService, PayoutExecutor
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    GET  /api/v1/escrow/transactions/                    - List caller's transactions
    GET  /api/v1/escrow/transactions/{id}/               - Transaction detail
    POST /api/v1/escrow/transactions/{id}/actions/       - Perform an action
    POST /api/v1/escrow/payout-account/verify/           - Verify payout destination
    POST /api/v1/escrow/cron/payouts/                    - Run the payout sweep

Security:
    - Transaction and account endpoints require JWT authentication
    - The cron endpoint requires Authorization: Bearer <PAYOUT_CRON_SECRET>
"""

from __future__ import annotations

import logging
import secrets

from django.conf import settings
from django.db.models import Q
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError

from escrow.authorization import Actor, role_of
from escrow.models import SellerAccount, Transaction
from escrow.serializers import (
    PayoutAccountVerificationSerializer,
    PayoutSweepSerializer,
    TransactionAction,
    TransactionActionSerializer,
    TransactionListQuerySerializer,
    TransactionSerializer,
)
from escrow.services import EscrowTransactionService, PayoutExecutor, verify_payout_account

logger = logging.getLogger(__name__)

TRANSACTION_LIST_LIMIT = 50


def error_response(error: BaseApplicationError) -> Response:
    """Render an application error with its own HTTP status."""
    return Response(error.to_dict(), status=error.http_status)


class TransactionListView(APIView):
    """
    List escrow transactions the caller buys or sells.

    GET /api/v1/escrow/transactions/?role=buyer|seller&status=<hold_status>

    Response:
        200 OK: Latest 50 transactions, newest first
        400 Bad Request: Invalid filter
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_escrow_transactions",
        summary="List escrow transactions",
        parameters=[
            OpenApiParameter("role", str, enum=["buyer", "seller"], required=False),
            OpenApiParameter("status", str, required=False),
        ],
        responses={200: TransactionSerializer(many=True)},
        tags=["Escrow - Transactions"],
    )
    def get(self, request):
        query = TransactionListQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)

        user = request.user
        role = query.validated_data.get("role")
        hold_status = query.validated_data.get("status")

        as_seller = Q(seller=user)
        as_buyer = Q(buyer_email=user.email) if user.email else Q(pk__in=[])

        if role == "seller":
            condition = as_seller
        elif role == "buyer":
            condition = as_buyer
        else:
            condition = as_seller | as_buyer

        queryset = Transaction.objects.filter(condition).select_related("payment_hold")
        if hold_status:
            queryset = queryset.filter(hold_status=hold_status)

        transactions = queryset.order_by("-created_at")[:TRANSACTION_LIST_LIMIT]
        serializer = TransactionSerializer(
            transactions,
            many=True,
            context={"request": request, "actor": Actor.for_user(user)},
        )
        return Response(serializer.data)


class TransactionDetailView(APIView):
    """
    Get one transaction.

    GET /api/v1/escrow/transactions/{transaction_id}/

    Response:
        200 OK: Transaction with user_role
        403 Forbidden: Caller is neither buyer nor seller
        404 Not Found: Transaction doesn't exist
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_escrow_transaction",
        summary="Get escrow transaction",
        responses={
            200: TransactionSerializer,
            403: OpenApiResponse(description="Not a party to this transaction"),
            404: OpenApiResponse(description="Transaction not found"),
        },
        tags=["Escrow - Transactions"],
    )
    def get(self, request, transaction_id):
        try:
            txn = Transaction.objects.select_related("payment_hold").get(pk=transaction_id)
        except Transaction.DoesNotExist:
            return Response(
                {"error": "Transaction not found"},
                status=status.HTTP_404_NOT_FOUND,
            )

        actor = Actor.for_user(request.user)
        if role_of(actor, txn) is None:
            return Response(
                {"error": "You don't have access to this transaction"},
                status=status.HTTP_403_FORBIDDEN,
            )

        serializer = TransactionSerializer(
            txn, context={"request": request, "actor": actor}
        )
        return Response(serializer.data)


class TransactionActionView(APIView):
    """
    Perform a custody action on a transaction.

    POST /api/v1/escrow/transactions/{transaction_id}/actions/

    Request body:
        {"action": "mark_shipped", "tracking_number": "TRK1", "carrier": "Royal Mail"}
        {"action": "mark_delivered"}
        {"action": "confirm_delivery", "satisfied": false, "notes": "Arrived broken"}
        {"action": "request_release"}

    Response:
        200 OK: Updated transaction
        400 Bad Request: Invalid request or precondition not met
        403 Forbidden: Caller may not perform this action
        404 Not Found: Transaction doesn't exist
        409 Conflict: Action not allowed from the current state
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="escrow_transaction_action",
        summary="Perform escrow transaction action",
        request=TransactionActionSerializer,
        responses={
            200: TransactionSerializer,
            400: OpenApiResponse(description="Validation or precondition error"),
            403: OpenApiResponse(description="Actor not allowed"),
            404: OpenApiResponse(description="Transaction not found"),
            409: OpenApiResponse(description="Invalid state transition"),
        },
        tags=["Escrow - Transactions"],
    )
    def post(self, request, transaction_id):
        serializer = TransactionActionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        action = data["action"]
        actor = Actor.for_user(request.user)

        try:
            if action == TransactionAction.MARK_SHIPPED:
                EscrowTransactionService.mark_shipped(
                    transaction_id,
                    actor,
                    tracking_number=data.get("tracking_number", ""),
                    carrier=data.get("carrier") or None,
                    estimated_delivery=data.get("estimated_delivery"),
                )
            elif action == TransactionAction.MARK_DELIVERED:
                EscrowTransactionService.mark_delivered(transaction_id, actor)
            elif action == TransactionAction.CONFIRM_DELIVERY:
                EscrowTransactionService.confirm_delivery(
                    transaction_id,
                    actor,
                    satisfied=data.get("satisfied", True),
                    notes=data.get("notes") or None,
                )
            else:
                EscrowTransactionService.request_release(transaction_id, actor)
        except BaseApplicationError as e:
            logger.info(
                f"Escrow action rejected: {action}",
                extra={
                    "transaction_id": str(transaction_id),
                    "action": action,
                    "error_code": e.error_code,
                },
            )
            return error_response(e)

        txn = Transaction.objects.select_related("payment_hold").get(pk=transaction_id)
        output = TransactionSerializer(txn, context={"request": request, "actor": actor})
        return Response(output.data)


class PayoutAccountVerifyView(APIView):
    """
    Verify the caller's payout destination with its rail.

    POST /api/v1/escrow/payout-account/verify/

    Response:
        200 OK: {"valid": bool, "method": "stripe"|"paypal"|null, "error": str|null}
        404 Not Found: Caller has no seller account
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="verify_payout_account",
        summary="Verify payout account",
        request=None,
        responses={
            200: PayoutAccountVerificationSerializer,
            404: OpenApiResponse(description="No seller account"),
        },
        tags=["Escrow - Payouts"],
    )
    def post(self, request):
        seller_account = SellerAccount.for_user(request.user)
        if seller_account is None:
            return Response(
                {"error": "No seller account found"},
                status=status.HTTP_404_NOT_FOUND,
            )

        try:
            result = verify_payout_account(seller_account)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(result)


class PayoutCronView(APIView):
    """
    External trigger for the payout sweep.

    POST /api/v1/escrow/cron/payouts/

    Authentication:
        Authorization: Bearer <PAYOUT_CRON_SECRET>. JWT authentication is
        disabled on this view; an unset secret rejects every call.

    Response:
        200 OK: Sweep summary
        403 Forbidden: Missing or wrong secret
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="run_payout_sweep",
        summary="Run payout sweep",
        request=None,
        responses={
            200: PayoutSweepSerializer,
            403: OpenApiResponse(description="Invalid cron secret"),
        },
        tags=["Escrow - Payouts"],
    )
    def post(self, request):
        expected = getattr(settings, "PAYOUT_CRON_SECRET", "")
        header = request.headers.get("Authorization", "")
        provided = header[len("Bearer "):] if header.startswith("Bearer ") else ""

        if not expected or not provided or not secrets.compare_digest(provided, expected):
            logger.warning("Payout cron trigger rejected")
            return Response(
                {"error": "Unauthorized"},
                status=status.HTTP_403_FORBIDDEN,
            )

        summary = PayoutExecutor.run_sweep()
        logger.info(
            "Payout cron sweep complete",
            extra={
                "processed": summary.processed,
                "successful": summary.successful,
                "failed": summary.failed,
                "skipped": summary.skipped,
            },
        )
        return Response(summary.to_dict())


__all__ = [
    "PayoutAccountVerifyView",
    "PayoutCronView",
    "TransactionActionView",
    "TransactionDetailView",
    "TransactionListView",
]
