# billing/api/viewsets/bill.py

"""
======================================================
PATH: billing/api/viewsets/bill.py
======================================================
BILL VIEWSET (STAFF)

GET    /api/billing/bills/                               list (scoped, filterable)
GET    /api/billing/bills/<id>/                          retrieve
POST   /api/billing/bills/                               create
PATCH  /api/billing/bills/<id>/                          update (items / status / customer)
POST   /api/billing/bills/<id>/items/<item_id>/status/   item kitchen status

Security:
- IsAuthenticated + capability per action
- visibility scoped by role (scope_bills_for); writes re-check the branch

The backend is authoritative for prices, discounts, generated offer rows,
and numbering. Clients only send what staff entered.
======================================================
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from billing.api.filters import BillFilter
from billing.api.serializers import (
    BillCreateSerializer,
    BillSerializer,
    BillUpdateSerializer,
    ItemStatusSerializer,
    item_payload,
)
from billing.models import Bill
from billing.services.bill_service import create_bill, update_bill, update_item_status
from billing.services.exceptions import (
    BillItemNotFoundError,
    BillNotFoundError,
    BillValidationError,
    BranchAccessError,
    SequenceAllocationError,
)
from branches.models import Branch
from permissions.roles import (
    CAP_BILLS_CREATE,
    CAP_BILLS_ITEM_STATUS,
    CAP_BILLS_UPDATE,
    CAP_BILLS_VIEW,
    HasCapability,
    scope_bills_for,
)

logger = logging.getLogger(__name__)


ACTION_CAPABILITIES = {
    "list": CAP_BILLS_VIEW,
    "retrieve": CAP_BILLS_VIEW,
    "create": CAP_BILLS_CREATE,
    "partial_update": CAP_BILLS_UPDATE,
    "item_status": CAP_BILLS_ITEM_STATUS,
}


def _error_response(exc: Exception) -> Response:
    if isinstance(exc, (BillNotFoundError, BillItemNotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, BranchAccessError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, SequenceAllocationError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response({"detail": str(exc)}, status=code)


BILL_ERRORS = (
    BillValidationError,
    BillNotFoundError,
    BillItemNotFoundError,
    BranchAccessError,
    SequenceAllocationError,
)


class BillViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = BillSerializer
    permission_classes = [IsAuthenticated, HasCapability]
    filterset_class = BillFilter
    lookup_value_regex = r"[0-9a-fA-F-]{36}"

    def get_required_capability(self):
        return ACTION_CAPABILITIES.get(self.action)

    # ======================================================
    # QUERYSET
    # ======================================================

    def get_queryset(self):
        qs = (
            Bill.objects.all()
            .select_related("branch", "customer")
            .prefetch_related("items")
            .order_by("-created_at")
        )
        return scope_bills_for(self.request.user, qs)

    def _visible_or_404(self, pk):
        if not self.get_queryset().filter(pk=pk).exists():
            raise BillNotFoundError(f"Bill {pk} not found")

    def _bill_response(self, bill_id, *, status_code=status.HTTP_200_OK):
        bill = self.get_queryset().get(pk=bill_id)
        return Response(BillSerializer(bill).data, status=status_code)

    def _resolve_branch(self, branch_id):
        user = self.request.user
        if branch_id:
            branch = Branch.objects.filter(pk=branch_id, is_active=True).first()
            if branch is None:
                raise BillValidationError("Branch not found")
            return branch
        if getattr(user, "branch_id", None):
            return user.branch
        raise BillValidationError("branch_id is required")

    # ======================================================
    # CREATE
    # POST /api/billing/bills/
    # ======================================================

    @extend_schema(tags=["billing"], request=BillCreateSerializer, responses={201: BillSerializer})
    def create(self, request):
        ser = BillCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            bill = create_bill(
                actor=request.user,
                branch=self._resolve_branch(data.get("branch_id")),
                items=item_payload(data["items"]),
                status=data["status"],
                customer_phone=data["customer_phone"],
                customer_name=data["customer_name"],
                apply_customer_offer=data["apply_customer_offer"],
                payment_method=data["payment_method"],
                notes=data["notes"],
            )
        except BILL_ERRORS as exc:
            logger.info("Bill create rejected", extra={"error": str(exc)})
            return _error_response(exc)

        return self._bill_response(bill.pk, status_code=status.HTTP_201_CREATED)

    # ======================================================
    # UPDATE
    # PATCH /api/billing/bills/<id>/
    # ======================================================

    @extend_schema(tags=["billing"], request=BillUpdateSerializer, responses={200: BillSerializer})
    def partial_update(self, request, pk=None):
        ser = BillUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        changes = dict(ser.validated_data)
        if "items" in changes:
            changes["items"] = item_payload(changes["items"])

        try:
            self._visible_or_404(pk)
            bill = update_bill(actor=request.user, bill_id=pk, **changes)
        except BILL_ERRORS as exc:
            logger.info("Bill update rejected", extra={"bill_id": str(pk), "error": str(exc)})
            return _error_response(exc)

        return self._bill_response(bill.pk)

    # ======================================================
    # ITEM STATUS
    # POST /api/billing/bills/<id>/items/<item_id>/status/
    # ======================================================

    @extend_schema(tags=["billing"], request=ItemStatusSerializer, responses={200: BillSerializer})
    @action(detail=True, methods=["patch"], url_path=r"items/(?P<item_id>[^/.]+)/status")
    def item_status(self, request, pk=None, item_id=None):
        ser = ItemStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            self._visible_or_404(pk)
            bill = update_item_status(
                actor=request.user,
                bill_id=pk,
                item_id=item_id,
                status=ser.validated_data["status"],
            )
        except BILL_ERRORS as exc:
            return _error_response(exc)

        return self._bill_response(bill.pk)
