import logging

from django.utils.dateparse import parse_date
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission, user_has_capability
from core.models import BusinessSettings
from sales.models import Bill, Order
from sales.serializers import (
    BillCancelSerializer,
    BillCreateSerializer,
    BillSerializer,
    OrderConvertSerializer,
    OrderCreateSerializer,
    OrderSerializer,
    OrderStatusSerializer,
)
from sales.services import (
    cancel_bill,
    convert_order_to_bill,
    create_bill,
    create_order,
    delete_order,
    mark_bill_printed,
    pending_orders_count,
    today_summary,
    update_order_status,
)

logger = logging.getLogger(__name__)


class BillContextMixin:
    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["bill_prefix"] = BusinessSettings.load().bill_prefix
        return context

    def _bill_payload(self, bill):
        return BillSerializer(bill, context=self.get_serializer_context()).data


class OrderViewSet(
    BillContextMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Order.objects.select_related("bill", "completed_by").prefetch_related("lines")
    serializer_class = OrderSerializer
    permission_classes = [AllowAny, RoleCapabilityPermission]
    permission_action_map = {
        "list": "order.view",
        "retrieve": "order.view",
        "pending_count": "order.view",
        "update_status": "order.update_status",
        "convert_to_bill": "pos.access",
        "destroy": "order.delete",
    }

    def get_throttles(self):
        if self.action == "create":
            self.throttle_scope = "orders"
            return [ScopedRateThrottle()]
        return super().get_throttles()

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params

        if params.get("status"):
            qs = qs.filter(status__in=[value.strip() for value in params["status"].split(",") if value.strip()])
        if params.get("order_type"):
            qs = qs.filter(order_type=params["order_type"])
        date_from = parse_date(params.get("date_from", ""))
        date_to = parse_date(params.get("date_to", ""))
        if date_from:
            qs = qs.filter(order_date__date__gte=date_from)
        if date_to:
            qs = qs.filter(order_date__date__lte=date_to)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = create_order(serializer.validated_data, user=request.user)

        payload = OrderSerializer(order).data
        create_audit_log_from_request(request, action="order.create", entity="order", entity_id=order.id, after_snapshot=payload)
        return Response(payload, status=status.HTTP_201_CREATED)

    def perform_destroy(self, instance):
        before_snapshot = OrderSerializer(instance).data
        delete_order(instance)
        create_audit_log_from_request(
            self.request,
            action="order.delete",
            entity="order",
            entity_id=before_snapshot["id"],
            before_snapshot=before_snapshot,
        )

    @action(detail=True, methods=["put", "patch"], url_path="status")
    def update_status(self, request, pk=None):
        order = self.get_object()
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        previous_status = order.status

        order = update_order_status(order, serializer.validated_data["status"], request.user)
        create_audit_log_from_request(
            request,
            action="order.status_update",
            entity="order",
            entity_id=order.id,
            before_snapshot={"status": previous_status},
            after_snapshot={"status": order.status},
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="convert-to-bill")
    def convert_to_bill(self, request, pk=None):
        order = self.get_object()
        serializer = OrderConvertSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        bill = convert_order_to_bill(order, request.user, serializer.validated_data)
        payload = self._bill_payload(bill)
        create_audit_log_from_request(
            request,
            action="order.convert_to_bill",
            entity="order",
            entity_id=order.id,
            before_snapshot={"status": order.status},
            after_snapshot={"status": Order.Status.COMPLETED, "bill": payload["id"], "bill_no": bill.bill_no},
        )
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path="pending-count")
    def pending_count(self, request):
        return Response({"count": pending_orders_count()})


class BillViewSet(
    BillContextMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Bill.objects.select_related("order", "cancelled_by").prefetch_related("lines")
    serializer_class = BillSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "bill.view",
        "retrieve": "bill.view",
        "by_number": "bill.view",
        "today_summary": "bill.view",
        "create": "bill.create",
        "mark_printed": "bill.print",
        "cancel": "bill.cancel",
    }

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        params = self.request.query_params

        if not user_has_capability(user, "bill.view_all"):
            qs = qs.filter(user=user)
        elif params.get("user"):
            qs = qs.filter(user_id=params["user"])

        date_from = parse_date(params.get("date_from", ""))
        date_to = parse_date(params.get("date_to", ""))
        if date_from:
            qs = qs.filter(bill_date__date__gte=date_from)
        if date_to:
            qs = qs.filter(bill_date__date__lte=date_to)
        if params.get("payment_mode"):
            qs = qs.filter(payment_mode=params["payment_mode"])
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        return qs

    def create(self, request, *args, **kwargs):
        serializer = BillCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        bill = create_bill(serializer.validated_data, request.user)

        payload = self._bill_payload(bill)
        create_audit_log_from_request(request, action="bill.create", entity="bill", entity_id=bill.id, after_snapshot=payload)
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path=r"number/(?P<bill_no>\d+)")
    def by_number(self, request, bill_no=None):
        bill = self.get_queryset().filter(bill_no=bill_no).first()
        if bill is None:
            raise NotFound(f"Bill {bill_no} not found.")
        return Response(self._bill_payload(bill))

    @action(detail=False, methods=["get"], url_path="today-summary")
    def today_summary(self, request):
        return Response(today_summary(request.user))

    @action(detail=True, methods=["put", "post"], url_path="print")
    def mark_printed(self, request, pk=None):
        bill = mark_bill_printed(self.get_object())
        return Response(self._bill_payload(bill))

    @action(detail=True, methods=["put", "post"], url_path="cancel")
    def cancel(self, request, pk=None):
        bill = self.get_object()
        serializer = BillCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        previous_status = bill.status

        bill = cancel_bill(bill, request.user, reason=serializer.validated_data["reason"])
        payload = self._bill_payload(bill)
        create_audit_log_from_request(
            request,
            action="bill.cancel",
            entity="bill",
            entity_id=bill.id,
            before_snapshot={"status": previous_status},
            after_snapshot=payload,
        )
        return Response(payload)
