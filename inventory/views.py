import logging
import uuid

from django.db.models import Count, F, ProtectedError, Q
from django.utils.dateparse import parse_date
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission, user_has_capability
from inventory.models import Category, Product, Purchase, ReadyItem, StockLedger, Supplier
from inventory.serializers import (
    BulkReadyItemStockSerializer,
    CategorySerializer,
    MenuProductSerializer,
    ProductSerializer,
    PurchasePaymentSerializer,
    PurchaseSerializer,
    ReadyItemSerializer,
    ReadyItemStockSerializer,
    StockAdjustmentSerializer,
    StockLedgerSerializer,
    SupplierSerializer,
)
from inventory.services import add_ready_item_stock, adjust_stock, bulk_add_ready_item_stock, update_purchase_payment

logger = logging.getLogger(__name__)

MANAGE_ACTIONS = ["create", "update", "partial_update", "destroy"]


def _query_bool(value):
    if value is None:
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _looks_like_uuid(value):
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class AuditedMutationMixin:
    audit_entity = None
    stamp_created_by = False
    protected_delete_message = "This record is referenced by other records and cannot be deleted."

    def _audit(self, *, action, instance, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity=self.audit_entity,
            entity_id=instance.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
        )

    def perform_create(self, serializer):
        if self.stamp_created_by:
            instance = serializer.save(created_by=self.request.user)
        else:
            instance = serializer.save()
        self._audit(action=f"{self.audit_entity}.create", instance=instance, after_snapshot=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        instance = serializer.save()
        self._audit(
            action=f"{self.audit_entity}.update",
            instance=instance,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(instance).data,
        )

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        try:
            instance.delete()
        except ProtectedError:
            raise ValidationError(self.protected_delete_message)
        self._audit(action=f"{self.audit_entity}.delete", instance=instance, before_snapshot=before_snapshot)


class CategoryViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Category.objects.all()
    serializer_class = CategorySerializer
    permission_classes = [AllowAny, RoleCapabilityPermission]
    permission_action_map = {action: "catalog.manage" for action in MANAGE_ACTIONS}
    audit_entity = "category"
    stamp_created_by = True
    protected_delete_message = "Category still has products; move or delete them first."

    def get_queryset(self):
        qs = super().get_queryset()
        if not user_has_capability(self.request.user, "catalog.view"):
            qs = qs.filter(is_active=True)
        else:
            is_active = _query_bool(self.request.query_params.get("is_active"))
            if is_active is not None:
                qs = qs.filter(is_active=is_active)
        if _query_bool(self.request.query_params.get("with_counts")):
            qs = qs.annotate(product_count=Count("products", filter=Q(products__is_active=True)))
        return qs


class ProductViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Product.objects.select_related("category")
    serializer_class = ProductSerializer
    permission_classes = [AllowAny, RoleCapabilityPermission]
    permission_action_map = {
        **{action: "catalog.manage" for action in MANAGE_ACTIONS},
        "stock": "stock.adjust",
        "low_stock": "catalog.view",
        "ledger": "catalog.view",
    }
    audit_entity = "product"
    protected_delete_message = "Product has sales or stock history; deactivate it instead."

    def get_serializer_class(self):
        if self.action in {"list", "retrieve"} and not user_has_capability(self.request.user, "catalog.view"):
            return MenuProductSerializer
        return super().get_serializer_class()

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params

        if not user_has_capability(self.request.user, "catalog.view"):
            qs = qs.filter(is_active=True)
        else:
            is_active = _query_bool(params.get("is_active"))
            if is_active is not None:
                qs = qs.filter(is_active=is_active)

        category = params.get("category")
        if category and _looks_like_uuid(category):
            qs = qs.filter(category_id=category)
        elif category:
            qs = qs.filter(Q(category__code__iexact=category) | Q(category__name__iexact=category))

        is_popular = _query_bool(params.get("is_popular"))
        if is_popular is not None:
            qs = qs.filter(is_popular=is_popular)

        if _query_bool(params.get("low_stock")):
            qs = qs.filter(current_stock__isnull=False, min_stock_alert__isnull=False, current_stock__lte=F("min_stock_alert"))

        search = (params.get("search") or "").strip()
        if search:
            qs = qs.filter(
                Q(name__icontains=search)
                | Q(description__icontains=search)
                | Q(category__name__icontains=search)
                | Q(code__iexact=search)
            )
        return qs

    @action(detail=True, methods=["put", "post"], url_path="stock")
    def stock(self, request, pk=None):
        product = self.get_object()
        serializer = StockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        before_stock = product.current_stock

        product = adjust_stock(
            product,
            serializer.validated_data["quantity"],
            remarks=serializer.validated_data["remarks"],
            user=request.user,
            override=serializer.validated_data["override"],
        )
        self._audit(
            action="product.stock_adjust",
            instance=product,
            before_snapshot={"current_stock": before_stock},
            after_snapshot={
                "current_stock": product.current_stock,
                "requested_quantity": serializer.validated_data["quantity"],
                "override": serializer.validated_data["override"],
            },
        )
        return Response(ProductSerializer(product).data)

    @action(detail=False, methods=["get"], url_path="low-stock")
    def low_stock(self, request):
        qs = (
            Product.objects.select_related("category")
            .filter(is_active=True, current_stock__isnull=False, min_stock_alert__isnull=False, current_stock__lte=F("min_stock_alert"))
            .order_by("current_stock", "name")
        )
        return Response(ProductSerializer(qs, many=True).data)

    @action(detail=True, methods=["get"], url_path="ledger")
    def ledger(self, request, pk=None):
        product = self.get_object()
        qs = StockLedger.objects.filter(product=product).select_related("created_by").order_by("-created_at")
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(StockLedgerSerializer(page, many=True).data)
        return Response(StockLedgerSerializer(qs, many=True).data)


class SupplierViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Supplier.objects.all()
    serializer_class = SupplierSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        action: "supplier.manage" for action in ["list", "retrieve", *MANAGE_ACTIONS]
    }
    audit_entity = "supplier"
    protected_delete_message = "Supplier has purchases; deactivate it instead."

    def get_queryset(self):
        qs = super().get_queryset()
        is_active = _query_bool(self.request.query_params.get("is_active"))
        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        search = (self.request.query_params.get("search") or "").strip()
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(mobile__icontains=search) | Q(contact_person__icontains=search))
        return qs


class PurchaseViewSet(
    AuditedMutationMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Purchase.objects.select_related("supplier", "created_by").prefetch_related("lines__product")
    serializer_class = PurchaseSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {action: "purchase.manage" for action in ["list", "retrieve", "create", "payment"]}
    audit_entity = "purchase"

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params

        date_from = parse_date(params.get("date_from", ""))
        date_to = parse_date(params.get("date_to", ""))
        if date_from:
            qs = qs.filter(purchase_date__date__gte=date_from)
        if date_to:
            qs = qs.filter(purchase_date__date__lte=date_to)
        if params.get("supplier"):
            qs = qs.filter(supplier_id=params["supplier"])
        if params.get("payment_status"):
            qs = qs.filter(payment_status=params["payment_status"])
        return qs

    @action(detail=True, methods=["put", "patch"], url_path="payment")
    def payment(self, request, pk=None):
        purchase = self.get_object()
        serializer = PurchasePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        before_snapshot = {"paid_amount": purchase.paid_amount, "payment_status": purchase.payment_status}

        purchase = update_purchase_payment(purchase, serializer.validated_data["paid_amount"])
        self._audit(
            action="purchase.payment_update",
            instance=purchase,
            before_snapshot=before_snapshot,
            after_snapshot={"paid_amount": purchase.paid_amount, "payment_status": purchase.payment_status},
        )
        return Response(self.get_serializer(purchase).data)


class ReadyItemViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = ReadyItem.objects.select_related("category", "product")
    serializer_class = ReadyItemSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "catalog.view",
        "retrieve": "catalog.view",
        **{action: "catalog.manage" for action in MANAGE_ACTIONS},
        "add_stock": "stock.restock",
        "bulk_add_stock": "stock.restock",
    }
    audit_entity = "ready_item"
    stamp_created_by = True

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action == "list":
            qs = qs.filter(is_active=True)
        category = self.request.query_params.get("category")
        if category:
            qs = qs.filter(Q(category__code__iexact=category) | Q(category__name__iexact=category))
        return qs

    @action(detail=False, methods=["post"], url_path="add-stock")
    def add_stock(self, request):
        serializer = ReadyItemStockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ready_item = serializer.validated_data["ready_item"]

        result = add_ready_item_stock(
            ready_item,
            serializer.validated_data.get("quantity"),
            notes=serializer.validated_data["notes"],
            user=request.user,
        )
        self._audit(action="ready_item.add_stock", instance=ready_item, after_snapshot=result)
        return Response(result, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="bulk-add-stock")
    def bulk_add_stock(self, request):
        serializer = BulkReadyItemStockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = bulk_add_ready_item_stock(serializer.validated_data["items"], user=request.user)
        logger.info(
            "ready_item_bulk_stock user=%s successful=%s failed=%s",
            request.user.username,
            len(result["successful"]),
            len(result["failed"]),
        )
        return Response(result)
