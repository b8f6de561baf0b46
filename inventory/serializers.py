import re
from decimal import Decimal

from rest_framework import serializers
from rest_framework.validators import UniqueValidator

from inventory.models import Category, Product, Purchase, PurchaseLine, ReadyItem, StockLedger, Supplier
from inventory.services import create_product, create_purchase

MOBILE_RE = re.compile(r"^\d{10}$")


class CategorySerializer(serializers.ModelSerializer):
    product_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Category
        fields = [
            "id",
            "code",
            "name",
            "description",
            "is_active",
            "display_order",
            "product_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_code(self, value):
        value = value.strip().upper()
        queryset = Category.objects.filter(code=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("A category with this code already exists.")
        return value


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True, default=None)
    category_code = serializers.CharField(source="category.code", read_only=True, default=None)
    serial_no = serializers.IntegerField(required=False, min_value=1, validators=[UniqueValidator(queryset=Product.objects.all())])
    current_stock = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=Decimal("0"))
    is_low_stock = serializers.BooleanField(read_only=True)
    is_stock_tracked = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "serial_no",
            "code",
            "name",
            "description",
            "category",
            "category_name",
            "category_code",
            "unit",
            "price",
            "cost_price",
            "current_stock",
            "min_stock_alert",
            "is_low_stock",
            "is_stock_tracked",
            "is_active",
            "is_popular",
            "display_order",
            "tags",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]
        extra_kwargs = {"code": {"required": False, "allow_null": True, "allow_blank": True}}

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Product name is required.")
        return value

    def validate(self, attrs):
        # Stock only moves through bills, purchases and the stock endpoint once a product exists.
        if self.instance is not None:
            attrs.pop("current_stock", None)
        return attrs

    def create(self, validated_data):
        user = self.context["request"].user if "request" in self.context else None
        return create_product(validated_data, user=user)

    def update(self, instance, validated_data):
        if "code" in validated_data:
            validated_data["code"] = (validated_data["code"] or "").strip().upper() or None
        return super().update(instance, validated_data)


class MenuProductSerializer(serializers.ModelSerializer):
    """Public menu view of a product; hides cost and audit fields."""

    category_name = serializers.CharField(source="category.name", read_only=True, default=None)
    is_available = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "serial_no",
            "name",
            "description",
            "category",
            "category_name",
            "unit",
            "price",
            "is_popular",
            "display_order",
            "tags",
            "is_available",
        ]
        read_only_fields = fields

    def get_is_available(self, obj):
        return obj.is_active and (obj.current_stock is None or obj.current_stock > 0)


class StockAdjustmentSerializer(serializers.Serializer):
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2)
    remarks = serializers.CharField(required=False, allow_blank=True, default="")
    override = serializers.BooleanField(required=False, default=False)

    def validate_quantity(self, value):
        if value == 0:
            raise serializers.ValidationError("Adjustment quantity cannot be zero.")
        return value


class StockLedgerSerializer(serializers.ModelSerializer):
    created_by_name = serializers.CharField(source="created_by.username", read_only=True, default=None)

    class Meta:
        model = StockLedger
        fields = [
            "id",
            "product",
            "item_name",
            "transaction_type",
            "quantity",
            "unit",
            "rate",
            "balance_qty",
            "reference_type",
            "reference_id",
            "reference_no",
            "remarks",
            "created_by",
            "created_by_name",
            "created_at",
        ]
        read_only_fields = fields


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = [
            "id",
            "name",
            "contact_person",
            "mobile",
            "email",
            "street",
            "city",
            "state",
            "pincode",
            "gst_number",
            "total_purchased",
            "total_pending",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "total_purchased", "total_pending", "created_at", "updated_at"]

    def validate_mobile(self, value):
        value = value.strip()
        if not MOBILE_RE.match(value):
            raise serializers.ValidationError("Mobile number must be exactly 10 digits.")
        return value

    def validate_gst_number(self, value):
        return value.strip().upper()


class PurchaseLineSerializer(serializers.ModelSerializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), required=False, allow_null=True)
    item_name = serializers.CharField(required=False, allow_blank=True)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))

    class Meta:
        model = PurchaseLine
        fields = ["id", "product", "item_name", "item_type", "quantity", "unit", "rate", "line_total", "description"]
        read_only_fields = ["id", "line_total"]
        extra_kwargs = {"unit": {"required": False}}

    def validate(self, attrs):
        if not attrs.get("product") and not (attrs.get("item_name") or "").strip():
            raise serializers.ValidationError({"item_name": "Item name is required when no product is linked."})
        return attrs


class PurchaseSerializer(serializers.ModelSerializer):
    lines = PurchaseLineSerializer(many=True)
    supplier = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.all())
    created_by_name = serializers.CharField(source="created_by.username", read_only=True, default=None)
    paid_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal("0"), required=False, default=Decimal("0"))
    purchase_date = serializers.DateTimeField(required=False)

    class Meta:
        model = Purchase
        fields = [
            "id",
            "purchase_no",
            "purchase_date",
            "supplier",
            "supplier_name",
            "supplier_mobile",
            "invoice_no",
            "invoice_date",
            "invoice_amount",
            "is_local_purchase",
            "cgst_percent",
            "sgst_percent",
            "igst_percent",
            "cgst_amount",
            "sgst_amount",
            "igst_amount",
            "gst_amount",
            "total_amount",
            "paid_amount",
            "pending_amount",
            "payment_status",
            "remarks",
            "lines",
            "created_by",
            "created_by_name",
            "created_at",
        ]
        read_only_fields = [
            "id",
            "purchase_no",
            "supplier_name",
            "supplier_mobile",
            "invoice_amount",
            "cgst_amount",
            "sgst_amount",
            "igst_amount",
            "gst_amount",
            "total_amount",
            "pending_amount",
            "payment_status",
            "created_by",
            "created_by_name",
            "created_at",
        ]

    def validate_lines(self, value):
        if not value:
            raise serializers.ValidationError("At least one purchase line is required.")
        return value

    def validate_invoice_no(self, value):
        return value.strip() or "N/A"

    def validate(self, attrs):
        for field in ("cgst_percent", "sgst_percent", "igst_percent"):
            percent = attrs.get(field)
            if percent is not None and not Decimal("0") <= percent <= Decimal("100"):
                raise serializers.ValidationError({field: "GST percent must be between 0 and 100."})
        if not attrs["supplier"].is_active:
            raise serializers.ValidationError({"supplier": "Supplier is inactive."})
        return attrs

    def create(self, validated_data):
        user = self.context["request"].user if "request" in self.context else None
        return create_purchase(validated_data, user=user)


class PurchasePaymentSerializer(serializers.Serializer):
    paid_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal("0"))


class ReadyItemSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True, default=None)
    current_stock = serializers.DecimalField(source="product.current_stock", max_digits=12, decimal_places=2, read_only=True, default=None)

    class Meta:
        model = ReadyItem
        fields = [
            "id",
            "item_name",
            "product",
            "category",
            "category_name",
            "unit",
            "default_quantity",
            "cost_price",
            "selling_price",
            "min_stock_alert",
            "current_stock",
            "is_active",
            "display_order",
            "description",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]


class ReadyItemStockSerializer(serializers.Serializer):
    ready_item = serializers.PrimaryKeyRelatedField(queryset=ReadyItem.objects.select_related("product"))
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"), required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class BulkReadyItemEntrySerializer(serializers.Serializer):
    ready_item = serializers.UUIDField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"), required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class BulkReadyItemStockSerializer(serializers.Serializer):
    items = BulkReadyItemEntrySerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("Provide at least one item.")
        return value
