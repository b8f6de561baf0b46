import re
from decimal import Decimal

from rest_framework import serializers

from core.models import BusinessSettings
from inventory.models import Product
from sales.models import Bill, BillLine, Order, OrderLine

MOBILE_RE = re.compile(r"^\d{10}$")


def _validate_mobile(value):
    value = (value or "").strip()
    if value and not MOBILE_RE.match(value):
        raise serializers.ValidationError("Mobile number must be exactly 10 digits.")
    return value


class CartItemSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.select_related("category"))
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))

    def validate_product(self, value):
        if not value.is_active:
            raise serializers.ValidationError(f"{value.name} is not available.")
        return value


class PaymentDetailsSerializer(serializers.Serializer):
    cash = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal("0"))
    upi = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal("0"))
    card = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal("0"))
    upi_ref_no = serializers.CharField(required=False, allow_blank=True, max_length=64)
    card_ref_no = serializers.CharField(required=False, allow_blank=True, max_length=64)


class CheckoutFieldsSerializer(serializers.Serializer):
    """Payment and discount input shared by direct checkout and order conversion."""

    payment_mode = serializers.ChoiceField(choices=Bill.PaymentMode.choices)
    payment_details = PaymentDetailsSerializer(required=False)
    discount_percent = serializers.DecimalField(
        max_digits=5,
        decimal_places=2,
        required=False,
        allow_null=True,
        min_value=Decimal("0"),
        max_value=Decimal("100"),
    )
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=Decimal("0"))
    remarks = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["payment_mode"] == Bill.PaymentMode.MIXED and not attrs.get("payment_details"):
            raise serializers.ValidationError({"payment_details": "Mixed payments need a cash/upi/card breakdown."})
        return attrs


class BillCreateSerializer(CheckoutFieldsSerializer):
    items = CartItemSerializer(many=True)
    customer_name = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    customer_mobile = serializers.CharField(required=False, allow_blank=True, default="", max_length=10)
    seat_number = serializers.CharField(required=False, allow_blank=True, default="", max_length=32)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("Cart is empty.")
        return value

    def validate_customer_mobile(self, value):
        return _validate_mobile(value)


class OrderConvertSerializer(CheckoutFieldsSerializer):
    pass


class BillCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class BillLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillLine
        fields = [
            "id",
            "product",
            "item_name",
            "category_name",
            "unit",
            "quantity",
            "price",
            "line_total",
            "cost_price",
        ]
        read_only_fields = fields


class BillPaymentSerializer(serializers.Serializer):
    cash = serializers.DecimalField(max_digits=12, decimal_places=2, source="cash_amount", read_only=True)
    upi = serializers.DecimalField(max_digits=12, decimal_places=2, source="upi_amount", read_only=True)
    card = serializers.DecimalField(max_digits=12, decimal_places=2, source="card_amount", read_only=True)
    upi_ref_no = serializers.CharField(read_only=True)
    card_ref_no = serializers.CharField(read_only=True)


class BillSerializer(serializers.ModelSerializer):
    lines = BillLineSerializer(many=True, read_only=True)
    display_no = serializers.SerializerMethodField()
    order_no = serializers.IntegerField(source="order.order_no", read_only=True, default=None)
    cancelled_by_name = serializers.CharField(source="cancelled_by.username", read_only=True, default=None)
    payment_details = BillPaymentSerializer(source="*", read_only=True)

    class Meta:
        model = Bill
        fields = [
            "id",
            "bill_no",
            "display_no",
            "bill_date",
            "user",
            "user_name",
            "order",
            "order_no",
            "customer_name",
            "customer_mobile",
            "seat_number",
            "lines",
            "subtotal",
            "discount_percent",
            "discount_amount",
            "gst_percent",
            "gst_amount",
            "total_amount",
            "round_off",
            "grand_total",
            "payment_mode",
            "payment_details",
            "status",
            "remarks",
            "is_printed",
            "printed_at",
            "cancelled_at",
            "cancelled_by",
            "cancelled_by_name",
        ]
        read_only_fields = fields

    def _bill_prefix(self):
        if "bill_prefix" not in self.context:
            self.context["bill_prefix"] = BusinessSettings.load().bill_prefix
        return self.context["bill_prefix"]

    def get_display_no(self, obj):
        return f"{self._bill_prefix()}-{obj.bill_no}"


class OrderItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=1)


class OrderCreateSerializer(serializers.Serializer):
    items = OrderItemInputSerializer(many=True)
    customer_name = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    customer_mobile = serializers.CharField(required=False, allow_blank=True, default="", max_length=10)
    seat_number = serializers.CharField(required=False, allow_blank=True, default="", max_length=32)
    table_number = serializers.CharField(required=False, allow_blank=True, default="", max_length=32)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_customer_mobile(self, value):
        return _validate_mobile(value)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("Order must contain at least one item.")

        unavailable = []
        for item in value:
            product = item["product"]
            if not product.is_active:
                unavailable.append(f"{product.name} is not available.")
            elif product.current_stock is not None and product.current_stock < item["quantity"]:
                unavailable.append(f"Insufficient stock for {product.name}. Available: {product.current_stock}.")
        if unavailable:
            raise serializers.ValidationError(unavailable)
        return value

    def validate(self, attrs):
        attrs["seat_number"] = attrs.get("seat_number", "").strip()
        if not attrs["seat_number"] and not attrs.get("customer_mobile"):
            raise serializers.ValidationError({"seat_number": "Provide a seat number or a mobile number."})
        return attrs


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices)


class OrderLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderLine
        fields = ["id", "product", "product_name", "quantity", "price", "line_total"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    lines = OrderLineSerializer(many=True, read_only=True)
    bill = serializers.SerializerMethodField()
    completed_by_name = serializers.CharField(source="completed_by.username", read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_no",
            "order_date",
            "customer_name",
            "customer_mobile",
            "seat_number",
            "table_number",
            "notes",
            "order_type",
            "lines",
            "subtotal",
            "total_amount",
            "status",
            "completed_at",
            "completed_by",
            "completed_by_name",
            "bill",
        ]
        read_only_fields = fields

    def get_bill(self, obj):
        bill = getattr(obj, "bill", None)
        if bill is None:
            return None
        return {"id": str(bill.id), "bill_no": bill.bill_no, "grand_total": bill.grand_total}
