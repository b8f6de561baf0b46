import uuid

from django.db import models

from core.models import User
from inventory.models import Product


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "Pending", "Pending"
        PREPARING = "Preparing", "Preparing"
        READY = "Ready", "Ready"
        COMPLETED = "Completed", "Completed"
        CANCELLED = "Cancelled", "Cancelled"

    class OrderType(models.TextChoices):
        CUSTOMER = "Customer", "Customer"
        CASHIER = "Cashier", "Cashier"

    # Completed is only reachable through bill conversion.
    STATUS_TRANSITIONS = {
        Status.PENDING: {Status.PREPARING, Status.CANCELLED},
        Status.PREPARING: {Status.READY, Status.CANCELLED},
        Status.READY: set(),
        Status.COMPLETED: set(),
        Status.CANCELLED: set(),
    }
    CONVERTIBLE_STATUSES = {Status.PREPARING, Status.READY}
    OPEN_STATUSES = {Status.PENDING, Status.PREPARING}

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_no = models.PositiveIntegerField(unique=True)
    order_date = models.DateTimeField(auto_now_add=True)
    customer_name = models.CharField(max_length=255, blank=True, default="Guest")
    customer_mobile = models.CharField(max_length=10, blank=True, default="")
    seat_number = models.CharField(max_length=32, blank=True, default="")
    table_number = models.CharField(max_length=32, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    order_type = models.CharField(max_length=16, choices=OrderType.choices, default=OrderType.CUSTOMER)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-order_date"]
        indexes = [
            models.Index(fields=["status", "order_date"], name="order_status_date_idx"),
            models.Index(fields=["order_type", "order_date"], name="order_type_date_idx"),
        ]

    def can_transition_to(self, new_status):
        return new_status in self.STATUS_TRANSITIONS.get(self.status, set())


class OrderLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_lines")
    product_name = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        indexes = [
            models.Index(fields=["order"], name="orderline_order_idx"),
            models.Index(fields=["product"], name="orderline_product_idx"),
        ]


class Bill(models.Model):
    class Status(models.TextChoices):
        COMPLETED = "Completed", "Completed"
        CANCELLED = "Cancelled", "Cancelled"

    class PaymentMode(models.TextChoices):
        CASH = "Cash", "Cash"
        UPI = "UPI", "UPI"
        CARD = "Card", "Card"
        MIXED = "Mixed", "Mixed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    bill_no = models.PositiveIntegerField(unique=True)
    bill_date = models.DateTimeField(auto_now_add=True)
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="bills")
    user_name = models.CharField(max_length=255)
    order = models.OneToOneField(Order, on_delete=models.PROTECT, null=True, blank=True, related_name="bill")
    customer_name = models.CharField(max_length=255, blank=True, default="Walk-in Customer")
    customer_mobile = models.CharField(max_length=10, blank=True, default="")
    seat_number = models.CharField(max_length=32, blank=True, default="")
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    gst_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    gst_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    round_off = models.DecimalField(max_digits=6, decimal_places=2, default=0)
    grand_total = models.DecimalField(max_digits=12, decimal_places=2)
    payment_mode = models.CharField(max_length=8, choices=PaymentMode.choices, default=PaymentMode.CASH)
    cash_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    upi_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    card_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    upi_ref_no = models.CharField(max_length=64, blank=True, default="")
    card_ref_no = models.CharField(max_length=64, blank=True, default="")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.COMPLETED)
    remarks = models.TextField(blank=True, default="")
    is_printed = models.BooleanField(default=False)
    printed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-bill_date"]
        indexes = [
            models.Index(fields=["bill_date"], name="bill_date_idx"),
            models.Index(fields=["status", "bill_date"], name="bill_status_date_idx"),
            models.Index(fields=["user", "bill_date"], name="bill_user_date_idx"),
            models.Index(fields=["payment_mode", "bill_date"], name="bill_mode_date_idx"),
        ]


class BillLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="bill_lines")
    item_name = models.CharField(max_length=255)
    category_name = models.CharField(max_length=255, blank=True, default="")
    unit = models.CharField(max_length=16, blank=True, default="")
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    # True when stock was decremented for this line; cancellation restores exactly these lines.
    stock_deducted = models.BooleanField(default=False)

    class Meta:
        indexes = [
            models.Index(fields=["bill"], name="billline_bill_idx"),
            models.Index(fields=["product"], name="billline_product_idx"),
        ]
