import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models


class Category(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True)
    display_order = models.IntegerField(default=0)
    created_by = models.ForeignKey("core.User", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["display_order", "name"]
        indexes = [
            models.Index(fields=["is_active", "display_order"], name="category_active_order_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.code:
            self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.code} - {self.name}"


class Unit(models.TextChoices):
    PIECE = "Piece", "Piece"
    PCS = "PCS", "PCS"
    KG = "KG", "KG"
    LITER = "Liter", "Liter"
    ML = "ML", "ML"
    GRAM = "Gram", "Gram"
    CUP = "Cup", "Cup"
    BOTTLE = "Bottle", "Bottle"
    PACKET = "Packet", "Packet"
    BOX = "Box", "Box"
    TRAY = "TRAY", "Tray"
    TUB = "TUB", "Tub"
    LARGE = "LARGE", "Large"


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    serial_no = models.PositiveIntegerField(unique=True)
    code = models.CharField(max_length=32, null=True, blank=True, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    category = models.ForeignKey(Category, on_delete=models.PROTECT, null=True, blank=True, related_name="products")
    unit = models.CharField(max_length=16, choices=Unit.choices, default=Unit.PIECE)
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    # null means the product is not stock-tracked
    current_stock = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    min_stock_alert = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True)
    is_popular = models.BooleanField(default=False)
    display_order = models.IntegerField(default=0)
    tags = models.JSONField(default=list, blank=True)
    created_by = models.ForeignKey("core.User", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["display_order", "name"]
        indexes = [
            models.Index(fields=["is_active", "display_order"], name="product_active_order_idx"),
            models.Index(fields=["category", "is_active"], name="product_category_active_idx"),
            models.Index(fields=["name"], name="product_name_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(current_stock__isnull=True) | models.Q(current_stock__gte=0),
                name="product_stock_non_negative",
            ),
        ]

    def __str__(self):
        return self.name

    @property
    def is_stock_tracked(self):
        return self.current_stock is not None

    @property
    def is_low_stock(self):
        if self.current_stock is None or self.min_stock_alert is None:
            return False
        return self.current_stock <= self.min_stock_alert


class StockLedger(models.Model):
    """Append-only record of every stock movement."""

    class TransactionType(models.TextChoices):
        PURCHASE = "Purchase", "Purchase"
        SALE = "Sale", "Sale"
        ADJUSTMENT = "Adjustment", "Adjustment"
        RETURN = "Return", "Return"

    class ReferenceType(models.TextChoices):
        PURCHASE = "Purchase", "Purchase"
        BILL = "Bill", "Bill"
        MANUAL = "Manual", "Manual"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="ledger_entries")
    item_name = models.CharField(max_length=255)
    transaction_type = models.CharField(max_length=16, choices=TransactionType.choices)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit = models.CharField(max_length=16, blank=True, default="")
    rate = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    balance_qty = models.DecimalField(max_digits=12, decimal_places=2)
    reference_type = models.CharField(max_length=16, choices=ReferenceType.choices)
    reference_id = models.UUIDField(null=True, blank=True)
    reference_no = models.CharField(max_length=64, blank=True, default="")
    remarks = models.TextField(blank=True, default="")
    created_by = models.ForeignKey("core.User", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["product", "created_at"], name="ledger_product_created_idx"),
            models.Index(fields=["transaction_type", "created_at"], name="ledger_type_created_idx"),
            models.Index(fields=["reference_type", "reference_id"], name="ledger_reference_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Stock ledger entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Stock ledger entries are append-only.")


class Supplier(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    contact_person = models.CharField(max_length=255, blank=True, default="")
    mobile = models.CharField(max_length=20)
    email = models.EmailField(blank=True, default="")
    street = models.CharField(max_length=255, blank=True, default="")
    city = models.CharField(max_length=128, blank=True, default="")
    state = models.CharField(max_length=128, blank=True, default="")
    pincode = models.CharField(max_length=16, blank=True, default="")
    gst_number = models.CharField(max_length=32, blank=True, default="")
    total_purchased = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_pending = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [models.Index(fields=["is_active", "name"], name="supplier_active_name_idx")]

    def __str__(self):
        return self.name


class Purchase(models.Model):
    class PaymentStatus(models.TextChoices):
        PAID = "Paid", "Paid"
        PARTIAL = "Partial", "Partial"
        PENDING = "Pending", "Pending"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    purchase_no = models.CharField(max_length=32, unique=True)
    purchase_date = models.DateTimeField()
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name="purchases")
    supplier_name = models.CharField(max_length=255)
    supplier_mobile = models.CharField(max_length=20, blank=True, default="")
    invoice_no = models.CharField(max_length=64, default="N/A")
    invoice_date = models.DateField(null=True, blank=True)
    invoice_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    is_local_purchase = models.BooleanField(default=False)
    cgst_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    sgst_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    igst_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    cgst_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    sgst_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    igst_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    gst_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    paid_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    pending_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    remarks = models.TextField(blank=True, default="")
    created_by = models.ForeignKey("core.User", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-purchase_date"]
        indexes = [
            models.Index(fields=["purchase_date"], name="purchase_date_idx"),
            models.Index(fields=["supplier", "purchase_date"], name="purchase_supplier_date_idx"),
            models.Index(fields=["payment_status"], name="purchase_payment_status_idx"),
        ]

    def refresh_payment_state(self):
        self.pending_amount = self.total_amount - self.paid_amount
        if self.paid_amount <= 0:
            self.payment_status = self.PaymentStatus.PENDING
        elif self.pending_amount <= 0:
            self.payment_status = self.PaymentStatus.PAID
        else:
            self.payment_status = self.PaymentStatus.PARTIAL


class PurchaseLine(models.Model):
    class ItemType(models.TextChoices):
        RAW_MATERIAL = "Raw Material", "Raw Material"
        PACKAGING = "Packaging", "Packaging"
        SHOP_SUPPLY = "Shop Supply", "Shop Supply"
        OTHER = "Other", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    purchase = models.ForeignKey(Purchase, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, null=True, blank=True, related_name="purchase_lines")
    item_name = models.CharField(max_length=255)
    item_type = models.CharField(max_length=16, choices=ItemType.choices, default=ItemType.RAW_MATERIAL)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit = models.CharField(max_length=16, default=Unit.KG)
    rate = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(max_digits=14, decimal_places=2)
    description = models.CharField(max_length=500, blank=True, default="")

    class Meta:
        indexes = [
            models.Index(fields=["purchase"], name="purchaseline_purchase_idx"),
            models.Index(fields=["product"], name="purchaseline_product_idx"),
        ]


class ReadyItem(models.Model):
    """Restock template for items bought ready-made and sold as-is."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    item_name = models.CharField(max_length=255)
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name="ready_items")
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name="ready_items")
    unit = models.CharField(max_length=16, choices=Unit.choices, default=Unit.PCS)
    default_quantity = models.DecimalField(max_digits=12, decimal_places=2, default=1, validators=[MinValueValidator(0)])
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    min_stock_alert = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("10"))
    is_active = models.BooleanField(default=True)
    display_order = models.IntegerField(default=0)
    description = models.TextField(blank=True, default="")
    created_by = models.ForeignKey("core.User", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["display_order", "item_name"]
        indexes = [
            models.Index(fields=["is_active", "display_order"], name="readyitem_active_order_idx"),
        ]

    def __str__(self):
        return self.item_name
