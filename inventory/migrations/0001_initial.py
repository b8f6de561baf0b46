import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

UNIT_CHOICES = [
    ("Piece", "Piece"),
    ("PCS", "PCS"),
    ("KG", "KG"),
    ("Liter", "Liter"),
    ("ML", "ML"),
    ("Gram", "Gram"),
    ("Cup", "Cup"),
    ("Bottle", "Bottle"),
    ("Packet", "Packet"),
    ("Box", "Box"),
    ("TRAY", "Tray"),
    ("TUB", "Tub"),
    ("LARGE", "Large"),
]


def _created_by():
    return models.ForeignKey(
        blank=True,
        null=True,
        on_delete=django.db.models.deletion.SET_NULL,
        related_name="+",
        to=settings.AUTH_USER_MODEL,
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Category",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(max_length=32, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("is_active", models.BooleanField(default=True)),
                ("display_order", models.IntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", _created_by()),
            ],
            options={
                "ordering": ["display_order", "name"],
                "indexes": [
                    models.Index(fields=["is_active", "display_order"], name="category_active_order_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("serial_no", models.PositiveIntegerField(unique=True)),
                ("code", models.CharField(blank=True, max_length=32, null=True, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("unit", models.CharField(choices=UNIT_CHOICES, default="Piece", max_length=16)),
                (
                    "price",
                    models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(0)]),
                ),
                (
                    "cost_price",
                    models.DecimalField(
                        decimal_places=2, default=0, max_digits=12, validators=[django.core.validators.MinValueValidator(0)]
                    ),
                ),
                ("current_stock", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("min_stock_alert", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("is_popular", models.BooleanField(default=False)),
                ("display_order", models.IntegerField(default=0)),
                ("tags", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "category",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="inventory.category",
                    ),
                ),
                ("created_by", _created_by()),
            ],
            options={
                "ordering": ["display_order", "name"],
                "indexes": [
                    models.Index(fields=["is_active", "display_order"], name="product_active_order_idx"),
                    models.Index(fields=["category", "is_active"], name="product_category_active_idx"),
                    models.Index(fields=["name"], name="product_name_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("current_stock__isnull", True), ("current_stock__gte", 0), _connector="OR"),
                        name="product_stock_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockLedger",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("item_name", models.CharField(max_length=255)),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[("Purchase", "Purchase"), ("Sale", "Sale"), ("Adjustment", "Adjustment"), ("Return", "Return")],
                        max_length=16,
                    ),
                ),
                ("quantity", models.DecimalField(decimal_places=2, max_digits=12)),
                ("unit", models.CharField(blank=True, default="", max_length=16)),
                ("rate", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("balance_qty", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "reference_type",
                    models.CharField(choices=[("Purchase", "Purchase"), ("Bill", "Bill"), ("Manual", "Manual")], max_length=16),
                ),
                ("reference_id", models.UUIDField(blank=True, null=True)),
                ("reference_no", models.CharField(blank=True, default="", max_length=64)),
                ("remarks", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="inventory.product",
                    ),
                ),
                ("created_by", _created_by()),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["product", "created_at"], name="ledger_product_created_idx"),
                    models.Index(fields=["transaction_type", "created_at"], name="ledger_type_created_idx"),
                    models.Index(fields=["reference_type", "reference_id"], name="ledger_reference_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Supplier",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("contact_person", models.CharField(blank=True, default="", max_length=255)),
                ("mobile", models.CharField(max_length=20)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("street", models.CharField(blank=True, default="", max_length=255)),
                ("city", models.CharField(blank=True, default="", max_length=128)),
                ("state", models.CharField(blank=True, default="", max_length=128)),
                ("pincode", models.CharField(blank=True, default="", max_length=16)),
                ("gst_number", models.CharField(blank=True, default="", max_length=32)),
                ("total_purchased", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("total_pending", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "indexes": [models.Index(fields=["is_active", "name"], name="supplier_active_name_idx")],
            },
        ),
        migrations.CreateModel(
            name="Purchase",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("purchase_no", models.CharField(max_length=32, unique=True)),
                ("purchase_date", models.DateTimeField()),
                ("supplier_name", models.CharField(max_length=255)),
                ("supplier_mobile", models.CharField(blank=True, default="", max_length=20)),
                ("invoice_no", models.CharField(default="N/A", max_length=64)),
                ("invoice_date", models.DateField(blank=True, null=True)),
                ("invoice_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("is_local_purchase", models.BooleanField(default=False)),
                ("cgst_percent", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("sgst_percent", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("igst_percent", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("cgst_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("sgst_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("igst_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("gst_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("pending_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("Paid", "Paid"), ("Partial", "Partial"), ("Pending", "Pending")],
                        default="Pending",
                        max_length=16,
                    ),
                ),
                ("remarks", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "supplier",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchases",
                        to="inventory.supplier",
                    ),
                ),
                ("created_by", _created_by()),
            ],
            options={
                "ordering": ["-purchase_date"],
                "indexes": [
                    models.Index(fields=["purchase_date"], name="purchase_date_idx"),
                    models.Index(fields=["supplier", "purchase_date"], name="purchase_supplier_date_idx"),
                    models.Index(fields=["payment_status"], name="purchase_payment_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PurchaseLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("item_name", models.CharField(max_length=255)),
                (
                    "item_type",
                    models.CharField(
                        choices=[
                            ("Raw Material", "Raw Material"),
                            ("Packaging", "Packaging"),
                            ("Shop Supply", "Shop Supply"),
                            ("Other", "Other"),
                        ],
                        default="Raw Material",
                        max_length=16,
                    ),
                ),
                ("quantity", models.DecimalField(decimal_places=2, max_digits=12)),
                ("unit", models.CharField(default="KG", max_length=16)),
                ("rate", models.DecimalField(decimal_places=2, max_digits=12)),
                ("line_total", models.DecimalField(decimal_places=2, max_digits=14)),
                ("description", models.CharField(blank=True, default="", max_length=500)),
                (
                    "purchase",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="inventory.purchase",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchase_lines",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["purchase"], name="purchaseline_purchase_idx"),
                    models.Index(fields=["product"], name="purchaseline_product_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ReadyItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("item_name", models.CharField(max_length=255)),
                ("unit", models.CharField(choices=UNIT_CHOICES, default="PCS", max_length=16)),
                (
                    "default_quantity",
                    models.DecimalField(
                        decimal_places=2, default=1, max_digits=12, validators=[django.core.validators.MinValueValidator(0)]
                    ),
                ),
                (
                    "cost_price",
                    models.DecimalField(
                        decimal_places=2, default=0, max_digits=12, validators=[django.core.validators.MinValueValidator(0)]
                    ),
                ),
                (
                    "selling_price",
                    models.DecimalField(
                        decimal_places=2, default=0, max_digits=12, validators=[django.core.validators.MinValueValidator(0)]
                    ),
                ),
                ("min_stock_alert", models.DecimalField(decimal_places=2, default=Decimal("10"), max_digits=12)),
                ("is_active", models.BooleanField(default=True)),
                ("display_order", models.IntegerField(default=0)),
                ("description", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="ready_items",
                        to="inventory.product",
                    ),
                ),
                (
                    "category",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="ready_items",
                        to="inventory.category",
                    ),
                ),
                ("created_by", _created_by()),
            ],
            options={
                "ordering": ["display_order", "item_name"],
                "indexes": [
                    models.Index(fields=["is_active", "display_order"], name="readyitem_active_order_idx"),
                ],
            },
        ),
    ]
