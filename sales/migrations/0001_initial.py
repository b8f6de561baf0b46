import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def _user_fk(**kwargs):
    return models.ForeignKey(
        blank=True,
        null=True,
        on_delete=django.db.models.deletion.SET_NULL,
        related_name="+",
        to=settings.AUTH_USER_MODEL,
        **kwargs,
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("inventory", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_no", models.PositiveIntegerField(unique=True)),
                ("order_date", models.DateTimeField(auto_now_add=True)),
                ("customer_name", models.CharField(blank=True, default="Guest", max_length=255)),
                ("customer_mobile", models.CharField(blank=True, default="", max_length=10)),
                ("seat_number", models.CharField(blank=True, default="", max_length=32)),
                ("table_number", models.CharField(blank=True, default="", max_length=32)),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "order_type",
                    models.CharField(choices=[("Customer", "Customer"), ("Cashier", "Cashier")], default="Customer", max_length=16),
                ),
                ("subtotal", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("Pending", "Pending"),
                            ("Preparing", "Preparing"),
                            ("Ready", "Ready"),
                            ("Completed", "Completed"),
                            ("Cancelled", "Cancelled"),
                        ],
                        default="Pending",
                        max_length=16,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", _user_fk()),
                ("completed_by", _user_fk()),
            ],
            options={
                "ordering": ["-order_date"],
                "indexes": [
                    models.Index(fields=["status", "order_date"], name="order_status_date_idx"),
                    models.Index(fields=["order_type", "order_date"], name="order_type_date_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("product_name", models.CharField(max_length=255)),
                ("quantity", models.DecimalField(decimal_places=2, max_digits=12)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("line_total", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "order",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="sales.order"),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="order_lines",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["order"], name="orderline_order_idx"),
                    models.Index(fields=["product"], name="orderline_product_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Bill",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("bill_no", models.PositiveIntegerField(unique=True)),
                ("bill_date", models.DateTimeField(auto_now_add=True)),
                ("user_name", models.CharField(max_length=255)),
                ("customer_name", models.CharField(blank=True, default="Walk-in Customer", max_length=255)),
                ("customer_mobile", models.CharField(blank=True, default="", max_length=10)),
                ("seat_number", models.CharField(blank=True, default="", max_length=32)),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discount_percent", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("gst_percent", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("gst_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("round_off", models.DecimalField(decimal_places=2, default=0, max_digits=6)),
                ("grand_total", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "payment_mode",
                    models.CharField(
                        choices=[("Cash", "Cash"), ("UPI", "UPI"), ("Card", "Card"), ("Mixed", "Mixed")],
                        default="Cash",
                        max_length=8,
                    ),
                ),
                ("cash_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("upi_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("card_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("upi_ref_no", models.CharField(blank=True, default="", max_length=64)),
                ("card_ref_no", models.CharField(blank=True, default="", max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[("Completed", "Completed"), ("Cancelled", "Cancelled")],
                        default="Completed",
                        max_length=16,
                    ),
                ),
                ("remarks", models.TextField(blank=True, default="")),
                ("is_printed", models.BooleanField(default=False)),
                ("printed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bills",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bill",
                        to="sales.order",
                    ),
                ),
                ("cancelled_by", _user_fk()),
            ],
            options={
                "ordering": ["-bill_date"],
                "indexes": [
                    models.Index(fields=["bill_date"], name="bill_date_idx"),
                    models.Index(fields=["status", "bill_date"], name="bill_status_date_idx"),
                    models.Index(fields=["user", "bill_date"], name="bill_user_date_idx"),
                    models.Index(fields=["payment_mode", "bill_date"], name="bill_mode_date_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BillLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("item_name", models.CharField(max_length=255)),
                ("category_name", models.CharField(blank=True, default="", max_length=255)),
                ("unit", models.CharField(blank=True, default="", max_length=16)),
                ("quantity", models.DecimalField(decimal_places=2, max_digits=12)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("line_total", models.DecimalField(decimal_places=2, max_digits=12)),
                ("cost_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("stock_deducted", models.BooleanField(default=False)),
                (
                    "bill",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="sales.bill"),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bill_lines",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["bill"], name="billline_bill_idx"),
                    models.Index(fields=["product"], name="billline_product_idx"),
                ],
            },
        ),
    ]
