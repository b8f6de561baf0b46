import logging
from decimal import Decimal, ROUND_HALF_UP

from django.db import IntegrityError, transaction
from django.db.models import DecimalField, F, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from common.exceptions import InsufficientStockError
from core.services import PRODUCT_SEQUENCE, PURCHASE_SEQUENCE, next_sequence_value
from inventory.models import Product, Purchase, PurchaseLine, ReadyItem, StockLedger, Supplier, Unit

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")
_STOCK_FIELD = DecimalField(max_digits=12, decimal_places=2)


def _to_money(value):
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _current_stock(product_id):
    return Product.objects.values_list("current_stock", flat=True).get(pk=product_id)


def _write_ledger(
    product,
    *,
    transaction_type,
    quantity,
    balance_qty,
    reference_type,
    reference_id=None,
    reference_no="",
    rate=ZERO,
    remarks="",
    user=None,
):
    return StockLedger.objects.create(
        product=product,
        item_name=product.name,
        transaction_type=transaction_type,
        quantity=quantity,
        unit=product.unit,
        rate=rate,
        balance_qty=balance_qty,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_no=reference_no,
        remarks=remarks,
        created_by=user if user is not None and user.is_authenticated else None,
    )


def remove_stock(
    product,
    quantity,
    *,
    transaction_type=StockLedger.TransactionType.SALE,
    reference_type=StockLedger.ReferenceType.BILL,
    reference_id=None,
    reference_no="",
    rate=ZERO,
    remarks="",
    user=None,
):
    """
    Decrement tracked stock with a single conditional UPDATE.

    Returns the new balance, or None when the product is not stock-tracked.
    Raises InsufficientStockError when the row holds less than `quantity`.
    Must run inside the caller's transaction so the ledger row and the
    decrement commit or roll back together.
    """
    quantity = Decimal(quantity)
    updated = Product.objects.filter(
        pk=product.pk,
        current_stock__isnull=False,
        current_stock__gte=quantity,
    ).update(current_stock=F("current_stock") - quantity, updated_at=timezone.now())

    if not updated:
        available = _current_stock(product.pk)
        if available is None:
            return None
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}. Available: {available}, required: {quantity}.",
            errors=[
                {
                    "product": str(product.pk),
                    "product_name": product.name,
                    "available": str(available),
                    "required": str(quantity),
                }
            ],
        )

    balance = _current_stock(product.pk)
    _write_ledger(
        product,
        transaction_type=transaction_type,
        quantity=-quantity,
        balance_qty=balance,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_no=reference_no,
        rate=rate,
        remarks=remarks,
        user=user,
    )
    return balance


def add_stock(
    product,
    quantity,
    *,
    transaction_type=StockLedger.TransactionType.PURCHASE,
    reference_type=StockLedger.ReferenceType.MANUAL,
    reference_id=None,
    reference_no="",
    rate=ZERO,
    remarks="",
    user=None,
):
    """Increment stock atomically; an untracked product starts tracking from zero."""
    quantity = Decimal(quantity)
    if quantity <= 0:
        raise ValidationError({"quantity": "Quantity must be greater than zero."})

    Product.objects.filter(pk=product.pk).update(
        current_stock=Coalesce(F("current_stock"), Value(ZERO, output_field=_STOCK_FIELD)) + quantity,
        updated_at=timezone.now(),
    )
    balance = _current_stock(product.pk)
    _write_ledger(
        product,
        transaction_type=transaction_type,
        quantity=quantity,
        balance_qty=balance,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_no=reference_no,
        rate=rate,
        remarks=remarks,
        user=user,
    )
    return balance


@transaction.atomic
def adjust_stock(product, delta, *, remarks="", user=None, override=False):
    """
    Apply a signed manual adjustment.

    A result below zero is rejected unless `override` is set, in which case
    the stock is written off to exactly zero and the ledger records the
    quantity actually removed.
    """
    delta = Decimal(delta)
    if delta == 0:
        raise ValidationError({"quantity": "Adjustment quantity cannot be zero."})

    adjustment = StockLedger.TransactionType.ADJUSTMENT
    manual = StockLedger.ReferenceType.MANUAL

    if delta > 0:
        balance = add_stock(product, delta, transaction_type=adjustment, reference_type=manual, rate=product.cost_price, remarks=remarks, user=user)
    else:
        Product.objects.filter(pk=product.pk, current_stock__isnull=True).update(current_stock=ZERO)
        try:
            balance = remove_stock(
                product,
                -delta,
                transaction_type=adjustment,
                reference_type=manual,
                rate=product.cost_price,
                remarks=remarks,
                user=user,
            )
        except InsufficientStockError:
            if not override:
                raise
            locked = Product.objects.select_for_update().get(pk=product.pk)
            written_off = locked.current_stock
            locked.current_stock = ZERO
            locked.save(update_fields=["current_stock", "updated_at"])
            balance = ZERO
            if written_off > 0:
                _write_ledger(
                    product,
                    transaction_type=adjustment,
                    quantity=-written_off,
                    balance_qty=balance,
                    reference_type=manual,
                    rate=product.cost_price,
                    remarks=remarks or "Stock written off to zero",
                    user=user,
                )
            logger.warning("stock_adjustment_clamped product=%s requested=%s written_off=%s", product.pk, delta, written_off)

    product.refresh_from_db(fields=["current_stock", "updated_at"])
    logger.info("stock_adjusted product=%s delta=%s balance=%s", product.pk, delta, balance)
    return product


@transaction.atomic
def create_product(validated_data, user=None):
    opening_stock = validated_data.pop("current_stock", None)
    if not validated_data.get("serial_no"):
        validated_data["serial_no"] = _next_product_serial()
    validated_data["code"] = (validated_data.get("code") or "").strip().upper() or None

    try:
        with transaction.atomic():
            product = Product.objects.create(
                current_stock=ZERO if opening_stock is not None else None,
                created_by=user if user is not None and user.is_authenticated else None,
                **validated_data,
            )
    except IntegrityError:
        raise ValidationError({"serial_no": "A product with this serial number or code already exists."})

    if opening_stock:
        add_stock(
            product,
            opening_stock,
            transaction_type=StockLedger.TransactionType.ADJUSTMENT,
            reference_type=StockLedger.ReferenceType.MANUAL,
            rate=product.cost_price,
            remarks="Opening stock",
            user=user,
        )
        product.refresh_from_db(fields=["current_stock"])
    return product


def _next_product_serial():
    # Catalog rows may be created with explicit serials; skip past any that are taken.
    serial = next_sequence_value(PRODUCT_SEQUENCE)
    while Product.objects.filter(serial_no=serial).exists():
        serial = next_sequence_value(PRODUCT_SEQUENCE)
    return serial


def _next_purchase_no():
    return f"PUR{next_sequence_value(PURCHASE_SEQUENCE):06d}"


def compute_purchase_amounts(lines, *, is_local_purchase=False, cgst_percent=ZERO, sgst_percent=ZERO, igst_percent=ZERO):
    invoice_amount = _to_money(sum((_to_money(Decimal(line["quantity"]) * Decimal(line["rate"])) for line in lines), ZERO))
    if is_local_purchase:
        cgst_amount = sgst_amount = igst_amount = ZERO
    else:
        cgst_amount = _to_money(invoice_amount * Decimal(cgst_percent or 0) / 100)
        sgst_amount = _to_money(invoice_amount * Decimal(sgst_percent or 0) / 100)
        igst_amount = _to_money(invoice_amount * Decimal(igst_percent or 0) / 100)
    gst_amount = cgst_amount + sgst_amount + igst_amount
    return {
        "invoice_amount": invoice_amount,
        "cgst_amount": cgst_amount,
        "sgst_amount": sgst_amount,
        "igst_amount": igst_amount,
        "gst_amount": gst_amount,
        "total_amount": invoice_amount + gst_amount,
    }


@transaction.atomic
def create_purchase(validated_data, user=None):
    lines_data = validated_data.pop("lines")
    supplier = validated_data["supplier"]
    amounts = compute_purchase_amounts(
        lines_data,
        is_local_purchase=validated_data.get("is_local_purchase", False),
        cgst_percent=validated_data.get("cgst_percent", ZERO),
        sgst_percent=validated_data.get("sgst_percent", ZERO),
        igst_percent=validated_data.get("igst_percent", ZERO),
    )
    paid_amount = _to_money(validated_data.pop("paid_amount", ZERO) or ZERO)
    if paid_amount > amounts["total_amount"]:
        raise ValidationError({"paid_amount": "Paid amount cannot exceed the purchase total."})

    if validated_data.get("is_local_purchase"):
        validated_data["cgst_percent"] = validated_data["sgst_percent"] = validated_data["igst_percent"] = ZERO

    purchase = Purchase(
        purchase_no=_next_purchase_no(),
        purchase_date=validated_data.pop("purchase_date", None) or timezone.now(),
        supplier_name=supplier.name,
        supplier_mobile=supplier.mobile,
        paid_amount=paid_amount,
        created_by=user if user is not None and user.is_authenticated else None,
        **amounts,
        **validated_data,
    )
    purchase.refresh_payment_state()
    purchase.save()

    for line in lines_data:
        line_total = _to_money(Decimal(line["quantity"]) * Decimal(line["rate"]))
        product = line.get("product")
        PurchaseLine.objects.create(
            purchase=purchase,
            product=product,
            item_name=line.get("item_name") or (product.name if product else ""),
            item_type=line.get("item_type", PurchaseLine.ItemType.RAW_MATERIAL),
            quantity=line["quantity"],
            unit=line.get("unit") or (product.unit if product else Unit.KG),
            rate=line["rate"],
            line_total=line_total,
            description=line.get("description", ""),
        )
        if product is not None:
            add_stock(
                product,
                line["quantity"],
                transaction_type=StockLedger.TransactionType.PURCHASE,
                reference_type=StockLedger.ReferenceType.PURCHASE,
                reference_id=purchase.id,
                reference_no=purchase.purchase_no,
                rate=line["rate"],
                remarks=f"Purchase from {supplier.name}",
                user=user,
            )

    refresh_supplier_totals(supplier)
    logger.info("purchase_created purchase_no=%s supplier=%s total=%s", purchase.purchase_no, supplier.pk, purchase.total_amount)
    return purchase


@transaction.atomic
def update_purchase_payment(purchase, paid_amount):
    purchase = Purchase.objects.select_for_update().get(pk=purchase.pk)
    paid_amount = _to_money(paid_amount)
    if paid_amount < 0 or paid_amount > purchase.total_amount:
        raise ValidationError({"paid_amount": "Paid amount must be between 0 and the purchase total."})

    purchase.paid_amount = paid_amount
    purchase.refresh_payment_state()
    purchase.save(update_fields=["paid_amount", "pending_amount", "payment_status", "updated_at"])
    refresh_supplier_totals(purchase.supplier)
    return purchase


def refresh_supplier_totals(supplier):
    """Recompute supplier balances from purchase rows instead of incrementing them."""
    totals = Purchase.objects.filter(supplier=supplier).aggregate(
        purchased=Coalesce(Sum("total_amount"), ZERO, output_field=DecimalField(max_digits=14, decimal_places=2)),
        pending=Coalesce(Sum("pending_amount"), ZERO, output_field=DecimalField(max_digits=14, decimal_places=2)),
    )
    Supplier.objects.filter(pk=supplier.pk).update(
        total_purchased=totals["purchased"],
        total_pending=totals["pending"],
        updated_at=timezone.now(),
    )
    supplier.total_purchased = totals["purchased"]
    supplier.total_pending = totals["pending"]
    return supplier


def _resolve_ready_item_product(ready_item, user=None):
    if ready_item.product_id:
        return ready_item.product

    product = Product.objects.filter(name__iexact=ready_item.item_name).first()
    if product is None:
        product = create_product(
            {
                "name": ready_item.item_name,
                "description": ready_item.description,
                "category": ready_item.category,
                "unit": ready_item.unit,
                "price": ready_item.selling_price,
                "cost_price": ready_item.cost_price,
                "current_stock": ZERO,
                "min_stock_alert": ready_item.min_stock_alert,
            },
            user=user,
        )
        logger.info("ready_item_product_created ready_item=%s product=%s", ready_item.pk, product.pk)

    ready_item.product = product
    ready_item.save(update_fields=["product", "updated_at"])
    return product


@transaction.atomic
def add_ready_item_stock(ready_item, quantity=None, *, notes="", user=None):
    if not ready_item.is_active:
        raise ValidationError({"ready_item": "This ready item is inactive."})

    quantity = Decimal(quantity if quantity is not None else ready_item.default_quantity)
    product = _resolve_ready_item_product(ready_item, user=user)
    balance = add_stock(
        product,
        quantity,
        transaction_type=StockLedger.TransactionType.PURCHASE,
        reference_type=StockLedger.ReferenceType.MANUAL,
        rate=ready_item.cost_price,
        remarks=notes or f"Stock added from ready item: {ready_item.item_name}",
        user=user,
    )
    logger.info("ready_item_stock_added ready_item=%s product=%s quantity=%s balance=%s", ready_item.pk, product.pk, quantity, balance)
    return {
        "ready_item": str(ready_item.pk),
        "item_name": ready_item.item_name,
        "product": str(product.pk),
        "quantity_added": quantity,
        "new_stock": balance,
    }


def bulk_add_ready_item_stock(items, *, user=None):
    """Each entry commits on its own; failures are reported, not raised."""
    successful = []
    failed = []
    for entry in items:
        ready_item_id = entry.get("ready_item")
        try:
            ready_item = ReadyItem.objects.get(pk=ready_item_id)
            successful.append(add_ready_item_stock(ready_item, entry.get("quantity"), notes=entry.get("notes", ""), user=user))
        except ReadyItem.DoesNotExist:
            failed.append({"ready_item": str(ready_item_id), "error": "Ready item not found."})
        except ValidationError as exc:
            failed.append({"ready_item": str(ready_item_id), "error": exc.detail})
    return {"successful": successful, "failed": failed}
