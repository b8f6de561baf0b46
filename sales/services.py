import logging
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.db.models import Count, DecimalField, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from common.exceptions import InvalidStateError, PaymentMismatchError
from common.permissions import is_admin, user_has_capability
from core.models import BusinessSettings
from core.services import BILL_SEQUENCE, ORDER_SEQUENCE, next_sequence_value
from inventory.models import StockLedger
from inventory.services import add_stock, remove_stock
from sales.models import Bill, BillLine, Order, OrderLine

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")
WHOLE_UNIT = Decimal("1")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def _to_money(value):
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def compute_bill_totals(subtotal, *, discount_percent=None, discount_amount=None, gst_percent=ZERO):
    """
    Derive every monetary field of a bill from its subtotal.

    A discount percent wins over an explicit discount amount. GST applies to the
    discounted subtotal. The grand total is rounded half-up to the whole currency
    unit and `round_off` carries the difference.
    """
    subtotal = _to_money(subtotal)

    if discount_percent is not None:
        discount_percent = Decimal(discount_percent)
        if not ZERO <= discount_percent <= HUNDRED:
            raise ValidationError({"discount_percent": "Discount percent must be between 0 and 100."})
        discount_amount = _to_money(subtotal * discount_percent / HUNDRED)
    else:
        discount_amount = _to_money(discount_amount or ZERO)
        if discount_amount < 0 or discount_amount > subtotal:
            raise ValidationError({"discount_amount": "Discount amount must be between 0 and the subtotal."})
        discount_percent = _to_money(discount_amount * HUNDRED / subtotal) if subtotal else ZERO

    gst_percent = Decimal(gst_percent or ZERO)
    gst_amount = _to_money((subtotal - discount_amount) * gst_percent / HUNDRED)
    total_amount = subtotal - discount_amount + gst_amount
    grand_total = total_amount.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)

    return {
        "subtotal": subtotal,
        "discount_percent": _to_money(discount_percent),
        "discount_amount": discount_amount,
        "gst_percent": _to_money(gst_percent),
        "gst_amount": gst_amount,
        "total_amount": total_amount,
        "round_off": _to_money(grand_total - total_amount),
        "grand_total": _to_money(grand_total),
    }


def resolve_payment_details(payment_mode, payment_details, grand_total):
    """Return the per-mode amounts stored on a bill, rejecting a Mixed split that does not add up."""
    payment_details = payment_details or {}
    refs = {
        "upi_ref_no": (payment_details.get("upi_ref_no") or "").strip(),
        "card_ref_no": (payment_details.get("card_ref_no") or "").strip(),
    }

    if payment_mode == Bill.PaymentMode.MIXED:
        amounts = {
            "cash_amount": _to_money(payment_details.get("cash") or ZERO),
            "upi_amount": _to_money(payment_details.get("upi") or ZERO),
            "card_amount": _to_money(payment_details.get("card") or ZERO),
        }
        if any(value < 0 for value in amounts.values()):
            raise ValidationError({"payment_details": "Payment amounts cannot be negative."})
        received = sum(amounts.values(), ZERO)
        if received != grand_total:
            raise PaymentMismatchError(
                f"Mixed payment total {received} does not match grand total {grand_total}.",
                errors={"expected": str(grand_total), "received": str(received)},
            )
        return {**amounts, **refs}

    field_for_mode = {
        Bill.PaymentMode.CASH: "cash_amount",
        Bill.PaymentMode.UPI: "upi_amount",
        Bill.PaymentMode.CARD: "card_amount",
    }
    if payment_mode not in field_for_mode:
        raise ValidationError({"payment_mode": f"Unsupported payment mode: {payment_mode}."})

    amounts = {"cash_amount": ZERO, "upi_amount": ZERO, "card_amount": ZERO}
    amounts[field_for_mode[payment_mode]] = grand_total
    return {**amounts, **refs}


def check_discount_allowed(user, discount_percent, settings):
    if discount_percent <= 0 or user_has_capability(user, "discount.unrestricted"):
        return
    if not settings.user_can_give_discount:
        raise PermissionDenied("You are not allowed to give discounts.")
    if discount_percent > settings.max_user_discount:
        raise ValidationError({"discount_percent": f"Maximum allowed discount is {settings.max_user_discount}%."})


def _line_from_product(product, quantity):
    quantity = Decimal(quantity)
    return {
        "product": product,
        "item_name": product.name,
        "category_name": product.category.name if product.category_id else "",
        "unit": product.unit,
        "quantity": quantity,
        "price": product.price,
        "cost_price": product.cost_price,
        "line_total": _to_money(quantity * product.price),
    }


def _persist_bill(
    lines,
    *,
    user,
    settings,
    payment_mode,
    payment_details=None,
    discount_percent=None,
    discount_amount=None,
    customer_name="",
    customer_mobile="",
    seat_number="",
    remarks="",
    order=None,
):
    if not lines:
        raise ValidationError({"items": "Cart is empty."})

    subtotal = sum((line["line_total"] for line in lines), ZERO)
    totals = compute_bill_totals(
        subtotal,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
        gst_percent=settings.default_gst_percent if settings.gst_enabled else ZERO,
    )
    check_discount_allowed(user, totals["discount_percent"], settings)
    payment = resolve_payment_details(payment_mode, payment_details, totals["grand_total"])

    with transaction.atomic():
        bill_no = next_sequence_value(BILL_SEQUENCE, start=settings.bill_start_number)
        bill = Bill.objects.create(
            bill_no=bill_no,
            user=user,
            user_name=user.display_name,
            order=order,
            customer_name=customer_name or "Walk-in Customer",
            customer_mobile=customer_mobile or "",
            seat_number=seat_number or "",
            payment_mode=payment_mode,
            remarks=remarks or "",
            **totals,
            **payment,
        )

        for line in lines:
            balance = remove_stock(
                line["product"],
                line["quantity"],
                transaction_type=StockLedger.TransactionType.SALE,
                reference_type=StockLedger.ReferenceType.BILL,
                reference_id=bill.id,
                reference_no=f"BILL-{bill_no}",
                rate=line["price"],
                user=user,
            )
            BillLine.objects.create(bill=bill, stock_deducted=balance is not None, **line)

    logger.info(
        "bill_created bill_no=%s user=%s grand_total=%s payment_mode=%s order=%s",
        bill.bill_no,
        user.username,
        bill.grand_total,
        bill.payment_mode,
        order.order_no if order else None,
        extra={"bill_no": bill.bill_no},
    )
    return bill


def create_bill(validated_data, user):
    """Direct cart checkout. Prices and costs always come from the catalog row."""
    settings = BusinessSettings.load()
    lines = [_line_from_product(item["product"], item["quantity"]) for item in validated_data["items"]]
    return _persist_bill(
        lines,
        user=user,
        settings=settings,
        payment_mode=validated_data["payment_mode"],
        payment_details=validated_data.get("payment_details"),
        discount_percent=validated_data.get("discount_percent"),
        discount_amount=validated_data.get("discount_amount"),
        customer_name=validated_data.get("customer_name", ""),
        customer_mobile=validated_data.get("customer_mobile", ""),
        seat_number=validated_data.get("seat_number", ""),
        remarks=validated_data.get("remarks", ""),
    )


def convert_order_to_bill(order, user, validated_data):
    settings = BusinessSettings.load()
    if not (is_admin(user) or settings.customer_can_convert_order_to_bill):
        raise PermissionDenied("Only admins can convert orders to bills.")

    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        if order.status not in Order.CONVERTIBLE_STATUSES:
            raise InvalidStateError(f"Order #{order.order_no} is {order.status}; only Preparing or Ready orders can be billed.")

        lines = []
        for order_line in order.lines.select_related("product__category"):
            product = order_line.product
            lines.append(
                {
                    "product": product,
                    "item_name": order_line.product_name,
                    "category_name": product.category.name if product.category_id else "",
                    "unit": product.unit,
                    "quantity": order_line.quantity,
                    "price": order_line.price,
                    "cost_price": product.cost_price,
                    "line_total": order_line.line_total,
                }
            )

        bill = _persist_bill(
            lines,
            user=user,
            settings=settings,
            payment_mode=validated_data["payment_mode"],
            payment_details=validated_data.get("payment_details"),
            discount_percent=validated_data.get("discount_percent"),
            discount_amount=validated_data.get("discount_amount"),
            customer_name=order.customer_name,
            customer_mobile=order.customer_mobile,
            seat_number=order.seat_number,
            remarks=validated_data.get("remarks") or order.notes,
            order=order,
        )

        order.status = Order.Status.COMPLETED
        order.completed_at = timezone.now()
        order.completed_by = user
        order.save(update_fields=["status", "completed_at", "completed_by", "updated_at"])

    logger.info("order_converted order_no=%s bill_no=%s user=%s", order.order_no, bill.bill_no, user.username)
    return bill


def cancel_bill(bill, user, reason=""):
    """Cancel a completed bill and put back exactly the stock it took."""
    with transaction.atomic():
        bill = Bill.objects.select_for_update().get(pk=bill.pk)
        if bill.status != Bill.Status.COMPLETED:
            raise InvalidStateError(f"Bill {bill.bill_no} is already {bill.status}.")

        for line in bill.lines.filter(stock_deducted=True).select_related("product"):
            add_stock(
                line.product,
                line.quantity,
                transaction_type=StockLedger.TransactionType.RETURN,
                reference_type=StockLedger.ReferenceType.BILL,
                reference_id=bill.id,
                reference_no=f"BILL-{bill.bill_no}-CANCELLED",
                rate=line.price,
                remarks=f"Bill {bill.bill_no} cancelled",
                user=user,
            )

        bill.status = Bill.Status.CANCELLED
        bill.cancelled_at = timezone.now()
        bill.cancelled_by = user
        if reason:
            bill.remarks = f"{bill.remarks}\nCancelled: {reason}".strip()
        bill.save(update_fields=["status", "cancelled_at", "cancelled_by", "remarks", "updated_at"])

    logger.info("bill_cancelled bill_no=%s user=%s", bill.bill_no, user.username)
    return bill


def mark_bill_printed(bill):
    bill.is_printed = True
    bill.printed_at = timezone.now()
    bill.save(update_fields=["is_printed", "printed_at", "updated_at"])
    return bill


def create_order(validated_data, user=None):
    """Snapshot catalog prices into a new Pending order; stock is untouched until billing."""
    staff_user = user if user is not None and user.is_authenticated else None
    with transaction.atomic():
        order_no = next_sequence_value(ORDER_SEQUENCE)
        lines = []
        for item in validated_data["items"]:
            product = item["product"]
            quantity = Decimal(item["quantity"])
            lines.append(
                OrderLine(
                    product=product,
                    product_name=product.name,
                    quantity=quantity,
                    price=product.price,
                    line_total=_to_money(quantity * product.price),
                )
            )
        subtotal = sum((line.line_total for line in lines), ZERO)

        order = Order.objects.create(
            order_no=order_no,
            customer_name=validated_data.get("customer_name") or "Guest",
            customer_mobile=validated_data.get("customer_mobile", ""),
            seat_number=validated_data.get("seat_number", ""),
            table_number=validated_data.get("table_number", ""),
            notes=validated_data.get("notes", ""),
            order_type=Order.OrderType.CASHIER if staff_user else Order.OrderType.CUSTOMER,
            subtotal=subtotal,
            total_amount=subtotal,
            created_by=staff_user,
        )
        for line in lines:
            line.order = order
        OrderLine.objects.bulk_create(lines)

    logger.info(
        "order_created order_no=%s type=%s total=%s",
        order.order_no,
        order.order_type,
        order.total_amount,
        extra={"order_no": order.order_no},
    )
    return order


def update_order_status(order, new_status, user):
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        if new_status == Order.Status.COMPLETED:
            raise InvalidStateError("Orders are completed by converting them to a bill.")
        if not order.can_transition_to(new_status):
            raise InvalidStateError(f"Cannot move order #{order.order_no} from {order.status} to {new_status}.")

        order.status = new_status
        update_fields = ["status", "updated_at"]
        if new_status == Order.Status.CANCELLED:
            order.completed_at = timezone.now()
            order.completed_by = user
            update_fields += ["completed_at", "completed_by"]
        order.save(update_fields=update_fields)

    logger.info("order_status_changed order_no=%s status=%s user=%s", order.order_no, new_status, user.username)
    return order


def delete_order(order):
    if hasattr(order, "bill"):
        raise InvalidStateError("A billed order cannot be deleted.")
    order.delete()


def pending_orders_count():
    return Order.objects.filter(status__in=Order.OPEN_STATUSES).count()


def today_summary(user):
    qs = Bill.objects.filter(status=Bill.Status.COMPLETED, bill_date__date=timezone.localdate())
    if not user_has_capability(user, "bill.view_all"):
        qs = qs.filter(user=user)

    money = {"output_field": DecimalField(max_digits=14, decimal_places=2)}
    summary = qs.aggregate(
        total_bills=Count("id"),
        total_amount=Coalesce(Sum("grand_total"), ZERO, **money),
        cash=Coalesce(Sum("cash_amount"), ZERO, **money),
        upi=Coalesce(Sum("upi_amount"), ZERO, **money),
        card=Coalesce(Sum("card_amount"), ZERO, **money),
        discount=Coalesce(Sum("discount_amount"), ZERO, **money),
    )
    by_mode = {row["payment_mode"]: row["count"] for row in qs.values("payment_mode").annotate(count=Count("id"))}
    summary["bills_by_mode"] = {mode: by_mode.get(mode, 0) for mode in Bill.PaymentMode.values}
    summary["date"] = timezone.localdate().isoformat()
    return summary
