import json
import uuid
from datetime import datetime, time
from decimal import Decimal

from django.db.models import Count, DecimalField, ExpressionWrapper, F, Q, Sum
from django.db.models.functions import Coalesce, TruncDate
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework.exceptions import ValidationError

from common.permissions import user_has_capability
from common.reports import AdminReportView, BaseReportView, money, percent
from sales.models import Bill, BillLine

ZERO = Decimal("0.00")

DEFAULT_SHOW_SLOTS = [
    {"name": "Morning", "start": "10:00", "end": "13:00"},
    {"name": "Matinee", "start": "13:00", "end": "16:00"},
    {"name": "Evening", "start": "18:00", "end": "21:00"},
    {"name": "Night", "start": "21:00", "end": "23:59"},
]

LINE_COST = ExpressionWrapper(F("quantity") * F("cost_price"), output_field=DecimalField(max_digits=16, decimal_places=2))


def _completed_bills(start, end):
    qs = Bill.objects.filter(status=Bill.Status.COMPLETED)
    if start and end:
        qs = qs.filter(bill_date__gte=start, bill_date__lte=end)
    return qs


def _completed_lines(start, end):
    qs = BillLine.objects.filter(bill__status=Bill.Status.COMPLETED)
    if start and end:
        qs = qs.filter(bill__bill_date__gte=start, bill__bill_date__lte=end)
    return qs


def _item_rows(start, end, limit=None):
    rows = (
        _completed_lines(start, end)
        .values("product_id", "product__name", "category_name")
        .annotate(
            total_quantity=Coalesce(Sum("quantity"), ZERO),
            amount=Coalesce(Sum("line_total"), ZERO),
            cost=Coalesce(Sum(LINE_COST), ZERO),
        )
        .order_by("-amount")
    )
    if limit:
        rows = rows[:limit]

    results = []
    for row in rows:
        profit = row["amount"] - row["cost"]
        results.append(
            {
                "product_id": str(row["product_id"]),
                "item_name": row["product__name"],
                "category_name": row["category_name"],
                "quantity": money(row["total_quantity"]),
                "amount": money(row["amount"]),
                "cost": money(row["cost"]),
                "profit": money(profit),
                "profit_percent": percent(profit, row["amount"]),
            }
        )
    return results


def _parse_clock(value, field):
    try:
        hours, minutes = (int(part) for part in str(value).split(":"))
        return time(hours, minutes)
    except (TypeError, ValueError):
        raise ValidationError({"slots": f"{field} must be HH:MM, got {value!r}."})


def _parse_slots(raw):
    if not raw:
        return DEFAULT_SHOW_SLOTS
    try:
        parsed = json.loads(raw)
    except ValueError:
        raise ValidationError({"slots": "slots must be a JSON list of {name, start, end}."})
    if not isinstance(parsed, list) or not parsed:
        raise ValidationError({"slots": "slots must be a non-empty JSON list."})
    return [
        {
            "name": str(slot.get("name") or "").strip() or "Show",
            "start": str(slot.get("start") or "00:00"),
            "end": str(slot.get("end") or "23:59"),
        }
        for slot in parsed
        if isinstance(slot, dict)
    ]


class SalesReportView(BaseReportView):
    cache_key = "sales"

    def get(self, request):
        tz_name, tz = self._parse_timezone(request)
        start, end = self._date_range(request, tz)
        user_id = request.query_params.get("user")
        own_only = not user_has_capability(request.user, "bill.view_all")
        if user_id and not own_only:
            try:
                uuid.UUID(user_id)
            except ValueError:
                raise ValidationError({"user": "Invalid user id."})

        def run():
            qs = _completed_bills(start, end)
            if own_only:
                qs = qs.filter(user=request.user)
            elif user_id:
                qs = qs.filter(user_id=user_id)

            totals = qs.aggregate(
                bill_count=Count("id"),
                total_sales=Coalesce(Sum("grand_total"), ZERO),
                total_discount=Coalesce(Sum("discount_amount"), ZERO),
                total_gst=Coalesce(Sum("gst_amount"), ZERO),
            )
            results = [
                {
                    "id": str(bill["id"]),
                    "bill_no": bill["bill_no"],
                    "bill_date": bill["bill_date"].astimezone(tz).isoformat(),
                    "user_name": bill["user_name"],
                    "customer_name": bill["customer_name"],
                    "payment_mode": bill["payment_mode"],
                    "subtotal": bill["subtotal"],
                    "discount_amount": bill["discount_amount"],
                    "gst_amount": bill["gst_amount"],
                    "grand_total": bill["grand_total"],
                }
                for bill in qs.order_by("-bill_date").values(
                    "id",
                    "bill_no",
                    "bill_date",
                    "user_name",
                    "customer_name",
                    "payment_mode",
                    "subtotal",
                    "discount_amount",
                    "gst_amount",
                    "grand_total",
                )
            ]
            return {
                "timezone": tz_name,
                "bill_count": totals["bill_count"],
                "total_sales": money(totals["total_sales"]),
                "total_discount": money(totals["total_discount"]),
                "total_gst": money(totals["total_gst"]),
                "results": results,
            }

        payload = self._cached(request, self.cache_key, run, scope=str(request.user.pk) if own_only else "all")
        return self._respond(request, payload)


class ItemwiseSalesReportView(BaseReportView):
    cache_key = "itemwise-sales"

    def get(self, request):
        tz_name, tz = self._parse_timezone(request)
        start, end = self._date_range(request, tz)
        limit = self._parse_limit(request)

        def run():
            return {"timezone": tz_name, "results": _item_rows(start, end, limit)}

        return self._respond(request, self._cached(request, self.cache_key, run))


class UserwiseSalesReportView(AdminReportView):
    cache_key = "userwise-sales"

    def get(self, request):
        tz_name, tz = self._parse_timezone(request)
        start, end = self._date_range(request, tz)

        def run():
            rows = (
                _completed_bills(start, end)
                .values("user_id", "user__username")
                .annotate(
                    bill_count=Count("id"),
                    total_sales=Coalesce(Sum("grand_total"), ZERO),
                    total_discount=Coalesce(Sum("discount_amount"), ZERO),
                )
                .order_by("-total_sales")
            )
            results = [
                {
                    "user_id": str(row["user_id"]),
                    "username": row["user__username"],
                    "bill_count": row["bill_count"],
                    "total_sales": money(row["total_sales"]),
                    "total_discount": money(row["total_discount"]),
                }
                for row in rows
            ]
            return {"timezone": tz_name, "results": results}

        return self._respond(request, self._cached(request, self.cache_key, run))


class DailyCollectionReportView(BaseReportView):
    cache_key = "daily-collection"

    def get(self, request):
        tz_name, tz = self._parse_timezone(request)
        start, end = self._date_range(request, tz)

        def by_mode(mode):
            return Coalesce(Sum("grand_total", filter=Q(payment_mode=mode)), ZERO)

        def run():
            rows = (
                _completed_bills(start, end)
                .annotate(day=TruncDate("bill_date", tzinfo=tz))
                .values("day")
                .annotate(
                    bill_count=Count("id"),
                    total=Coalesce(Sum("grand_total"), ZERO),
                    cash=by_mode(Bill.PaymentMode.CASH),
                    upi=by_mode(Bill.PaymentMode.UPI),
                    card=by_mode(Bill.PaymentMode.CARD),
                    mixed=by_mode(Bill.PaymentMode.MIXED),
                )
                .order_by("-day")
            )
            results = [
                {
                    "day": row["day"].isoformat(),
                    "bill_count": row["bill_count"],
                    "total": money(row["total"]),
                    "cash": money(row["cash"]),
                    "upi": money(row["upi"]),
                    "card": money(row["card"]),
                    "mixed": money(row["mixed"]),
                }
                for row in rows
            ]
            return {"timezone": tz_name, "results": results}

        return self._respond(request, self._cached(request, self.cache_key, run))


class ShowWiseCollectionReportView(AdminReportView):
    """Buckets one day's completed bills into show time windows.

    Windows are half-open ``[start, end)``; an end of ``23:59`` runs to midnight.
    """

    cache_key = "show-wise-collection"

    def get(self, request):
        tz_name, tz = self._parse_timezone(request)
        raw_date = request.query_params.get("date")
        day = parse_date(raw_date) if raw_date else timezone.localdate(timezone=tz)
        if day is None:
            raise ValidationError({"date": "Date must be YYYY-MM-DD."})

        slots = []
        for slot in _parse_slots(request.query_params.get("slots")):
            slot_start = _parse_clock(slot["start"], "start")
            slot_end = _parse_clock(slot["end"], "end")
            if slot_end == time(23, 59):
                slot_end = time.max
            slots.append({**slot, "_start": slot_start, "_end": slot_end})

        def run():
            bills = list(
                _completed_bills(
                    datetime.combine(day, time.min).replace(tzinfo=tz),
                    datetime.combine(day, time.max).replace(tzinfo=tz),
                ).values("bill_date", "payment_mode", "grand_total", "cash_amount", "upi_amount", "card_amount")
            )
            results = []
            for slot in slots:
                row = {
                    "slot_name": slot["name"],
                    "start": slot["start"],
                    "end": slot["end"],
                    "bill_count": 0,
                    "total_sales": ZERO,
                    "cash": ZERO,
                    "upi": ZERO,
                    "card": ZERO,
                    "mixed": ZERO,
                }
                for bill in bills:
                    local_time = bill["bill_date"].astimezone(tz).time()
                    if not slot["_start"] <= local_time < slot["_end"]:
                        continue
                    row["bill_count"] += 1
                    row["total_sales"] += bill["grand_total"]
                    mode = bill["payment_mode"]
                    if mode == Bill.PaymentMode.MIXED:
                        row["cash"] += bill["cash_amount"]
                        row["upi"] += bill["upi_amount"]
                        row["card"] += bill["card_amount"]
                        row["mixed"] += bill["grand_total"]
                    elif mode == Bill.PaymentMode.UPI:
                        row["upi"] += bill["grand_total"]
                    elif mode == Bill.PaymentMode.CARD:
                        row["card"] += bill["grand_total"]
                    else:
                        row["cash"] += bill["grand_total"]
                results.append({key: money(value) if isinstance(value, Decimal) else value for key, value in row.items()})
            return {"timezone": tz_name, "date": day.isoformat(), "results": results}

        return self._respond(request, self._cached(request, self.cache_key, run))


class ProfitReportView(AdminReportView):
    cache_key = "profit"

    def get(self, request):
        tz_name, tz = self._parse_timezone(request)
        start, end = self._date_range(request, tz)
        limit = self._parse_limit(request)

        def run():
            totals = _completed_lines(start, end).aggregate(
                revenue=Coalesce(Sum("line_total"), ZERO),
                cost=Coalesce(Sum(LINE_COST), ZERO),
            )
            profit = totals["revenue"] - totals["cost"]
            return {
                "timezone": tz_name,
                "revenue": money(totals["revenue"]),
                "cost": money(totals["cost"]),
                "profit": money(profit),
                "profit_percent": percent(profit, totals["revenue"]),
                "results": _item_rows(start, end, limit),
            }

        return self._respond(request, self._cached(request, self.cache_key, run))
