import uuid
from decimal import Decimal

from django.db.models import Count, Q, Sum
from django.db.models.functions import Coalesce
from rest_framework.exceptions import ValidationError

from common.reports import AdminReportView, money
from inventory.models import Product, Purchase, StockLedger

ZERO = Decimal("0.00")


def _uuid_param(request, name):
    value = request.query_params.get(name)
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise ValidationError({name: f"Invalid {name} id."})


def _purchases(start, end):
    qs = Purchase.objects.all()
    if start and end:
        qs = qs.filter(purchase_date__gte=start, purchase_date__lte=end)
    return qs


class StockReportView(AdminReportView):
    cache_key = "stock"

    def get(self, request):
        category_id = _uuid_param(request, "category")

        def run():
            qs = Product.objects.select_related("category").filter(is_active=True).order_by("category__display_order", "name")
            if category_id:
                qs = qs.filter(category_id=category_id)

            results = []
            total_value = ZERO
            low_stock_count = 0
            for product in qs:
                stock_value = ZERO
                if product.is_stock_tracked:
                    stock_value = money(product.current_stock * product.cost_price)
                total_value += stock_value
                low_stock_count += int(product.is_low_stock)
                results.append(
                    {
                        "product_id": str(product.id),
                        "serial_no": product.serial_no,
                        "name": product.name,
                        "category": product.category.name if product.category else "",
                        "unit": product.unit,
                        "current_stock": product.current_stock,
                        "min_stock_alert": product.min_stock_alert,
                        "is_low_stock": product.is_low_stock,
                        "cost_price": product.cost_price,
                        "stock_value": stock_value,
                    }
                )
            return {
                "product_count": len(results),
                "low_stock_count": low_stock_count,
                "total_stock_value": money(total_value),
                "results": results,
            }

        return self._respond(request, self._cached(request, self.cache_key, run))


class StockLedgerReportView(AdminReportView):
    cache_key = "stock-ledger"

    def get(self, request):
        tz_name, tz = self._parse_timezone(request)
        start, end = self._date_range(request, tz)
        product_id = _uuid_param(request, "product")
        transaction_type = request.query_params.get("transaction_type")
        limit = self._parse_limit(request, default=500, maximum=5000)

        def run():
            qs = StockLedger.objects.select_related("created_by").order_by("-created_at")
            if product_id:
                qs = qs.filter(product_id=product_id)
            if transaction_type:
                qs = qs.filter(transaction_type=transaction_type)
            if start and end:
                qs = qs.filter(created_at__gte=start, created_at__lte=end)

            results = [
                {
                    "created_at": entry.created_at.astimezone(tz).isoformat(),
                    "product_id": str(entry.product_id),
                    "item_name": entry.item_name,
                    "transaction_type": entry.transaction_type,
                    "quantity": entry.quantity,
                    "unit": entry.unit,
                    "rate": entry.rate,
                    "balance_qty": entry.balance_qty,
                    "reference_type": entry.reference_type,
                    "reference_no": entry.reference_no,
                    "remarks": entry.remarks,
                    "created_by": entry.created_by.username if entry.created_by else "",
                }
                for entry in qs[:limit]
            ]
            return {"timezone": tz_name, "results": results}

        return self._respond(request, self._cached(request, self.cache_key, run))


class PurchaseSummaryReportView(AdminReportView):
    cache_key = "purchase-summary"

    def get(self, request):
        tz_name, tz = self._parse_timezone(request)
        start, end = self._date_range(request, tz)

        def run():
            qs = _purchases(start, end)
            totals = qs.aggregate(
                purchase_count=Count("id"),
                invoice_amount=Coalesce(Sum("invoice_amount"), ZERO),
                gst_amount=Coalesce(Sum("gst_amount"), ZERO),
                total_amount=Coalesce(Sum("total_amount"), ZERO),
                paid_amount=Coalesce(Sum("paid_amount"), ZERO),
                pending_amount=Coalesce(Sum("pending_amount"), ZERO),
            )
            by_status = {
                row["payment_status"]: {"count": row["count"], "total_amount": money(row["total_amount"])}
                for row in qs.values("payment_status").annotate(count=Count("id"), total_amount=Coalesce(Sum("total_amount"), ZERO)).order_by()
            }
            results = [
                {
                    "purchase_no": row["purchase_no"],
                    "purchase_date": row["purchase_date"].astimezone(tz).isoformat(),
                    "supplier_name": row["supplier_name"],
                    "invoice_no": row["invoice_no"],
                    "total_amount": row["total_amount"],
                    "paid_amount": row["paid_amount"],
                    "pending_amount": row["pending_amount"],
                    "payment_status": row["payment_status"],
                }
                for row in qs.order_by("-purchase_date").values(
                    "purchase_no",
                    "purchase_date",
                    "supplier_name",
                    "invoice_no",
                    "total_amount",
                    "paid_amount",
                    "pending_amount",
                    "payment_status",
                )
            ]
            return {
                "timezone": tz_name,
                "purchase_count": totals["purchase_count"],
                **{key: money(totals[key]) for key in ["invoice_amount", "gst_amount", "total_amount", "paid_amount", "pending_amount"]},
                "by_payment_status": by_status,
                "results": results,
            }

        return self._respond(request, self._cached(request, self.cache_key, run))


class SupplierReportView(AdminReportView):
    cache_key = "supplier"

    def get(self, request):
        tz_name, tz = self._parse_timezone(request)
        start, end = self._date_range(request, tz)

        def run():
            rows = (
                _purchases(start, end)
                .values("supplier_id", "supplier__name", "supplier__mobile", "supplier__is_active")
                .annotate(
                    purchase_count=Count("id"),
                    total_amount=Coalesce(Sum("total_amount"), ZERO),
                    paid_amount=Coalesce(Sum("paid_amount"), ZERO),
                    pending_amount=Coalesce(Sum("pending_amount"), ZERO),
                    pending_count=Count("id", filter=~Q(payment_status=Purchase.PaymentStatus.PAID)),
                )
                .order_by("-total_amount")
            )
            results = [
                {
                    "supplier_id": str(row["supplier_id"]),
                    "name": row["supplier__name"],
                    "mobile": row["supplier__mobile"],
                    "is_active": row["supplier__is_active"],
                    "purchase_count": row["purchase_count"],
                    "pending_count": row["pending_count"],
                    "total_amount": money(row["total_amount"]),
                    "paid_amount": money(row["paid_amount"]),
                    "pending_amount": money(row["pending_amount"]),
                }
                for row in rows
            ]
            return {"timezone": tz_name, "results": results}

        return self._respond(request, self._cached(request, self.cache_key, run))
