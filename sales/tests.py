import threading
import unittest
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from django.contrib.auth import get_user_model
from django.db import connection
from django.test import TestCase, TransactionTestCase
from rest_framework.test import APIClient

from common.exceptions import InsufficientStockError
from core.models import AuditLog, BusinessSettings
from inventory.models import Category, Product, StockLedger
from sales.models import Bill, Order
from sales.services import compute_bill_totals, create_bill

KOLKATA = ZoneInfo("Asia/Kolkata")


class SalesTestMixin:
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(username="pos-admin", password="pass1234", role="admin")
        self.cashier = self.user_model.objects.create_user(username="pos-cashier", password="pass1234", role="cashier")

        snacks = Category.objects.create(code="SNK", name="Snacks")
        self.popcorn = Product.objects.create(
            serial_no=1,
            name="Popcorn",
            category=snacks,
            price=Decimal("50.00"),
            cost_price=Decimal("20.00"),
            current_stock=Decimal("10.00"),
        )
        self.samosa = Product.objects.create(serial_no=2, name="Samosa", category=snacks, price=Decimal("60.00"), current_stock=Decimal("20.00"))
        self.combo = Product.objects.create(serial_no=3, name="Movie Combo", category=snacks, price=Decimal("133.00"))

    def _checkout(self, user, items, **extra):
        self.client.force_authenticate(user=user)
        payload = {"items": items, "payment_mode": "Cash", **extra}
        return self.client.post("/api/v1/bills/", payload, format="json")


class BillTotalsTests(TestCase):
    def test_round_off_carries_difference_to_whole_unit(self):
        totals = compute_bill_totals(Decimal("133.00"), discount_percent=Decimal("10"))

        self.assertEqual(totals["discount_amount"], Decimal("13.30"))
        self.assertEqual(totals["total_amount"], Decimal("119.70"))
        self.assertEqual(totals["grand_total"], Decimal("120.00"))
        self.assertEqual(totals["round_off"], Decimal("0.30"))

    def test_gst_applies_after_discount(self):
        totals = compute_bill_totals(Decimal("200.00"), discount_amount=Decimal("20.00"), gst_percent=Decimal("5"))

        self.assertEqual(totals["discount_percent"], Decimal("10.00"))
        self.assertEqual(totals["gst_amount"], Decimal("9.00"))
        self.assertEqual(totals["grand_total"], Decimal("189.00"))
        self.assertEqual(totals["round_off"], Decimal("0.00"))

    def test_discount_amount_above_subtotal_is_rejected(self):
        from rest_framework.exceptions import ValidationError

        with self.assertRaises(ValidationError):
            compute_bill_totals(Decimal("50.00"), discount_amount=Decimal("60.00"))


class BillApiTests(SalesTestMixin, TestCase):
    def test_anonymous_cannot_create_bill(self):
        response = self.client.post("/api/v1/bills/", {"items": [], "payment_mode": "Cash"}, format="json")

        self.assertEqual(response.status_code, 401)

    def test_cash_bill_deducts_stock_and_writes_ledger(self):
        response = self._checkout(self.cashier, [{"product": str(self.popcorn.id), "quantity": "2"}])

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["bill_no"], 1)
        self.assertEqual(body["display_no"], "BILL-1")
        self.assertEqual(body["grand_total"], "100.00")
        self.assertEqual(body["round_off"], "0.00")
        self.assertEqual(body["customer_name"], "Walk-in Customer")
        self.assertEqual(body["payment_details"]["cash"], "100.00")
        self.assertEqual(body["lines"][0]["cost_price"], "20.00")

        self.popcorn.refresh_from_db()
        self.assertEqual(self.popcorn.current_stock, Decimal("8.00"))
        entry = StockLedger.objects.get(product=self.popcorn)
        self.assertEqual(entry.transaction_type, StockLedger.TransactionType.SALE)
        self.assertEqual(entry.quantity, Decimal("-2.00"))
        self.assertEqual(entry.balance_qty, Decimal("8.00"))
        self.assertEqual(entry.reference_no, "BILL-1")
        self.assertTrue(AuditLog.objects.filter(action="bill.create", entity_id=body["id"]).exists())

    def test_untracked_products_are_sold_without_ledger_rows(self):
        response = self._checkout(self.admin, [{"product": str(self.combo.id), "quantity": "1"}], discount_percent="10")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["grand_total"], "120.00")
        self.assertEqual(response.json()["round_off"], "0.30")
        self.assertFalse(StockLedger.objects.exists())

    def test_mixed_payment_mismatch_rolls_back(self):
        response = self._checkout(
            self.cashier,
            [{"product": str(self.popcorn.id), "quantity": "2"}],
            payment_mode="Mixed",
            payment_details={"cash": "50.00", "upi": "30.00"},
        )

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["code"], "payment_mismatch")
        self.assertEqual(body["errors"]["expected"], "100.00")
        self.assertEqual(body["errors"]["received"], "80.00")
        self.assertFalse(Bill.objects.exists())
        self.popcorn.refresh_from_db()
        self.assertEqual(self.popcorn.current_stock, Decimal("10.00"))

    def test_mixed_payment_split_is_stored(self):
        response = self._checkout(
            self.cashier,
            [{"product": str(self.popcorn.id), "quantity": "2"}],
            payment_mode="Mixed",
            payment_details={"cash": "60.00", "upi": "40.00", "upi_ref_no": "UPI123"},
        )

        self.assertEqual(response.status_code, 201)
        split = response.json()["payment_details"]
        self.assertEqual((split["cash"], split["upi"], split["card"]), ("60.00", "40.00", "0.00"))
        self.assertEqual(split["upi_ref_no"], "UPI123")
        bill = Bill.objects.get()
        self.assertEqual(bill.cash_amount, Decimal("60.00"))
        self.assertEqual(bill.upi_amount, Decimal("40.00"))
        self.assertEqual(bill.card_amount, Decimal("0.00"))
        self.assertEqual(bill.upi_ref_no, "UPI123")

    def test_insufficient_stock_rejects_whole_bill(self):
        response = self._checkout(
            self.cashier,
            [{"product": str(self.samosa.id), "quantity": "2"}, {"product": str(self.popcorn.id), "quantity": "11"}],
        )

        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body["code"], "insufficient_stock")
        self.assertEqual(body["errors"][0]["product_name"], "Popcorn")
        self.assertFalse(Bill.objects.exists())
        self.assertFalse(StockLedger.objects.exists())
        self.samosa.refresh_from_db()
        self.assertEqual(self.samosa.current_stock, Decimal("20.00"))

    def test_failed_bill_does_not_consume_a_number(self):
        self._checkout(self.cashier, [{"product": str(self.popcorn.id), "quantity": "50"}])
        response = self._checkout(self.cashier, [{"product": str(self.popcorn.id), "quantity": "1"}])

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["bill_no"], 1)

    def test_bill_numbers_start_from_configured_value(self):
        settings = BusinessSettings.load()
        settings.bill_start_number = 500
        settings.bill_prefix = "CAFE"
        settings.save()

        first = self._checkout(self.cashier, [{"product": str(self.samosa.id), "quantity": "1"}]).json()
        second = self._checkout(self.cashier, [{"product": str(self.samosa.id), "quantity": "1"}]).json()

        self.assertEqual(first["bill_no"], 500)
        self.assertEqual(second["bill_no"], 501)
        self.assertEqual(second["display_no"], "CAFE-501")

    def test_cashier_discount_is_capped(self):
        response = self._checkout(self.cashier, [{"product": str(self.samosa.id), "quantity": "1"}], discount_percent="15")

        self.assertEqual(response.status_code, 400)
        self.assertIn("discount_percent", response.json()["errors"])
        self.assertFalse(Bill.objects.exists())

    def test_cashier_discount_blocked_when_disabled(self):
        settings = BusinessSettings.load()
        settings.user_can_give_discount = False
        settings.save()

        response = self._checkout(self.cashier, [{"product": str(self.samosa.id), "quantity": "1"}], discount_percent="5")

        self.assertEqual(response.status_code, 403)

    def test_admin_discount_is_unrestricted(self):
        response = self._checkout(self.admin, [{"product": str(self.samosa.id), "quantity": "1"}], discount_percent="50")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["grand_total"], "30.00")

    def test_gst_is_added_when_enabled(self):
        settings = BusinessSettings.load()
        settings.gst_enabled = True
        settings.default_gst_percent = Decimal("5.00")
        settings.save()

        response = self._checkout(self.cashier, [{"product": str(self.samosa.id), "quantity": "1"}])

        self.assertEqual(response.json()["gst_amount"], "3.00")
        self.assertEqual(response.json()["grand_total"], "63.00")

    def test_inactive_product_cannot_be_billed(self):
        self.samosa.is_active = False
        self.samosa.save()

        response = self._checkout(self.cashier, [{"product": str(self.samosa.id), "quantity": "1"}])

        self.assertEqual(response.status_code, 400)

    def test_empty_cart_is_rejected(self):
        response = self._checkout(self.cashier, [])

        self.assertEqual(response.status_code, 400)
        self.assertIn("items", response.json()["errors"])

    def test_cashier_only_sees_own_bills(self):
        self._checkout(self.admin, [{"product": str(self.samosa.id), "quantity": "1"}])
        self._checkout(self.cashier, [{"product": str(self.samosa.id), "quantity": "1"}])

        self.client.force_authenticate(user=self.cashier)
        cashier_view = self.client.get("/api/v1/bills/")
        self.assertEqual(cashier_view.json()["count"], 1)
        self.assertEqual(self.client.get("/api/v1/bills/number/1/").status_code, 404)

        self.client.force_authenticate(user=self.admin)
        self.assertEqual(self.client.get("/api/v1/bills/").json()["count"], 2)
        self.assertEqual(self.client.get("/api/v1/bills/number/2/").json()["user_name"], "pos-cashier")

    def test_mark_printed(self):
        bill_id = self._checkout(self.cashier, [{"product": str(self.samosa.id), "quantity": "1"}]).json()["id"]

        response = self.client.post(f"/api/v1/bills/{bill_id}/print/")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["is_printed"])
        self.assertIsNotNone(response.json()["printed_at"])

    def test_cancel_restores_stock_once(self):
        bill_id = self._checkout(self.cashier, [{"product": str(self.popcorn.id), "quantity": "3"}]).json()["id"]

        self.assertEqual(self.client.post(f"/api/v1/bills/{bill_id}/cancel/", {"reason": "wrong"}, format="json").status_code, 403)

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f"/api/v1/bills/{bill_id}/cancel/", {"reason": "Customer left"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], Bill.Status.CANCELLED)
        self.assertEqual(response.json()["cancelled_by_name"], "pos-admin")
        self.popcorn.refresh_from_db()
        self.assertEqual(self.popcorn.current_stock, Decimal("10.00"))
        self.assertEqual(StockLedger.objects.filter(transaction_type=StockLedger.TransactionType.RETURN).count(), 1)

        again = self.client.post(f"/api/v1/bills/{bill_id}/cancel/", {}, format="json")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["code"], "invalid_state")
        self.popcorn.refresh_from_db()
        self.assertEqual(self.popcorn.current_stock, Decimal("10.00"))

    def test_today_summary_splits_by_mode(self):
        self._checkout(self.cashier, [{"product": str(self.samosa.id), "quantity": "1"}])
        self._checkout(self.cashier, [{"product": str(self.popcorn.id), "quantity": "1"}], payment_mode="UPI")

        response = self.client.get("/api/v1/bills/today-summary/")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total_bills"], 2)
        self.assertEqual(Decimal(str(body["total_amount"])), Decimal("110.00"))
        self.assertEqual(Decimal(str(body["cash"])), Decimal("60.00"))
        self.assertEqual(Decimal(str(body["upi"])), Decimal("50.00"))
        self.assertEqual(body["bills_by_mode"]["UPI"], 1)
        self.assertEqual(body["bills_by_mode"]["Card"], 0)


class OrderApiTests(SalesTestMixin, TestCase):
    def _place_order(self, quantity=2, **extra):
        payload = {"items": [{"product": str(self.samosa.id), "quantity": quantity}], "seat_number": "C12", **extra}
        return self.client.post("/api/v1/orders/", payload, format="json")

    def _advance(self, order_id, new_status, user=None):
        self.client.force_authenticate(user=user or self.cashier)
        return self.client.patch(f"/api/v1/orders/{order_id}/status/", {"status": new_status}, format="json")

    def test_anonymous_customer_can_place_order(self):
        response = self._place_order(customer_name="Ravi")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["order_no"], 1)
        self.assertEqual(body["order_type"], Order.OrderType.CUSTOMER)
        self.assertEqual(body["status"], Order.Status.PENDING)
        self.assertEqual(body["total_amount"], "120.00")
        self.samosa.refresh_from_db()
        self.assertEqual(self.samosa.current_stock, Decimal("20.00"))

    def test_cashier_order_is_tagged(self):
        self.client.force_authenticate(user=self.cashier)
        response = self._place_order()

        self.assertEqual(response.json()["order_type"], Order.OrderType.CASHIER)

    def test_order_needs_seat_or_mobile(self):
        response = self.client.post(
            "/api/v1/orders/",
            {"items": [{"product": str(self.samosa.id), "quantity": 1}]},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("seat_number", response.json()["errors"])

    def test_order_for_more_than_stock_is_rejected(self):
        response = self._place_order(quantity=25)

        self.assertEqual(response.status_code, 400)

    def test_anonymous_cannot_list_orders(self):
        self._place_order()

        self.assertEqual(self.client.get("/api/v1/orders/").status_code, 401)

    def test_status_machine_rejects_skips_and_direct_completion(self):
        order_id = self._place_order().json()["id"]

        skipped = self._advance(order_id, Order.Status.READY)
        self.assertEqual(skipped.status_code, 409)
        self.assertEqual(skipped.json()["code"], "invalid_state")

        completed = self._advance(order_id, Order.Status.COMPLETED)
        self.assertEqual(completed.status_code, 409)

        self.assertEqual(self._advance(order_id, Order.Status.PREPARING).status_code, 200)
        self.assertEqual(self._advance(order_id, Order.Status.READY).json()["status"], Order.Status.READY)
        self.assertEqual(self._advance(order_id, Order.Status.CANCELLED).status_code, 409)

    def test_pending_count_covers_pending_and_preparing(self):
        first = self._place_order().json()["id"]
        self._place_order()
        third = self._place_order().json()["id"]
        self._advance(first, Order.Status.PREPARING)
        self._advance(third, Order.Status.CANCELLED)

        response = self.client.get("/api/v1/orders/pending-count/")

        self.assertEqual(response.json()["count"], 2)

    def test_list_filters_by_status(self):
        first = self._place_order().json()["id"]
        self._place_order()
        self._advance(first, Order.Status.PREPARING)

        response = self.client.get("/api/v1/orders/?status=Preparing")

        self.assertEqual(response.json()["count"], 1)

    def test_conversion_uses_snapshot_prices(self):
        order_id = self._place_order().json()["id"]
        self._advance(order_id, Order.Status.PREPARING)
        self.samosa.price = Decimal("70.00")
        self.samosa.save()

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f"/api/v1/orders/{order_id}/convert-to-bill/", {"payment_mode": "Card"}, format="json")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["lines"][0]["price"], "60.00")
        self.assertEqual(body["grand_total"], "120.00")
        self.assertEqual(body["seat_number"], "C12")
        self.assertEqual(body["order_no"], 1)

        order = Order.objects.get(pk=order_id)
        self.assertEqual(order.status, Order.Status.COMPLETED)
        self.assertEqual(order.completed_by, self.admin)
        self.samosa.refresh_from_db()
        self.assertEqual(self.samosa.current_stock, Decimal("18.00"))

        twice = self.client.post(f"/api/v1/orders/{order_id}/convert-to-bill/", {"payment_mode": "Card"}, format="json")
        self.assertEqual(twice.status_code, 409)
        self.assertEqual(Bill.objects.count(), 1)

    def test_pending_order_cannot_be_converted(self):
        order_id = self._place_order().json()["id"]

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f"/api/v1/orders/{order_id}/convert-to-bill/", {"payment_mode": "Cash"}, format="json")

        self.assertEqual(response.status_code, 409)

    def test_cashier_conversion_depends_on_setting(self):
        order_id = self._place_order().json()["id"]
        self._advance(order_id, Order.Status.PREPARING)

        denied = self.client.post(f"/api/v1/orders/{order_id}/convert-to-bill/", {"payment_mode": "Cash"}, format="json")
        self.assertEqual(denied.status_code, 403)
        self.assertFalse(Bill.objects.exists())

        settings = BusinessSettings.load()
        settings.customer_can_convert_order_to_bill = True
        settings.save()

        allowed = self.client.post(f"/api/v1/orders/{order_id}/convert-to-bill/", {"payment_mode": "Cash"}, format="json")
        self.assertEqual(allowed.status_code, 201)
        self.assertEqual(allowed.json()["user_name"], "pos-cashier")

    def test_conversion_fails_when_stock_ran_out(self):
        order_id = self._place_order(quantity=5).json()["id"]
        self._advance(order_id, Order.Status.PREPARING)
        Product.objects.filter(pk=self.samosa.pk).update(current_stock=Decimal("3.00"))

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f"/api/v1/orders/{order_id}/convert-to-bill/", {"payment_mode": "Cash"}, format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(Order.objects.get(pk=order_id).status, Order.Status.PREPARING)

    def test_only_admin_deletes_unbilled_orders(self):
        order_id = self._place_order().json()["id"]

        self.client.force_authenticate(user=self.cashier)
        self.assertEqual(self.client.delete(f"/api/v1/orders/{order_id}/").status_code, 403)

        self.client.force_authenticate(user=self.admin)
        self.assertEqual(self.client.delete(f"/api/v1/orders/{order_id}/").status_code, 204)
        self.assertFalse(Order.objects.filter(pk=order_id).exists())


class SalesReportTests(SalesTestMixin, TestCase):
    def _bill_at(self, user, product, quantity, when, payment_mode="Cash", **extra):
        response = self._checkout(user, [{"product": str(product.id), "quantity": str(quantity)}], payment_mode=payment_mode, **extra)
        Bill.objects.filter(pk=response.json()["id"]).update(bill_date=when)
        return response.json()

    def setUp(self):
        super().setUp()
        self.morning = datetime(2024, 5, 10, 11, 30, tzinfo=KOLKATA)
        self.night = datetime(2024, 5, 10, 23, 59, 30, tzinfo=KOLKATA)
        self._bill_at(self.cashier, self.popcorn, 2, self.morning)
        self._bill_at(self.admin, self.samosa, 1, self.morning, payment_mode="UPI")
        self._bill_at(
            self.admin,
            self.samosa,
            2,
            self.night,
            payment_mode="Mixed",
            payment_details={"cash": "20.00", "card": "100.00"},
        )

    def test_cashier_sales_report_shows_own_bills_only(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.get("/api/v1/reports/sales/?date_from=2024-05-10&date_to=2024-05-10")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["bill_count"], 1)
        self.assertEqual(Decimal(str(body["total_sales"])), Decimal("100.00"))

    def test_admin_sales_report_covers_everyone(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/reports/sales/?date_from=2024-05-10&date_to=2024-05-10")

        self.assertEqual(response.json()["bill_count"], 3)
        self.assertEqual(Decimal(str(response.json()["total_sales"])), Decimal("280.00"))

        outside = self.client.get("/api/v1/reports/sales/?date_from=2024-05-11&date_to=2024-05-12")
        self.assertEqual(outside.json()["bill_count"], 0)

    def test_cancelled_bills_are_excluded(self):
        Bill.objects.filter(payment_mode="UPI").update(status=Bill.Status.CANCELLED)
        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/reports/sales/")

        self.assertEqual(response.json()["bill_count"], 2)

    def test_daily_collection_splits_by_payment_mode(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.get("/api/v1/reports/daily-collection/?date_from=2024-05-10&date_to=2024-05-10")

        self.assertEqual(response.status_code, 200)
        row = response.json()["results"][0]
        self.assertEqual(row["day"], "2024-05-10")
        self.assertEqual(row["bill_count"], 3)
        self.assertEqual(Decimal(str(row["cash"])), Decimal("100.00"))
        self.assertEqual(Decimal(str(row["upi"])), Decimal("60.00"))
        self.assertEqual(Decimal(str(row["mixed"])), Decimal("120.00"))

    def test_show_wise_collection_is_admin_only(self):
        self.client.force_authenticate(user=self.cashier)

        self.assertEqual(self.client.get("/api/v1/reports/show-wise-collection/?date=2024-05-10").status_code, 403)

    def test_show_wise_collection_buckets_bills(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/reports/show-wise-collection/?date=2024-05-10")

        self.assertEqual(response.status_code, 200)
        slots = {row["slot_name"]: row for row in response.json()["results"]}
        self.assertEqual(slots["Morning"]["bill_count"], 2)
        self.assertEqual(Decimal(str(slots["Morning"]["cash"])), Decimal("100.00"))
        self.assertEqual(Decimal(str(slots["Morning"]["upi"])), Decimal("60.00"))
        self.assertEqual(slots["Matinee"]["bill_count"], 0)
        self.assertEqual(slots["Night"]["bill_count"], 1)
        self.assertEqual(Decimal(str(slots["Night"]["cash"])), Decimal("20.00"))
        self.assertEqual(Decimal(str(slots["Night"]["card"])), Decimal("100.00"))
        self.assertEqual(Decimal(str(slots["Night"]["mixed"])), Decimal("120.00"))

    def test_show_wise_collection_accepts_custom_slots(self):
        self.client.force_authenticate(user=self.admin)
        slots = '[{"name": "All day", "start": "00:00", "end": "23:59"}]'
        response = self.client.get("/api/v1/reports/show-wise-collection/", {"date": "2024-05-10", "slots": slots})

        self.assertEqual(response.json()["results"][0]["bill_count"], 3)

        bad = self.client.get("/api/v1/reports/show-wise-collection/", {"date": "2024-05-10", "slots": "not-json"})
        self.assertEqual(bad.status_code, 400)

    def test_itemwise_and_profit_reports(self):
        self.client.force_authenticate(user=self.admin)

        itemwise = self.client.get("/api/v1/reports/itemwise-sales/").json()["results"]
        self.assertEqual([row["item_name"] for row in itemwise], ["Samosa", "Popcorn"])
        self.assertEqual(Decimal(str(itemwise[0]["quantity"])), Decimal("3.00"))

        profit = self.client.get("/api/v1/reports/profit/").json()
        self.assertEqual(Decimal(str(profit["revenue"])), Decimal("280.00"))
        self.assertEqual(Decimal(str(profit["cost"])), Decimal("40.00"))
        self.assertEqual(Decimal(str(profit["profit"])), Decimal("240.00"))

    def test_userwise_report_is_admin_only(self):
        self.client.force_authenticate(user=self.cashier)
        self.assertEqual(self.client.get("/api/v1/reports/userwise-sales/").status_code, 403)

        self.client.force_authenticate(user=self.admin)
        rows = {row["username"]: row for row in self.client.get("/api/v1/reports/userwise-sales/").json()["results"]}
        self.assertEqual(rows["pos-admin"]["bill_count"], 2)
        self.assertEqual(rows["pos-cashier"]["bill_count"], 1)

    def test_sales_report_csv_export(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/reports/sales/?export=csv")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertEqual(len(response.content.decode().strip().splitlines()), 4)


@unittest.skipUnless(connection.vendor == "postgresql", "row locks need PostgreSQL; set TEST_DATABASE_URL")
class ConcurrentCheckoutTests(TransactionTestCase):
    def test_parallel_bills_never_oversell(self):
        user = get_user_model().objects.create_user(username="rush", password="pass1234", role="cashier")
        product = Product.objects.create(serial_no=1, name="Last Popcorn", price=Decimal("50.00"), current_stock=Decimal("5.00"))
        outcomes = []

        def checkout():
            try:
                create_bill({"items": [{"product": product, "quantity": Decimal("1")}], "payment_mode": "Cash"}, user)
                outcomes.append("ok")
            except InsufficientStockError:
                outcomes.append("short")
            finally:
                connection.close()

        threads = [threading.Thread(target=checkout) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(outcomes.count("ok"), 5)
        self.assertEqual(outcomes.count("short"), 3)
        product.refresh_from_db()
        self.assertEqual(product.current_stock, Decimal("0.00"))
        self.assertEqual(sorted(Bill.objects.values_list("bill_no", flat=True)), [1, 2, 3, 4, 5])
