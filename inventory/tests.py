import uuid
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import AuditLog
from inventory.models import Category, Product, Purchase, ReadyItem, StockLedger, Supplier


class InventoryTestMixin:
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(username="inv-admin", password="pass1234", role="admin")
        self.cashier = self.user_model.objects.create_user(username="inv-cashier", password="pass1234", role="cashier")

        self.snacks = Category.objects.create(code="snk", name="Snacks", display_order=1)
        self.puff = Product.objects.create(
            serial_no=1,
            name="Veg Puff",
            category=self.snacks,
            price=Decimal("35.00"),
            cost_price=Decimal("15.00"),
            current_stock=Decimal("5.00"),
            min_stock_alert=Decimal("5.00"),
        )
        self.tea = Product.objects.create(serial_no=2, name="Masala Chai", category=self.snacks, price=Decimal("30.00"))
        self.hidden = Product.objects.create(serial_no=3, name="Old Combo", category=self.snacks, price=Decimal("99.00"), is_active=False)


class CatalogApiTests(InventoryTestMixin, TestCase):
    def test_category_code_is_uppercased_on_save(self):
        self.assertEqual(Category.objects.get(pk=self.snacks.pk).code, "SNK")

    def test_anonymous_menu_hides_inactive_products_and_costs(self):
        response = self.client.get("/api/v1/products/")

        self.assertEqual(response.status_code, 200)
        rows = response.json()["results"]
        names = {row["name"] for row in rows}
        self.assertEqual(names, {"Veg Puff", "Masala Chai"})
        self.assertNotIn("cost_price", rows[0])
        self.assertTrue(all(row["is_available"] for row in rows))

    def test_staff_list_can_filter_inactive_and_search(self):
        self.client.force_authenticate(user=self.cashier)

        inactive = self.client.get("/api/v1/products/?is_active=false")
        self.assertEqual([row["name"] for row in inactive.json()["results"]], ["Old Combo"])

        search = self.client.get("/api/v1/products/?search=chai")
        self.assertEqual([row["name"] for row in search.json()["results"]], ["Masala Chai"])

        by_category = self.client.get("/api/v1/products/?category=snk&is_active=true")
        self.assertEqual(by_category.json()["count"], 2)

        # Staff listings include inactive rows unless is_active is given.
        all_snacks = self.client.get("/api/v1/products/?category=snk")
        self.assertEqual(all_snacks.json()["count"], 3)

    def test_anonymous_cannot_create_product(self):
        response = self.client.post("/api/v1/products/", {"name": "Nachos", "price": "150.00"}, format="json")

        self.assertEqual(response.status_code, 401)

    def test_cashier_cannot_create_product(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.post("/api/v1/products/", {"name": "Nachos", "price": "150.00"}, format="json")

        self.assertEqual(response.status_code, 403)

    def test_admin_create_with_opening_stock_writes_ledger(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            "/api/v1/products/",
            {"name": "Nachos", "price": "150.00", "cost_price": "55.00", "category": str(self.snacks.id), "current_stock": "12", "code": "nch"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["current_stock"], "12.00")
        self.assertEqual(body["code"], "NCH")
        self.assertNotIn(body["serial_no"], {1, 2, 3})

        entry = StockLedger.objects.get(product_id=body["id"])
        self.assertEqual(entry.transaction_type, StockLedger.TransactionType.ADJUSTMENT)
        self.assertEqual(entry.quantity, Decimal("12.00"))
        self.assertEqual(entry.balance_qty, Decimal("12.00"))
        self.assertEqual(entry.remarks, "Opening stock")
        self.assertTrue(AuditLog.objects.filter(action="product.create", entity_id=body["id"]).exists())

    def test_admin_create_without_stock_is_untracked(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post("/api/v1/products/", {"name": "Cold Coffee", "price": "90.00"}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.json()["current_stock"])
        self.assertFalse(response.json()["is_stock_tracked"])
        self.assertFalse(StockLedger.objects.filter(product_id=response.json()["id"]).exists())

    def test_duplicate_serial_number_is_rejected(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post("/api/v1/products/", {"name": "Clash", "price": "10.00", "serial_no": 1}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("serial_no", response.json()["errors"])

    def test_update_ignores_current_stock(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.patch(f"/api/v1/products/{self.puff.id}/", {"current_stock": "100", "price": "40.00"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.puff.refresh_from_db()
        self.assertEqual(self.puff.current_stock, Decimal("5.00"))
        self.assertEqual(self.puff.price, Decimal("40.00"))

    def test_low_stock_lists_tracked_products_at_or_below_alert(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.get("/api/v1/products/low-stock/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["name"] for row in response.json()], ["Veg Puff"])

    def test_category_with_products_cannot_be_deleted(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(f"/api/v1/categories/{self.snacks.id}/")

        self.assertEqual(response.status_code, 400)
        self.assertTrue(Category.objects.filter(pk=self.snacks.pk).exists())

    def test_category_counts_only_active_products(self):
        response = self.client.get("/api/v1/categories/?with_counts=true")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["results"][0]["product_count"], 2)


class StockAdjustmentTests(InventoryTestMixin, TestCase):
    def test_cashier_cannot_adjust_stock(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.put(f"/api/v1/products/{self.puff.id}/stock/", {"quantity": "3"}, format="json")

        self.assertEqual(response.status_code, 403)

    def test_positive_adjustment_adds_stock(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.put(f"/api/v1/products/{self.puff.id}/stock/", {"quantity": "3", "remarks": "Recount"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["current_stock"], "8.00")
        entry = StockLedger.objects.get(product=self.puff)
        self.assertEqual(entry.quantity, Decimal("3.00"))
        self.assertEqual(entry.balance_qty, Decimal("8.00"))
        self.assertEqual(entry.created_by, self.admin)

    def test_adjustment_below_zero_is_rejected_without_override(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.put(f"/api/v1/products/{self.puff.id}/stock/", {"quantity": "-8"}, format="json")

        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body["code"], "insufficient_stock")
        self.assertEqual(body["errors"][0]["available"], "5.00")
        self.puff.refresh_from_db()
        self.assertEqual(self.puff.current_stock, Decimal("5.00"))
        self.assertFalse(StockLedger.objects.filter(product=self.puff).exists())

    def test_override_clamps_to_zero_and_records_written_off_quantity(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.put(
            f"/api/v1/products/{self.puff.id}/stock/",
            {"quantity": "-8", "override": True, "remarks": "Damaged"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["current_stock"], "0.00")
        entry = StockLedger.objects.get(product=self.puff)
        self.assertEqual(entry.quantity, Decimal("-5.00"))
        self.assertEqual(entry.balance_qty, Decimal("0.00"))

    def test_zero_adjustment_is_invalid(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.put(f"/api/v1/products/{self.puff.id}/stock/", {"quantity": "0"}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_ledger_endpoint_and_append_only_rows(self):
        self.client.force_authenticate(user=self.admin)
        self.client.put(f"/api/v1/products/{self.puff.id}/stock/", {"quantity": "2"}, format="json")

        response = self.client.get(f"/api/v1/products/{self.puff.id}/ledger/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)

        entry = StockLedger.objects.get(product=self.puff)
        entry.remarks = "edited"
        with self.assertRaises(ValueError):
            entry.save()
        with self.assertRaises(ValueError):
            entry.delete()


class PurchaseApiTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.supplier = Supplier.objects.create(name="City Distributor", mobile="9123456780")

    def _purchase_payload(self, **overrides):
        payload = {
            "supplier": str(self.supplier.id),
            "invoice_no": "CD-77",
            "cgst_percent": "9",
            "sgst_percent": "9",
            "paid_amount": "100.00",
            "lines": [
                {"product": str(self.puff.id), "quantity": "10", "rate": "20.00"},
                {"item_name": "Milk", "item_type": "Raw Material", "quantity": "5", "unit": "Liter", "rate": "40.00"},
            ],
        }
        payload.update(overrides)
        return payload

    def test_cashier_cannot_record_purchases(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.post("/api/v1/purchases/", self._purchase_payload(), format="json")

        self.assertEqual(response.status_code, 403)

    def test_purchase_computes_gst_restocks_products_and_updates_supplier(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post("/api/v1/purchases/", self._purchase_payload(), format="json")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["purchase_no"], "PUR000001")
        self.assertEqual(body["invoice_amount"], "400.00")
        self.assertEqual(body["gst_amount"], "72.00")
        self.assertEqual(body["total_amount"], "472.00")
        self.assertEqual(body["pending_amount"], "372.00")
        self.assertEqual(body["payment_status"], Purchase.PaymentStatus.PARTIAL)

        self.puff.refresh_from_db()
        self.assertEqual(self.puff.current_stock, Decimal("15.00"))
        entry = StockLedger.objects.get(product=self.puff)
        self.assertEqual(entry.transaction_type, StockLedger.TransactionType.PURCHASE)
        self.assertEqual(entry.reference_no, "PUR000001")

        self.supplier.refresh_from_db()
        self.assertEqual(self.supplier.total_purchased, Decimal("472.00"))
        self.assertEqual(self.supplier.total_pending, Decimal("372.00"))

    def test_local_purchase_ignores_gst(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post("/api/v1/purchases/", self._purchase_payload(is_local_purchase=True), format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["gst_amount"], "0.00")
        self.assertEqual(response.json()["total_amount"], "400.00")

    def test_overpayment_is_rejected_and_nothing_is_stored(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post("/api/v1/purchases/", self._purchase_payload(paid_amount="1000.00"), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertFalse(Purchase.objects.exists())
        self.puff.refresh_from_db()
        self.assertEqual(self.puff.current_stock, Decimal("5.00"))

    def test_line_without_product_needs_item_name(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            "/api/v1/purchases/",
            self._purchase_payload(lines=[{"quantity": "1", "rate": "10.00"}]),
            format="json",
        )

        self.assertEqual(response.status_code, 400)

    def test_payment_update_settles_purchase_and_supplier(self):
        self.client.force_authenticate(user=self.admin)
        purchase_id = self.client.post("/api/v1/purchases/", self._purchase_payload(), format="json").json()["id"]

        response = self.client.patch(f"/api/v1/purchases/{purchase_id}/payment/", {"paid_amount": "472.00"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payment_status"], Purchase.PaymentStatus.PAID)
        self.supplier.refresh_from_db()
        self.assertEqual(self.supplier.total_pending, Decimal("0.00"))

        too_much = self.client.patch(f"/api/v1/purchases/{purchase_id}/payment/", {"paid_amount": "500.00"}, format="json")
        self.assertEqual(too_much.status_code, 400)

    def test_supplier_mobile_must_have_ten_digits(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post("/api/v1/suppliers/", {"name": "Bad Phone", "mobile": "12345"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("mobile", response.json()["errors"])

    def test_supplier_with_purchases_cannot_be_deleted(self):
        self.client.force_authenticate(user=self.admin)
        self.client.post("/api/v1/purchases/", self._purchase_payload(), format="json")

        response = self.client.delete(f"/api/v1/suppliers/{self.supplier.id}/")

        self.assertEqual(response.status_code, 400)


class ReadyItemApiTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.samosa = ReadyItem.objects.create(
            item_name="Samosa",
            category=self.snacks,
            default_quantity=Decimal("6"),
            cost_price=Decimal("8.00"),
            selling_price=Decimal("20.00"),
        )
        self.linked = ReadyItem.objects.create(item_name="Veg Puff", product=self.puff, default_quantity=Decimal("10"))

    def test_add_stock_creates_and_links_product_for_new_item(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.post("/api/v1/ready-items/add-stock/", {"ready_item": str(self.samosa.id)}, format="json")

        self.assertEqual(response.status_code, 201)
        self.samosa.refresh_from_db()
        self.assertIsNotNone(self.samosa.product)
        self.assertEqual(self.samosa.product.name, "Samosa")
        self.assertEqual(self.samosa.product.price, Decimal("20.00"))
        self.assertEqual(self.samosa.product.current_stock, Decimal("6.00"))

    def test_add_stock_with_explicit_quantity_uses_linked_product(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.post(
            "/api/v1/ready-items/add-stock/",
            {"ready_item": str(self.linked.id), "quantity": "4"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.puff.refresh_from_db()
        self.assertEqual(self.puff.current_stock, Decimal("9.00"))

    def test_bulk_add_reports_successes_and_failures(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.post(
            "/api/v1/ready-items/bulk-add-stock/",
            {"items": [{"ready_item": str(self.linked.id), "quantity": "2"}, {"ready_item": str(uuid.uuid4())}]},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(len(body["successful"]), 1)
        self.assertEqual(len(body["failed"]), 1)
        self.assertEqual(body["failed"][0]["error"], "Ready item not found.")
        self.puff.refresh_from_db()
        self.assertEqual(self.puff.current_stock, Decimal("7.00"))

    def test_inactive_ready_item_cannot_be_restocked(self):
        self.samosa.is_active = False
        self.samosa.save()
        self.client.force_authenticate(user=self.cashier)
        response = self.client.post("/api/v1/ready-items/add-stock/", {"ready_item": str(self.samosa.id)}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_cashier_cannot_create_ready_item(self):
        self.client.force_authenticate(user=self.cashier)
        response = self.client.post("/api/v1/ready-items/", {"item_name": "Cookie"}, format="json")

        self.assertEqual(response.status_code, 403)


class InventoryReportTests(InventoryTestMixin, TestCase):
    def test_stock_report_is_admin_only(self):
        self.client.force_authenticate(user=self.cashier)
        self.assertEqual(self.client.get("/api/v1/reports/stock/").status_code, 403)

    def test_stock_report_values_tracked_stock_at_cost(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/reports/stock/")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["product_count"], 2)
        self.assertEqual(body["low_stock_count"], 1)
        self.assertEqual(Decimal(str(body["total_stock_value"])), Decimal("75.00"))

    def test_stock_report_csv_export(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/reports/stock/?export=csv")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertIn("serial_no,name,category", response.content.decode())

    def test_report_rejects_half_open_date_range(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/reports/purchase-summary/?date_from=2024-01-01")

        self.assertEqual(response.status_code, 400)
        self.assertIn("date_range", response.json()["errors"])
