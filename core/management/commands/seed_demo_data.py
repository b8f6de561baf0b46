from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from core.models import BusinessSettings
from inventory.models import Category, Product, ReadyItem, Supplier, Unit
from inventory.services import create_product, create_purchase

CATEGORIES = [
    ("BEV", "Beverages", 1),
    ("SNK", "Snacks", 2),
    ("POP", "Popcorn", 3),
]

PRODUCTS = [
    # (category code, name, unit, price, cost, opening stock, min alert, popular)
    ("BEV", "Masala Chai", Unit.CUP, "30.00", "8.00", None, None, True),
    ("BEV", "Cold Coffee", Unit.CUP, "90.00", "35.00", None, None, True),
    ("BEV", "Mineral Water 500ml", Unit.BOTTLE, "20.00", "9.00", "48", "12", False),
    ("BEV", "Cola 300ml", Unit.BOTTLE, "40.00", "22.00", "36", "10", True),
    ("SNK", "Veg Puff", Unit.PIECE, "35.00", "15.00", "20", "5", False),
    ("SNK", "Nachos with Salsa", Unit.TRAY, "150.00", "55.00", "15", "5", True),
    ("POP", "Salted Popcorn Regular", Unit.TUB, "120.00", "30.00", None, None, True),
    ("POP", "Caramel Popcorn Large", Unit.LARGE, "220.00", "60.00", None, None, False),
]


class Command(BaseCommand):
    help = "Seed demo users, shop settings, catalog, a supplier purchase and ready items for local development."

    def _user(self, username, password, **defaults):
        User = get_user_model()
        user, created = User.objects.get_or_create(username=username, defaults=defaults)
        if created:
            user.set_password(password)
            user.save(update_fields=["password"])
        return user

    @transaction.atomic
    def handle(self, *args, **options):
        User = get_user_model()
        admin_user = self._user(
            "admin",
            "admin1234",
            email="admin@example.com",
            role=User.Role.ADMIN,
            is_staff=True,
            is_superuser=True,
        )
        self._user("cashier", "cashier1234", email="cashier@example.com", role=User.Role.CASHIER, first_name="Counter")

        settings = BusinessSettings.load()
        if settings.shop_name == BusinessSettings._meta.get_field("shop_name").default:
            settings.shop_name = "Screen One Cafe"
            settings.shop_address = "Ground Floor, Multiplex"
            settings.shop_mobile = "9876543210"
            settings.gst_enabled = True
            settings.updated_by = admin_user
            settings.save()

        categories = {}
        for code, name, order in CATEGORIES:
            categories[code], _ = Category.objects.get_or_create(
                code=code,
                defaults={"name": name, "display_order": order, "created_by": admin_user},
            )

        products = {}
        for index, (category_code, name, unit, price, cost, stock, min_alert, popular) in enumerate(PRODUCTS, start=1):
            product = Product.objects.filter(name=name).first()
            if product is None:
                payload = {
                    "name": name,
                    "category": categories[category_code],
                    "unit": unit,
                    "price": Decimal(price),
                    "cost_price": Decimal(cost),
                    "min_stock_alert": Decimal(min_alert) if min_alert else None,
                    "is_popular": popular,
                    "display_order": index,
                }
                if stock is not None:
                    payload["current_stock"] = Decimal(stock)
                product = create_product(payload, user=admin_user)
            products[name] = product

        supplier, supplier_created = Supplier.objects.get_or_create(
            mobile="9123456780",
            defaults={"name": "City Beverages Distributor", "contact_person": "R. Mehta", "city": "Pune"},
        )
        if supplier_created:
            create_purchase(
                {
                    "supplier": supplier,
                    "invoice_no": "CBD-1001",
                    "cgst_percent": Decimal("9"),
                    "sgst_percent": Decimal("9"),
                    "paid_amount": Decimal("500.00"),
                    "lines": [
                        {"product": products["Cola 300ml"], "quantity": Decimal("24"), "rate": Decimal("22.00")},
                        {"item_name": "Milk", "item_type": "Raw Material", "quantity": Decimal("10"), "unit": Unit.LITER, "rate": Decimal("56.00")},
                    ],
                },
                user=admin_user,
            )

        for order, (name, category_code, quantity) in enumerate([("Veg Puff", "SNK", "12"), ("Mineral Water 500ml", "BEV", "24")], start=1):
            product = products[name]
            ReadyItem.objects.get_or_create(
                item_name=name,
                defaults={
                    "product": product,
                    "category": categories[category_code],
                    "unit": product.unit,
                    "default_quantity": Decimal(quantity),
                    "cost_price": product.cost_price,
                    "selling_price": product.price,
                    "display_order": order,
                    "created_by": admin_user,
                },
            )

        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully."))
        self.stdout.write("Credentials: admin/admin1234, cashier/cashier1234")
        self.stdout.write(f"Shop: {settings.shop_name} | Products: {Product.objects.count()} | Supplier: {supplier.name}")
