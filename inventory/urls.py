from django.urls import path
from rest_framework.routers import DefaultRouter

from inventory.reports import PurchaseSummaryReportView, StockLedgerReportView, StockReportView, SupplierReportView
from inventory.views import CategoryViewSet, ProductViewSet, PurchaseViewSet, ReadyItemViewSet, SupplierViewSet

router = DefaultRouter()
router.register(r"categories", CategoryViewSet, basename="category")
router.register(r"products", ProductViewSet, basename="product")
router.register(r"suppliers", SupplierViewSet, basename="supplier")
router.register(r"purchases", PurchaseViewSet, basename="purchase")
router.register(r"ready-items", ReadyItemViewSet, basename="ready-item")

urlpatterns = router.urls + [
    path("reports/stock/", StockReportView.as_view(), name="report-stock"),
    path("reports/stock-ledger/", StockLedgerReportView.as_view(), name="report-stock-ledger"),
    path("reports/purchase-summary/", PurchaseSummaryReportView.as_view(), name="report-purchase-summary"),
    path("reports/supplier/", SupplierReportView.as_view(), name="report-supplier"),
]
