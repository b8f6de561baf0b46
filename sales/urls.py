from django.urls import path
from rest_framework.routers import DefaultRouter

from sales.reports import (
    DailyCollectionReportView,
    ItemwiseSalesReportView,
    ProfitReportView,
    SalesReportView,
    ShowWiseCollectionReportView,
    UserwiseSalesReportView,
)
from sales.views import BillViewSet, OrderViewSet

router = DefaultRouter()
router.register(r"orders", OrderViewSet, basename="order")
router.register(r"bills", BillViewSet, basename="bill")

urlpatterns = router.urls + [
    path("reports/sales/", SalesReportView.as_view(), name="report-sales"),
    path("reports/itemwise-sales/", ItemwiseSalesReportView.as_view(), name="report-itemwise-sales"),
    path("reports/userwise-sales/", UserwiseSalesReportView.as_view(), name="report-userwise-sales"),
    path("reports/daily-collection/", DailyCollectionReportView.as_view(), name="report-daily-collection"),
    path("reports/show-wise-collection/", ShowWiseCollectionReportView.as_view(), name="report-show-wise-collection"),
    path("reports/profit/", ProfitReportView.as_view(), name="report-profit"),
]
