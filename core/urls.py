from django.urls import path
from rest_framework.routers import DefaultRouter

from core.views import AuditLogViewSet, BusinessSettingsView, MeView, UserViewSet

router = DefaultRouter()
router.register(r"users", UserViewSet, basename="user")
router.register(r"admin/audit-logs", AuditLogViewSet, basename="audit-log")

urlpatterns = router.urls + [
    path("me/", MeView.as_view(), name="me"),
    path("settings/", BusinessSettingsView.as_view(), name="business-settings"),
]
