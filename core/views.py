import logging

from django.contrib.auth import get_user_model
from django.utils.dateparse import parse_datetime
from rest_framework import viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from core.models import AuditLog, BusinessSettings
from core.serializers import (
    AuditLogSerializer,
    BusinessSettingsSerializer,
    EmailOrUsernameTokenObtainPairSerializer,
    UserSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


class EmailOrUsernameTokenObtainPairView(TokenObtainPairView):
    serializer_class = EmailOrUsernameTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user).data)


class UserViewSet(viewsets.ModelViewSet):
    queryset = User.objects.all().order_by("username")
    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        action: "user.manage" for action in ["list", "retrieve", "create", "update", "partial_update", "destroy"]
    }

    def perform_create(self, serializer):
        user = serializer.save()
        create_audit_log_from_request(
            self.request,
            action="user.create",
            entity="user",
            entity_id=user.id,
            after_snapshot={"id": str(user.id), "username": user.username, "role": user.role},
        )

    def perform_update(self, serializer):
        before_snapshot = {"username": serializer.instance.username, "role": serializer.instance.role, "is_active": serializer.instance.is_active}
        user = serializer.save()
        create_audit_log_from_request(
            self.request,
            action="user.update",
            entity="user",
            entity_id=user.id,
            before_snapshot=before_snapshot,
            after_snapshot={"username": user.username, "role": user.role, "is_active": user.is_active},
        )

    def perform_destroy(self, instance):
        if instance.pk == self.request.user.pk:
            raise ValidationError("You cannot delete your own account.")
        if instance.bills.exists():
            instance.is_active = False
            instance.save(update_fields=["is_active"])
            action = "user.deactivate"
        else:
            instance.delete()
            action = "user.delete"
        create_audit_log_from_request(
            self.request,
            action=action,
            entity="user",
            entity_id=instance.id,
            before_snapshot={"username": instance.username, "role": instance.role},
        )


class BusinessSettingsView(APIView):
    permission_classes = [AllowAny, RoleCapabilityPermission]
    permission_action_map = {"put": "settings.manage", "patch": "settings.manage"}

    def get(self, request):
        return Response(BusinessSettingsSerializer(BusinessSettings.load()).data)

    def put(self, request):
        return self._update(request, partial=False)

    def patch(self, request):
        return self._update(request, partial=True)

    def _update(self, request, partial):
        instance = BusinessSettings.load()
        before_snapshot = BusinessSettingsSerializer(instance).data
        serializer = BusinessSettingsSerializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        instance = serializer.save(updated_by=request.user)
        after_snapshot = BusinessSettingsSerializer(instance).data
        create_audit_log_from_request(
            request,
            action="settings.update",
            entity="business_settings",
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
        )
        logger.info("business_settings_updated user=%s", request.user.username)
        return Response(after_snapshot)


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.select_related("actor")
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "admin.records.manage", "retrieve": "admin.records.manage"}

    def get_queryset(self):
        qs = self.queryset.order_by("-created_at")

        start_date = self.request.query_params.get("start_date")
        end_date = self.request.query_params.get("end_date")
        actor_id = self.request.query_params.get("actor_id")
        action = self.request.query_params.get("action")
        entity = self.request.query_params.get("entity")

        if start_date:
            dt = parse_datetime(start_date)
            if dt:
                qs = qs.filter(created_at__gte=dt)
        if end_date:
            dt = parse_datetime(end_date)
            if dt:
                qs = qs.filter(created_at__lte=dt)
        if actor_id:
            qs = qs.filter(actor_id=actor_id)
        if action:
            qs = qs.filter(action=action)
        if entity:
            qs = qs.filter(entity=entity)

        return qs
