import csv

from django.http import HttpResponse
from django.utils.dateparse import parse_datetime
from rest_framework import generics, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.views import TokenObtainPairView

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from core.models import AuditLog, Manufacturer, ProductGrade, StorageLocation
from core.serializers import (
    AuditLogSerializer,
    EmailOrUsernameTokenObtainPairSerializer,
    ManufacturerSerializer,
    ProductGradeSerializer,
    StorageLocationSerializer,
    UserRegistrationSerializer,
)


READ_CAPABILITIES = {"list": "inventory.view", "retrieve": "inventory.view"}
RECORD_WRITE_CAPABILITIES = {
    "create": "records.manage",
    "update": "records.manage",
    "partial_update": "records.manage",
    "destroy": "records.manage",
}


class AuditedMutationMixin:
    """Write an admin audit log row for every create/update/destroy."""

    audit_entity = None

    def _audit(self, *, action, instance, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=f"{self.audit_entity}.{action}",
            entity=self.audit_entity,
            entity_id=instance.pk,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
        )

    def perform_create(self, serializer):
        instance = serializer.save()
        self._audit(action="create", instance=instance, after_snapshot=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        instance = serializer.save()
        self._audit(
            action="update",
            instance=instance,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(instance).data,
        )

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        self._audit(action="delete", instance=instance, before_snapshot=before_snapshot)
        instance.delete()


class RegisterView(generics.CreateAPIView):
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]

    def perform_create(self, serializer):
        user = serializer.save()
        create_audit_log_from_request(
            self.request,
            action="user.create",
            entity="user",
            entity_id=user.id,
            after_snapshot={
                "id": str(user.id),
                "username": user.username,
                "email": user.email,
                "role": user.role,
            },
        )


class EmailOrUsernameTokenObtainPairView(TokenObtainPairView):
    serializer_class = EmailOrUsernameTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class ManufacturerViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Manufacturer.objects.all()
    serializer_class = ManufacturerSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {**READ_CAPABILITIES, **RECORD_WRITE_CAPABILITIES}
    audit_entity = "manufacturer"


class StorageLocationViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = StorageLocation.objects.all()
    serializer_class = StorageLocationSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {**READ_CAPABILITIES, **RECORD_WRITE_CAPABILITIES}
    audit_entity = "storage_location"

    def perform_create(self, serializer):
        instance = serializer.save(created_by=self.request.user)
        self._audit(action="create", instance=instance, after_snapshot=self.get_serializer(instance).data)


class ProductGradeViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = ProductGrade.objects.all()
    serializer_class = ProductGradeSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {**READ_CAPABILITIES, **RECORD_WRITE_CAPABILITIES}
    audit_entity = "product_grade"
    pagination_class = None


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.select_related("actor")
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "audit.view", "retrieve": "audit.view", "export": "audit.view"}

    def get_queryset(self):
        qs = self.queryset.order_by("-created_at")

        start_date = self.request.query_params.get("start_date")
        end_date = self.request.query_params.get("end_date")
        actor_id = self.request.query_params.get("actor_id")
        action_name = self.request.query_params.get("action")
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
        if action_name:
            qs = qs.filter(action=action_name)
        if entity:
            qs = qs.filter(entity=entity)

        return qs

    @action(detail=False, methods=["get"], url_path="export")
    def export(self, request):
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="audit-logs.csv"'

        writer = csv.writer(response)
        writer.writerow(["id", "created_at", "actor", "action", "entity", "entity_id", "request_id"])
        for log in self.get_queryset():
            writer.writerow(
                [
                    log.id,
                    log.created_at.isoformat(),
                    getattr(log.actor, "username", ""),
                    log.action,
                    log.entity,
                    log.entity_id,
                    log.request_id,
                ]
            )
        return response
