from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from core.views import AuditedMutationMixin
from inventory import ledger, services
from inventory.models import Accessory, CellularDevice, DeviceConfiguration, Part, SerialDevice, TacCode
from inventory.serializers import (
    AccessorySerializer,
    AccessoryTransactionSerializer,
    CellularDeviceCreateSerializer,
    CellularDeviceSerializer,
    CellularDeviceTransactionSerializer,
    DeviceConfigurationSerializer,
    DeviceUpdateSerializer,
    PartSerializer,
    PartTransactionSerializer,
    QCResultSerializer,
    QuantityAdjustmentSerializer,
    RepairStateSerializer,
    SerialDeviceCreateSerializer,
    SerialDeviceSerializer,
    SerialDeviceTransactionSerializer,
    TacCodeSerializer,
)

DEVICE_PERMISSIONS = {
    "list": "inventory.view",
    "retrieve": "inventory.view",
    "history": "inventory.view",
    "create": "devices.create",
    "partial_update": "devices.manage",
    "qc": "devices.manage",
    "repair": "devices.manage",
}


class DeviceViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """Devices are never deleted or fully replaced; every change goes through the ledger."""

    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = DEVICE_PERMISSIONS
    http_method_names = ["get", "post", "patch", "head", "options"]
    create_serializer_class = None
    history_serializer_class = None
    search_fields = ()
    audit_entity = None

    def get_queryset(self):
        qs = super().get_queryset().order_by("-created_at")
        status_filter = self.request.query_params.get("status")
        search = (self.request.query_params.get("search") or "").strip()
        if status_filter:
            qs = qs.filter(status__in=[value for value in status_filter.split(",") if value])
        if search:
            query = Q()
            for field in self.search_fields:
                query |= Q(**{f"{field}__icontains": search})
            qs = qs.filter(query)
        return qs

    def get_serializer_class(self):
        if self.action == "create":
            return self.create_serializer_class
        if self.action == "partial_update":
            return DeviceUpdateSerializer
        return self.serializer_class

    def _render(self, device, status_code=status.HTTP_200_OK):
        device = self.get_queryset().get(pk=device.pk)
        return Response(self.serializer_class(device, context=self.get_serializer_context()).data, status=status_code)

    def _audit(self, action_name, device, before_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=f"{self.audit_entity}.{action_name}",
            entity=self.audit_entity,
            entity_id=device.pk,
            before_snapshot=before_snapshot,
            after_snapshot=self.serializer_class(device).data,
        )

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        device = serializer.save()
        self._audit("create", device)
        return self._render(device, status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        device = self.get_object()
        before_snapshot = self.serializer_class(device).data
        serializer = DeviceUpdateSerializer(device, data=request.data, partial=True, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        device = serializer.save()
        self._audit("update", device, before_snapshot)
        return self._render(device)

    @action(detail=True, methods=["get"], url_path="history")
    def history(self, request, pk=None):
        device = self.get_object()
        page = self.paginate_queryset(ledger.device_history(device))
        serializer = self.history_serializer_class(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=True, methods=["post"], url_path="qc")
    def qc(self, request, pk=None):
        device = self.get_object()
        serializer = QCResultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        device = services.record_qc_result(
            device,
            qc_status=serializer.validated_data["qc_status"],
            comments=serializer.validated_data["comments"],
            user=request.user,
        )
        self._audit("qc", device)
        return self._render(device)

    @action(detail=True, methods=["post"], url_path="repair")
    def repair(self, request, pk=None):
        device = self.get_object()
        serializer = RepairStateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        device = services.set_repair_state(device, completed=serializer.validated_data["completed"], user=request.user)
        self._audit("repair", device)
        return self._render(device)


class CellularDeviceViewSet(DeviceViewSet):
    queryset = CellularDevice.objects.select_related("tac", "grade", "location", "supplier")
    serializer_class = CellularDeviceSerializer
    create_serializer_class = CellularDeviceCreateSerializer
    history_serializer_class = CellularDeviceTransactionSerializer
    search_fields = ("imei", "tac__model_name", "tac__manufacturer")
    audit_entity = "cellular_device"


class SerialDeviceViewSet(DeviceViewSet):
    queryset = SerialDevice.objects.select_related("manufacturer", "grade", "location", "supplier")
    serializer_class = SerialDeviceSerializer
    create_serializer_class = SerialDeviceCreateSerializer
    history_serializer_class = SerialDeviceTransactionSerializer
    search_fields = ("serial_number", "model_name", "manufacturer__name")
    audit_entity = "serial_device"


class StockItemViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "inventory.view",
        "retrieve": "inventory.view",
        "history": "inventory.view",
        "create": "records.manage",
        "update": "records.manage",
        "partial_update": "records.manage",
        "destroy": "records.manage",
        "adjust": "stock.adjust",
    }
    history_serializer_class = None

    def get_queryset(self):
        qs = super().get_queryset().select_related("manufacturer", "location").order_by("sku")
        search = (self.request.query_params.get("search") or "").strip()
        if search:
            qs = qs.filter(Q(sku__icontains=search) | Q(name__icontains=search))
        return qs

    def perform_create(self, serializer):
        user = self.request.user
        instance = serializer.save(created_by=user, updated_by=user)
        self._audit(action="create", instance=instance, after_snapshot=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        instance = serializer.save(updated_by=self.request.user)
        self._audit(
            action="update",
            instance=instance,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(instance).data,
        )

    def perform_destroy(self, instance):
        if instance.transactions.exists():
            raise ValidationError("Items with ledger history cannot be deleted.")
        super().perform_destroy(instance)

    @action(detail=True, methods=["post"], url_path="adjust")
    def adjust(self, request, pk=None):
        item = self.get_object()
        serializer = QuantityAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        before_snapshot = self.get_serializer(item).data

        options = {
            "user": request.user,
            "transaction_type": data.get("transaction_type"),
            "reference_id": data.get("reference_id"),
            "notes": data.get("notes"),
        }
        if "new_quantity" in data:
            item, entry = services.set_item_quantity(item, data["new_quantity"], quantity=data.get("quantity"), **options)
        else:
            item, entry = services.adjust_item_quantity(item, data["quantity"], **options)

        self._audit(
            action="adjust",
            instance=item,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(item).data,
        )
        return Response(
            {
                "item": self.get_serializer(item).data,
                "transaction": self.history_serializer_class(entry).data if entry else None,
            }
        )

    @action(detail=True, methods=["get"], url_path="history")
    def history(self, request, pk=None):
        item = self.get_object()
        page = self.paginate_queryset(ledger.item_history(item))
        return self.get_paginated_response(self.history_serializer_class(page, many=True).data)


class PartViewSet(StockItemViewSet):
    queryset = Part.objects.all()
    serializer_class = PartSerializer
    history_serializer_class = PartTransactionSerializer
    audit_entity = "part"


class AccessoryViewSet(StockItemViewSet):
    queryset = Accessory.objects.all()
    serializer_class = AccessorySerializer
    history_serializer_class = AccessoryTransactionSerializer
    audit_entity = "accessory"


class TacCodeViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = TacCode.objects.all().order_by("tac_code")
    serializer_class = TacCodeSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "inventory.view",
        "retrieve": "inventory.view",
        "model_names": "inventory.view",
        "create": "devices.create",
    }

    @action(detail=False, methods=["get"], url_path="models")
    def model_names(self, request):
        manufacturer = request.query_params.get("manufacturer")
        if not manufacturer:
            raise ValidationError({"manufacturer": ["This query parameter is required."]})
        return Response({"results": services.search_models(manufacturer, request.query_params.get("search"))})


class DeviceConfigurationViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = DeviceConfiguration.objects.select_related("manufacturer").order_by("manufacturer__name", "model_name")
    serializer_class = DeviceConfigurationSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "inventory.view",
        "retrieve": "inventory.view",
        "lookup": "inventory.view",
        "create": "records.manage",
        "update": "records.manage",
        "partial_update": "records.manage",
        "destroy": "records.manage",
    }
    audit_entity = "device_configuration"

    @action(detail=False, methods=["get"], url_path="lookup")
    def lookup(self, request):
        manufacturer = request.query_params.get("manufacturer")
        model_name = request.query_params.get("model_name")
        if not manufacturer or not model_name:
            raise ValidationError("manufacturer and model_name query parameters are required.")
        configuration = services.lookup_device_configuration(manufacturer, model_name)
        if configuration is None:
            return Response({"available_colors": [], "storage_options": []})
        return Response(self.get_serializer(configuration).data)

