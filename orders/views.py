from rest_framework import generics, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.permissions import RoleCapabilityPermission
from core.views import AuditedMutationMixin
from orders import services
from orders.models import Customer, OrderStatus, PurchaseOrder, SalesOrder, Supplier
from orders.serializers import (
    CustomerSerializer,
    GoodsInSerializer,
    PurchaseOrderBookingSerializer,
    PurchaseOrderDeviceSerializer,
    PurchaseOrderSerializer,
    SalesOrderDeviceSelectionSerializer,
    SalesOrderDeviceSerializer,
    SalesOrderSerializer,
    SalesOrderSubmitSerializer,
    ShipmentIdentifierSerializer,
    SupplierSerializer,
)

PARTY_PERMISSIONS = {
    "list": "orders.view",
    "retrieve": "orders.view",
    "create": "records.manage",
    "update": "records.manage",
    "partial_update": "records.manage",
    "destroy": "records.manage",
}

ORDER_PERMISSIONS = {
    "list": "orders.view",
    "retrieve": "orders.view",
    "create": "orders.create",
    "update": "orders.manage",
    "partial_update": "orders.manage",
    "destroy": "orders.manage",
}


class PartyViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = PARTY_PERMISSIONS

    def get_queryset(self):
        qs = super().get_queryset()
        search = (self.request.query_params.get("search") or "").strip()
        if search:
            qs = qs.filter(name__icontains=search)
        return qs

    def perform_create(self, serializer):
        instance = serializer.save(created_by=self.request.user)
        self._audit(action="create", instance=instance, after_snapshot=self.get_serializer(instance).data)

    def perform_destroy(self, instance):
        if self._has_orders(instance):
            raise ValidationError(f"{instance.name} has orders and cannot be deleted.")
        super().perform_destroy(instance)


class SupplierViewSet(PartyViewSet):
    queryset = Supplier.objects.all()
    serializer_class = SupplierSerializer
    audit_entity = "supplier"

    def _has_orders(self, instance):
        return instance.purchase_orders.exists()


class CustomerViewSet(PartyViewSet):
    queryset = Customer.objects.all()
    serializer_class = CustomerSerializer
    audit_entity = "customer"

    def _has_orders(self, instance):
        return instance.sales_orders.exists()


class OrderViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]

    def get_queryset(self):
        qs = super().get_queryset()
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status__in=[value for value in status_filter.split(",") if value])
        return qs

    def perform_create(self, serializer):
        user = self.request.user
        instance = serializer.save(created_by=user, updated_by=user)
        self._audit(action="create", instance=instance, after_snapshot=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        if serializer.instance.status != OrderStatus.DRAFT:
            raise ValidationError("Only draft orders can be edited.")
        before_snapshot = self.get_serializer(serializer.instance).data
        instance = serializer.save(updated_by=self.request.user)
        self._audit(
            action="update",
            instance=instance,
            before_snapshot=before_snapshot,
            after_snapshot=self.get_serializer(instance).data,
        )

    def perform_destroy(self, instance):
        if instance.devices.exists():
            raise ValidationError("Orders with devices cannot be deleted.")
        super().perform_destroy(instance)

    def _refreshed(self, order):
        return self.get_serializer(self.get_queryset().get(pk=order.pk)).data


class PurchaseOrderViewSet(OrderViewSet):
    queryset = PurchaseOrder.objects.select_related("supplier").prefetch_related(
        "planned_devices__manufacturer",
        "devices__cellular_device__tac",
        "devices__serial_device__manufacturer",
    )
    serializer_class = PurchaseOrderSerializer
    permission_action_map = {**ORDER_PERMISSIONS, "devices": "devices.create", "confirm": "orders.manage"}
    audit_entity = "purchase_order"

    @action(detail=True, methods=["post"], url_path="devices")
    def devices(self, request, pk=None):
        purchase_order = self.get_object()
        serializer = PurchaseOrderBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        devices = services.book_devices_into_purchase_order(
            purchase_order, serializer.validated_data["devices"], user=request.user
        )
        self._audit(
            action="book_devices",
            instance=purchase_order,
            after_snapshot={"devices": [device.identifier for device in devices]},
        )
        links = purchase_order.devices.select_related("cellular_device__tac", "serial_device__manufacturer")
        return Response(PurchaseOrderDeviceSerializer(links, many=True).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="confirm")
    def confirm(self, request, pk=None):
        purchase_order = self.get_object()
        before_snapshot = {"status": purchase_order.status}
        purchase_order = services.confirm_purchase_order(purchase_order, user=request.user)
        self._audit(
            action="confirm",
            instance=purchase_order,
            before_snapshot=before_snapshot,
            after_snapshot={"status": purchase_order.status},
        )
        return Response(self._refreshed(purchase_order))


class SalesOrderViewSet(OrderViewSet):
    queryset = SalesOrder.objects.select_related("customer").prefetch_related(
        "devices__cellular_device__tac",
        "devices__serial_device__manufacturer",
    )
    serializer_class = SalesOrderSerializer
    permission_action_map = {
        **ORDER_PERMISSIONS,
        "devices": "orders.create",
        "confirm_identifier": "orders.view",
        "submit": "orders.create",
        "return_device": "orders.manage",
    }
    audit_entity = "sales_order"

    @action(detail=True, methods=["post"], url_path="devices")
    def devices(self, request, pk=None):
        sales_order = self.get_object()
        serializer = SalesOrderDeviceSelectionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        links = services.add_devices_to_sales_order(
            sales_order, serializer.validated_data["devices"], user=request.user
        )
        self._audit(
            action="add_devices",
            instance=sales_order,
            after_snapshot={"devices": [link.device.identifier for link in links]},
        )
        links = sales_order.devices.select_related("cellular_device__tac", "serial_device__manufacturer").filter(
            pk__in=[link.pk for link in links]
        )
        return Response(SalesOrderDeviceSerializer(links, many=True).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="confirm-identifier")
    def confirm_identifier(self, request, pk=None):
        sales_order = self.get_object()
        serializer = ShipmentIdentifierSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(services.confirm_shipment_identifier(sales_order, serializer.validated_data["identifier"]))

    @action(detail=True, methods=["post"], url_path="submit")
    def submit(self, request, pk=None):
        sales_order = self.get_object()
        serializer = SalesOrderSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        before_snapshot = {"status": sales_order.status}
        sales_order = services.submit_sales_order(sales_order, serializer.validated_data, user=request.user)
        self._audit(
            action="submit",
            instance=sales_order,
            before_snapshot=before_snapshot,
            after_snapshot={"status": sales_order.status, "tracking_number": sales_order.tracking_number},
        )
        return Response(self._refreshed(sales_order))

    @action(detail=True, methods=["post"], url_path=r"devices/(?P<link_id>[^/.]+)/return")
    def return_device(self, request, pk=None, link_id=None):
        sales_order = self.get_object()
        link = sales_order.devices.select_related("cellular_device__tac", "serial_device__manufacturer").filter(pk=link_id).first()
        if link is None:
            raise ValidationError({"link_id": ["Device is not on this sales order."]})
        device = services.return_sales_order_device(link, user=request.user)
        self._audit(
            action="return_device",
            instance=sales_order,
            after_snapshot={"device": device.identifier, "status": device.status},
        )
        link.refresh_from_db()
        return Response(SalesOrderDeviceSerializer(link).data)


class GoodsInView(generics.ListAPIView):
    """Purchase orders with booked vs planned device counts."""

    serializer_class = GoodsInSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "orders.view"}

    def get_queryset(self):
        qs = services.goods_in_summary().order_by("-created_at")
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        return qs
