from django.utils import timezone
from rest_framework import serializers

from core.models import ProductGrade
from inventory.models import CellularDevice, DeviceStatus, SerialDevice
from orders import services
from orders.models import (
    Customer,
    OrderStatus,
    PlannedDevice,
    PurchaseOrder,
    PurchaseOrderDevice,
    SalesOrder,
    SalesOrderDevice,
    Supplier,
)

PARTY_FIELDS = [
    "id",
    "name",
    "email",
    "phone",
    "address_line1",
    "address_line2",
    "city",
    "postcode",
    "country",
    "vat_number",
    "created_by",
    "created_at",
    "updated_at",
]


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = PARTY_FIELDS + ["supplier_code"]
        read_only_fields = ["id", "created_by", "created_at", "updated_at"]


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = PARTY_FIELDS + ["customer_code"]
        read_only_fields = ["id", "customer_code", "created_by", "created_at", "updated_at"]

    def create(self, validated_data):
        validated_data["customer_code"] = services.next_customer_code()
        return super().create(validated_data)


class PlannedDeviceSerializer(serializers.ModelSerializer):
    manufacturer_name = serializers.CharField(source="manufacturer.name", read_only=True)

    class Meta:
        model = PlannedDevice
        fields = ["id", "device_type", "manufacturer", "manufacturer_name", "model_name", "storage_gb", "color", "grade", "quantity"]
        read_only_fields = fields


class OrderDeviceSerializer(serializers.ModelSerializer):
    device_kind = serializers.SerializerMethodField()
    device_id = serializers.SerializerMethodField()
    identifier = serializers.CharField(source="device.identifier", read_only=True)
    manufacturer = serializers.CharField(source="device.manufacturer_name", read_only=True)
    model_name = serializers.CharField(source="device.model_label", read_only=True)
    status = serializers.CharField(source="device.status", read_only=True)

    def get_device_kind(self, obj):
        return obj.device.kind

    def get_device_id(self, obj):
        return str(obj.device.pk)


class PurchaseOrderDeviceSerializer(OrderDeviceSerializer):
    class Meta:
        model = PurchaseOrderDevice
        fields = [
            "id",
            "device_kind",
            "device_id",
            "identifier",
            "manufacturer",
            "model_name",
            "status",
            "tray_id",
            "qc_required",
            "qc_completed",
            "repair_required",
            "repair_completed",
            "return_tag",
            "unit_confirmed",
            "created_at",
        ]
        read_only_fields = fields


class SalesOrderDeviceSerializer(OrderDeviceSerializer):
    class Meta:
        model = SalesOrderDevice
        fields = [
            "id",
            "device_kind",
            "device_id",
            "identifier",
            "manufacturer",
            "model_name",
            "status",
            "qc_required",
            "qc_completed",
            "qc_status",
            "qc_comments",
            "created_at",
        ]
        read_only_fields = fields


class PurchaseOrderSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    planned_devices = PlannedDeviceSerializer(many=True, read_only=True)
    devices = PurchaseOrderDeviceSerializer(many=True, read_only=True)

    class Meta:
        model = PurchaseOrder
        fields = [
            "id",
            "po_number",
            "supplier",
            "supplier_name",
            "order_date",
            "status",
            "requires_qc",
            "requires_repair",
            "priority",
            "qc_completed",
            "repair_completed",
            "purchase_return",
            "has_return_tag",
            "unit_confirmed",
            "notes",
            "planned_devices",
            "devices",
            "created_by",
            "updated_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "status", "created_by", "updated_by", "created_at", "updated_at"]
        extra_kwargs = {"order_date": {"required": False}}

    def validate_po_number(self, value):
        try:
            return services.validate_po_number(value)
        except serializers.ValidationError as exc:
            raise serializers.ValidationError(exc.detail["po_number"]) from exc

    def validate_priority(self, value):
        if not 1 <= value <= 5:
            raise serializers.ValidationError("Priority must be between 1 and 5.")
        return value

    def create(self, validated_data):
        validated_data.setdefault("order_date", timezone.localdate())
        return super().create(validated_data)


class BookedDeviceSerializer(serializers.Serializer):
    device_type = serializers.ChoiceField(choices=PlannedDevice.DeviceType.choices, default=PlannedDevice.DeviceType.CELLULAR)
    identifier = serializers.CharField(max_length=128)
    manufacturer = serializers.CharField()
    model_name = serializers.CharField(max_length=255)
    storage_gb = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    color = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    grade = serializers.PrimaryKeyRelatedField(queryset=ProductGrade.objects.all(), required=False, allow_null=True)
    tray_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")

    def validate(self, attrs):
        grade = attrs.pop("grade", None)
        attrs["grade_id"] = grade.pk if grade else None
        return attrs


class PurchaseOrderBookingSerializer(serializers.Serializer):
    devices = BookedDeviceSerializer(many=True, allow_empty=True)


class SalesOrderSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source="customer.name", read_only=True)
    devices = SalesOrderDeviceSerializer(many=True, read_only=True)

    class Meta:
        model = SalesOrder
        fields = [
            "id",
            "order_number",
            "customer",
            "customer_name",
            "order_date",
            "status",
            "tracking_number",
            "shipping_carrier",
            "total_boxes",
            "total_pallets",
            "notes",
            "devices",
            "created_by",
            "updated_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "order_number", "status", "created_by", "updated_by", "created_at", "updated_at"]
        extra_kwargs = {"order_date": {"required": False}}

    def create(self, validated_data):
        validated_data.setdefault("order_date", timezone.localdate())
        validated_data["order_number"] = services.next_sales_order_number()
        validated_data["status"] = OrderStatus.DRAFT
        return super().create(validated_data)


class SalesOrderDeviceSelectionSerializer(serializers.Serializer):
    cellular_devices = serializers.PrimaryKeyRelatedField(
        queryset=CellularDevice.objects.select_related("tac"), many=True, required=False
    )
    serial_devices = serializers.PrimaryKeyRelatedField(
        queryset=SerialDevice.objects.select_related("manufacturer"), many=True, required=False
    )

    def validate(self, attrs):
        # A device listed twice is only sold once.
        devices = list(dict.fromkeys([*attrs.get("cellular_devices", []), *attrs.get("serial_devices", [])]))
        not_in_stock = [device.identifier for device in devices if device.status != DeviceStatus.IN_STOCK]
        if not_in_stock:
            raise serializers.ValidationError({"devices": f"Devices not in stock: {', '.join(not_in_stock)}"})
        attrs["devices"] = devices
        return attrs


class ShipmentIdentifierSerializer(serializers.Serializer):
    identifier = serializers.CharField(required=False, allow_blank=True, default="")


class SalesOrderSubmitSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(max_length=128, required=False, allow_blank=True)
    shipping_carrier = serializers.CharField(max_length=128, required=False, allow_blank=True)
    total_boxes = serializers.IntegerField(min_value=0, required=False)
    total_pallets = serializers.IntegerField(min_value=0, required=False)


class GoodsInSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    device_count = serializers.IntegerField(read_only=True)
    planned_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = PurchaseOrder
        fields = ["id", "po_number", "supplier", "supplier_name", "order_date", "status", "priority", "device_count", "planned_count"]
        read_only_fields = fields
