from rest_framework import serializers

from core.models import ProductGrade, StorageLocation
from inventory import services
from inventory.models import (
    Accessory,
    AccessoryTransaction,
    CellularDevice,
    CellularDeviceTransaction,
    DeviceConfiguration,
    DeviceStatus,
    Part,
    PartTransaction,
    QCStatus,
    SerialDevice,
    SerialDeviceTransaction,
    TacCode,
    TransactionType,
)
from orders.models import Supplier

DEVICE_STATE_FIELDS = [
    "color",
    "grade",
    "grade_label",
    "status",
    "location",
    "location_code",
    "supplier",
    "qc_required",
    "qc_completed",
    "qc_status",
    "qc_comments",
    "repair_required",
    "repair_completed",
    "created_by",
    "updated_by",
    "created_at",
    "updated_at",
]


class TacCodeSerializer(serializers.ModelSerializer):
    class Meta:
        model = TacCode
        fields = ["id", "tac_code", "manufacturer", "model_name", "model_no", "manufacturer_code", "created_at"]
        read_only_fields = ["id", "created_at"]


class DeviceConfigurationSerializer(serializers.ModelSerializer):
    manufacturer_name = serializers.CharField(source="manufacturer.name", read_only=True)

    class Meta:
        model = DeviceConfiguration
        fields = [
            "id",
            "manufacturer",
            "manufacturer_name",
            "model_name",
            "release_year",
            "available_colors",
            "storage_options",
        ]
        read_only_fields = ["id"]

    def validate_available_colors(self, value):
        return _string_list(value, "available_colors")

    def validate_storage_options(self, value):
        if not isinstance(value, list) or not all(isinstance(item, int) and item > 0 for item in value):
            raise serializers.ValidationError("Storage options must be a list of positive integers (GB).")
        return sorted(set(value))


def _string_list(value, field_name):
    if not isinstance(value, list) or not all(isinstance(item, str) and item.strip() for item in value):
        raise serializers.ValidationError(f"{field_name} must be a list of non-empty strings.")
    return [item.strip() for item in value]


class DeviceSerializer(serializers.ModelSerializer):
    grade_label = serializers.CharField(source="grade.grade", read_only=True, default=None)
    location_code = serializers.CharField(source="location.location_code", read_only=True, default=None)
    kind = serializers.CharField(read_only=True)
    identifier = serializers.CharField(read_only=True)


class CellularDeviceSerializer(DeviceSerializer):
    manufacturer = serializers.CharField(source="tac.manufacturer", read_only=True)
    model_name = serializers.CharField(source="tac.model_name", read_only=True)
    tac_code = serializers.CharField(source="tac.tac_code", read_only=True)

    class Meta:
        model = CellularDevice
        fields = ["id", "kind", "identifier", "imei", "tac", "tac_code", "manufacturer", "model_name", "storage_gb"] + DEVICE_STATE_FIELDS
        read_only_fields = fields


class SerialDeviceSerializer(DeviceSerializer):
    manufacturer_name = serializers.CharField(source="manufacturer.name", read_only=True)

    class Meta:
        model = SerialDevice
        fields = ["id", "kind", "identifier", "serial_number", "manufacturer", "manufacturer_name", "model_name"] + DEVICE_STATE_FIELDS
        read_only_fields = fields


class DeviceCreateSerializer(serializers.Serializer):
    manufacturer = serializers.CharField()
    model_name = serializers.CharField(max_length=255)
    color = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    grade = serializers.PrimaryKeyRelatedField(queryset=ProductGrade.objects.all(), required=False, allow_null=True)
    location = serializers.PrimaryKeyRelatedField(queryset=StorageLocation.objects.all(), required=False, allow_null=True)
    supplier = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.all(), required=False, allow_null=True)
    status = serializers.ChoiceField(choices=DeviceStatus.choices, default=DeviceStatus.IN_STOCK)
    qc_required = serializers.BooleanField(default=False)
    repair_required = serializers.BooleanField(default=False)

    def _device_attrs(self):
        attrs = dict(self.validated_data)
        attrs.pop("manufacturer")
        attrs.pop("model_name")
        return {key: value for key, value in attrs.items() if value is not None}


class CellularDeviceCreateSerializer(DeviceCreateSerializer):
    imei = serializers.CharField(max_length=32)
    storage_gb = serializers.IntegerField(min_value=1, required=False, allow_null=True)

    def validate_imei(self, value):
        try:
            return services.validate_imei(value)
        except serializers.ValidationError as exc:
            raise serializers.ValidationError(exc.detail["imei"]) from exc

    def create(self, validated_data):
        attrs = self._device_attrs()
        attrs.pop("imei")
        return services.create_cellular_device(
            imei=validated_data["imei"],
            manufacturer=validated_data["manufacturer"],
            model_name=validated_data["model_name"],
            user=self.context["request"].user,
            **attrs,
        )


class SerialDeviceCreateSerializer(DeviceCreateSerializer):
    serial_number = serializers.CharField(max_length=128)

    def create(self, validated_data):
        attrs = self._device_attrs()
        attrs.pop("serial_number")
        return services.create_serial_device(
            serial_number=validated_data["serial_number"],
            manufacturer=validated_data["manufacturer"],
            model_name=validated_data["model_name"],
            user=self.context["request"].user,
            **attrs,
        )


class DeviceUpdateSerializer(serializers.Serializer):
    """Partial device update routed through the ledger-writing service."""

    status = serializers.ChoiceField(choices=DeviceStatus.choices, required=False)
    color = serializers.CharField(max_length=64, required=False, allow_blank=True)
    grade = serializers.PrimaryKeyRelatedField(queryset=ProductGrade.objects.all(), required=False, allow_null=True)
    location = serializers.PrimaryKeyRelatedField(queryset=StorageLocation.objects.all(), required=False, allow_null=True)
    supplier = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.all(), required=False, allow_null=True)
    storage_gb = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    qc_required = serializers.BooleanField(required=False)
    qc_completed = serializers.BooleanField(required=False)
    qc_status = serializers.ChoiceField(choices=QCStatus.choices, required=False, allow_null=True)
    qc_comments = serializers.CharField(required=False, allow_blank=True)
    repair_required = serializers.BooleanField(required=False)
    repair_completed = serializers.BooleanField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("No changes supplied.")
        if "storage_gb" in attrs and not isinstance(self.instance, CellularDevice):
            raise serializers.ValidationError({"storage_gb": "Only cellular devices record storage."})
        return attrs

    def update(self, instance, validated_data):
        return services.update_device(instance, validated_data, user=self.context["request"].user)


class QCResultSerializer(serializers.Serializer):
    qc_status = serializers.ChoiceField(choices=QCStatus.choices)
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class RepairStateSerializer(serializers.Serializer):
    completed = serializers.BooleanField()


class DeviceTransactionSerializer(serializers.ModelSerializer):
    created_by_name = serializers.CharField(source="created_by.display_name", read_only=True)
    operation = serializers.CharField(read_only=True)

    class Meta:
        fields = [
            "id",
            "sequence",
            "device",
            "transaction_type",
            "operation",
            "reference_id",
            "previous_status",
            "new_status",
            "notes",
            "created_by",
            "created_by_name",
            "created_at",
        ]
        read_only_fields = fields


class CellularDeviceTransactionSerializer(DeviceTransactionSerializer):
    class Meta(DeviceTransactionSerializer.Meta):
        model = CellularDeviceTransaction


class SerialDeviceTransactionSerializer(DeviceTransactionSerializer):
    class Meta(DeviceTransactionSerializer.Meta):
        model = SerialDeviceTransaction


STOCK_ITEM_FIELDS = [
    "id",
    "sku",
    "manufacturer",
    "manufacturer_name",
    "name",
    "description",
    "quantity",
    "location",
    "created_by",
    "updated_by",
    "created_at",
    "updated_at",
]


class StockItemSerializer(serializers.ModelSerializer):
    manufacturer_name = serializers.CharField(source="manufacturer.name", read_only=True)

    def get_fields(self):
        fields = super().get_fields()
        # Quantity only moves through the ledger once the item exists.
        if self.instance is not None:
            fields["quantity"].read_only = True
        return fields

    def validate_quantity(self, value):
        if value < 0:
            raise serializers.ValidationError("Quantity cannot be negative.")
        return value


class PartSerializer(StockItemSerializer):
    class Meta:
        model = Part
        fields = STOCK_ITEM_FIELDS + ["color"]
        read_only_fields = ["id", "created_by", "updated_by", "created_at", "updated_at"]


class AccessorySerializer(StockItemSerializer):
    class Meta:
        model = Accessory
        fields = STOCK_ITEM_FIELDS
        read_only_fields = ["id", "created_by", "updated_by", "created_at", "updated_at"]


class QuantityAdjustmentSerializer(serializers.Serializer):
    """Either an absolute `new_quantity` or a signed `quantity` delta (or both)."""

    new_quantity = serializers.IntegerField(required=False)
    quantity = serializers.IntegerField(required=False)
    transaction_type = serializers.ChoiceField(choices=TransactionType.choices, required=False)
    reference_id = serializers.UUIDField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if "new_quantity" not in attrs and "quantity" not in attrs:
            raise serializers.ValidationError("Provide new_quantity or quantity.")
        return attrs


class QuantityTransactionSerializer(serializers.ModelSerializer):
    created_by_name = serializers.CharField(source="created_by.display_name", read_only=True)

    class Meta:
        fields = [
            "id",
            "sequence",
            "transaction_type",
            "reference_id",
            "quantity",
            "previous_quantity",
            "new_quantity",
            "notes",
            "created_by",
            "created_by_name",
            "created_at",
        ]
        read_only_fields = fields


class PartTransactionSerializer(QuantityTransactionSerializer):
    class Meta(QuantityTransactionSerializer.Meta):
        model = PartTransaction
        fields = QuantityTransactionSerializer.Meta.fields + ["part"]
        read_only_fields = fields


class AccessoryTransactionSerializer(QuantityTransactionSerializer):
    class Meta(QuantityTransactionSerializer.Meta):
        model = AccessoryTransaction
        fields = QuantityTransactionSerializer.Meta.fields + ["accessory"]
        read_only_fields = fields
