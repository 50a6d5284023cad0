import uuid

from django.conf import settings
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from django.db.models import F, Q
from django.db.models.functions import Abs

from core.models import Manufacturer, ProductGrade, StorageLocation

imei_validator = RegexValidator(r"^[0-9]{15}$", "IMEI must be exactly 15 digits")
tac_validator = RegexValidator(r"^[0-9]{8}$", "TAC code must be exactly 8 digits")


class DeviceStatus(models.TextChoices):
    IN_STOCK = "in_stock", "In stock"
    SOLD = "sold", "Sold"
    RETURNED = "returned", "Returned"
    QUARANTINE = "quarantine", "Quarantine"
    REPAIR = "repair", "Repair"
    QC_REQUIRED = "qc_required", "QC required"
    QC_FAILED = "qc_failed", "QC failed"


class TransactionType(models.TextChoices):
    PURCHASE = "purchase", "Purchase"
    SALE = "sale", "Sale"
    RETURN_IN = "return_in", "Return in"
    RETURN_OUT = "return_out", "Return out"
    REPAIR = "repair", "Repair"
    QC = "qc", "QC"
    TRANSFER = "transfer", "Transfer"


class QCStatus(models.TextChoices):
    PASS = "pass", "Pass"
    FAIL = "fail", "Fail"


class TacCode(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tac_code = models.CharField(max_length=8, unique=True, validators=[tac_validator])
    manufacturer = models.CharField(max_length=128)
    model_name = models.CharField(max_length=255)
    model_no = models.CharField(max_length=128, blank=True)
    manufacturer_code = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=["manufacturer", "model_name"], name="tac_manufacturer_model_idx")]

    def __str__(self):
        return f"{self.tac_code} {self.manufacturer} {self.model_name}"


class DeviceConfiguration(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    manufacturer = models.ForeignKey(Manufacturer, on_delete=models.CASCADE, related_name="configurations")
    model_name = models.CharField(max_length=255)
    release_year = models.PositiveSmallIntegerField(null=True, blank=True)
    available_colors = models.JSONField(default=list, blank=True)
    storage_options = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["manufacturer", "model_name"], name="uniq_device_configuration_model"),
        ]


class Device(models.Model):
    """Fields shared by cellular and serial devices."""

    kind = None

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    color = models.CharField(max_length=64, blank=True)
    grade = models.ForeignKey(ProductGrade, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    status = models.CharField(max_length=16, choices=DeviceStatus, default=DeviceStatus.IN_STOCK)
    location = models.ForeignKey(StorageLocation, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    supplier = models.ForeignKey("orders.Supplier", on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    qc_required = models.BooleanField(default=False)
    qc_completed = models.BooleanField(default=False)
    qc_status = models.CharField(max_length=8, choices=QCStatus, null=True, blank=True)
    qc_comments = models.TextField(blank=True, default="")
    repair_required = models.BooleanField(default=False)
    repair_completed = models.BooleanField(default=False)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    @property
    def identifier(self):
        raise NotImplementedError

    @property
    def manufacturer_name(self):
        raise NotImplementedError

    @property
    def model_label(self):
        raise NotImplementedError

    def __str__(self):
        return f"{self.manufacturer_name} {self.model_label} ({self.identifier})"


class CellularDevice(Device):
    kind = "cellular"

    imei = models.CharField(max_length=15, unique=True, validators=[imei_validator])
    tac = models.ForeignKey(TacCode, on_delete=models.PROTECT, related_name="devices")
    storage_gb = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="cellular_status_idx"),
            models.Index(fields=["created_at"], name="cellular_created_idx"),
        ]

    @property
    def identifier(self):
        return self.imei

    @property
    def manufacturer_name(self):
        return self.tac.manufacturer

    @property
    def model_label(self):
        return self.tac.model_name


class SerialDevice(Device):
    kind = "serial"

    serial_number = models.CharField(max_length=128, unique=True)
    manufacturer = models.ForeignKey(Manufacturer, on_delete=models.PROTECT, related_name="serial_devices")
    model_name = models.CharField(max_length=255)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="serial_status_idx"),
            models.Index(fields=["created_at"], name="serial_created_idx"),
        ]

    @property
    def identifier(self):
        return self.serial_number

    @property
    def manufacturer_name(self):
        return self.manufacturer.name

    @property
    def model_label(self):
        return self.model_name


class StockItem(models.Model):
    """Quantity-tracked stock (parts and accessories)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sku = models.CharField(max_length=64, unique=True)
    manufacturer = models.ForeignKey(Manufacturer, on_delete=models.PROTECT, related_name="+")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    quantity = models.IntegerField(default=0, validators=[MinValueValidator(0)])
    location = models.ForeignKey(StorageLocation, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def __str__(self):
        return f"{self.sku} {self.name}"


class Part(StockItem):
    color = models.CharField(max_length=64, blank=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gte=0), name="part_quantity_non_negative"),
        ]


class Accessory(StockItem):
    class Meta:
        verbose_name_plural = "accessories"
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gte=0), name="accessory_quantity_non_negative"),
        ]


class LedgerImmutableError(Exception):
    """Raised when code tries to rewrite or remove a ledger row."""


class LedgerQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise LedgerImmutableError("Ledger rows cannot be updated.")

    def delete(self):
        raise LedgerImmutableError("Ledger rows cannot be deleted.")


class LedgerEntry(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    transaction_type = models.CharField(max_length=16, choices=TransactionType)
    reference_id = models.UUIDField()
    notes = models.TextField(null=True, blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    # Position in the owning device's or item's ledger, starting at 1.
    sequence = models.PositiveIntegerField(editable=False)

    objects = LedgerQuerySet.as_manager()

    class Meta:
        abstract = True
        ordering = ["-created_at", "-sequence"]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LedgerImmutableError("Ledger rows cannot be updated.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerImmutableError("Ledger rows cannot be deleted.")


class DeviceLedgerEntry(LedgerEntry):
    previous_status = models.CharField(max_length=16, choices=DeviceStatus, null=True, blank=True)
    new_status = models.CharField(max_length=16, choices=DeviceStatus)

    class Meta(LedgerEntry.Meta):
        abstract = True

    @property
    def operation(self):
        return f"{self.transaction_type.replace('_', ' ')} ({self.previous_status or 'new'} → {self.new_status})"


class CellularDeviceTransaction(DeviceLedgerEntry):
    device = models.ForeignKey(CellularDevice, on_delete=models.PROTECT, related_name="transactions")

    class Meta(DeviceLedgerEntry.Meta):
        indexes = [models.Index(fields=["device", "created_at"], name="cellular_txn_device_idx")]
        constraints = [models.UniqueConstraint(fields=["device", "sequence"], name="cellular_txn_device_sequence_uniq")]


class SerialDeviceTransaction(DeviceLedgerEntry):
    device = models.ForeignKey(SerialDevice, on_delete=models.PROTECT, related_name="transactions")

    class Meta(DeviceLedgerEntry.Meta):
        indexes = [models.Index(fields=["device", "created_at"], name="serial_txn_device_idx")]
        constraints = [models.UniqueConstraint(fields=["device", "sequence"], name="serial_txn_device_sequence_uniq")]


class QuantityLedgerEntry(LedgerEntry):
    quantity = models.PositiveIntegerField()
    previous_quantity = models.IntegerField()
    new_quantity = models.IntegerField()

    class Meta(LedgerEntry.Meta):
        abstract = True


class PartTransaction(QuantityLedgerEntry):
    part = models.ForeignKey(Part, on_delete=models.PROTECT, related_name="transactions")

    class Meta(QuantityLedgerEntry.Meta):
        indexes = [models.Index(fields=["part", "created_at"], name="part_txn_part_idx")]
        constraints = [
            models.UniqueConstraint(fields=["part", "sequence"], name="part_txn_part_sequence_uniq"),
            models.CheckConstraint(
                condition=Q(previous_quantity__gte=0) & Q(new_quantity__gte=0),
                name="part_txn_quantities_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(quantity=Abs(F("new_quantity") - F("previous_quantity"))),
                name="part_txn_quantity_matches_delta",
            ),
        ]


class AccessoryTransaction(QuantityLedgerEntry):
    accessory = models.ForeignKey(Accessory, on_delete=models.PROTECT, related_name="transactions")

    class Meta(QuantityLedgerEntry.Meta):
        indexes = [models.Index(fields=["accessory", "created_at"], name="accessory_txn_item_idx")]
        constraints = [
            models.UniqueConstraint(fields=["accessory", "sequence"], name="accessory_txn_accessory_sequence_uniq"),
            models.CheckConstraint(
                condition=Q(previous_quantity__gte=0) & Q(new_quantity__gte=0),
                name="accessory_txn_quantities_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(quantity=Abs(F("new_quantity") - F("previous_quantity"))),
                name="accessory_txn_quantity_matches_delta",
            ),
        ]
