import uuid

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models
from django.db.models import Q

from core.models import Manufacturer, ProductGrade
from inventory.models import QCStatus

po_number_validator = RegexValidator(r"^PO-\d{6}$", "PO number must be in the format PO-XXXXXX (where X is a digit)")


class OrderStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    COMPLETE = "complete", "Complete"
    CANCELLED = "cancelled", "Cancelled"


class Party(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=64, blank=True)
    address_line1 = models.CharField(max_length=255, blank=True)
    address_line2 = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=128, blank=True)
    postcode = models.CharField(max_length=32, blank=True)
    country = models.CharField(max_length=128, blank=True)
    vat_number = models.CharField(max_length=64, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["name"]

    def __str__(self):
        return self.name


class Supplier(Party):
    supplier_code = models.CharField(max_length=64, unique=True)


class Customer(Party):
    customer_code = models.CharField(max_length=64, unique=True)


class PurchaseOrder(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    po_number = models.CharField(max_length=16, unique=True, validators=[po_number_validator])
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name="purchase_orders")
    order_date = models.DateField()
    status = models.CharField(max_length=16, choices=OrderStatus, default=OrderStatus.DRAFT)
    requires_qc = models.BooleanField(default=False)
    requires_repair = models.BooleanField(default=False)
    priority = models.PositiveSmallIntegerField(
        default=3, validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    qc_completed = models.BooleanField(default=False)
    repair_completed = models.BooleanField(default=False)
    purchase_return = models.BooleanField(default=False)
    has_return_tag = models.BooleanField(default=False)
    unit_confirmed = models.BooleanField(default=False)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status", "created_at"], name="po_status_created_idx")]
        constraints = [
            models.CheckConstraint(condition=Q(priority__gte=1) & Q(priority__lte=5), name="po_priority_range"),
        ]

    def __str__(self):
        return self.po_number


class PlannedDevice(models.Model):
    class DeviceType(models.TextChoices):
        CELLULAR = "cellular", "Cellular"
        SERIAL = "serial", "Serial"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name="planned_devices")
    manufacturer = models.ForeignKey(Manufacturer, on_delete=models.PROTECT, related_name="+")
    model_name = models.CharField(max_length=255)
    storage_gb = models.PositiveIntegerField(null=True, blank=True)
    color = models.CharField(max_length=64, blank=True)
    grade = models.ForeignKey(ProductGrade, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    device_type = models.CharField(max_length=16, choices=DeviceType)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gt=0), name="planned_device_quantity_positive"),
        ]


ONE_DEVICE_KIND = (
    Q(cellular_device__isnull=False, serial_device__isnull=True)
    | Q(cellular_device__isnull=True, serial_device__isnull=False)
)


class OrderDeviceLink(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    qc_required = models.BooleanField(default=False)
    qc_completed = models.BooleanField(default=False)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    @property
    def device(self):
        return self.cellular_device or self.serial_device


class PurchaseOrderDevice(OrderDeviceLink):
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name="devices")
    cellular_device = models.ForeignKey(
        "inventory.CellularDevice",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="purchase_order_links",
    )
    serial_device = models.ForeignKey(
        "inventory.SerialDevice",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="purchase_order_links",
    )
    tray_id = models.CharField(max_length=64, blank=True)
    repair_required = models.BooleanField(default=False)
    repair_completed = models.BooleanField(default=False)
    return_tag = models.BooleanField(default=False)
    unit_confirmed = models.BooleanField(default=False)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=ONE_DEVICE_KIND, name="po_device_one_device_kind"),
        ]


class SalesOrder(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=16, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="sales_orders")
    order_date = models.DateField()
    status = models.CharField(max_length=16, choices=OrderStatus, default=OrderStatus.DRAFT)
    tracking_number = models.CharField(max_length=128, blank=True)
    shipping_carrier = models.CharField(max_length=128, blank=True)
    total_boxes = models.PositiveIntegerField(default=0)
    total_pallets = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status", "created_at"], name="so_status_created_idx")]

    def __str__(self):
        return self.order_number


class SalesOrderDevice(OrderDeviceLink):
    sales_order = models.ForeignKey(SalesOrder, on_delete=models.CASCADE, related_name="devices")
    cellular_device = models.ForeignKey(
        "inventory.CellularDevice",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="sales_order_links",
    )
    serial_device = models.ForeignKey(
        "inventory.SerialDevice",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="sales_order_links",
    )
    qc_status = models.CharField(max_length=8, choices=QCStatus, null=True, blank=True)
    qc_comments = models.TextField(blank=True, default="")

    class Meta:
        constraints = [
            models.CheckConstraint(condition=ONE_DEVICE_KIND, name="so_device_one_device_kind"),
        ]
