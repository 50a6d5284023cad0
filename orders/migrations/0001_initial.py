import uuid

import django.core.validators
import django.db.models.deletion
import orders.models
from django.conf import settings
from django.db import migrations, models

ORDER_STATUS_CHOICES = [
    ("draft", "Draft"),
    ("pending", "Pending"),
    ("confirmed", "Confirmed"),
    ("processing", "Processing"),
    ("complete", "Complete"),
    ("cancelled", "Cancelled"),
]

ONE_DEVICE_KIND = models.Q(
    models.Q(("cellular_device__isnull", False), ("serial_device__isnull", True)),
    models.Q(("cellular_device__isnull", True), ("serial_device__isnull", False)),
    _connector="OR",
)


def _user_fk(on_delete=django.db.models.deletion.PROTECT, **kwargs):
    return models.ForeignKey(on_delete=on_delete, related_name="+", to=settings.AUTH_USER_MODEL, **kwargs)


def _party_fields(code_field):
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("name", models.CharField(max_length=255)),
        ("email", models.EmailField(blank=True, max_length=254)),
        ("phone", models.CharField(blank=True, max_length=64)),
        ("address_line1", models.CharField(blank=True, max_length=255)),
        ("address_line2", models.CharField(blank=True, max_length=255)),
        ("city", models.CharField(blank=True, max_length=128)),
        ("postcode", models.CharField(blank=True, max_length=32)),
        ("country", models.CharField(blank=True, max_length=128)),
        ("vat_number", models.CharField(blank=True, max_length=64)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        (code_field, models.CharField(max_length=64, unique=True)),
        ("created_by", _user_fk(django.db.models.deletion.SET_NULL, blank=True, null=True)),
    ]


def _link_fields():
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("qc_required", models.BooleanField(default=False)),
        ("qc_completed", models.BooleanField(default=False)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        ("created_by", _user_fk()),
        ("updated_by", _user_fk()),
    ]


def _device_fk(to, on_delete, related_name):
    return models.ForeignKey(blank=True, null=True, on_delete=on_delete, related_name=related_name, to=to)


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("inventory", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Supplier",
            fields=_party_fields("supplier_code"),
            options={"ordering": ["name"], "abstract": False},
        ),
        migrations.CreateModel(
            name="Customer",
            fields=_party_fields("customer_code"),
            options={"ordering": ["name"], "abstract": False},
        ),
        migrations.CreateModel(
            name="PurchaseOrder",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("po_number", models.CharField(max_length=16, unique=True, validators=[orders.models.po_number_validator])),
                ("order_date", models.DateField()),
                ("status", models.CharField(choices=ORDER_STATUS_CHOICES, default="draft", max_length=16)),
                ("requires_qc", models.BooleanField(default=False)),
                ("requires_repair", models.BooleanField(default=False)),
                (
                    "priority",
                    models.PositiveSmallIntegerField(
                        default=3,
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(5),
                        ],
                    ),
                ),
                ("qc_completed", models.BooleanField(default=False)),
                ("repair_completed", models.BooleanField(default=False)),
                ("purchase_return", models.BooleanField(default=False)),
                ("has_return_tag", models.BooleanField(default=False)),
                ("unit_confirmed", models.BooleanField(default=False)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", _user_fk()),
                ("updated_by", _user_fk()),
                (
                    "supplier",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchase_orders",
                        to="orders.supplier",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "created_at"], name="po_status_created_idx")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("priority__gte", 1), ("priority__lte", 5)),
                        name="po_priority_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PlannedDevice",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("model_name", models.CharField(max_length=255)),
                ("storage_gb", models.PositiveIntegerField(blank=True, null=True)),
                ("color", models.CharField(blank=True, max_length=64)),
                (
                    "quantity",
                    models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("device_type", models.CharField(choices=[("cellular", "Cellular"), ("serial", "Serial")], max_length=16)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", _user_fk()),
                (
                    "grade",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="core.productgrade",
                    ),
                ),
                (
                    "manufacturer",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="core.manufacturer"),
                ),
                (
                    "purchase_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="planned_devices",
                        to="orders.purchaseorder",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="planned_device_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PurchaseOrderDevice",
            fields=_link_fields()
            + [
                ("tray_id", models.CharField(blank=True, max_length=64)),
                ("repair_required", models.BooleanField(default=False)),
                ("repair_completed", models.BooleanField(default=False)),
                ("return_tag", models.BooleanField(default=False)),
                ("unit_confirmed", models.BooleanField(default=False)),
                (
                    "purchase_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="devices",
                        to="orders.purchaseorder",
                    ),
                ),
                (
                    "cellular_device",
                    _device_fk("inventory.cellulardevice", django.db.models.deletion.CASCADE, "purchase_order_links"),
                ),
                (
                    "serial_device",
                    _device_fk("inventory.serialdevice", django.db.models.deletion.CASCADE, "purchase_order_links"),
                ),
            ],
            options={
                "abstract": False,
                "constraints": [models.CheckConstraint(condition=ONE_DEVICE_KIND, name="po_device_one_device_kind")],
            },
        ),
        migrations.CreateModel(
            name="SalesOrder",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_number", models.CharField(max_length=16, unique=True)),
                ("order_date", models.DateField()),
                ("status", models.CharField(choices=ORDER_STATUS_CHOICES, default="draft", max_length=16)),
                ("tracking_number", models.CharField(blank=True, max_length=128)),
                ("shipping_carrier", models.CharField(blank=True, max_length=128)),
                ("total_boxes", models.PositiveIntegerField(default=0)),
                ("total_pallets", models.PositiveIntegerField(default=0)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", _user_fk()),
                ("updated_by", _user_fk()),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales_orders",
                        to="orders.customer",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "created_at"], name="so_status_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="SalesOrderDevice",
            fields=_link_fields()
            + [
                ("qc_status", models.CharField(blank=True, choices=[("pass", "Pass"), ("fail", "Fail")], max_length=8, null=True)),
                ("qc_comments", models.TextField(blank=True, default="")),
                (
                    "sales_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="devices",
                        to="orders.salesorder",
                    ),
                ),
                (
                    "cellular_device",
                    _device_fk("inventory.cellulardevice", django.db.models.deletion.PROTECT, "sales_order_links"),
                ),
                (
                    "serial_device",
                    _device_fk("inventory.serialdevice", django.db.models.deletion.PROTECT, "sales_order_links"),
                ),
            ],
            options={
                "abstract": False,
                "constraints": [models.CheckConstraint(condition=ONE_DEVICE_KIND, name="so_device_one_device_kind")],
            },
        ),
    ]
