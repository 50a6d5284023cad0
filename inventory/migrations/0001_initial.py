import uuid

import django.core.validators
import django.db.models.deletion
import django.db.models.functions.math
import inventory.models
from django.conf import settings
from django.db import migrations, models

DEVICE_STATUS_CHOICES = [
    ("in_stock", "In stock"),
    ("sold", "Sold"),
    ("returned", "Returned"),
    ("quarantine", "Quarantine"),
    ("repair", "Repair"),
    ("qc_required", "QC required"),
    ("qc_failed", "QC failed"),
]

TRANSACTION_TYPE_CHOICES = [
    ("purchase", "Purchase"),
    ("sale", "Sale"),
    ("return_in", "Return in"),
    ("return_out", "Return out"),
    ("repair", "Repair"),
    ("qc", "QC"),
    ("transfer", "Transfer"),
]

QC_STATUS_CHOICES = [("pass", "Pass"), ("fail", "Fail")]


def _user_fk(on_delete=django.db.models.deletion.PROTECT):
    return models.ForeignKey(on_delete=on_delete, related_name="+", to=settings.AUTH_USER_MODEL)


def _device_fields():
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("color", models.CharField(blank=True, max_length=64)),
        ("status", models.CharField(choices=DEVICE_STATUS_CHOICES, default="in_stock", max_length=16)),
        ("qc_required", models.BooleanField(default=False)),
        ("qc_completed", models.BooleanField(default=False)),
        ("qc_status", models.CharField(blank=True, choices=QC_STATUS_CHOICES, max_length=8, null=True)),
        ("qc_comments", models.TextField(blank=True, default="")),
        ("repair_required", models.BooleanField(default=False)),
        ("repair_completed", models.BooleanField(default=False)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        ("created_by", _user_fk()),
        ("updated_by", _user_fk()),
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
            "location",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="+",
                to="core.storagelocation",
            ),
        ),
    ]


def _stock_item_fields():
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("sku", models.CharField(max_length=64, unique=True)),
        ("name", models.CharField(max_length=255)),
        ("description", models.TextField(blank=True)),
        ("quantity", models.IntegerField(default=0, validators=[django.core.validators.MinValueValidator(0)])),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        ("created_by", _user_fk()),
        ("updated_by", _user_fk()),
        (
            "manufacturer",
            models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="+", to="core.manufacturer"),
        ),
        (
            "location",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="+",
                to="core.storagelocation",
            ),
        ),
    ]


def _device_ledger_fields(device_model):
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("transaction_type", models.CharField(choices=TRANSACTION_TYPE_CHOICES, max_length=16)),
        ("reference_id", models.UUIDField()),
        ("notes", models.TextField(blank=True, null=True)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("previous_status", models.CharField(blank=True, choices=DEVICE_STATUS_CHOICES, max_length=16, null=True)),
        ("new_status", models.CharField(choices=DEVICE_STATUS_CHOICES, max_length=16)),
        ("created_by", _user_fk()),
        (
            "device",
            models.ForeignKey(
                on_delete=django.db.models.deletion.PROTECT,
                related_name="transactions",
                to=device_model,
            ),
        ),
    ]


def _quantity_ledger_fields(item_field, item_model):
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("transaction_type", models.CharField(choices=TRANSACTION_TYPE_CHOICES, max_length=16)),
        ("reference_id", models.UUIDField()),
        ("notes", models.TextField(blank=True, null=True)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("quantity", models.PositiveIntegerField()),
        ("previous_quantity", models.IntegerField()),
        ("new_quantity", models.IntegerField()),
        ("created_by", _user_fk()),
        (
            item_field,
            models.ForeignKey(
                on_delete=django.db.models.deletion.PROTECT,
                related_name="transactions",
                to=item_model,
            ),
        ),
    ]


def _quantity_constraints(prefix):
    return [
        models.CheckConstraint(
            condition=models.Q(("previous_quantity__gte", 0), ("new_quantity__gte", 0)),
            name=f"{prefix}_txn_quantities_non_negative",
        ),
        models.CheckConstraint(
            condition=models.Q(
                (
                    "quantity",
                    django.db.models.functions.math.Abs(
                        models.F("new_quantity") - models.F("previous_quantity")
                    ),
                )
            ),
            name=f"{prefix}_txn_quantity_matches_delta",
        ),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="TacCode",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tac_code", models.CharField(max_length=8, unique=True, validators=[inventory.models.tac_validator])),
                ("manufacturer", models.CharField(max_length=128)),
                ("model_name", models.CharField(max_length=255)),
                ("model_no", models.CharField(blank=True, max_length=128)),
                ("manufacturer_code", models.CharField(blank=True, max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [models.Index(fields=["manufacturer", "model_name"], name="tac_manufacturer_model_idx")],
            },
        ),
        migrations.CreateModel(
            name="DeviceConfiguration",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("model_name", models.CharField(max_length=255)),
                ("release_year", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("available_colors", models.JSONField(blank=True, default=list)),
                ("storage_options", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "manufacturer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="configurations",
                        to="core.manufacturer",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("manufacturer", "model_name"), name="uniq_device_configuration_model"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CellularDevice",
            fields=_device_fields()
            + [
                ("imei", models.CharField(max_length=15, unique=True, validators=[inventory.models.imei_validator])),
                ("storage_gb", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "tac",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="devices",
                        to="inventory.taccode",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status"], name="cellular_status_idx"),
                    models.Index(fields=["created_at"], name="cellular_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SerialDevice",
            fields=_device_fields()
            + [
                ("serial_number", models.CharField(max_length=128, unique=True)),
                ("model_name", models.CharField(max_length=255)),
                (
                    "manufacturer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="serial_devices",
                        to="core.manufacturer",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status"], name="serial_status_idx"),
                    models.Index(fields=["created_at"], name="serial_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Part",
            fields=_stock_item_fields() + [("color", models.CharField(blank=True, max_length=64))],
            options={
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 0)), name="part_quantity_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Accessory",
            fields=_stock_item_fields(),
            options={
                "verbose_name_plural": "accessories",
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 0)), name="accessory_quantity_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CellularDeviceTransaction",
            fields=_device_ledger_fields("inventory.cellulardevice"),
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [models.Index(fields=["device", "created_at"], name="cellular_txn_device_idx")],
            },
        ),
        migrations.CreateModel(
            name="SerialDeviceTransaction",
            fields=_device_ledger_fields("inventory.serialdevice"),
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [models.Index(fields=["device", "created_at"], name="serial_txn_device_idx")],
            },
        ),
        migrations.CreateModel(
            name="PartTransaction",
            fields=_quantity_ledger_fields("part", "inventory.part"),
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [models.Index(fields=["part", "created_at"], name="part_txn_part_idx")],
                "constraints": _quantity_constraints("part"),
            },
        ),
        migrations.CreateModel(
            name="AccessoryTransaction",
            fields=_quantity_ledger_fields("accessory", "inventory.accessory"),
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [models.Index(fields=["accessory", "created_at"], name="accessory_txn_item_idx")],
                "constraints": _quantity_constraints("accessory"),
            },
        ),
    ]
