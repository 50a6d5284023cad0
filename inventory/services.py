import logging
import re
import uuid

from django.conf import settings
from django.db import transaction
from rest_framework.exceptions import ValidationError

from core.models import Manufacturer
from inventory import ledger
from inventory.models import (
    CellularDevice,
    DeviceConfiguration,
    DeviceStatus,
    QCStatus,
    SerialDevice,
    TacCode,
)

logger = logging.getLogger(__name__)

# Fields a device update may touch; identity and audit columns are excluded.
DEVICE_MUTABLE_FIELDS = {
    "color",
    "grade",
    "grade_id",
    "status",
    "location",
    "location_id",
    "supplier",
    "supplier_id",
    "qc_required",
    "qc_completed",
    "qc_status",
    "qc_comments",
    "repair_required",
    "repair_completed",
}

MUTABLE_FIELDS_BY_KIND = {
    CellularDevice: DEVICE_MUTABLE_FIELDS | {"storage_gb"},
    SerialDevice: DEVICE_MUTABLE_FIELDS | {"model_name"},
}

_DIGITS = re.compile(r"^[0-9]+$")


def validate_imei(value):
    imei = (value or "").strip()
    if len(imei) != settings.INVENTORY_IMEI_LENGTH or not _DIGITS.match(imei):
        raise ValidationError({"imei": ["IMEI must be exactly 15 digits"]})
    return imei


def tac_from_imei(imei):
    return imei[: settings.INVENTORY_TAC_LENGTH]


def resolve_manufacturer(value):
    if isinstance(value, Manufacturer):
        return value
    manufacturer = None
    if value:
        manufacturer = (
            Manufacturer.objects.filter(pk=value).first()
            if _looks_like_uuid(value)
            else Manufacturer.objects.filter(name__iexact=str(value).strip()).first()
        )
    if manufacturer is None:
        raise ValidationError({"manufacturer": ["Manufacturer not found"]})
    return manufacturer


def _looks_like_uuid(value):
    try:
        uuid.UUID(str(value))
    except (TypeError, ValueError):
        return False
    return True


def get_or_create_tac_code(imei, manufacturer, model_name):
    tac, created = TacCode.objects.get_or_create(
        tac_code=tac_from_imei(imei),
        defaults={"manufacturer": manufacturer.name, "model_name": model_name},
    )
    if created:
        logger.info("tac_code_created tac=%s manufacturer=%s model=%s", tac.tac_code, tac.manufacturer, tac.model_name)
    return tac


def _link_to_purchase_order(purchase_order, device, user, **link_fields):
    field = "cellular_device" if isinstance(device, CellularDevice) else "serial_device"
    return purchase_order.devices.create(
        **{field: device},
        qc_required=purchase_order.requires_qc,
        repair_required=purchase_order.requires_repair,
        created_by=user,
        updated_by=user,
        **link_fields,
    )


def _initial_device_fields(purchase_order, attrs):
    fields = dict(attrs)
    if purchase_order is not None:
        fields.setdefault("supplier_id", purchase_order.supplier_id)
        fields.setdefault("qc_required", purchase_order.requires_qc)
        fields.setdefault("repair_required", purchase_order.requires_repair)
    return fields


@transaction.atomic
def create_cellular_device(*, imei, manufacturer, model_name, user, purchase_order=None, tray_id="", **attrs):
    """Book a cellular device into stock and write its creation ledger row."""
    imei = validate_imei(imei)
    if CellularDevice.objects.filter(imei=imei).exists():
        raise ValidationError({"imei": [f"Device with IMEI {imei} already exists in the system"]})

    manufacturer = resolve_manufacturer(manufacturer)
    tac = get_or_create_tac_code(imei, manufacturer, model_name)
    device = CellularDevice.objects.create(
        imei=imei,
        tac=tac,
        created_by=user,
        updated_by=user,
        **_initial_device_fields(purchase_order, attrs),
    )
    if purchase_order is not None:
        _link_to_purchase_order(purchase_order, device, user, tray_id=tray_id)
    ledger.record_device_created(device, user=user)
    return device


@transaction.atomic
def create_serial_device(*, serial_number, manufacturer, model_name, user, purchase_order=None, tray_id="", **attrs):
    """Book a serial-numbered device into stock and write its creation ledger row."""
    serial_number = (serial_number or "").strip()
    if not serial_number:
        raise ValidationError({"serial_number": ["Serial number is required"]})
    if SerialDevice.objects.filter(serial_number=serial_number).exists():
        raise ValidationError({"serial_number": [f"Device with serial number {serial_number} already exists in the system"]})

    device = SerialDevice.objects.create(
        serial_number=serial_number,
        manufacturer=resolve_manufacturer(manufacturer),
        model_name=model_name,
        created_by=user,
        updated_by=user,
        **_initial_device_fields(purchase_order, attrs),
    )
    if purchase_order is not None:
        _link_to_purchase_order(purchase_order, device, user, tray_id=tray_id)
    ledger.record_device_created(device, user=user)
    return device


def lock_device(device):
    """Re-read a device with a row lock; callers must already be inside a transaction."""
    return type(device).objects.select_for_update().get(pk=device.pk)


@transaction.atomic
def update_device(device, changes, *, user):
    """Apply `changes` to a device and append the matching ledger rows.

    The row is re-read under a lock so the ledger compares against the
    committed state, not whatever the caller happened to load earlier.
    """
    unknown = set(changes) - MUTABLE_FIELDS_BY_KIND[type(device)]
    if unknown:
        raise ValidationError({field: ["This field cannot be changed."] for field in sorted(unknown)})

    locked = lock_device(device)
    previous = ledger.DeviceState.capture(locked)

    for field, value in changes.items():
        setattr(locked, field, value)
    locked.updated_by = user
    locked.full_clean(exclude=["imei", "serial_number", "tac", "manufacturer", "created_by"], validate_unique=False)
    locked.save()

    entries = ledger.record_device_change(previous, locked, user=user)
    logger.info(
        "device_updated kind=%s id=%s fields=%s ledger_rows=%s",
        locked.kind,
        locked.pk,
        ",".join(sorted(changes)),
        len(entries),
    )
    return locked


def record_qc_result(device, *, qc_status, user, comments=""):
    if qc_status not in QCStatus.values:
        raise ValidationError({"qc_status": [f"QC status must be one of: {', '.join(QCStatus.values)}."]})
    changes = {"qc_status": qc_status, "qc_comments": comments or "", "qc_completed": True}
    if qc_status == QCStatus.FAIL:
        changes["status"] = DeviceStatus.QC_FAILED
    return update_device(device, changes, user=user)


def set_repair_state(device, *, completed, user):
    changes = {"repair_completed": bool(completed)}
    if not completed:
        changes["repair_required"] = True
    return update_device(device, changes, user=user)


@transaction.atomic
def set_item_quantity(item, new_quantity, *, user, quantity=None, transaction_type=None, reference_id=None, notes=None):
    """Set a part/accessory quantity and record it on the quantity ledger.

    Raises `LedgerError` (and rolls the quantity back) when the new quantity
    is negative or `quantity` disagrees with the actual change.
    """
    locked = type(item).objects.select_for_update().get(pk=item.pk)
    previous_quantity = locked.quantity
    if new_quantity == previous_quantity and not quantity:
        return locked, None

    locked.quantity = new_quantity
    locked.updated_by = user
    # Negative quantities are rejected before the save reaches the CHECK constraint.
    if new_quantity < 0:
        raise ledger.LedgerError(ledger.NEGATIVE_QUANTITY_MESSAGE)
    locked.save(update_fields=["quantity", "updated_by", "updated_at"])
    entry = ledger.record_quantity_change(
        locked,
        previous_quantity,
        user=user,
        quantity=quantity,
        transaction_type=transaction_type,
        reference_id=reference_id,
        notes=notes,
    )
    return locked, entry


def adjust_item_quantity(item, delta, *, user, transaction_type=None, reference_id=None, notes=None):
    current = type(item).objects.only("quantity").get(pk=item.pk).quantity
    return set_item_quantity(
        item,
        current + delta,
        user=user,
        quantity=delta,
        transaction_type=transaction_type,
        reference_id=reference_id,
        notes=notes,
    )


def search_models(manufacturer, search=None):
    """Distinct model names known for a manufacturer, optionally filtered."""
    name = manufacturer.name if isinstance(manufacturer, Manufacturer) else str(manufacturer or "").strip()
    if not name:
        return []
    queryset = TacCode.objects.filter(manufacturer__iexact=name)
    if search:
        queryset = queryset.filter(model_name__icontains=search.strip())
    return list(queryset.order_by("model_name").values_list("model_name", flat=True).distinct())


def lookup_device_configuration(manufacturer, model_name):
    return (
        DeviceConfiguration.objects.filter(manufacturer=resolve_manufacturer(manufacturer), model_name__iexact=model_name)
        .select_related("manufacturer")
        .first()
    )


def device_details(device):
    return {
        "identifier": device.identifier,
        "manufacturer": device.manufacturer_name,
        "model_name": device.model_label,
    }


def find_device(identifier):
    """Look a device up by IMEI or serial number."""
    identifier = (identifier or "").strip()
    if not identifier:
        return None
    return (
        CellularDevice.objects.select_related("tac").filter(imei=identifier).first()
        or SerialDevice.objects.select_related("manufacturer").filter(serial_number=identifier).first()
    )
