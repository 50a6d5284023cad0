import logging
import re
from collections import Counter

from django.conf import settings
from django.db import transaction
from django.db.models import Count, IntegerField, OuterRef, Q, Subquery, Sum
from django.db.models.functions import Coalesce
from rest_framework.exceptions import ValidationError

from inventory import services as inventory_services
from inventory.models import CellularDevice, DeviceStatus
from orders.models import Customer, OrderStatus, PlannedDevice, PurchaseOrder, SalesOrder

logger = logging.getLogger(__name__)

PO_NUMBER_PATTERN = re.compile(r"^PO-\d{6}$")


def _next_code(values, prefix, width):
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    numbers = [int(match.group(1)) for match in map(pattern.match, values) if match]
    return f"{prefix}-{(max(numbers, default=0) + 1):0{width}d}"


def next_customer_code():
    prefix = settings.INVENTORY_CUSTOMER_CODE_PREFIX
    codes = Customer.objects.filter(customer_code__startswith=f"{prefix}-").values_list("customer_code", flat=True)
    return _next_code(codes, prefix, 3)


def next_sales_order_number():
    prefix = settings.INVENTORY_SALES_ORDER_PREFIX
    numbers = SalesOrder.objects.filter(order_number__startswith=f"{prefix}-").values_list("order_number", flat=True)
    return _next_code(numbers, prefix, 6)


def validate_po_number(value):
    po_number = (value or "").strip().upper()
    if not PO_NUMBER_PATTERN.match(po_number):
        raise ValidationError({"po_number": ["PO number must be in the format PO-XXXXXX (where X is a digit)"]})
    return po_number


def _planned_key(entry, manufacturer):
    return (
        entry.get("device_type", "cellular"),
        manufacturer.pk,
        entry["model_name"],
        entry.get("storage_gb"),
        entry.get("color", ""),
        entry.get("grade_id"),
    )


@transaction.atomic
def book_devices_into_purchase_order(purchase_order, entries, *, user):
    """Receive physical devices against a purchase order.

    Each entry describes one device (`device_type`, `identifier`,
    `manufacturer`, `model_name` and optional `storage_gb`, `color`,
    `grade_id`, `tray_id`). Identical entries are grouped into planned rows
    with a quantity, then every device is created already linked to the
    order so its creation is booked on the ledger as a purchase.
    """
    if not entries:
        raise ValidationError({"devices": ["Please add at least one device"]})

    seen = set()
    for entry in entries:
        identifier = (entry.get("identifier") or "").strip()
        if not identifier:
            raise ValidationError({"devices": ["Every device needs an IMEI or serial number"]})
        if identifier in seen:
            raise ValidationError({"devices": [f"Device {identifier} is listed more than once"]})
        seen.add(identifier)

    resolved = [(entry, inventory_services.resolve_manufacturer(entry.get("manufacturer"))) for entry in entries]

    planned = Counter(_planned_key(entry, manufacturer) for entry, manufacturer in resolved)
    for (device_type, manufacturer_id, model_name, storage_gb, color, grade_id), quantity in planned.items():
        PlannedDevice.objects.create(
            purchase_order=purchase_order,
            manufacturer_id=manufacturer_id,
            model_name=model_name,
            storage_gb=storage_gb,
            color=color,
            grade_id=grade_id,
            quantity=quantity,
            device_type=device_type,
            created_by=user,
        )

    devices = []
    for entry, manufacturer in resolved:
        attrs = {"color": entry.get("color", ""), "grade_id": entry.get("grade_id")}
        if entry.get("device_type", "cellular") == "serial":
            device = inventory_services.create_serial_device(
                serial_number=entry["identifier"],
                manufacturer=manufacturer,
                model_name=entry["model_name"],
                user=user,
                purchase_order=purchase_order,
                tray_id=entry.get("tray_id", ""),
                **attrs,
            )
        else:
            device = inventory_services.create_cellular_device(
                imei=entry["identifier"],
                manufacturer=manufacturer,
                model_name=entry["model_name"],
                user=user,
                purchase_order=purchase_order,
                tray_id=entry.get("tray_id", ""),
                storage_gb=entry.get("storage_gb"),
                **attrs,
            )
        devices.append(device)

    logger.info("purchase_order_devices_booked po=%s count=%s", purchase_order.po_number, len(devices))
    return devices


@transaction.atomic
def confirm_purchase_order(purchase_order, *, user):
    if not purchase_order.devices.exists():
        raise ValidationError("Cannot confirm purchase order with no devices")
    purchase_order.status = OrderStatus.CONFIRMED
    purchase_order.updated_by = user
    purchase_order.save(update_fields=["status", "updated_by", "updated_at"])
    return purchase_order


def _link_field(device):
    return "cellular_device" if isinstance(device, CellularDevice) else "serial_device"


@transaction.atomic
def add_devices_to_sales_order(sales_order, devices, *, user):
    """Attach in-stock devices to a sales order and mark each one sold."""
    if not devices:
        raise ValidationError({"devices": ["Please select at least one device"]})

    links = []
    for device in devices:
        # The status is checked on the locked row; the caller's copy may be stale.
        device = inventory_services.lock_device(device)
        if device.status != DeviceStatus.IN_STOCK:
            raise ValidationError({"devices": [f"Device {device.identifier} is not in stock"]})
        link = sales_order.devices.create(
            **{_link_field(device): device},
            qc_required=device.qc_required,
            created_by=user,
            updated_by=user,
        )
        inventory_services.update_device(device, {"status": DeviceStatus.SOLD}, user=user)
        links.append(link)

    logger.info("sales_order_devices_added so=%s count=%s", sales_order.order_number, len(links))
    return links


def confirm_shipment_identifier(sales_order, identifier):
    """Check a scanned IMEI/serial against the devices on a sales order."""
    identifier = (identifier or "").strip()
    if not identifier:
        raise ValidationError({"identifier": ["Please enter an IMEI/Serial number."]})

    link = (
        sales_order.devices.select_related("cellular_device__tac", "serial_device__manufacturer")
        .filter(Q(cellular_device__imei=identifier) | Q(serial_device__serial_number=identifier))
        .first()
    )
    if link is None:
        return {"confirmed": False, "message": f"IMEI/Serial {identifier} not found in the sales order."}

    details = inventory_services.device_details(link.device)
    return {
        "confirmed": True,
        "message": f"IMEI/Serial {identifier} confirmed for device {details['manufacturer']} {details['model_name']}.",
        "device": details,
    }


@transaction.atomic
def submit_sales_order(sales_order, shipping, *, user):
    if not sales_order.devices.exists():
        raise ValidationError("Cannot submit sales order with no devices")
    for field in ("tracking_number", "shipping_carrier", "total_boxes", "total_pallets"):
        if field in shipping:
            setattr(sales_order, field, shipping[field])
    sales_order.status = OrderStatus.PROCESSING
    sales_order.updated_by = user
    sales_order.save()
    return sales_order


@transaction.atomic
def return_sales_order_device(link, *, user):
    """Book a sold device back in against the sales order that sold it."""
    device = inventory_services.lock_device(link.device)
    latest_link = device.sales_order_links.order_by("-created_at").values_list("pk", flat=True).first()
    if device.status != DeviceStatus.SOLD or latest_link != link.pk:
        raise ValidationError({"devices": [f"Device {device.identifier} is not sold on this sales order"]})
    return inventory_services.update_device(device, {"status": DeviceStatus.RETURNED}, user=user)


def goods_in_summary():
    planned = (
        PlannedDevice.objects.filter(purchase_order=OuterRef("pk"))
        .values("purchase_order")
        .annotate(total=Sum("quantity"))
        .values("total")
    )
    return PurchaseOrder.objects.select_related("supplier").annotate(
        device_count=Count("devices"),
        planned_count=Coalesce(Subquery(planned, output_field=IntegerField()), 0),
    )
