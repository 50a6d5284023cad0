"""Append-only ledgers for device status and stock quantity changes.

Every code path that creates or mutates a device calls into this module
inside the same database transaction as the mutation itself, so a failed
ledger write rejects the whole change. The ledger only observes: it never
refuses a status transition on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import transaction
from django.db.models import Max
from rest_framework.exceptions import ValidationError

from inventory.models import (
    Accessory,
    AccessoryTransaction,
    CellularDevice,
    CellularDeviceTransaction,
    DeviceStatus,
    Part,
    PartTransaction,
    SerialDevice,
    SerialDeviceTransaction,
    TransactionType,
)

logger = logging.getLogger(__name__)

STATUS_TRANSACTION_TYPES = {
    DeviceStatus.SOLD: TransactionType.SALE,
    DeviceStatus.RETURNED: TransactionType.RETURN_IN,
    DeviceStatus.REPAIR: TransactionType.REPAIR,
    DeviceStatus.QC_REQUIRED: TransactionType.QC,
}

DEVICE_LEDGER_MODELS = {
    CellularDevice: CellularDeviceTransaction,
    SerialDevice: SerialDeviceTransaction,
}

QUANTITY_LEDGER_MODELS = {
    Part: (PartTransaction, "part"),
    Accessory: (AccessoryTransaction, "accessory"),
}

DEVICE_CREATED_NOTE = "Device created"
REQUIRED_FIELDS_MESSAGE = "Required parameters cannot be null"
NEGATIVE_QUANTITY_MESSAGE = "New quantity cannot be negative"
QUANTITY_MISMATCH_MESSAGE = "Quantity change mismatch"


class LedgerError(ValidationError):
    error_code = "ledger_error"

    def __init__(self, detail):
        super().__init__(detail, code=self.error_code)


@dataclass(frozen=True)
class DeviceState:
    """The ledger-relevant fields of a device at one point in time."""

    status: str
    qc_status: str | None = None
    qc_comments: str | None = None
    repair_completed: bool = False

    @classmethod
    def capture(cls, device) -> "DeviceState":
        return cls(
            status=device.status,
            qc_status=device.qc_status,
            qc_comments=device.qc_comments,
            repair_completed=device.repair_completed,
        )


def classify_status_change(new_status) -> TransactionType:
    return STATUS_TRANSACTION_TYPES.get(new_status, TransactionType.TRANSFER)


def qc_note(state: DeviceState) -> str | None:
    if not state.qc_status:
        return None
    return f"QC {state.qc_status}: {state.qc_comments or ''}"


def repair_note(state: DeviceState) -> str:
    return "Repair completed" if state.repair_completed else "Repair started"


def status_change_note(state: DeviceState) -> str | None:
    if state.status == DeviceStatus.QC_REQUIRED:
        return qc_note(state) or "Pending QC"
    if state.status == DeviceStatus.REPAIR:
        return "Repair completed" if state.repair_completed else "Repair required"
    return None


def _ledger_model_for(device):
    try:
        return DEVICE_LEDGER_MODELS[type(device)]
    except KeyError:
        raise TypeError(f"No device ledger for {type(device).__name__}") from None


def _next_sequence(model, **owner):
    last = model.objects.filter(**owner).aggregate(last=Max("sequence"))["last"]
    return (last or 0) + 1


def _require(**values):
    missing = [name for name, value in values.items() if value is None]
    if missing:
        logger.warning("ledger_rejected missing=%s", ",".join(missing))
        raise LedgerError(REQUIRED_FIELDS_MESSAGE)


def _append_device_entry(device, *, transaction_type, reference_id, previous_status, new_status, notes, user):
    _require(
        device_id=device.pk,
        transaction_type=transaction_type,
        reference_id=reference_id,
        user_id=getattr(user, "pk", None),
    )
    model = _ledger_model_for(device)
    entry = model.objects.create(
        device=device,
        sequence=_next_sequence(model, device=device),
        transaction_type=transaction_type,
        reference_id=reference_id,
        previous_status=previous_status,
        new_status=new_status,
        notes=notes,
        created_by=user,
    )
    logger.info(
        "device_ledger_entry",
        extra={
            "device_kind": device.kind,
            "device_id": str(device.pk),
            "transaction_type": str(transaction_type),
            "reference_id": str(reference_id),
            "previous_status": previous_status,
            "new_status": new_status,
            "user_id": str(user.pk),
        },
    )
    return entry


@transaction.atomic
def record_device_created(device, user=None):
    """Write the single ledger row for a newly inserted device.

    A device already linked to a purchase order is booked as a purchase
    against that order; anything else is a transfer into stock.
    """
    if user is None and device.created_by_id:
        user = device.created_by
    link = device.purchase_order_links.order_by("created_at").first() if device.pk else None
    if link is not None:
        transaction_type, reference_id = TransactionType.PURCHASE, link.purchase_order_id
    else:
        transaction_type, reference_id = TransactionType.TRANSFER, device.pk

    return _append_device_entry(
        device,
        transaction_type=transaction_type,
        reference_id=reference_id,
        previous_status=None,
        new_status=device.status,
        notes=DEVICE_CREATED_NOTE,
        user=user,
    )


@transaction.atomic
def record_device_change(previous: DeviceState, device, user=None):
    """Compare a device against its earlier state and append ledger rows.

    Status, QC outcome and repair completion are checked independently, so a
    single update can append up to three rows (in that order).
    """
    if user is None and device.updated_by_id:
        user = device.updated_by
    current = DeviceState.capture(device)
    entries = []

    if previous.status != current.status:
        entries.append(
            _append_device_entry(
                device,
                transaction_type=classify_status_change(current.status),
                reference_id=device.pk,
                previous_status=previous.status,
                new_status=current.status,
                notes=status_change_note(current),
                user=user,
            )
        )

    if previous.qc_status != current.qc_status:
        entries.append(
            _append_device_entry(
                device,
                transaction_type=TransactionType.QC,
                reference_id=device.pk,
                previous_status=current.status,
                new_status=current.status,
                notes=qc_note(current),
                user=user,
            )
        )

    if previous.repair_completed != current.repair_completed:
        entries.append(
            _append_device_entry(
                device,
                transaction_type=TransactionType.REPAIR,
                reference_id=device.pk,
                previous_status=current.status,
                new_status=current.status,
                notes=repair_note(current),
                user=user,
            )
        )

    return entries


@transaction.atomic
def record_quantity_change(
    item,
    previous_quantity,
    *,
    user,
    quantity=None,
    transaction_type=None,
    reference_id=None,
    notes=None,
):
    """Append a quantity ledger row for a part or accessory.

    `quantity` is the recorded magnitude of the change and defaults to the
    actual delta; its absolute value must equal `|new - previous|`.
    """
    try:
        model, item_field = QUANTITY_LEDGER_MODELS[type(item)]
    except KeyError:
        raise TypeError(f"No quantity ledger for {type(item).__name__}") from None

    new_quantity = item.quantity
    _require(
        item_id=item.pk,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        user_id=getattr(user, "pk", None),
    )
    if new_quantity < 0:
        raise LedgerError(NEGATIVE_QUANTITY_MESSAGE)

    delta = new_quantity - previous_quantity
    if quantity is None:
        quantity = delta
    if abs(quantity) != abs(delta):
        logger.warning(
            "ledger_rejected quantity=%s previous=%s new=%s",
            quantity,
            previous_quantity,
            new_quantity,
        )
        raise LedgerError(QUANTITY_MISMATCH_MESSAGE)

    if transaction_type is None:
        transaction_type = TransactionType.PURCHASE if delta > 0 else TransactionType.SALE

    entry = model.objects.create(
        **{item_field: item},
        sequence=_next_sequence(model, **{item_field: item}),
        transaction_type=transaction_type,
        reference_id=reference_id or item.pk,
        quantity=abs(delta),
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        notes=notes,
        created_by=user,
    )
    logger.info(
        "quantity_ledger_entry",
        extra={
            "device_kind": item_field,
            "device_id": str(item.pk),
            "transaction_type": str(transaction_type),
            "previous_quantity": previous_quantity,
            "new_quantity": new_quantity,
            "user_id": str(user.pk),
        },
    )
    return entry


def device_history(device):
    """Ledger rows for one device, newest first, with the acting user loaded."""
    return _ledger_model_for(device).objects.filter(device=device).select_related("created_by").order_by("-sequence")


def item_history(item):
    model, item_field = QUANTITY_LEDGER_MODELS[type(item)]
    return model.objects.filter(**{item_field: item}).select_related("created_by").order_by("-sequence")
