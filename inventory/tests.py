from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.test import TestCase
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from core.models import Manufacturer
from inventory import ledger, services
from inventory.models import (
    CellularDevice,
    CellularDeviceTransaction,
    DeviceConfiguration,
    DeviceStatus,
    LedgerImmutableError,
    Part,
    PartTransaction,
    SerialDeviceTransaction,
    TacCode,
    TransactionType,
)

IMEI = "353456789012345"


class InventoryFixtureMixin:
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.user = self.user_model.objects.create_user(username="clerk", password="pass1234")
        self.admin = self.user_model.objects.create_user(
            username="stock-admin",
            password="pass1234",
            role=self.user_model.Role.ADMIN,
        )
        self.apple = Manufacturer.objects.create(name="Apple")
        self.dell = Manufacturer.objects.create(name="Dell")

    def make_cellular(self, imei=IMEI, **attrs):
        return services.create_cellular_device(
            imei=imei,
            manufacturer=self.apple,
            model_name="iPhone 13",
            user=self.user,
            **attrs,
        )

    def make_part(self, quantity=10):
        return Part.objects.create(
            sku="SCR-13",
            manufacturer=self.apple,
            name="iPhone 13 screen",
            quantity=quantity,
            created_by=self.admin,
            updated_by=self.admin,
        )


class DeviceLedgerTests(InventoryFixtureMixin, TestCase):
    def test_creating_device_without_order_books_a_transfer(self):
        device = self.make_cellular()

        entries = list(CellularDeviceTransaction.objects.filter(device=device))
        self.assertEqual(len(entries), 1)
        entry = entries[0]
        self.assertEqual(entry.transaction_type, TransactionType.TRANSFER)
        self.assertEqual(entry.reference_id, device.id)
        self.assertIsNone(entry.previous_status)
        self.assertEqual(entry.new_status, DeviceStatus.IN_STOCK)
        self.assertEqual(entry.notes, "Device created")
        self.assertEqual(entry.created_by, self.user)

    def test_creating_device_registers_tac_code(self):
        device = self.make_cellular()

        self.assertEqual(device.tac.tac_code, "35345678")
        self.assertEqual(device.tac.manufacturer, "Apple")
        self.assertEqual(device.tac.model_name, "iPhone 13")

    def test_status_change_to_sold_appends_sale(self):
        device = self.make_cellular()

        services.update_device(device, {"status": DeviceStatus.SOLD}, user=self.admin)

        entry = CellularDeviceTransaction.objects.filter(device=device, transaction_type=TransactionType.SALE).get()
        self.assertEqual(entry.previous_status, DeviceStatus.IN_STOCK)
        self.assertEqual(entry.new_status, DeviceStatus.SOLD)
        self.assertEqual(entry.reference_id, device.id)
        self.assertIsNone(entry.notes)
        self.assertEqual(entry.created_by, self.admin)
        self.assertEqual(CellularDeviceTransaction.objects.filter(device=device).count(), 2)

    def test_update_without_tracked_changes_appends_nothing(self):
        device = self.make_cellular()

        services.update_device(device, {"color": "Blue"}, user=self.admin)

        self.assertEqual(CellularDeviceTransaction.objects.filter(device=device).count(), 1)

    def test_qc_required_with_verdict_appends_two_qc_rows(self):
        device = self.make_cellular()

        services.update_device(
            device,
            {"status": DeviceStatus.QC_REQUIRED, "qc_status": "pass", "qc_comments": "Looks good"},
            user=self.admin,
        )

        rows = CellularDeviceTransaction.objects.filter(device=device, transaction_type=TransactionType.QC)
        self.assertEqual(rows.count(), 2)
        self.assertEqual({row.notes for row in rows}, {"QC pass: Looks good"})
        status_row = rows.get(previous_status=DeviceStatus.IN_STOCK)
        self.assertEqual(status_row.new_status, DeviceStatus.QC_REQUIRED)
        verdict_row = rows.get(previous_status=DeviceStatus.QC_REQUIRED)
        self.assertEqual(verdict_row.new_status, DeviceStatus.QC_REQUIRED)

    def test_pending_qc_note_without_verdict(self):
        device = self.make_cellular()

        services.update_device(device, {"status": DeviceStatus.QC_REQUIRED}, user=self.admin)

        row = CellularDeviceTransaction.objects.get(device=device, transaction_type=TransactionType.QC)
        self.assertEqual(row.notes, "Pending QC")

    def test_status_qc_and_repair_in_one_update_append_three_rows(self):
        device = self.make_cellular()

        entries = ledger.record_device_change(
            ledger.DeviceState.capture(device),
            self._apply(device, status=DeviceStatus.REPAIR, qc_status="fail", repair_completed=True),
            user=self.admin,
        )

        self.assertEqual(
            [entry.transaction_type for entry in entries],
            [TransactionType.REPAIR, TransactionType.QC, TransactionType.REPAIR],
        )
        self.assertEqual(entries[0].notes, "Repair completed")
        self.assertEqual(entries[1].notes, "QC fail: ")
        self.assertEqual(entries[2].notes, "Repair completed")
        self.assertEqual(CellularDeviceTransaction.objects.filter(device=device).count(), 4)

    def _apply(self, device, **changes):
        for field, value in changes.items():
            setattr(device, field, value)
        device.save()
        return device

    def test_repair_state_toggle_notes(self):
        device = self.make_cellular()

        services.set_repair_state(device, completed=True, user=self.admin)
        services.set_repair_state(device, completed=False, user=self.admin)

        notes = set(
            CellularDeviceTransaction.objects.filter(device=device, transaction_type=TransactionType.REPAIR).values_list(
                "notes", flat=True
            )
        )
        self.assertEqual(notes, {"Repair completed", "Repair started"})

    def test_failed_qc_moves_device_to_qc_failed(self):
        device = self.make_cellular()

        device = services.record_qc_result(device, qc_status="fail", comments="Cracked screen", user=self.admin)

        self.assertEqual(device.status, DeviceStatus.QC_FAILED)
        qc_row = CellularDeviceTransaction.objects.get(device=device, transaction_type=TransactionType.QC)
        self.assertEqual(qc_row.notes, "QC fail: Cracked screen")

    def test_missing_user_is_rejected(self):
        device = self.make_cellular()
        previous = ledger.DeviceState.capture(device)
        device.status = DeviceStatus.SOLD
        device.updated_by_id = None

        with self.assertRaises(ledger.LedgerError) as cm:
            ledger.record_device_change(previous, device, user=None)

        self.assertEqual(str(cm.exception.detail[0]), ledger.REQUIRED_FIELDS_MESSAGE)
        self.assertEqual(CellularDeviceTransaction.objects.filter(device=device).count(), 1)

    def test_failed_ledger_write_rolls_back_status_change(self):
        device = self.make_cellular()

        with patch.object(CellularDeviceTransaction.objects, "create", side_effect=IntegrityError("ledger insert failed")):
            with self.assertRaises(IntegrityError):
                services.update_device(device, {"status": DeviceStatus.SOLD}, user=self.admin)

        device.refresh_from_db()
        self.assertEqual(device.status, DeviceStatus.IN_STOCK)
        self.assertEqual(CellularDeviceTransaction.objects.filter(device=device).count(), 1)

    def test_failure_on_second_of_three_rows_rolls_back_everything(self):
        device = self.make_cellular()
        create = CellularDeviceTransaction.objects.create
        attempted = []

        def create_then_fail(**kwargs):
            attempted.append(kwargs["transaction_type"])
            if len(attempted) == 2:
                raise IntegrityError("ledger insert failed")
            return create(**kwargs)

        with patch.object(CellularDeviceTransaction.objects, "create", side_effect=create_then_fail):
            with self.assertRaises(IntegrityError):
                services.update_device(
                    device,
                    {"status": DeviceStatus.REPAIR, "qc_status": "fail", "repair_completed": True},
                    user=self.admin,
                )

        self.assertEqual(attempted, [TransactionType.REPAIR, TransactionType.QC])
        device.refresh_from_db()
        self.assertEqual(device.status, DeviceStatus.IN_STOCK)
        self.assertIsNone(device.qc_status)
        self.assertFalse(device.repair_completed)
        self.assertEqual(CellularDeviceTransaction.objects.filter(device=device).count(), 1)

    def test_history_keeps_write_order_within_one_update(self):
        device = self.make_cellular()

        services.update_device(
            device,
            {"status": DeviceStatus.REPAIR, "qc_status": "fail", "repair_completed": True},
            user=self.admin,
        )

        history = list(ledger.device_history(device))
        self.assertEqual([entry.sequence for entry in history], [4, 3, 2, 1])
        self.assertEqual(
            [entry.transaction_type for entry in history],
            [TransactionType.REPAIR, TransactionType.QC, TransactionType.REPAIR, TransactionType.TRANSFER],
        )
        self.assertEqual(history[2].previous_status, DeviceStatus.IN_STOCK)
        self.assertEqual(history[1].notes, "QC fail: ")

    def test_cellular_device_rejects_model_name_change(self):
        device = self.make_cellular()

        with self.assertRaises(ValidationError) as cm:
            services.update_device(device, {"model_name": "iPhone 14"}, user=self.admin)

        self.assertEqual(cm.exception.detail, {"model_name": ["This field cannot be changed."]})
        self.assertEqual(CellularDeviceTransaction.objects.filter(device=device).count(), 1)

    def test_serial_device_model_name_can_be_corrected(self):
        device = services.create_serial_device(
            serial_number="SN-0002",
            manufacturer=self.dell,
            model_name="Latitude 744",
            user=self.user,
        )

        device = services.update_device(device, {"model_name": "Latitude 7440"}, user=self.admin)

        device.refresh_from_db()
        self.assertEqual(device.model_name, "Latitude 7440")
        self.assertEqual(SerialDeviceTransaction.objects.filter(device=device).count(), 1)

    def test_serial_device_has_its_own_ledger(self):
        device = services.create_serial_device(
            serial_number="SN-0001",
            manufacturer="dell",
            model_name="Latitude 7440",
            user=self.user,
        )

        self.assertEqual(device.manufacturer, self.dell)
        entry = SerialDeviceTransaction.objects.get(device=device)
        self.assertEqual(entry.transaction_type, TransactionType.TRANSFER)
        self.assertEqual(entry.reference_id, device.id)

    def test_ledger_rows_are_immutable(self):
        device = self.make_cellular()
        entry = CellularDeviceTransaction.objects.get(device=device)

        entry.notes = "rewritten"
        with self.assertRaises(LedgerImmutableError):
            entry.save()
        with self.assertRaises(LedgerImmutableError):
            entry.delete()
        with self.assertRaises(LedgerImmutableError):
            CellularDeviceTransaction.objects.filter(device=device).update(notes="rewritten")
        with self.assertRaises(LedgerImmutableError):
            CellularDeviceTransaction.objects.filter(device=device).delete()

        entry.refresh_from_db()
        self.assertEqual(entry.notes, "Device created")


class QuantityLedgerTests(InventoryFixtureMixin, TestCase):
    def test_increase_records_purchase(self):
        part = self.make_part(quantity=10)

        part, entry = services.set_item_quantity(part, 15, user=self.admin)

        self.assertEqual(part.quantity, 15)
        self.assertEqual(entry.transaction_type, TransactionType.PURCHASE)
        self.assertEqual(entry.quantity, 5)
        self.assertEqual(entry.previous_quantity, 10)
        self.assertEqual(entry.new_quantity, 15)
        self.assertEqual(entry.reference_id, part.id)

    def test_decrease_records_sale_with_magnitude(self):
        part = self.make_part(quantity=10)

        part, entry = services.adjust_item_quantity(part, -4, user=self.admin)

        self.assertEqual(part.quantity, 6)
        self.assertEqual(entry.transaction_type, TransactionType.SALE)
        self.assertEqual(entry.quantity, 4)

    def test_quantity_mismatch_rolls_back_the_change(self):
        part = self.make_part(quantity=10)

        with self.assertRaises(ledger.LedgerError) as cm:
            services.set_item_quantity(part, 15, quantity=3, user=self.admin)

        self.assertEqual(str(cm.exception.detail[0]), ledger.QUANTITY_MISMATCH_MESSAGE)
        part.refresh_from_db()
        self.assertEqual(part.quantity, 10)
        self.assertFalse(PartTransaction.objects.exists())

    def test_negative_quantity_is_rejected(self):
        part = self.make_part(quantity=2)

        with self.assertRaises(ledger.LedgerError) as cm:
            services.adjust_item_quantity(part, -3, user=self.admin)

        self.assertEqual(str(cm.exception.detail[0]), ledger.NEGATIVE_QUANTITY_MESSAGE)
        part.refresh_from_db()
        self.assertEqual(part.quantity, 2)
        self.assertFalse(PartTransaction.objects.exists())

    def test_missing_user_is_rejected(self):
        part = self.make_part(quantity=10)
        part.quantity = 12

        with self.assertRaises(ledger.LedgerError) as cm:
            ledger.record_quantity_change(part, 10, user=None)

        self.assertEqual(str(cm.exception.detail[0]), ledger.REQUIRED_FIELDS_MESSAGE)

    def test_unchanged_quantity_writes_nothing(self):
        part = self.make_part(quantity=10)

        part, entry = services.set_item_quantity(part, 10, user=self.admin)

        self.assertIsNone(entry)
        self.assertFalse(PartTransaction.objects.exists())


class DeviceApiTests(InventoryFixtureMixin, TestCase):
    def test_user_can_book_cellular_device(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            "/api/v1/cellular-devices/",
            {"imei": IMEI, "manufacturer": "Apple", "model_name": "iPhone 13", "storage_gb": 128, "color": "Blue"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["imei"], IMEI)
        self.assertEqual(payload["manufacturer"], "Apple")
        self.assertEqual(payload["status"], DeviceStatus.IN_STOCK)
        self.assertEqual(CellularDeviceTransaction.objects.filter(device_id=payload["id"]).count(), 1)

    def test_invalid_imei_is_rejected(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            "/api/v1/cellular-devices/",
            {"imei": "12345", "manufacturer": "Apple", "model_name": "iPhone 13"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"], {"imei": ["IMEI must be exactly 15 digits"]})
        self.assertFalse(CellularDevice.objects.exists())

    def test_duplicate_imei_is_rejected(self):
        self.make_cellular()
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            "/api/v1/cellular-devices/",
            {"imei": IMEI, "manufacturer": "Apple", "model_name": "iPhone 13"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["errors"],
            {"imei": [f"Device with IMEI {IMEI} already exists in the system"]},
        )

    def test_user_cannot_change_device_status_and_denial_is_logged(self):
        device = self.make_cellular()
        self.client.force_authenticate(user=self.user)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.patch(
                f"/api/v1/cellular-devices/{device.id}/",
                {"status": DeviceStatus.SOLD},
                format="json",
            )

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in message for message in cm.output))
        device.refresh_from_db()
        self.assertEqual(device.status, DeviceStatus.IN_STOCK)

    def test_history_is_newest_first(self):
        device = self.make_cellular()
        self.client.force_authenticate(user=self.admin)

        patch_res = self.client.patch(
            f"/api/v1/cellular-devices/{device.id}/",
            {"status": DeviceStatus.SOLD},
            format="json",
        )
        history_res = self.client.get(f"/api/v1/cellular-devices/{device.id}/history/")

        self.assertEqual(patch_res.status_code, 200)
        self.assertEqual(patch_res.json()["status"], DeviceStatus.SOLD)
        self.assertEqual(history_res.status_code, 200)
        rows = history_res.json()["results"]
        self.assertEqual([row["transaction_type"] for row in rows], ["sale", "transfer"])
        self.assertEqual(rows[0]["created_by_name"], "stock-admin")
        self.assertEqual(rows[0]["operation"], "sale (in_stock → sold)")

    def test_devices_cannot_be_deleted(self):
        device = self.make_cellular()
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/cellular-devices/{device.id}/")

        self.assertEqual(response.status_code, 405)
        self.assertTrue(CellularDevice.objects.filter(id=device.id).exists())

    def test_qc_endpoint_records_verdict(self):
        device = self.make_cellular()
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            f"/api/v1/cellular-devices/{device.id}/qc/",
            {"qc_status": "pass", "comments": "All good"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["qc_status"], "pass")
        self.assertTrue(response.json()["qc_completed"])
        self.assertTrue(
            CellularDeviceTransaction.objects.filter(
                device=device, transaction_type=TransactionType.QC, notes="QC pass: All good"
            ).exists()
        )

    def test_status_filter(self):
        in_stock = self.make_cellular()
        sold = self.make_cellular(imei="353456789012346")
        services.update_device(sold, {"status": DeviceStatus.SOLD}, user=self.admin)
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/cellular-devices/", {"status": "in_stock"})

        self.assertEqual(response.status_code, 200)
        ids = {row["id"] for row in response.json()["results"]}
        self.assertEqual(ids, {str(in_stock.id)})


class StockItemApiTests(InventoryFixtureMixin, TestCase):
    def test_adjust_endpoint_returns_item_and_transaction(self):
        part = self.make_part(quantity=10)
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(f"/api/v1/parts/{part.id}/adjust/", {"quantity": -4}, format="json")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["item"]["quantity"], 6)
        self.assertEqual(payload["transaction"]["transaction_type"], "sale")
        self.assertEqual(payload["transaction"]["quantity"], 4)

    def test_adjust_to_negative_returns_ledger_error(self):
        part = self.make_part(quantity=1)
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(f"/api/v1/parts/{part.id}/adjust/", {"new_quantity": -1}, format="json")

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "ledger_error")
        self.assertEqual(payload["message"], "New quantity cannot be negative")
        part.refresh_from_db()
        self.assertEqual(part.quantity, 1)

    def test_user_cannot_adjust_stock(self):
        part = self.make_part(quantity=10)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(f"/api/v1/parts/{part.id}/adjust/", {"quantity": 1}, format="json")

        self.assertEqual(response.status_code, 403)

    def test_patch_does_not_move_quantity(self):
        part = self.make_part(quantity=10)
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/parts/{part.id}/", {"quantity": 99, "name": "Screen"}, format="json")

        self.assertEqual(response.status_code, 200)
        part.refresh_from_db()
        self.assertEqual(part.quantity, 10)
        self.assertEqual(part.name, "Screen")

    def test_part_with_history_cannot_be_deleted(self):
        part = self.make_part(quantity=10)
        services.adjust_item_quantity(part, 1, user=self.admin)
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/parts/{part.id}/")

        self.assertEqual(response.status_code, 400)
        self.assertTrue(Part.objects.filter(id=part.id).exists())


class CatalogueApiTests(InventoryFixtureMixin, TestCase):
    def test_model_names_for_manufacturer(self):
        TacCode.objects.create(tac_code="35345678", manufacturer="Apple", model_name="iPhone 13")
        TacCode.objects.create(tac_code="35345679", manufacturer="Apple", model_name="iPhone 14")
        TacCode.objects.create(tac_code="35111111", manufacturer="Samsung", model_name="Galaxy S23")
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/tac-codes/models/", {"manufacturer": "apple", "search": "14"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["results"], ["iPhone 14"])

    def test_model_names_require_manufacturer(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/tac-codes/models/")

        self.assertEqual(response.status_code, 400)

    def test_configuration_lookup(self):
        DeviceConfiguration.objects.create(
            manufacturer=self.apple,
            model_name="iPhone 13",
            available_colors=["Blue", "Midnight"],
            storage_options=[128, 256],
        )
        self.client.force_authenticate(user=self.user)

        found = self.client.get(
            "/api/v1/device-configurations/lookup/", {"manufacturer": "Apple", "model_name": "iphone 13"}
        )
        missing = self.client.get(
            "/api/v1/device-configurations/lookup/", {"manufacturer": "Apple", "model_name": "iPhone 99"}
        )

        self.assertEqual(found.status_code, 200)
        self.assertEqual(found.json()["storage_options"], [128, 256])
        self.assertEqual(missing.json(), {"available_colors": [], "storage_options": []})
