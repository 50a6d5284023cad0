from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from core.models import Manufacturer
from inventory import services as inventory_services
from inventory.models import CellularDevice, CellularDeviceTransaction, DeviceStatus, TransactionType
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

IMEI_A = "353456789012345"
IMEI_B = "353456789012346"


class OrderFixtureMixin:
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.user = self.user_model.objects.create_user(username="clerk", password="pass1234")
        self.admin = self.user_model.objects.create_user(
            username="orders-admin",
            password="pass1234",
            role=self.user_model.Role.ADMIN,
        )
        self.apple = Manufacturer.objects.create(name="Apple")
        self.supplier = Supplier.objects.create(name="Phone Wholesale Ltd", supplier_code="SUP-001")
        self.customer = Customer.objects.create(name="Retail Co", customer_code="CST-001")

    def make_purchase_order(self, **attrs):
        values = {
            "po_number": "PO-000123",
            "supplier": self.supplier,
            "order_date": timezone.localdate(),
            "created_by": self.user,
            "updated_by": self.user,
        }
        values.update(attrs)
        return PurchaseOrder.objects.create(**values)

    def make_sales_order(self, order_number="SO-000001"):
        return SalesOrder.objects.create(
            order_number=order_number,
            customer=self.customer,
            order_date=timezone.localdate(),
            created_by=self.user,
            updated_by=self.user,
        )

    def make_device(self, imei=IMEI_A):
        return inventory_services.create_cellular_device(
            imei=imei,
            manufacturer=self.apple,
            model_name="iPhone 13",
            user=self.user,
        )

    def booking(self, *imeis):
        return [
            {"identifier": imei, "manufacturer": "Apple", "model_name": "iPhone 13", "storage_gb": 128, "color": "Blue"}
            for imei in imeis
        ]


class PurchaseOrderTests(OrderFixtureMixin, TestCase):
    def test_create_purchase_order_validates_number(self):
        self.client.force_authenticate(user=self.user)

        bad = self.client.post(
            "/api/v1/purchase-orders/",
            {"po_number": "PO-12", "supplier": str(self.supplier.id)},
            format="json",
        )
        good = self.client.post(
            "/api/v1/purchase-orders/",
            {"po_number": "PO-000777", "supplier": str(self.supplier.id), "requires_qc": True},
            format="json",
        )

        self.assertEqual(bad.status_code, 400)
        self.assertEqual(
            bad.json()["errors"],
            {"po_number": ["PO number must be in the format PO-XXXXXX (where X is a digit)"]},
        )
        self.assertEqual(good.status_code, 201)
        self.assertEqual(good.json()["status"], OrderStatus.DRAFT)
        self.assertEqual(good.json()["created_by"], str(self.user.id))

    def test_booking_devices_groups_planned_rows_and_books_purchases(self):
        purchase_order = self.make_purchase_order(requires_qc=True)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/purchase-orders/{purchase_order.id}/devices/",
            {"devices": self.booking(IMEI_A, IMEI_B)},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual({row["identifier"] for row in response.json()}, {IMEI_A, IMEI_B})

        planned = PlannedDevice.objects.get(purchase_order=purchase_order)
        self.assertEqual(planned.quantity, 2)
        self.assertEqual(planned.storage_gb, 128)

        for device in CellularDevice.objects.all():
            self.assertEqual(device.supplier, self.supplier)
            self.assertTrue(device.qc_required)
            entry = CellularDeviceTransaction.objects.get(device=device)
            self.assertEqual(entry.transaction_type, TransactionType.PURCHASE)
            self.assertEqual(entry.reference_id, purchase_order.id)
            self.assertEqual(entry.notes, "Device created")

    def test_booking_rejects_existing_imei_without_partial_writes(self):
        self.make_device(IMEI_B)
        purchase_order = self.make_purchase_order()
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/purchase-orders/{purchase_order.id}/devices/",
            {"devices": self.booking(IMEI_A, IMEI_B)},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["errors"],
            {"imei": [f"Device with IMEI {IMEI_B} already exists in the system"]},
        )
        self.assertFalse(CellularDevice.objects.filter(imei=IMEI_A).exists())
        self.assertFalse(PlannedDevice.objects.exists())
        self.assertFalse(PurchaseOrderDevice.objects.exists())

    def test_booking_rejects_repeated_identifier(self):
        purchase_order = self.make_purchase_order()

        with self.assertRaisesMessage(Exception, f"Device {IMEI_A} is listed more than once"):
            services.book_devices_into_purchase_order(purchase_order, self.booking(IMEI_A, IMEI_A), user=self.user)

    def test_booking_requires_devices(self):
        purchase_order = self.make_purchase_order()
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/purchase-orders/{purchase_order.id}/devices/",
            {"devices": []},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"], {"devices": ["Please add at least one device"]})

    def test_confirm_requires_devices(self):
        purchase_order = self.make_purchase_order()
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(f"/api/v1/purchase-orders/{purchase_order.id}/confirm/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"], ["Cannot confirm purchase order with no devices"])

    def test_confirm_after_booking(self):
        purchase_order = self.make_purchase_order()
        services.book_devices_into_purchase_order(purchase_order, self.booking(IMEI_A), user=self.user)
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(f"/api/v1/purchase-orders/{purchase_order.id}/confirm/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], OrderStatus.CONFIRMED)

    def test_user_cannot_confirm(self):
        purchase_order = self.make_purchase_order()
        self.client.force_authenticate(user=self.user)

        response = self.client.post(f"/api/v1/purchase-orders/{purchase_order.id}/confirm/")

        self.assertEqual(response.status_code, 403)

    def test_goods_in_counts(self):
        purchase_order = self.make_purchase_order()
        services.book_devices_into_purchase_order(purchase_order, self.booking(IMEI_A, IMEI_B), user=self.user)
        self.make_purchase_order(po_number="PO-000124")
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/goods-in/")

        self.assertEqual(response.status_code, 200)
        rows = {row["po_number"]: row for row in response.json()["results"]}
        self.assertEqual(rows["PO-000123"]["device_count"], 2)
        self.assertEqual(rows["PO-000123"]["planned_count"], 2)
        self.assertEqual(rows["PO-000124"]["device_count"], 0)
        self.assertEqual(rows["PO-000124"]["planned_count"], 0)


class SalesOrderTests(OrderFixtureMixin, TestCase):
    def test_customer_codes_are_sequential(self):
        self.client.force_authenticate(user=self.admin)

        first = self.client.post("/api/v1/customers/", {"name": "Shop One"}, format="json")
        second = self.client.post("/api/v1/customers/", {"name": "Shop Two"}, format="json")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.json()["customer_code"], "CST-002")
        self.assertEqual(second.json()["customer_code"], "CST-003")

    def test_sales_order_number_is_generated(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post("/api/v1/sales-orders/", {"customer": str(self.customer.id)}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["order_number"], "SO-000001")
        self.assertEqual(response.json()["status"], OrderStatus.DRAFT)

    def test_adding_device_marks_it_sold_with_sale_entry(self):
        device = self.make_device()
        sales_order = self.make_sales_order()
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/sales-orders/{sales_order.id}/devices/",
            {"cellular_devices": [str(device.id)]},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()[0]["status"], DeviceStatus.SOLD)
        device.refresh_from_db()
        self.assertEqual(device.status, DeviceStatus.SOLD)
        entry = CellularDeviceTransaction.objects.get(device=device, transaction_type=TransactionType.SALE)
        self.assertEqual(entry.previous_status, DeviceStatus.IN_STOCK)
        self.assertEqual(entry.created_by, self.user)

    def test_device_not_in_stock_is_rejected(self):
        device = self.make_device()
        inventory_services.update_device(device, {"status": DeviceStatus.REPAIR}, user=self.admin)
        sales_order = self.make_sales_order()
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/sales-orders/{sales_order.id}/devices/",
            {"cellular_devices": [str(device.id)]},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"], {"devices": [f"Devices not in stock: {IMEI_A}"]})
        self.assertFalse(sales_order.devices.exists())

    def test_add_devices_requires_selection(self):
        sales_order = self.make_sales_order()

        with self.assertRaisesMessage(Exception, "Please select at least one device"):
            services.add_devices_to_sales_order(sales_order, [], user=self.user)

    def test_shipment_identifier_confirmation(self):
        device = self.make_device()
        sales_order = self.make_sales_order()
        services.add_devices_to_sales_order(sales_order, [device], user=self.user)
        self.client.force_authenticate(user=self.user)
        url = f"/api/v1/sales-orders/{sales_order.id}/confirm-identifier/"

        found = self.client.post(url, {"identifier": IMEI_A}, format="json")
        missing = self.client.post(url, {"identifier": IMEI_B}, format="json")
        empty = self.client.post(url, {"identifier": "  "}, format="json")

        self.assertEqual(found.status_code, 200)
        self.assertEqual(
            found.json()["message"],
            f"IMEI/Serial {IMEI_A} confirmed for device Apple iPhone 13.",
        )
        self.assertTrue(found.json()["confirmed"])
        self.assertEqual(
            missing.json(),
            {"confirmed": False, "message": f"IMEI/Serial {IMEI_B} not found in the sales order."},
        )
        self.assertEqual(empty.status_code, 400)

    def test_submit_requires_devices(self):
        sales_order = self.make_sales_order()
        self.client.force_authenticate(user=self.user)

        response = self.client.post(f"/api/v1/sales-orders/{sales_order.id}/submit/", {}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"], ["Cannot submit sales order with no devices"])

    def test_submit_records_shipping_details(self):
        sales_order = self.make_sales_order()
        services.add_devices_to_sales_order(sales_order, [self.make_device()], user=self.user)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/sales-orders/{sales_order.id}/submit/",
            {"tracking_number": "1Z999", "shipping_carrier": "UPS", "total_boxes": 1},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        sales_order.refresh_from_db()
        self.assertEqual(sales_order.status, OrderStatus.PROCESSING)
        self.assertEqual(sales_order.tracking_number, "1Z999")
        self.assertEqual(sales_order.total_boxes, 1)

    def test_returning_device_books_return(self):
        device = self.make_device()
        sales_order = self.make_sales_order()
        link = services.add_devices_to_sales_order(sales_order, [device], user=self.user)[0]
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(f"/api/v1/sales-orders/{sales_order.id}/devices/{link.id}/return/")

        self.assertEqual(response.status_code, 200)
        device.refresh_from_db()
        self.assertEqual(device.status, DeviceStatus.RETURNED)
        entry = CellularDeviceTransaction.objects.get(device=device, transaction_type=TransactionType.RETURN_IN)
        self.assertEqual(entry.previous_status, DeviceStatus.SOLD)

    def test_device_listed_twice_is_sold_once(self):
        device = self.make_device()
        sales_order = self.make_sales_order()
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/sales-orders/{sales_order.id}/devices/",
            {"cellular_devices": [str(device.id), str(device.id)]},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()), 1)
        self.assertEqual(SalesOrderDevice.objects.filter(cellular_device=device).count(), 1)
        self.assertEqual(
            CellularDeviceTransaction.objects.filter(device=device, transaction_type=TransactionType.SALE).count(), 1
        )

    def test_repeated_device_in_one_call_is_rejected_without_links(self):
        device = self.make_device()
        sales_order = self.make_sales_order()

        with self.assertRaises(ValidationError):
            services.add_devices_to_sales_order(sales_order, [device, device], user=self.user)

        self.assertFalse(sales_order.devices.exists())
        device.refresh_from_db()
        self.assertEqual(device.status, DeviceStatus.IN_STOCK)

    def test_stale_copy_of_sold_device_cannot_be_sold_again(self):
        device = self.make_device()
        stale = CellularDevice.objects.get(pk=device.pk)
        first = self.make_sales_order()
        second = self.make_sales_order(order_number="SO-000002")
        services.add_devices_to_sales_order(first, [device], user=self.user)

        with self.assertRaises(ValidationError) as cm:
            services.add_devices_to_sales_order(second, [stale], user=self.user)

        self.assertEqual(cm.exception.detail, {"devices": [f"Device {IMEI_A} is not in stock"]})
        self.assertFalse(second.devices.exists())
        self.assertEqual(SalesOrderDevice.objects.filter(cellular_device=device).count(), 1)
        self.assertEqual(
            CellularDeviceTransaction.objects.filter(device=device, transaction_type=TransactionType.SALE).count(), 1
        )

    def test_device_cannot_be_returned_twice(self):
        device = self.make_device()
        sales_order = self.make_sales_order()
        link = services.add_devices_to_sales_order(sales_order, [device], user=self.user)[0]
        self.client.force_authenticate(user=self.admin)
        url = f"/api/v1/sales-orders/{sales_order.id}/devices/{link.id}/return/"

        self.assertEqual(self.client.post(url).status_code, 200)
        response = self.client.post(url)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"], {"devices": [f"Device {IMEI_A} is not sold on this sales order"]})
        self.assertEqual(
            CellularDeviceTransaction.objects.filter(device=device, transaction_type=TransactionType.RETURN_IN).count(), 1
        )

    def test_old_link_cannot_return_device_resold_elsewhere(self):
        device = self.make_device()
        first = self.make_sales_order()
        old_link = services.add_devices_to_sales_order(first, [device], user=self.user)[0]
        services.return_sales_order_device(old_link, user=self.admin)
        inventory_services.update_device(device, {"status": DeviceStatus.IN_STOCK}, user=self.admin)
        second = self.make_sales_order(order_number="SO-000002")
        services.add_devices_to_sales_order(second, [device], user=self.user)

        with self.assertRaises(ValidationError):
            services.return_sales_order_device(old_link, user=self.admin)

        device.refresh_from_db()
        self.assertEqual(device.status, DeviceStatus.SOLD)
