from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from core.models import Manufacturer, ProductGrade, StorageLocation
from inventory import services as inventory_services
from inventory.models import Accessory, CellularDevice, DeviceConfiguration, DeviceStatus, Part
from orders import services as order_services
from orders.models import Customer, PurchaseOrder, SalesOrder, Supplier


class Command(BaseCommand):
    help = "Seed demo device inventory data for local development."

    @transaction.atomic
    def handle(self, *args, **options):
        User = get_user_model()

        admin_user, admin_created = User.objects.get_or_create(
            username="admin",
            defaults={
                "email": "admin@example.com",
                "full_name": "Demo Admin",
                "role": User.Role.ADMIN,
                "is_staff": True,
                "is_superuser": True,
                "is_active": True,
            },
        )
        if admin_created:
            admin_user.set_password("admin1234")
            admin_user.save(update_fields=["password"])

        clerk_user, clerk_created = User.objects.get_or_create(
            username="clerk",
            defaults={
                "email": "clerk@example.com",
                "full_name": "Goods In Clerk",
                "role": User.Role.USER,
                "is_active": True,
            },
        )
        if clerk_created:
            clerk_user.set_password("clerk1234")
            clerk_user.save(update_fields=["password"])

        apple, _ = Manufacturer.objects.get_or_create(name="Apple")
        dell, _ = Manufacturer.objects.get_or_create(name="Dell")
        shelf, _ = StorageLocation.objects.get_or_create(
            location_code="SHELF-A1",
            defaults={"description": "Goods in shelf", "created_by": admin_user},
        )
        grade_a = ProductGrade.objects.filter(grade="A").first()

        DeviceConfiguration.objects.get_or_create(
            manufacturer=apple,
            model_name="iPhone 13",
            defaults={"release_year": 2021, "available_colors": ["Blue", "Midnight", "Starlight"], "storage_options": [128, 256, 512]},
        )

        supplier, _ = Supplier.objects.get_or_create(
            supplier_code="SUP-001",
            defaults={"name": "Phone Wholesale Ltd", "email": "supplier@example.com", "created_by": admin_user},
        )
        customer = Customer.objects.filter(name="Demo Retailer").first()
        if customer is None:
            customer = Customer.objects.create(
                name="Demo Retailer",
                email="customer@example.com",
                customer_code=order_services.next_customer_code(),
                created_by=admin_user,
            )

        purchase_order, po_created = PurchaseOrder.objects.get_or_create(
            po_number="PO-000001",
            defaults={
                "supplier": supplier,
                "order_date": timezone.localdate(),
                "created_by": clerk_user,
                "updated_by": clerk_user,
            },
        )
        if po_created:
            order_services.book_devices_into_purchase_order(
                purchase_order,
                [
                    {
                        "device_type": "cellular",
                        "identifier": imei,
                        "manufacturer": apple,
                        "model_name": "iPhone 13",
                        "storage_gb": 128,
                        "color": "Blue",
                        "grade_id": grade_a.pk if grade_a else None,
                        "tray_id": "TRAY-01",
                    }
                    for imei in ("353456789012345", "353456789012346", "353456789012347")
                ],
                user=clerk_user,
            )
            order_services.confirm_purchase_order(purchase_order, user=admin_user)

        if not inventory_services.find_device("DL7440-0001"):
            inventory_services.create_serial_device(
                serial_number="DL7440-0001",
                manufacturer=dell,
                model_name="Latitude 7440",
                user=clerk_user,
                location=shelf,
            )

        if not SalesOrder.objects.filter(customer=customer).exists():
            sales_order = SalesOrder.objects.create(
                order_number=order_services.next_sales_order_number(),
                customer=customer,
                order_date=timezone.localdate(),
                created_by=clerk_user,
                updated_by=clerk_user,
            )
            device = CellularDevice.objects.filter(status=DeviceStatus.IN_STOCK).order_by("imei").first()
            if device is not None:
                order_services.add_devices_to_sales_order(sales_order, [device], user=clerk_user)

        for model, sku, name, quantity in [
            (Part, "SCR-IP13", "iPhone 13 screen", 12),
            (Accessory, "USBC-1M", "USB-C cable 1m", 40),
        ]:
            item, created = model.objects.get_or_create(
                sku=sku,
                defaults={
                    "manufacturer": apple,
                    "name": name,
                    "quantity": 0,
                    "location": shelf,
                    "created_by": admin_user,
                    "updated_by": admin_user,
                },
            )
            if created:
                inventory_services.set_item_quantity(item, quantity, user=admin_user, notes="Opening stock")

        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully."))
        self.stdout.write("Credentials: admin/admin1234, clerk/clerk1234")
        self.stdout.write(f"Purchase order: {purchase_order.po_number} | Customer: {customer.customer_code}")
