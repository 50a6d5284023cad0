from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import AuditLog, Manufacturer, ProductGrade
from inventory.models import CellularDevice, CellularDeviceTransaction, DeviceStatus, Part, PartTransaction


class RegistrationTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.user_model.objects.create_user(
            username="existing-user",
            email="existing@example.com",
            password="pass1234",
        )

    def test_registration_creates_plain_user_and_audit_row(self):
        response = self.client.post(
            "/api/v1/register/",
            {
                "username": "new-user",
                "email": "New.User@Example.com",
                "password": "a-safe-pass-123",
                "full_name": "New User",
                "role": "admin",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        user = self.user_model.objects.get(username="new-user")
        self.assertEqual(user.email, "new.user@example.com")
        self.assertEqual(user.role, self.user_model.Role.USER)
        self.assertTrue(AuditLog.objects.filter(action="user.create", entity="user", entity_id=user.id).exists())

    def test_registration_rejects_case_insensitive_duplicate_email(self):
        response = self.client.post(
            "/api/v1/register/",
            {
                "username": "another-user",
                "email": "EXISTING@example.com",
                "password": "a-safe-pass-123",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertEqual(payload["errors"], {"email": ["A user with this email already exists."]})

    def test_token_can_be_obtained_with_email(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "existing@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.json())


class ReferenceDataTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.user = self.user_model.objects.create_user(username="clerk", password="pass1234")
        self.admin = self.user_model.objects.create_user(
            username="ref-admin",
            password="pass1234",
            role=self.user_model.Role.ADMIN,
        )

    def test_grades_are_seeded(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/grades/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["grade"] for row in response.json()], ["A", "B", "C", "D", "E", "F"])
        self.assertEqual(ProductGrade.objects.count(), 6)

    def test_user_cannot_create_manufacturer_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.user)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.post("/api/v1/manufacturers/", {"name": "Apple"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertTrue(any("permission_denied" in message for message in cm.output))
        self.assertFalse(Manufacturer.objects.exists())

    def test_admin_creates_manufacturer_with_audit_row(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/manufacturers/",
            {"name": "Apple"},
            format="json",
            HTTP_X_REQUEST_ID="req-123",
        )

        self.assertEqual(response.status_code, 201)
        self.assertTrue(
            AuditLog.objects.filter(action="manufacturer.create", entity="manufacturer", request_id="req-123").exists()
        )

    def test_storage_location_records_creator(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/storage-locations/",
            {"location_code": "SHELF-A1", "description": "Front shelf"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["created_by"], str(self.admin.id))


class AuditLogTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username="audit-admin",
            password="pass1234",
            role=self.user_model.Role.ADMIN,
        )
        self.user = self.user_model.objects.create_user(username="audit-user", password="pass1234")
        self.log = AuditLog.objects.create(action="test.action", entity="test", actor=self.admin)

    def test_audit_logs_are_admin_only(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{self.log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{self.log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)

    def test_audit_log_export_is_csv(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/export/", {"entity": "test"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertIn("test.action", response.content.decode())


class SeedDemoDataCommandTests(TestCase):
    def test_seed_is_idempotent_and_writes_ledger(self):
        call_command("seed_demo_data", stdout=StringIO())
        call_command("seed_demo_data", stdout=StringIO())

        self.assertEqual(CellularDevice.objects.count(), 3)
        self.assertEqual(CellularDevice.objects.filter(status=DeviceStatus.SOLD).count(), 1)
        self.assertEqual(CellularDeviceTransaction.objects.filter(transaction_type="purchase").count(), 3)
        self.assertEqual(CellularDeviceTransaction.objects.filter(transaction_type="sale").count(), 1)
        self.assertEqual(Part.objects.get(sku="SCR-IP13").quantity, 12)
        self.assertEqual(PartTransaction.objects.count(), 1)
