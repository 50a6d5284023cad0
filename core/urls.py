from django.urls import path
from rest_framework.routers import DefaultRouter

from core.views import (
    AuditLogViewSet,
    ManufacturerViewSet,
    ProductGradeViewSet,
    RegisterView,
    StorageLocationViewSet,
)

router = DefaultRouter()
router.register(r"manufacturers", ManufacturerViewSet, basename="manufacturer")
router.register(r"storage-locations", StorageLocationViewSet, basename="storage-location")
router.register(r"grades", ProductGradeViewSet, basename="grade")
router.register(r"admin/audit-logs", AuditLogViewSet, basename="audit-log")

urlpatterns = router.urls + [
    path("register/", RegisterView.as_view(), name="register"),
]
