from rest_framework.routers import DefaultRouter

from inventory.views import (
    AccessoryViewSet,
    CellularDeviceViewSet,
    DeviceConfigurationViewSet,
    PartViewSet,
    SerialDeviceViewSet,
    TacCodeViewSet,
)

router = DefaultRouter()
router.register(r"cellular-devices", CellularDeviceViewSet, basename="cellular-device")
router.register(r"serial-devices", SerialDeviceViewSet, basename="serial-device")
router.register(r"parts", PartViewSet, basename="part")
router.register(r"accessories", AccessoryViewSet, basename="accessory")
router.register(r"tac-codes", TacCodeViewSet, basename="tac-code")
router.register(r"device-configurations", DeviceConfigurationViewSet, basename="device-configuration")

urlpatterns = router.urls
