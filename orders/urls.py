from django.urls import path
from rest_framework.routers import DefaultRouter

from orders.views import CustomerViewSet, GoodsInView, PurchaseOrderViewSet, SalesOrderViewSet, SupplierViewSet

router = DefaultRouter()
router.register(r"suppliers", SupplierViewSet, basename="supplier")
router.register(r"customers", CustomerViewSet, basename="customer")
router.register(r"purchase-orders", PurchaseOrderViewSet, basename="purchase-order")
router.register(r"sales-orders", SalesOrderViewSet, basename="sales-order")

urlpatterns = router.urls + [
    path("goods-in/", GoodsInView.as_view(), name="goods-in"),
]
