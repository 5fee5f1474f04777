# billing/api/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from billing.api.viewsets.bill import BillViewSet

router = DefaultRouter()
router.register(r"bills", BillViewSet, basename="bills")

urlpatterns = [
    path("", include(router.urls)),
]
