"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import SimpleRouter

from modules.payments.views import (
    ManualConfirmationViewSet,
    PaymentAttemptViewSet,
    SmsIngressView,
)

router = SimpleRouter(trailing_slash=True)
router.register("payments/attempts", PaymentAttemptViewSet, basename="payment-attempt")
router.register(
    "payments/manual-confirmations", ManualConfirmationViewSet, basename="manual-confirmation"
)

urlpatterns = [
    path("payments/sms/", SmsIngressView.as_view(), name="payment-sms-ingress"),
    *router.urls,
]
