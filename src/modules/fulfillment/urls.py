"""Fulfillment URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import SimpleRouter

from modules.fulfillment.views import FulfillmentViewSet, SubscriptionDepositView

router = SimpleRouter(trailing_slash=True)
router.register("fulfillment/orders", FulfillmentViewSet, basename="fulfillment")

urlpatterns = [
    path(
        "fulfillment/sellers/<uuid:seller_id>/subscription/",
        SubscriptionDepositView.as_view(),
        name="seller-subscription-deposit",
    ),
    *router.urls,
]
