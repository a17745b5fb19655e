from django.apps import AppConfig


class FulfillmentConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.fulfillment"
    label = "fulfillment"

    def ready(self) -> None:
        from modules.fulfillment.receivers import (
            release_channels_on_payment_resolved,
            stop_channels_on_order_change,
        )
        from modules.orders.signals import order_changed
        from modules.payments.signals import payment_resolved

        order_changed.connect(
            stop_channels_on_order_change, dispatch_uid="fulfillment.stop_channels"
        )
        payment_resolved.connect(
            release_channels_on_payment_resolved,
            dispatch_uid="fulfillment.release_channels",
        )
