from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.core.tasks import IntegrationEvent
        from modules.orders import signals  # noqa: F401
        from modules.orders.handlers import order_event_relayed_handler
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(IntegrationEvent, order_event_relayed_handler)
