import django_filters

from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    delivery_method = django_filters.CharFilter(
        field_name="delivery_method", lookup_expr="iexact"
    )
    seller = django_filters.UUIDFilter(field_name="seller_id")
    driver = django_filters.UUIDFilter(field_name="driver_id")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = [
            "status",
            "delivery_method",
            "seller",
            "driver",
            "start_date",
            "end_date",
        ]
