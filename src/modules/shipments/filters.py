import django_filters

from modules.shipments.constants import PartnerAvailability, VehicleType
from modules.shipments.models import DeliveryPartner


class DeliveryPartnerFilter(django_filters.FilterSet):
    availability = django_filters.ChoiceFilter(choices=PartnerAvailability.choices)
    provider = django_filters.CharFilter(field_name="provider", lookup_expr="iexact")
    vehicle_type = django_filters.ChoiceFilter(choices=VehicleType.choices)
    min_rating = django_filters.NumberFilter(field_name="rating", lookup_expr="gte")

    class Meta:
        model = DeliveryPartner
        fields = [
            "availability",
            "provider",
            "vehicle_type",
            "min_rating",
        ]
