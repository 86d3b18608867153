from django.db.models import Q
import django_filters

from .models import Hotel


class CharInFilter(django_filters.BaseInFilter, django_filters.CharFilter):
    pass


class HotelFilter(django_filters.FilterSet):
    location = django_filters.CharFilter(field_name="location", lookup_expr="icontains")
    locations = CharInFilter(method="filter_locations")
    min_price = django_filters.NumberFilter(field_name="price", lookup_expr="gte")
    max_price = django_filters.NumberFilter(field_name="price", lookup_expr="lte")
    min_rating = django_filters.NumberFilter(field_name="rating", lookup_expr="gte")
    amenities = CharInFilter(method="filter_amenities")

    class Meta:
        model = Hotel
        fields = ["location", "locations", "min_price", "max_price", "min_rating", "amenities"]

    def filter_locations(self, queryset, name, value):
        query = Q()
        for location in value:
            if location:
                query |= Q(location__icontains=location)
        return queryset.filter(query) if query else queryset

    def filter_amenities(self, queryset, name, value):
        # every requested amenity must be present
        for amenity in value:
            if amenity:
                queryset = queryset.filter(amenities__icontains=f'"{amenity}"')
        return queryset
