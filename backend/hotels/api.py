from django.db.models import Count
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import IsAdminOrReadOnly
from core.pagination import OptionalPageNumberPagination
from .filters import HotelFilter
from .models import Hotel
from .serializers import HotelSerializer, ReviewSerializer


class HotelViewSet(viewsets.ModelViewSet):
    serializer_class = HotelSerializer
    permission_classes = [IsAdminOrReadOnly]
    pagination_class = OptionalPageNumberPagination
    filterset_class = HotelFilter
    search_fields = ["name", "description", "location"]
    ordering_fields = ["price", "rating", "name", "created_at"]

    def get_queryset(self):
        return Hotel.objects.annotate(reviews_count=Count("reviews")).order_by("-created_at", "id")

    @action(
        detail=True,
        methods=["get", "post"],
        url_path="reviews",
        permission_classes=[permissions.IsAuthenticatedOrReadOnly],
    )
    def reviews(self, request, pk=None):
        hotel = self.get_object()
        if request.method.lower() == "get":
            serializer = ReviewSerializer(hotel.reviews.all(), many=True)
            return Response(serializer.data)

        serializer = ReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save(hotel=hotel, user=request.user)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
