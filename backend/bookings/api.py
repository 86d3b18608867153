from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import IsBookingAdministrator
from bookings.serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    BookingStatusSerializer,
    BookingUpdateSerializer,
    checkout_payload,
)
from bookings.services import lifecycle


class BookingViewSet(viewsets.ViewSet):
    """
    Booking endpoints. Every state change goes through `bookings.services.lifecycle`;
    the views only parse input and serialize results.
    """

    lookup_value_regex = r"\d+"
    public_actions = {"list", "by_session"}
    admin_actions = {"confirm", "set_status"}

    def get_permissions(self):
        if self.action in self.public_actions:
            return [permissions.AllowAny()]
        if self.action in self.admin_actions:
            return [IsBookingAdministrator()]
        return [permissions.IsAuthenticated()]

    def list(self, request):
        serializer = BookingSerializer(lifecycle.list_bookings(), many=True)
        return Response(serializer.data)

    def create(self, request):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = lifecycle.create_booking(user=request.user, **serializer.validated_data)
        return Response(checkout_payload(result), status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        booking = lifecycle.get_booking(booking_id=pk, user=request.user)
        return Response(BookingSerializer(booking).data)

    def partial_update(self, request, pk=None):
        serializer = BookingUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = lifecycle.update_booking(booking_id=pk, user=request.user, patch=serializer.validated_data)
        return Response(BookingSerializer(booking).data)

    @action(detail=False, methods=["get"], url_path="me")
    def me(self, request):
        serializer = BookingSerializer(lifecycle.list_user_bookings(request.user), many=True)
        return Response(serializer.data)

    @action(detail=False, methods=["get"], url_path=r"session/(?P<session_id>[^/]+)", url_name="session")
    def by_session(self, request, session_id=None):
        booking = lifecycle.get_booking_by_session(session_id)
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["patch"], url_path="cancel")
    def cancel(self, request, pk=None):
        booking = lifecycle.cancel_booking(booking_id=pk, user=request.user)
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"], url_path="checkout")
    def checkout(self, request, pk=None):
        result = lifecycle.restart_checkout(booking_id=pk, user=request.user)
        return Response(checkout_payload(result), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["patch"], url_path="confirm")
    def confirm(self, request, pk=None):
        booking = lifecycle.confirm_booking(booking_id=pk)
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["patch"], url_path="status", url_name="status")
    def set_status(self, request, pk=None):
        serializer = BookingStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = lifecycle.set_booking_status(booking_id=pk, status=serializer.validated_data["status"])
        return Response(BookingSerializer(booking).data)
