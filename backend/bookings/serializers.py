from rest_framework import serializers

from bookings.models import Booking

IMMUTABLE_FIELDS = ("user", "user_id", "hotel", "hotel_id", "status", "payment_status", "payment_session_id")


class BookingSerializer(serializers.ModelSerializer):
    user = serializers.IntegerField(source="user_id", read_only=True)
    hotel = serializers.IntegerField(source="hotel_id", read_only=True)
    hotel_name = serializers.CharField(source="hotel.name", read_only=True)
    nights = serializers.IntegerField(read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "user",
            "hotel",
            "hotel_name",
            "check_in",
            "check_out",
            "nights",
            "room_number",
            "status",
            "payment_status",
            "payment_session_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    hotel_id = serializers.IntegerField()
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    room_number = serializers.IntegerField(min_value=1)


class BookingUpdateSerializer(serializers.Serializer):
    check_in = serializers.DateField(required=False)
    check_out = serializers.DateField(required=False)
    room_number = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):
        locked = [field for field in IMMUTABLE_FIELDS if field in self.initial_data]
        if locked:
            raise serializers.ValidationError({field: "This field cannot be changed." for field in locked})
        return attrs


class BookingStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.STATUSES)


def checkout_payload(result) -> dict:
    """Serialize a lifecycle CheckoutResult for create / re-checkout responses."""

    error = None
    if result.payment_error is not None:
        error = {
            "code": result.payment_error.get_codes(),
            "detail": str(result.payment_error.detail),
        }
    return {
        "booking": BookingSerializer(result.booking).data,
        "payment": {
            "session_id": result.session_id,
            "url": result.checkout_url,
            "error": error,
        },
    }
