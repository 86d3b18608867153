from rest_framework import serializers

from .models import Hotel, Review


class ReviewSerializer(serializers.ModelSerializer):
    hotel = serializers.IntegerField(source="hotel_id", read_only=True)

    class Meta:
        model = Review
        fields = ["id", "hotel", "user_name", "rating", "comment", "created_at"]
        read_only_fields = ["id", "hotel", "created_at"]


class HotelSerializer(serializers.ModelSerializer):
    reviews_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Hotel
        fields = [
            "id",
            "name",
            "location",
            "image",
            "description",
            "price",
            "rating",
            "amenities",
            "reviews_count",
            "stripe_product_id",
            "stripe_price_id",
            "created_at",
        ]
        read_only_fields = ["id", "reviews_count", "created_at"]

    def validate_amenities(self, value):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError("Amenities must be a list of strings.")
        return value
