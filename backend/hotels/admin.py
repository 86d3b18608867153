from django.contrib import admin

from .models import Hotel, Review


class ReviewInline(admin.TabularInline):
    model = Review
    extra = 0


@admin.register(Hotel)
class HotelAdmin(admin.ModelAdmin):
    list_display = ("name", "location", "price", "rating", "stripe_price_id")
    search_fields = ("name", "location")
    inlines = [ReviewInline]
