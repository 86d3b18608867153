from rest_framework.permissions import SAFE_METHODS, BasePermission


class IsBookingAdministrator(BasePermission):
    """
    Allow access only to trusted operators (staff or superusers).

    Used for the manual reconciliation endpoints that force booking state
    without a payment event.
    """

    message = "Administrative access is required."

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "is_booking_admin", False)


class IsAdminOrReadOnly(IsBookingAdministrator):
    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        return super().has_permission(request, view)
