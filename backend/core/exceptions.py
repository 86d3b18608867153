import logging

from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class PaymentProviderError(APIException):
    """
    Stripe rejected or failed a request.

    `code` is the provider-reported category (card_error, rate_limit_error, ...)
    and `status_code` is the user-facing HTTP status for that category.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "The payment provider could not process the request."
    default_code = "unknown_error"

    def __init__(self, detail=None, code=None, status_code=None):
        super().__init__(detail=detail, code=code)
        if status_code is not None:
            self.status_code = status_code


class SignatureInvalid(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Webhook signature verification failed."
    default_code = "signature_invalid"


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is not None:
        if isinstance(exc, APIException) and isinstance(response.data, dict):
            codes = exc.get_codes()
            if isinstance(codes, str):
                response.data.setdefault("code", codes)
        return response

    view = context.get("view")
    logger.exception(
        "Unhandled error in %s: %s",
        view.__class__.__name__ if view else "unknown view",
        exc,
    )
    payload = {"detail": "Internal server error.", "code": "internal_error"}
    if settings.DEBUG:
        payload["exception"] = exc.__class__.__name__
        payload["message"] = str(exc)
    return Response(payload, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
