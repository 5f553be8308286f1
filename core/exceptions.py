from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.response import Response
from rest_framework import status
import logging

logger = logging.getLogger("tracker")


class TrackerError(Exception):
    """
    Base of the error taxonomy shared by every storage backend.

    Storage adapters raise the precise kind; services attach context
    (which entity, which operation) on the way up but never swallow it.
    """
    code = "tracker_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected tracker error."

    def __init__(self, message=None, entity=None, entity_id=None, operation=None, details=None):
        self.message = message or self.default_message
        self.entity = entity
        self.entity_id = entity_id
        self.operation = operation
        self.details = details or {}
        super().__init__(self.message)

    def with_context(self, entity=None, entity_id=None, operation=None):
        """Fill in missing context without replacing what the adapter already knew."""
        self.entity = self.entity or entity
        self.entity_id = self.entity_id or entity_id
        self.operation = self.operation or operation
        return self

    def as_dict(self):
        payload = {"detail": self.message}
        if self.entity:
            payload["entity"] = self.entity
        if self.entity_id:
            payload["entity_id"] = str(self.entity_id)
        if self.operation:
            payload["operation"] = self.operation
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(TrackerError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid data."


class NotFoundError(TrackerError):
    # Also raised when the row exists but the caller may not see it.
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found."


class AuthorizationError(TrackerError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have access to this project."


class DuplicateEntityError(TrackerError):
    code = "duplicate"
    status_code = status.HTTP_409_CONFLICT
    default_message = "A record with these details already exists."


class TransactionError(TrackerError):
    code = "transaction_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "The write was aborted and nothing was changed."


class BackendUnavailableError(TrackerError):
    code = "backend_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The storage backend is unavailable."


def custom_exception_handler(exc, context):
    """
    Wrap DRF, Django and tracker exceptions into a consistent response format.

    Success responses (2xx) are not touched.
    Only errors come through here.
    """
    if isinstance(exc, TrackerError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} during {exc.operation or 'request'}: {exc.message}")
        return Response(
            {
                "success": False,
                "status_code": exc.status_code,
                "error_code": exc.code,
                "errors": exc.as_dict(),
            },
            status=exc.status_code,
        )

    response = drf_exception_handler(exc, context)

    # If DRF handled it, wrap it
    if response is not None:
        return Response(
            {
                "success": False,
                "status_code": response.status_code,
                "error_code": getattr(exc, "default_code", "error"),
                "errors": response.data,
            },
            status=response.status_code,
        )

    # Unhandled exceptions -> 500
    logger.exception("Unhandled API exception", exc_info=exc)

    return Response(
        {
            "success": False,
            "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "error_code": "internal_error",
            "errors": {"detail": "Internal server error."},
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
