"""Custom exception hierarchy and handlers."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    status_code = 400
    code = "app_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundException(AppException):
    """Raised when entity is not found."""

    status_code = 404
    code = "not_found"


class ConflictException(AppException):
    """Raised when entity conflicts with current state."""

    status_code = 409
    code = "conflict"


class UnauthorizedException(AppException):
    """Raised when user has no rights for operation."""

    status_code = 403
    code = "forbidden"


class BusinessRuleException(AppException):
    """Raised when business rule validation fails."""

    status_code = 422
    code = "business_rule_violation"


class SlotNotFound(NotFoundException):
    code = "slot_not_found"


class SlotUnavailable(ConflictException):
    code = "slot_unavailable"


class SchedulingConflict(ConflictException):
    code = "scheduling_conflict"


class AlreadyPending(ConflictException):
    code = "reschedule_already_pending"


class AlreadyResolved(ConflictException):
    code = "reschedule_already_resolved"


class InvalidStateTransition(ConflictException):
    """Raised when a lifecycle action is not valid for the current status."""

    code = "invalid_state_transition"


class SlotTooSoon(BusinessRuleException):
    code = "slot_too_soon"


class TooLateToReschedule(BusinessRuleException):
    code = "too_late_to_reschedule"


class TooEarly(BusinessRuleException):
    """Raised when joining before the join window opens."""

    code = "too_early"


class TooLate(AppException):
    """Raised when joining after the join window has closed."""

    status_code = 410
    code = "session_ended"


class InvalidParty(UnauthorizedException):
    code = "invalid_party"


class NotAuthorized(UnauthorizedException):
    code = "not_authorized"


class AuthenticationFailed(AppException):
    """Raised when a bearer token is missing, expired or malformed."""

    status_code = 401
    code = "not_authenticated"


class InvalidWebhookSignature(AppException):
    """Raised when an inbound webhook fails signature verification."""

    status_code = 401
    code = "invalid_signature"


class ExternalServiceError(AppException):
    """Raised when a third-party dependency fails."""

    status_code = 502
    code = "external_service_error"


class PaymentGatewayError(ExternalServiceError):
    code = "payment_gateway_error"


class MeetingProviderError(ExternalServiceError):
    code = "meeting_provider_error"


class RecordingStorageError(ExternalServiceError):
    code = "recording_storage_error"


class TranscriptionError(ExternalServiceError):
    code = "transcription_error"


async def app_exception_handler(_: Request, exc: AppException) -> JSONResponse:
    """Handle custom domain exceptions."""
    if isinstance(exc, ExternalServiceError):
        logger.warning("External dependency failure (%s): %s", exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions in unified shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": "http_error", "message": str(exc.detail)}},
    )


async def validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation errors in the unified error shape."""
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "validation_error",
                "message": "Request validation failed",
                "details": jsonable_encoder(exc.errors()),
            },
        },
    )


async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


def register_exception_handlers(app) -> None:
    """Register global exception handlers."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
