"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

from typing import Any, Dict, Optional
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uuid
from datetime import datetime, timezone


PROBLEM_BASE_URI = "https://tripdesk.example.com/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, if any."""
        return self.problem_details.get("code")


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors raised before any mutation."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "VALIDATION_ERROR", "retryable": False}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authorization credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authorization Required",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ProblemDetailsException):
    """Exception for authorization errors."""

    def __init__(
        self,
        detail: str = "Insufficient permissions to access this resource",
        required_permissions: Optional[list] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if required_permissions:
            extensions["required_permissions"] = required_permissions

        super().__init__(
            status_code=403,
            title="Access Forbidden",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/access-forbidden",
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
        title: str = "Resource Conflict",
        type_uri: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title=title,
            detail=detail,
            type_uri=type_uri or f"{PROBLEM_BASE_URI}/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


# Business logic exceptions

class SeatsUnavailable(ConflictError):
    """Batch inventory cannot cover the requested seats; pick another batch."""

    def __init__(self, batch_id: str, requested_seats: int, available_seats: int):
        super().__init__(
            title="Seats Unavailable",
            detail=(
                f"Batch {batch_id} has {available_seats} seat(s) left but {requested_seats} "
                f"were requested. Please choose a different batch."
            ),
            type_uri=f"{PROBLEM_BASE_URI}/seats-unavailable",
            conflicting_resource={
                "batch_id": batch_id,
                "requested_seats": requested_seats,
                "available_seats": available_seats,
            },
        )
        self.problem_details.update({
            "code": "SEATS_UNAVAILABLE",
            "retryable": False,
        })


class MissingProof(ConflictError):
    """Verification attempted before the traveller uploaded a proof."""

    def __init__(self, booking_id: str, stage: str):
        super().__init__(
            title="Payment Proof Missing",
            detail=(
                f"Booking {booking_id} has no uploaded {stage} payment proof to verify. "
                f"Ask the traveller to upload a screenshot first."
            ),
            type_uri=f"{PROBLEM_BASE_URI}/missing-proof",
        )
        self.problem_details.update({
            "code": "MISSING_PROOF",
            "retryable": False,
            "booking_id": booking_id,
            "stage": stage,
        })


class InvalidTransition(ConflictError):
    """The booking's current state does not permit the requested event."""

    def __init__(self, booking_id: str, current_state: str, event: str, detail: Optional[str] = None):
        super().__init__(
            title="Invalid Booking Transition",
            detail=detail or (
                f"Booking {booking_id} is '{current_state}' and cannot accept '{event}'."
            ),
            type_uri=f"{PROBLEM_BASE_URI}/invalid-transition",
        )
        self.problem_details.update({
            "code": "INVALID_TRANSITION",
            "retryable": False,
            "booking_id": booking_id,
            "current_state": current_state,
            "event": event,
        })


class AlreadySettled(InvalidTransition):
    """The booking is already fully paid; nothing is credited twice."""

    def __init__(self, booking_id: str, event: str):
        super().__init__(
            booking_id=booking_id,
            current_state="fully_paid",
            event=event,
            detail=f"Booking {booking_id} is already fully paid. No further payment can be verified.",
        )
        self.title = "Booking Already Settled"
        self.problem_details.update({
            "title": self.title,
            "type": f"{PROBLEM_BASE_URI}/already-settled",
            "code": "ALREADY_SETTLED",
        })


class ElevatedConfirmationRequired(ProblemDetailsException):
    """Cancellation inside the late window needs an explicit staff override."""

    def __init__(self, booking_id: str, hours_to_departure: float, window_hours: int):
        super().__init__(
            status_code=428,
            title="Elevated Confirmation Required",
            detail=(
                f"Booking {booking_id} departs in {hours_to_departure:.1f} hours, inside the "
                f"{window_hours}-hour late cancellation window. A staff member must confirm "
                f"the cancellation explicitly."
            ),
            type_uri=f"{PROBLEM_BASE_URI}/elevated-confirmation-required",
            extensions={
                "code": "ELEVATED_CONFIRMATION_REQUIRED",
                "retryable": True,
                "booking_id": booking_id,
                "hours_to_departure": round(hours_to_departure, 2),
                "window_hours": window_hours,
            },
        )


class StorageFailure(ProblemDetailsException):
    """Persistence failed; the operation was rolled back in full."""

    def __init__(self, operation: str, error_id: Optional[str] = None):
        super().__init__(
            status_code=503,
            title="Storage Failure",
            detail=f"The {operation} operation could not be saved and was rolled back. Please retry.",
            type_uri=f"{PROBLEM_BASE_URI}/storage-failure",
            extensions={
                "code": "STORAGE_FAILURE",
                "retryable": True,
                "operation": operation,
                "error_id": error_id or str(uuid.uuid4()),
            },
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    content.setdefault("instance", request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Convert FastAPI request validation errors to Problem Details with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "type": f"{PROBLEM_BASE_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "The request data failed validation",
            "instance": request.url.path,
            "code": "VALIDATION_ERROR",
            "retryable": False,
            "violations": violations,
        },
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    problem_details = {
        "type": f"{PROBLEM_BASE_URI}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
