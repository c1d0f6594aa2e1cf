"""Error taxonomy for the decision pipeline and its HTTP mapping."""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DecisionServiceError(Exception):
    """Base class for errors surfaced by the decision pipeline."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Decision service error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {"error": self.error, "message": self.message}


class ConfigurationError(DecisionServiceError):
    """No usable vendor credential or base URL could be resolved."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "No API key available"


class QuotaExceededError(DecisionServiceError):
    """A system-funded call would exceed the monthly spend ceilings.

    Carries the usage figures so callers can offer a bring-your-own-key path.
    """

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "Usage limit exceeded"

    def __init__(
        self,
        reason: str,
        total_cost: float,
        user_cost: float,
        monthly_limit: float,
        per_user_limit: float,
    ):
        super().__init__(f"{reason}. Add your own API key in settings to continue.")
        self.reason = reason
        self.total_cost = total_cost
        self.user_cost = user_cost
        self.monthly_limit = monthly_limit
        self.per_user_limit = per_user_limit

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "reason": self.reason,
            "userCost": round(self.user_cost, 6),
            "perUserLimit": self.per_user_limit,
            "totalCost": round(self.total_cost, 6),
            "monthlyLimit": self.monthly_limit,
        })
        return data


class VendorCallError(DecisionServiceError):
    """Network failure, timeout or non-2xx reply from a vendor.

    Transient; callers may retry with backoff.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    error = "AI provider request failed"

    def __init__(self, message: str, provider: str, vendor_status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.vendor_status = vendor_status
        if vendor_status == 401:
            self.status_code = status.HTTP_401_UNAUTHORIZED
            self.error = "Invalid API key"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        return data


class ResponseParseError(DecisionServiceError):
    """Vendor replied but the content held no extractable JSON object."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error = "Could not parse AI response"

    def __init__(self, message: str, raw_text: str):
        super().__init__(message)
        self.raw_text = raw_text

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["rawResponse"] = self.raw_text
        return data


class InvalidAnswerError(DecisionServiceError):
    """An answer value is not in the configured table for its dimension."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Invalid answer"

    def __init__(self, dimension: str, value: Any):
        super().__init__(f"Unknown answer {value!r} for dimension '{dimension}'")
        self.dimension = dimension
        self.value = value


class ItemNotFoundError(DecisionServiceError):
    """Item does not exist or belongs to another user."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "Item not found"


class UserNotFoundError(DecisionServiceError):
    """User id does not resolve to a user record."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "User not found"


async def decision_error_handler(request: Request, exc: DecisionServiceError) -> JSONResponse:
    """Render a DecisionServiceError as a JSON response."""
    logger.warning(
        f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}",
        extra={
            'request_id': getattr(request.state, 'request_id', None),
            'extra_fields': {'error_type': exc.__class__.__name__, 'status_code': exc.status_code},
        }
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the taxonomy handlers to the application."""
    app.add_exception_handler(DecisionServiceError, decision_error_handler)
