"""
Custom Exception Hierarchy

Provides specific exception types for the insight pipeline with structured
error information. Each type carries the HTTP status it maps to when it
reaches the API layer.
"""
from typing import Optional, Dict, Any


class InsightError(Exception):
    """Base exception for all insight pipeline errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class MissingInputError(InsightError):
    """Neither a usable prompt nor a numeric reading was supplied."""

    status_code = 400

    def __init__(
        self,
        message: str = "Temperature or prompt required.",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="MISSING_INPUT",
            details=details
        )


class ConfigurationError(InsightError):
    """Required process configuration (the API credential) is absent."""

    status_code = 500

    def __init__(
        self,
        message: str = "API key not configured",
        setting: str = "GEMINI_API_KEY",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details={"setting": setting, **(details or {})}
        )
        self.setting = setting


class UpstreamListingError(InsightError):
    """The model-listing endpoint did not return HTTP success."""

    status_code = 502

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="UPSTREAM_LISTING",
            details={"status": status, **(details or {})}
        )
        self.status = status


class UpstreamInvocationError(InsightError):
    """A generateContent call for one model failed at the HTTP level."""

    status_code = 502

    def __init__(
        self,
        model: str,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"[{model}] {message}",
            code="UPSTREAM_INVOCATION",
            details={"model": model, "status": status, **(details or {})}
        )
        self.model = model
        self.reason = message
        self.status = status


class NoUsableModelError(InsightError):
    """The model listing contained no name acceptable to the selection rule."""

    status_code = 502

    def __init__(
        self,
        message: str,
        available_models: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="NO_USABLE_MODEL",
            details={"available_models": available_models or [], **(details or {})}
        )
        self.available_models = available_models or []
