"""Custom exceptions for application-specific error handling."""

from __future__ import annotations

from typing import Optional, Dict, Any


class ConfigAdvisorException(Exception):
    """Base exception for all advisor errors."""

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class NotFoundError(ConfigAdvisorException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str = "not_found", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="NOT_FOUND", details=details, status_code=404)


class BadRequestError(ConfigAdvisorException):
    """Raised when request is invalid."""

    def __init__(self, message: str = "bad_request", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="BAD_REQUEST", details=details, status_code=400)


# ===== COLLABORATOR EXCEPTIONS =====


class CollaboratorFailure(ConfigAdvisorException):
    """Raised when an external collaborator fails mid-operation."""

    def __init__(self, message: str = "Collaborator call failed", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="COLLABORATOR_FAILURE", details=details, status_code=502)


class MetadataUnavailable(CollaboratorFailure):
    """Raised when org metadata cannot be described."""

    def __init__(self, org_id: str, message: str = "Org metadata is unavailable", *, object_name: Optional[str] = None):
        details: Dict[str, Any] = {"org_id": org_id}
        if object_name:
            details["object_name"] = object_name
        super().__init__(message, details=details)
        self.error_code = "METADATA_UNAVAILABLE"


class LLMUnavailable(CollaboratorFailure):
    """Raised when the text generation backend cannot be reached."""

    def __init__(self, message: str = "Text generation backend unavailable"):
        super().__init__(message)
        self.error_code = "LLM_UNAVAILABLE"


# ===== RECOMMENDATION EXCEPTIONS =====


class RecommendationNotFound(NotFoundError):
    """Raised when feedback references a recommendation that does not exist."""

    def __init__(self, ticket_id: str, recommendation_id: str):
        super().__init__(
            f"Recommendation {recommendation_id} not found for ticket {ticket_id}",
            details={"ticket_id": ticket_id, "recommendation_id": recommendation_id},
        )
        self.error_code = "RECOMMENDATION_NOT_FOUND"
