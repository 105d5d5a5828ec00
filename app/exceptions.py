from typing import Optional

from app.models.enums import ErrorType


class AnalysisError(Exception):
    """
    Base error for everything that can go wrong while serving an analysis.

    Carries the error category used by the response envelope and a message
    that is safe to show to the user.
    """

    error_type: ErrorType = ErrorType.UNEXPECTED
    default_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: Optional[str] = None, error_type: Optional[ErrorType] = None):
        self.message = message or self.default_message
        if error_type is not None:
            self.error_type = error_type
        super().__init__(self.message)


class UploadValidationError(AnalysisError):
    error_type = ErrorType.VALIDATION
    default_message = "Invalid file format"


class AuthenticationRequiredError(AnalysisError):
    error_type = ErrorType.AUTH
    default_message = "Authentication required. Please log in again."


class FaceAnalysisError(AnalysisError):
    error_type = ErrorType.VALIDATION
    default_message = "Failed to analyze face image. Please ensure the image contains a clear face."


class ReportProcessingError(AnalysisError):
    error_type = ErrorType.VALIDATION
    default_message = "Unable to process this file. Please ensure it's a clear, readable medical report."


class AnalysisNotFoundError(AnalysisError):
    error_type = ErrorType.NOT_FOUND
    default_message = "Analysis not found"


class AIServiceError(AnalysisError):
    """Error raised by the hosted model client."""

    error_type = ErrorType.SERVICE
    default_message = "Analysis service is temporarily unavailable. Please try again later."

    @property
    def is_quota(self) -> bool:
        return "quota" in self.message.lower()

    @property
    def is_rate_limit(self) -> bool:
        text = self.message.lower()
        return "rate limit" in text or "429" in text
