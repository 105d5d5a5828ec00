# app/models/enums.py
from enum import Enum


class AnalysisType(str, Enum):
    """Kinds of stored analyses"""
    FACE = "face"
    REPORT = "report"
    RISK = "risk"


class ErrorType(str, Enum):
    """Error categories returned in the action envelope"""
    VALIDATION = "validation"
    AUTH = "auth"
    TIMEOUT = "timeout"
    NETWORK = "network"
    SERVICE = "service"
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    DATABASE = "database"
    UNEXPECTED = "unexpected"

    @property
    def status_code(self) -> int:
        """HTTP status that accompanies an envelope of this category"""
        return {
            ErrorType.VALIDATION: 400,
            ErrorType.AUTH: 401,
            ErrorType.NOT_FOUND: 404,
            ErrorType.RATE_LIMIT: 429,
            ErrorType.TIMEOUT: 504,
            ErrorType.NETWORK: 502,
            ErrorType.SERVICE: 502,
            ErrorType.DATABASE: 503,
            ErrorType.UNEXPECTED: 500,
        }[self]


class Severity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MetricStatus(str, Enum):
    NORMAL = "normal"
    LOW = "low"
    HIGH = "high"
    CRITICAL = "critical"


class TaskState(str, Enum):
    """State of a background analysis task"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
