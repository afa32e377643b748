from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    VALIDATION_ERROR = "validation_error"
    GUARDRAIL_DENIED = "guardrail_denied"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    NOT_FOUND = "not_found"
    INTERNAL_PARSE_ERROR = "internal_parse_error"
    EXECUTION_FAILED = "execution_failed"


class ChatbotError(Exception):
    """Base class for errors that carry a user-safe message and an HTTP-equivalent status."""

    kind: ErrorKind = ErrorKind.EXECUTION_FAILED
    status_code: int = 500

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason


class Unauthorized(ChatbotError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = 401


class ValidationError(ChatbotError):
    kind = ErrorKind.VALIDATION_ERROR
    status_code = 400


class GuardrailDenied(ChatbotError):
    kind = ErrorKind.GUARDRAIL_DENIED
    status_code = 403


class UpstreamUnavailable(ChatbotError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 503


class NotFound(ChatbotError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class InternalParseError(ChatbotError):
    kind = ErrorKind.INTERNAL_PARSE_ERROR
    status_code = 500


class ExecutionFailed(ChatbotError):
    kind = ErrorKind.EXECUTION_FAILED
    status_code = 500
