"""Module errors: structured error taxonomy for Guardian."""
#
# PURPOSE:
# Gives every caller-visible failure an error code, a message, optional
# details and the HTTP status the API layer should answer with.
#
# ERROR CODE FORMAT:
# - INPUT_XXX: Malformed analysis requests (the only errors a caller sees)
# - REGISTRY_XXX: Pattern catalog problems (fatal at startup)
# - AI_XXX: Semantic-analysis service failures (converted to warnings)
# - STORE_XXX: Share persistence errors
# - BYTECODE_XXX: On-chain bytecode lookup errors (converted to warnings)
# - SYSTEM_XXX: Everything else
#
# USAGE:
#   from guardian.errors import GuardianError, ErrorCode
#
#   raise GuardianError(
#       ErrorCode.INPUT_INVALID,
#       "Invalid function path",
#       details={"function_name": "transfer"}
#   )
#
from enum import Enum
from typing import Dict, Any, Optional


class ErrorCode(Enum):
    # Input Errors
    INPUT_INVALID = "INPUT_001"
    INPUT_FUNCTION_PATH = "INPUT_002"

    # Registry Errors
    REGISTRY_INVALID = "REGISTRY_001"
    REGISTRY_DUPLICATE_ID = "REGISTRY_002"
    REGISTRY_UNKNOWN_STRATEGY = "REGISTRY_003"

    # AI Errors
    AI_OFFLINE = "AI_001"
    AI_TIMEOUT = "AI_002"
    AI_INVALID_RESPONSE = "AI_003"
    AI_JSON_PARSE_ERROR = "AI_004"
    AI_RATE_LIMIT_EXCEEDED = "AI_006"

    # Store Errors
    STORE_NOT_FOUND = "STORE_001"
    STORE_WRITE_FAILED = "STORE_002"
    STORE_INIT_FAILED = "STORE_003"
    STORE_READ_FAILED = "STORE_004"

    # Bytecode Errors
    BYTECODE_LOOKUP_FAILED = "BYTECODE_001"

    # System Errors
    SYSTEM_INTERNAL_ERROR = "SYSTEM_001"


class GuardianError(Exception):
    """
    Base exception for Guardian with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "INPUT_001")
        message: Human-readable error message
        details: Optional dictionary with additional context
        http_status: Suggested HTTP status code for API responses
    """

    HTTP_STATUS_MAP: Dict[ErrorCode, int] = {
        ErrorCode.INPUT_INVALID: 400,
        ErrorCode.INPUT_FUNCTION_PATH: 400,

        ErrorCode.REGISTRY_INVALID: 500,
        ErrorCode.REGISTRY_DUPLICATE_ID: 500,
        ErrorCode.REGISTRY_UNKNOWN_STRATEGY: 500,

        ErrorCode.AI_OFFLINE: 503,
        ErrorCode.AI_TIMEOUT: 408,
        ErrorCode.AI_INVALID_RESPONSE: 502,
        ErrorCode.AI_JSON_PARSE_ERROR: 502,
        ErrorCode.AI_RATE_LIMIT_EXCEEDED: 429,

        ErrorCode.STORE_NOT_FOUND: 404,
        ErrorCode.STORE_WRITE_FAILED: 500,
        ErrorCode.STORE_INIT_FAILED: 500,
        ErrorCode.STORE_READ_FAILED: 500,

        ErrorCode.BYTECODE_LOOKUP_FAILED: 502,

        ErrorCode.SYSTEM_INTERNAL_ERROR: 500,
    }

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.http_status = http_status or self.HTTP_STATUS_MAP.get(code, 500)

        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for JSON serialization.

        Returns:
            Dictionary with code, message, details, and http_status
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "http_status": self.http_status
        }


# ============================================================================
# Convenience Functions
# ============================================================================

def handle_error(error: Exception, context: Optional[str] = None) -> GuardianError:
    """
    Convert a generic exception to a GuardianError.

    Args:
        error: The original exception
        context: Optional context string (e.g., "while calling the LLM")

    Returns:
        GuardianError with appropriate code and message
    """
    if isinstance(error, GuardianError):
        return error

    error_type = type(error).__name__

    if "Timeout" in error_type:
        code = ErrorCode.AI_TIMEOUT
    elif "Connect" in error_type or "Connection" in error_type:
        code = ErrorCode.AI_OFFLINE
    else:
        code = ErrorCode.SYSTEM_INTERNAL_ERROR

    message = str(error) or error_type
    if context:
        message = f"{context}: {message}"

    return GuardianError(
        code=code,
        message=message,
        details={
            "original_type": error_type,
            "original_message": str(error)
        }
    )


__all__ = ["ErrorCode", "GuardianError", "handle_error"]
