"""
Error codes, exceptions and sanitized error payloads for program generation.
"""


class ErrorCode:
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    MODEL_TIMEOUT = "MODEL_TIMEOUT"
    MODEL_NETWORK_ERROR = "MODEL_NETWORK_ERROR"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    MODEL_MALFORMED_RESPONSE = "MODEL_MALFORMED_RESPONSE"
    MODEL_REQUEST_REJECTED = "MODEL_REQUEST_REJECTED"
    SCHEMA_VALIDATION_FAILED = "SCHEMA_VALIDATION_FAILED"
    GENERATION_ABANDONED = "GENERATION_ABANDONED"


TRANSIENT_CODES = frozenset(
    {
        ErrorCode.MODEL_TIMEOUT,
        ErrorCode.MODEL_NETWORK_ERROR,
        ErrorCode.MODEL_UNAVAILABLE,
        ErrorCode.MODEL_MALFORMED_RESPONSE,
        ErrorCode.SCHEMA_VALIDATION_FAILED,
    }
)

# User-facing text per code. Provider and internal error text never goes here.
PUBLIC_MESSAGES = {
    ErrorCode.MODEL_TIMEOUT: "Program generation timed out. Please try again.",
    ErrorCode.MODEL_NETWORK_ERROR: "Program generation could not reach the generation service. Please try again.",
    ErrorCode.MODEL_UNAVAILABLE: "The generation service is busy. Please try again shortly.",
    ErrorCode.MODEL_MALFORMED_RESPONSE: "The generated program could not be read. Please try again.",
    ErrorCode.MODEL_REQUEST_REJECTED: "Program generation was rejected. Please contact support.",
    ErrorCode.SCHEMA_VALIDATION_FAILED: "The generated program did not have a valid structure. Please try again.",
    ErrorCode.GENERATION_ABANDONED: "Program generation stopped responding. Please start a new request.",
}
GENERIC_MESSAGE = "Program generation failed. Please try again."


class ProgramForgeError(Exception):
    """Base error carrying an internal code and optional structured detail."""

    def __init__(self, code, message, detail=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.detail = detail


class ProfileValidationError(ProgramForgeError):
    def __init__(self, errors):
        super().__init__(
            ErrorCode.VALIDATION_FAILED,
            "Onboarding profile failed validation",
            detail=errors,
        )
        self.errors = errors


class RecordNotFoundError(ProgramForgeError):
    def __init__(self, program_id):
        super().__init__(ErrorCode.NOT_FOUND, f"Program {program_id} not found")
        self.program_id = program_id


class LeaseConflictError(ProgramForgeError):
    """Raised when a write targets a record whose lease or version moved on."""

    def __init__(self, program_id, expected_status, version):
        super().__init__(
            ErrorCode.CONFLICT,
            f"Program {program_id} is no longer {expected_status} at version {version}",
        )
        self.program_id = program_id


class GenerationError(ProgramForgeError):
    """A generation attempt failed and must not be retried."""

    retryable = False


class TransientGenerationError(GenerationError):
    """A generation attempt failed in a way worth retrying."""

    retryable = True


def sanitize_error(code, request_id, detail=None):
    """
    Build the persisted error payload.

    Args:
        code: Internal ErrorCode preserved for diagnostics
        request_id: Correlates the payload with server-side logs
        detail: Extra structured data that is safe to expose

    Returns:
        dict with keys: code, message, detail
    """
    payload_detail = {"requestId": request_id}
    if detail:
        payload_detail.update(detail)
    return {
        "code": code,
        "message": PUBLIC_MESSAGES.get(code, GENERIC_MESSAGE),
        "detail": payload_detail,
    }
