"""Error codes and exceptions for the reward engine."""
from enum import Enum

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from reward_engine.config import settings


class ErrorCode(str, Enum):
    """Engine and request error codes."""

    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    INVALID_RULE = "INVALID_RULE"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    COMPUTATION_IN_PROGRESS = "COMPUTATION_IN_PROGRESS"
    PROBABILITY_INVARIANT_VIOLATION = "PROBABILITY_INVARIANT_VIOLATION"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_CONFIGURATION: 400,
    ErrorCode.INVALID_RULE: 400,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.COMPUTATION_IN_PROGRESS: 409,
    ErrorCode.PROBABILITY_INVARIANT_VIOLATION: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}

# Whether retrying the same request can succeed without changing it
ERROR_RECOVERABLE: dict[ErrorCode, bool] = {
    ErrorCode.INVALID_REQUEST: False,
    ErrorCode.UNAUTHORIZED: False,
    ErrorCode.NOT_FOUND: False,
    ErrorCode.INVALID_CONFIGURATION: False,
    ErrorCode.INVALID_RULE: False,
    ErrorCode.INVALID_ARGUMENT: False,
    ErrorCode.COMPUTATION_IN_PROGRESS: True,
    ErrorCode.PROBABILITY_INVARIANT_VIOLATION: True,
    ErrorCode.INTERNAL_ERROR: True,
}


class ErrorBody(BaseModel):
    """Error body shape."""

    code: str
    message: str
    recoverable: bool


class ErrorResponse(BaseModel):
    """Full error response."""

    protocolVersion: str = settings.protocol_version
    error: ErrorBody


class GameError(Exception):
    """Base engine error that maps to a protocol error response."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, code: ErrorCode | None = None, message: str | None = None):
        self.code = code or self.code
        self.message = message or f"Error: {self.code.value}"
        self.status_code = ERROR_HTTP_STATUS[self.code]
        self.recoverable = ERROR_RECOVERABLE[self.code]
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        """Convert to JSONResponse."""
        return JSONResponse(
            status_code=self.status_code,
            content=ErrorResponse(
                error=ErrorBody(
                    code=self.code.value,
                    message=self.message,
                    recoverable=self.recoverable,
                )
            ).model_dump(),
        )


class InvalidConfiguration(GameError):
    """Weight table cannot produce a probability distribution."""

    code = ErrorCode.INVALID_CONFIGURATION

    def __init__(self, message: str | None = None):
        super().__init__(message=message)


class InvalidRule(GameError):
    """Rule or punishment payload rejected while building a rule set."""

    code = ErrorCode.INVALID_RULE

    def __init__(self, message: str | None = None):
        super().__init__(message=message)


class InvalidArgument(GameError):
    """Bad argument to a probability computation."""

    code = ErrorCode.INVALID_ARGUMENT

    def __init__(self, message: str | None = None):
        super().__init__(message=message)


class ConfigurationNotFound(GameError):
    """Unknown weight config id, scheme id or game mode."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, message: str | None = None):
        super().__init__(message=message)


class ComputationInProgress(GameError):
    """Another process holds the compute lock for a report."""

    code = ErrorCode.COMPUTATION_IN_PROGRESS

    def __init__(self, message: str | None = None):
        super().__init__(message=message)


class ProbabilityInvariantViolation(GameError):
    """
    Total probability mass of a report is off by more than epsilon.

    Signals an enumeration or classification bug. The report must not be
    cached or shown.
    """

    code = ErrorCode.PROBABILITY_INVARIANT_VIOLATION

    def __init__(self, message: str | None = None):
        super().__init__(message=message)
