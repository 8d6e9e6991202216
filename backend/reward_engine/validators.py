"""Request validators for the admin routes."""
import secrets

from reward_engine.config import settings
from reward_engine.errors import ErrorCode, GameError
from reward_engine.logic.models import ReportMethod
from reward_engine.protocol import ProbabilityRequest


def validate_admin_token(token: str | None) -> None:
    """
    Check the X-Admin-Token header.

    Raises UNAUTHORIZED if an admin token is configured and does not match.
    Admin routes are open when no token is configured.
    """
    expected = settings.admin_token
    if expected is None:
        return
    if token is None or not secrets.compare_digest(token, expected):
        raise GameError(ErrorCode.UNAUTHORIZED, "Invalid or missing X-Admin-Token.")


def validate_probability_request(request: ProbabilityRequest) -> None:
    """
    Validate method/sampleCount combination.

    Raises INVALID_REQUEST for a sample count on the exact method or a
    non-positive sample count. The upper bound is enforced by the engine.
    """
    if request.sampleCount is None:
        return
    if request.method == ReportMethod.FAST:
        raise GameError(
            ErrorCode.INVALID_REQUEST,
            "sampleCount applies to the monte-carlo method only.",
        )
    if request.sampleCount <= 0:
        raise GameError(
            ErrorCode.INVALID_REQUEST,
            f"sampleCount must be positive, got {request.sampleCount}.",
        )
