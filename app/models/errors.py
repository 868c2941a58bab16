from __future__ import annotations

from typing import Any


class ResearchError(Exception):
    """Base class for failures surfaced to the user through the session record."""

    kind = "unknown"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.user_message = message
        self.status_code = status_code


class SessionNotFound(ResearchError):
    kind = "session_not_found"

    def __init__(self, session_id: int):
        super().__init__(f"Research session {session_id} not found")
        self.session_id = session_id


class SessionStateError(ResearchError):
    kind = "session_state"


class CredentialError(ResearchError):
    kind = "credential"


class QuotaExceededError(ResearchError):
    kind = "quota_exceeded"


class GatewayServerError(ResearchError):
    kind = "gateway_server"


class GatewayTimeoutError(ResearchError):
    kind = "gateway_timeout"


class GenerationParseError(ResearchError):
    kind = "generation_parse"


class NoResultsError(ResearchError):
    kind = "no_results"


class ResearchCancelled(ResearchError):
    kind = "cancelled"


class UnknownError(ResearchError):
    kind = "unknown"


NO_RESULTS_MESSAGE = (
    "No search results found. We couldn't find any relevant data for your business. "
    "Please try with more specific industry details or check your Serper API key."
)


def _status_code_of(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response: Any = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify_gateway_error(exc: BaseException, *, provider: str) -> ResearchError:
    """Map a gateway failure onto the error taxonomy with a user-facing message."""
    if isinstance(exc, ResearchError):
        return exc

    message = str(exc) or exc.__class__.__name__
    status = _status_code_of(exc)

    if "API key" in message or status in (401, 403):
        return CredentialError(
            f"Invalid or unauthorized {provider} API key. Please check your API key and try again.",
            status_code=status,
        )
    if "quota" in message.lower() or status == 429:
        return QuotaExceededError(
            "API quota exceeded. Please try again later or use a different API key.",
            status_code=status,
        )
    if status is not None and status >= 500:
        return GatewayServerError(
            f"{provider} server error. Please try again later.",
            status_code=status,
        )
    return UnknownError(f"Error: {message}", status_code=status)


def as_research_error(exc: BaseException) -> ResearchError:
    if isinstance(exc, ResearchError):
        return exc
    message = str(exc) or "An unknown error occurred during research"
    return UnknownError(f"Error: {message}")
