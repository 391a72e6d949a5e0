# storylab/errors.py

from typing import Any, Dict, Optional


class StoryLabError(Exception):
    """
    Base error carrying a user-presentable message and the HTTP status
    the API layer should answer with.
    """

    status_code = 500

    def __init__(self, message: str, *, status_code: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidInputError(StoryLabError):
    status_code = 400


class UnconfiguredError(StoryLabError):
    status_code = 500


_UPSTREAM_MESSAGES = {
    401: "Invalid Figma access token. Please check your token.",
    403: "Access denied. Make sure you have access to this Figma file.",
    404: "Figma file not found. Please check the file ID.",
}


class UpstreamError(StoryLabError):
    """
    A remote service answered with a non-success status (or could not be reached).
    The status is mirrored back to the caller.
    """

    def __init__(self, status: int, message: Optional[str] = None, *, details: Optional[str] = None):
        if message is None:
            message = _UPSTREAM_MESSAGES.get(status, f"Figma API error ({status})")
        super().__init__(message, status_code=status, details=details)
        self.upstream_status = status


class FigmaTimeoutError(UpstreamError):
    def __init__(self, details: Optional[str] = None):
        super().__init__(
            504,
            "Request timeout. The Figma file may be too large or the API is slow to respond.",
            details=details,
        )


class OversizedResponseError(StoryLabError):
    status_code = 413

    def __init__(self, declared_bytes: int, limit_bytes: int):
        super().__init__(
            "Response too large. Please try with a smaller Figma file or fewer frames.",
            details=f"Declared size {declared_bytes} bytes exceeds the {limit_bytes} bytes limit",
        )
        self.declared_bytes = declared_bytes
        self.limit_bytes = limit_bytes


class NodeNotFoundError(StoryLabError):
    status_code = 404


class LlmUnavailableError(StoryLabError):
    status_code = 502


class StoryGenerationError(StoryLabError):
    status_code = 500


class InvalidTransitionError(StoryLabError):
    status_code = 409


class StoryParseError(Exception):
    """Raised inside the story parser only; never leaves it."""
    pass
