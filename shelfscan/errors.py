"""
Error taxonomy shared by the gateway, the extractor and the HTTP layer.

Each variant carries the HTTP status the web layer answers with, so route
handlers never have to probe optional fields on a generic exception.
"""

from typing import Optional


class RelayError(Exception):
    status_code = 500
    default_message = "Error processing request"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidInput(RelayError):
    status_code = 400
    default_message = "Invalid request"


class UpstreamTimeout(RelayError):
    status_code = 408
    default_message = "The API request timed out. Please try again."


class NotFound(RelayError):
    """The model answered with its sentinel object, e.g. no books detected."""

    status_code = 404
    default_message = "No books detected"


class MalformedResponse(RelayError):
    status_code = 500
    default_message = "No JSON found in response"


class TransportError(RelayError):
    """Upstream HTTP or connection failure; keeps the upstream status when there is one."""

    def __init__(self, status_code: int = 500, message: Optional[str] = None):
        super().__init__(message, status_code=status_code or 500)
