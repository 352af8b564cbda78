"""Engine error taxonomy."""

from typing import Any, List, Optional


class EngineError(Exception):
    """Base class for failures surfaced by the result map engine"""

    http_status = 500

    def __init__(self, message: str, *, entry_id: Optional[str] = None):
        self.message = message
        self.entry_id = entry_id
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            'success': False,
            'error': self.message,
            'code': type(self).__name__,
            'id': self.entry_id,
        }


class ProviderUnavailable(EngineError):
    """Map, search, geocode or distance backend could not be reached"""

    http_status = 502


class NotFound(EngineError):
    """The request was valid but no matching entity exists"""

    http_status = 404


class PartialData(EngineError):
    """A batch operation where some legs or entries failed and others succeeded.

    `partial` holds whatever was obtained before the failure.
    """

    http_status = 502

    def __init__(self, message: str, partial: Optional[List[Any]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.partial = list(partial or [])


class PreconditionUnmet(EngineError):
    """Operation requested before its dependency is ready"""

    http_status = 409
