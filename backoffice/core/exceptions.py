"""
Domain errors raised by the service layer.

Routes let these propagate; the handlers registered in backoffice.main turn
them into HTTP responses.
"""
from typing import Any, Dict, Iterable, Optional


class BackofficeError(Exception):
    """Base class for errors that are local to a single request."""

    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BackofficeError):
    """Invalid input. Carries field-level messages."""

    default_message = "The given data was invalid."

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = errors
        super().__init__(message)


class DuplicateError(ValidationError):
    """A record with the same identity already exists."""

    def __init__(self, field: str, message: str = "The {field} has already been taken."):
        super().__init__({field: message.format(field=field)})


class NotFoundError(BackofficeError):
    default_message = "Not found"

    def __init__(self, resource: str = "Resource", message: Optional[str] = None):
        self.resource = resource
        super().__init__(message or f"{resource} not found")


class ForbiddenError(BackofficeError):
    default_message = "This action is unauthorized."


class SelfActionError(ForbiddenError):
    """An action a user may never perform on their own account."""

    default_message = "You cannot delete your own account."


def field_errors(errors: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    """
    Flatten pydantic error entries to ``{field: message}``.

    The last element of ``loc`` names the field; model-level errors land
    under ``root``. Later errors for the same field win.
    """
    flattened: Dict[str, str] = {}
    for error in errors:
        loc, msg = error.get("loc"), error.get("msg")
        if not loc or msg is None:
            continue
        field = str(loc[-1])
        flattened["root" if field == "__root__" else field] = msg
    return flattened
