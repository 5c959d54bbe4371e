"""
Application-wide exception hierarchy.

Why this module exists:
  Services sit on top of a spreadsheet, not a database, so the failure
  modes are different from a typical CRUD app: missing credentials,
  read-only credentials, rows that cannot be located, and upstream API
  failures. Each gets one canonical type here.

  Services raise these; the application factory registers one handler
  per type so every blueprint gets consistent HTTP status codes without
  repeating try/except blocks.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Campaign", resource_id="C-001")
    raise ValidationError("newStatus is not a known status", details={"newStatus": "bogus"})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist in the sheet.

    Args:
        resource: Human-readable entity name (e.g. "Campaign", "ChangeRequest").
        resource_id: The identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation in the service layer.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a record is not in a state that allows the operation.

    Used for change requests that were already answered. Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} cannot be changed")


class SheetsNotConfiguredError(Exception):
    """Raised when no Google Sheets credentials or spreadsheet id are configured.

    Maps to HTTP 503.
    """

    def __init__(self, message: str = "Google Sheets credentials not configured") -> None:
        super().__init__(message)


class WritePermissionError(Exception):
    """Raised before any network call when only read-only credentials exist.

    Writing requires a service account; an API key can only read public
    sheets. Maps to HTTP 503 with an actionable message for the admin.
    """

    def __init__(
        self,
        message: str = "Service Account credentials are required for write operations",
    ) -> None:
        super().__init__(message)


class RowStoreError(Exception):
    """Raised when the Sheets API call itself fails.

    The upstream message is kept verbatim so operators can act on it.
    Maps to HTTP 502.

    Args:
        message: Upstream error text.
        status_code: HTTP status returned by the Sheets API, when known.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TransitionError(Exception):
    """Raised in strict mode when an action is attempted from a wrong status.

    Maps to HTTP 409 with the current status and the allowed sources.

    Args:
        action: Admin action name, or "submit".
        current: Current status value.
        allowed: Status values the action may start from.
    """

    def __init__(self, action: str, current: str, allowed: list[str] | None = None) -> None:
        self.action = action
        self.current_status = current
        self.allowed = allowed or []
        msg = f"Cannot '{action}' campaign in status '{current}'"
        if allowed:
            msg += f" (allowed from: {', '.join(allowed)})"
        super().__init__(msg)
