"""Error types raised by the service layer.

Services raise these (they subclass ValueError, which is what the services
raised historically); the API renders them as {"ok": false, "error": ...}
with the status code carried on the class.
"""


class PortalError(ValueError):
    """Base error. Used directly for generic/internal failures."""

    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(PortalError):
    """Malformed input, rejected before any store mutation."""

    status_code = 400


class AuthenticationError(PortalError):
    """Bad credentials or a missing/invalid/expired session."""

    status_code = 401


class AuthorizationError(PortalError):
    """Valid session, insufficient role or department."""

    status_code = 403


class NotFoundError(PortalError):
    status_code = 404


class ConflictError(PortalError):
    """Duplicate email, duplicate assignment, already-used token, etc."""

    status_code = 409
