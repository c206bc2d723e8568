### stdlib imports
import typing


class DashboardError(Exception):
    """Base class for every error surfaced by the dashboard core."""


class AuthenticationError(DashboardError):
    """Missing, invalid or expired credentials. Always forces the session back to anonymous."""


class ValidationError(DashboardError):
    """Client-side input error, scoped to fields. Never reaches the backend."""

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = dict(field_errors)
        super().__init__(
            "; ".join(f"{name}: {message}" for name, message in self.field_errors.items())
        )


class ConflictError(DashboardError):
    """Business error reported by the backend, to be shown to the user verbatim."""

    def __init__(self, message: str, status_code: typing.Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class RegistrationDisabledError(ConflictError):
    pass


class TransportError(DashboardError):
    """The backend could not be reached or answered with something unreadable."""
