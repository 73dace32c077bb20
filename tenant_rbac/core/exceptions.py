"""Error taxonomy for the role engine.

Every error carries the HTTP status the API layer answers with. Errors whose
``expose`` flag is off are reported to clients as a generic 500.
"""


class RBACError(Exception):
    """Base exception for the role engine."""

    status_code = 400
    expose = True

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ResourceNotFoundError(RBACError):
    """Raised when a role or user id does not exist."""
    status_code = 404


class ResourceConflictError(RBACError):
    """Raised when a role name (or user email) already exists."""
    status_code = 409


class HasDependentsError(RBACError):
    """Raised when a strict delete finds child roles or users still attached."""
    status_code = 409


class ValidationError(RBACError):
    """Raised when input validation fails."""
    status_code = 422


class AuthenticationError(RBACError):
    """Raised when there is no (active) user behind the request."""
    status_code = 401


class AuthorizationError(RBACError):
    """Raised when an authenticated user lacks a permission."""
    status_code = 403


class CycleDetectedError(RBACError):
    """Raised when a parent chain revisits a role or exceeds the depth bound."""
    status_code = 500
    expose = False


class StoreError(RBACError):
    """Raised when the backing store fails to read or persist an entity."""
    status_code = 500
    expose = False
