"""Service-layer exceptions.

Routers translate these into HTTP responses: NotFoundError -> 404,
ConflictError -> 409, ValidationFailed -> 400.
"""


class NotFoundError(LookupError):
    """A referenced row does not exist."""


class ConflictError(ValueError):
    """The request conflicts with current state (duplicate, already closed, ...)."""


class ValidationFailed(ValueError):
    """A business rule rejected the request."""
