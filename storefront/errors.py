"""Error taxonomy shared by the services and the HTTP layer.

Each error carries the HTTP status it maps to, so route handlers can let
them propagate and a single exception handler renders ``{"error": ...}``.
"""


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    """Missing or malformed input."""
    status_code = 400


class Unauthorized(StorefrontError):
    """Bad credentials or an invalid token."""
    status_code = 401


class NotFound(StorefrontError):
    status_code = 404


class Conflict(StorefrontError):
    """The resource already exists, e.g. a taken username."""
    status_code = 409


class InternalError(StorefrontError):
    status_code = 500
