"""
Error taxonomy for the auth service.

Every error carries an HTTP status and a stable category. The exception
handlers in ``echopind.api.error_handlers`` render them as
``{"error": <category>, "message": <text>}``.
"""


class EchoPindError(Exception):
    status_code: int = 500
    category: str = "Internal"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(EchoPindError):
    status_code = 400
    category = "ValidationError"
    default_message = "Please correct the following errors"


class DuplicateResource(EchoPindError):
    status_code = 400
    category = "DuplicateResource"
    default_message = "Resource already exists"


class Unauthenticated(EchoPindError):
    status_code = 401
    category = "Unauthenticated"
    default_message = "User not authenticated"


class InvalidCredentials(Unauthenticated):
    # Same message whether the email is unknown or the password is wrong
    default_message = "Invalid credentials"


class AccountDeactivated(Unauthenticated):
    default_message = "Account is deactivated"


class NoToken(Unauthenticated):
    default_message = "No token provided"


class InvalidToken(Unauthenticated):
    default_message = "Invalid token"


class TokenExpired(Unauthenticated):
    default_message = "Token expired"


class UserNotFound(Unauthenticated):
    default_message = "Invalid token or user not found"


class InvalidRefreshToken(Unauthenticated):
    default_message = "Invalid refresh token"


class InvalidPassword(Unauthenticated):
    default_message = "Invalid password"


class Forbidden(EchoPindError):
    status_code = 403
    category = "Forbidden"
    default_message = "Insufficient permissions"


class NotFound(EchoPindError):
    status_code = 404
    category = "NotFound"
    default_message = "User not found"


class InternalError(EchoPindError):
    pass
