"""Domain errors shared by the services and the HTTP layer."""

from fastapi import HTTPException, status


class RideSafeError(Exception):
    """Base class for errors the application raises on purpose."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Request failed.'

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(RideSafeError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = 'Authentication failed.'


class InvalidCredentials(AuthError):
    default_message = 'Incorrect email or password.'


class UserNotFound(AuthError):
    default_message = 'No account found with this email address.'


class TooManyAttempts(AuthError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = 'Too many failed attempts. Please try again later.'


class AccountDisabled(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'This account has been disabled. Please contact support.'


class InvalidCode(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'The verification code is invalid or has already been used.'


class ExpiredCode(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'The verification code has expired.'


class EmailAlreadyInUse(AuthError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'An account with this email already exists.'


class WeakPassword(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Password is too weak.'


class EmailNotVerified(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'Please verify your email before logging in.'


class RoleNotRegistered(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'This email is not registered for the selected role.'


class NotFound(RideSafeError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found.'


class DuplicateProfile(RideSafeError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'An account with this email already exists for this role.'


class ValidationError(RideSafeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Invalid request.'


class AlreadyReviewed(ValidationError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'This item has already been reviewed.'


class CodeAlreadyUsed(RideSafeError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'This admin code has already been used.'


class SelfServiceForbidden(RideSafeError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'These fields can only be changed by an admin or through a change request.'


class PersistenceError(RideSafeError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def http_error(exc: RideSafeError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
