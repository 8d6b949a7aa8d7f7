"""Identity adapter over an email/password auth provider.

Provider failures arrive as ``ProviderError`` with provider error codes and
leave this module as the matching ``AuthError`` subclass.
"""
from dataclasses import dataclass
from typing import Callable, Protocol

from ridesafe.core.errors import (
    AccountDisabled,
    AuthError,
    EmailAlreadyInUse,
    ExpiredCode,
    InvalidCode,
    InvalidCredentials,
    TooManyAttempts,
    UserNotFound,
    WeakPassword,
)


@dataclass(frozen=True)
class Principal:
    uid: str
    email: str
    email_verified: bool = False


class ProviderError(Exception):
    def __init__(self, code: str, message: str | None = None):
        self.code = code
        self.message = message or code
        super().__init__(self.message)


class AuthProvider(Protocol):
    def create_user(self, email: str, password: str) -> Principal: ...

    def sign_in(self, email: str, password: str) -> Principal: ...

    def sign_out(self, principal: Principal) -> None: ...

    def send_email_verification(self, principal: Principal) -> None: ...

    def apply_action_code(self, code: str) -> Principal: ...

    def send_password_reset_email(self, email: str) -> None: ...

    def confirm_password_reset(self, code: str, new_password: str) -> None: ...


PROVIDER_ERRORS: dict[str, type[AuthError]] = {
    'auth/invalid-credential': InvalidCredentials,
    'auth/wrong-password': InvalidCredentials,
    'auth/invalid-email': InvalidCredentials,
    'auth/user-not-found': UserNotFound,
    'auth/too-many-requests': TooManyAttempts,
    'auth/user-disabled': AccountDisabled,
    'auth/invalid-action-code': InvalidCode,
    'auth/expired-action-code': ExpiredCode,
    'auth/email-already-in-use': EmailAlreadyInUse,
    'auth/weak-password': WeakPassword,
}


def map_provider_error(exc: ProviderError) -> AuthError:
    error_class = PROVIDER_ERRORS.get(exc.code)
    if error_class is None:
        return AuthError(exc.message)
    return error_class()


class IdentityAdapter:
    def __init__(self, provider: AuthProvider):
        self._provider = provider
        self._current: Principal | None = None
        self._listeners: list[Callable[[Principal | None], None]] = []

    @property
    def current_principal(self) -> Principal | None:
        return self._current

    def on_auth_state_changed(self, callback: Callable[[Principal | None], None]) -> Callable[[], None]:
        """Push the current principal now and after every sign-in state change."""
        self._listeners.append(callback)
        callback(self._current)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def register(self, email: str, password: str) -> Principal:
        """Create an account; the returned principal is not yet verified."""
        principal = self._call(self._provider.create_user, email, password)
        self._set_current(principal)
        return principal

    def login(self, email: str, password: str) -> Principal:
        principal = self._call(self._provider.sign_in, email, password)
        self._set_current(principal)
        return principal

    def logout(self) -> None:
        if self._current is not None:
            self._call(self._provider.sign_out, self._current)
        self._set_current(None)

    def send_verification_email(self, principal: Principal | None = None) -> None:
        principal = principal or self._current
        if principal is None:
            raise AuthError('No signed-in user.')
        if principal.email_verified:
            return
        self._call(self._provider.send_email_verification, principal)

    def verify_email(self, code: str) -> Principal:
        principal = self._call(self._provider.apply_action_code, code)
        if self._current is not None and self._current.uid == principal.uid:
            self._set_current(principal)
        return principal

    def reset_password(self, email: str) -> None:
        self._call(self._provider.send_password_reset_email, email)

    def confirm_password_reset(self, code: str, new_password: str) -> None:
        self._call(self._provider.confirm_password_reset, code, new_password)

    def _set_current(self, principal: Principal | None) -> None:
        self._current = principal
        for listener in list(self._listeners):
            listener(principal)

    @staticmethod
    def _call(method, *args):
        try:
            return method(*args)
        except ProviderError as exc:
            raise map_provider_error(exc) from exc
