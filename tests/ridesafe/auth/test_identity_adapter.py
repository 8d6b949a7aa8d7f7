import pytest

from ridesafe.auth.identity import IdentityAdapter, Principal, ProviderError, map_provider_error
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

ALICE = Principal(uid='u1', email='alice@example.com')


class FakeProvider:
    def __init__(self, error_code=None, principal=ALICE):
        self.error_code = error_code
        self.principal = principal
        self.calls = []

    def _answer(self, name, *args):
        self.calls.append((name, args))
        if self.error_code:
            raise ProviderError(self.error_code)
        return self.principal

    def create_user(self, email, password):
        return self._answer('create_user', email, password)

    def sign_in(self, email, password):
        return self._answer('sign_in', email, password)

    def sign_out(self, principal):
        self.calls.append(('sign_out', (principal,)))

    def send_email_verification(self, principal):
        self._answer('send_email_verification', principal)

    def apply_action_code(self, code):
        return self._answer('apply_action_code', code)

    def send_password_reset_email(self, email):
        self._answer('send_password_reset_email', email)

    def confirm_password_reset(self, code, new_password):
        self._answer('confirm_password_reset', code, new_password)


@pytest.mark.parametrize(('code', 'expected'), [
    ('auth/wrong-password', InvalidCredentials),
    ('auth/invalid-credential', InvalidCredentials),
    ('auth/invalid-email', InvalidCredentials),
    ('auth/user-not-found', UserNotFound),
    ('auth/too-many-requests', TooManyAttempts),
    ('auth/user-disabled', AccountDisabled),
    ('auth/invalid-action-code', InvalidCode),
    ('auth/expired-action-code', ExpiredCode),
    ('auth/email-already-in-use', EmailAlreadyInUse),
    ('auth/weak-password', WeakPassword),
])
def test_provider_errors_map_to_auth_errors(code: str, expected: type) -> None:
    adapter = IdentityAdapter(FakeProvider(error_code=code))

    with pytest.raises(expected):
        adapter.login('alice@example.com', 'secret123')

    assert adapter.current_principal is None


def test_unknown_provider_error_keeps_its_message() -> None:
    error = map_provider_error(ProviderError('auth/network-request-failed', 'Network down'))

    assert type(error) is AuthError
    assert error.message == 'Network down'


def test_auth_state_listener_sees_current_state_then_changes() -> None:
    adapter = IdentityAdapter(FakeProvider())
    seen = []

    unsubscribe = adapter.on_auth_state_changed(seen.append)
    adapter.login('alice@example.com', 'secret123')
    adapter.logout()
    unsubscribe()
    adapter.login('alice@example.com', 'secret123')

    assert seen == [None, ALICE, None]


def test_send_verification_email_skips_verified_principal() -> None:
    provider = FakeProvider()
    adapter = IdentityAdapter(provider)

    adapter.send_verification_email(Principal(uid='u1', email='alice@example.com', email_verified=True))

    assert provider.calls == []


def test_send_verification_email_defaults_to_current_principal() -> None:
    provider = FakeProvider()
    adapter = IdentityAdapter(provider)
    adapter.register('alice@example.com', 'secret123')

    adapter.send_verification_email()

    assert provider.calls[-1] == ('send_email_verification', (ALICE,))


def test_send_verification_email_without_principal_raises() -> None:
    with pytest.raises(AuthError):
        IdentityAdapter(FakeProvider()).send_verification_email()


def test_verify_email_refreshes_current_principal() -> None:
    verified = Principal(uid='u1', email='alice@example.com', email_verified=True)
    provider = FakeProvider()
    adapter = IdentityAdapter(provider)
    adapter.login('alice@example.com', 'secret123')
    provider.principal = verified

    assert adapter.verify_email('code') == verified
    assert adapter.current_principal == verified
