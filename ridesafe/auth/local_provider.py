import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Callable
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ridesafe.auth.identity import Principal, ProviderError
from ridesafe.core import config
from ridesafe.database import persistence_guard, utcnow
from ridesafe.models.identity import ActionCode, Identity

logger = logging.getLogger(__name__)

VERIFY_EMAIL = 'verify_email'
RESET_PASSWORD = 'reset_password'

Mailer = Callable[[str, str, str], None]


def hash_password(password: str, salt: str | None = None) -> str:
    if salt is None:
        salt = secrets.token_hex(16)
    digest = hashlib.sha256((salt + password).encode()).hexdigest()
    return f"{salt}${digest}"


def verify_password(password: str, stored_hash: str) -> bool:
    try:
        salt, _digest = stored_hash.split("$")
    except ValueError:
        return False
    return hmac.compare_digest(hash_password(password, salt), stored_hash)


def log_mailer(email: str, purpose: str, code: str) -> None:
    logger.info("Action code for %s (%s): %s", email, purpose, code)


def _principal(identity: Identity) -> Principal:
    return Principal(uid=identity.uid, email=identity.email, email_verified=identity.email_verified)


class LocalAuthProvider:
    """Email/password accounts stored in the application database."""

    def __init__(self, db: Session, mailer: Mailer | None = None):
        self.db = db
        self.mailer = mailer or log_mailer

    def create_user(self, email: str, password: str) -> Principal:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ProviderError("auth/invalid-email")
        if len(password or "") < config.MIN_PASSWORD_LENGTH:
            raise ProviderError("auth/weak-password")

        with persistence_guard(self.db):
            if self._find(email) is not None:
                raise ProviderError("auth/email-already-in-use")
            identity = Identity(
                uid=uuid4().hex,
                email=email,
                hashed_password=hash_password(password),
                email_verified=False,
                created_at=utcnow(),
            )
            self.db.add(identity)
            self.db.commit()
            self.db.refresh(identity)
        return _principal(identity)

    def sign_in(self, email: str, password: str) -> Principal:
        email = (email or "").strip().lower()
        with persistence_guard(self.db):
            identity = self._find(email)
            if identity is None:
                raise ProviderError("auth/user-not-found")
            if identity.disabled:
                raise ProviderError("auth/user-disabled")
            if identity.failed_login_attempts >= config.MAX_FAILED_LOGIN_ATTEMPTS:
                raise ProviderError("auth/too-many-requests")
            if not verify_password(password or "", identity.hashed_password):
                identity.failed_login_attempts += 1
                self.db.commit()
                raise ProviderError("auth/wrong-password")
            identity.failed_login_attempts = 0
            self.db.commit()
            self.db.refresh(identity)
        return _principal(identity)

    def sign_out(self, principal: Principal) -> None:
        logger.info("Signed out %s.", principal.email)

    def send_email_verification(self, principal: Principal) -> None:
        code = self._issue_code(principal.uid, VERIFY_EMAIL, config.VERIFICATION_CODE_TTL_MINUTES)
        self.mailer(principal.email, VERIFY_EMAIL, code)

    def apply_action_code(self, code: str) -> Principal:
        with persistence_guard(self.db):
            identity = self._consume_code(code, VERIFY_EMAIL)
            identity.email_verified = True
            self.db.commit()
            self.db.refresh(identity)
        return _principal(identity)

    def send_password_reset_email(self, email: str) -> None:
        email = (email or "").strip().lower()
        with persistence_guard(self.db):
            identity = self._find(email)
        if identity is None:
            raise ProviderError("auth/user-not-found")
        code = self._issue_code(identity.uid, RESET_PASSWORD, config.PASSWORD_RESET_TTL_MINUTES)
        self.mailer(email, RESET_PASSWORD, code)

    def confirm_password_reset(self, code: str, new_password: str) -> None:
        if len(new_password or "") < config.MIN_PASSWORD_LENGTH:
            raise ProviderError("auth/weak-password")
        with persistence_guard(self.db):
            identity = self._consume_code(code, RESET_PASSWORD)
            identity.hashed_password = hash_password(new_password)
            identity.failed_login_attempts = 0
            self.db.commit()

    def _find(self, email: str) -> Identity | None:
        return self.db.scalars(select(Identity).where(Identity.email == email)).first()

    def _issue_code(self, uid: str, purpose: str, ttl_minutes: int) -> str:
        code = secrets.token_urlsafe(24)
        with persistence_guard(self.db):
            self.db.add(
                ActionCode(code=code, uid=uid, purpose=purpose, expires_at=utcnow() + timedelta(minutes=ttl_minutes))
            )
            self.db.commit()
        return code

    def _consume_code(self, code: str, purpose: str) -> Identity:
        action_code = self.db.get(ActionCode, code or "")
        if action_code is None or action_code.purpose != purpose or action_code.used_at is not None:
            raise ProviderError("auth/invalid-action-code")
        if action_code.expires_at <= utcnow():
            raise ProviderError("auth/expired-action-code")
        action_code.used_at = utcnow()
        identity = self.db.get(Identity, action_code.uid)
        if identity is None:
            raise ProviderError("auth/user-not-found")
        return identity
