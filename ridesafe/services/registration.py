"""Account registration, role login and email confirmation flows."""
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from ridesafe.auth.identity import IdentityAdapter, Principal
from ridesafe.core.errors import (
    DuplicateProfile,
    EmailAlreadyInUse,
    EmailNotVerified,
    PersistenceError,
    RoleNotRegistered,
    ValidationError,
)
from ridesafe.models.user import UserProfile
from ridesafe.services import user_store
from ridesafe.services.admin_codes import AdminCodeRegistry

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    principal: Principal
    profile: UserProfile
    admin_access: bool


def register_account(
    db: Session,
    identity: IdentityAdapter,
    email: str,
    password: str,
    role: str,
    profile_data: dict[str, Any],
    admin_code: str | None = None,
    codes: AdminCodeRegistry | None = None,
) -> UserProfile:
    """Create the identity (or reuse it for a second role) and an unverified profile."""
    email = user_store.normalize_email(email)
    profile_data = dict(profile_data)
    if role == 'admin':
        profile_data['admin_code'] = admin_code
    user_store.validate_role_data(role, profile_data)

    existing = user_store.get_by_email_and_role(db, email, role)
    if existing is not None and existing.email_verified:
        raise DuplicateProfile(f'An account with this email already exists for {role} role.')

    codes = codes or AdminCodeRegistry(db)
    if role == 'admin' and not codes.validate(admin_code):
        raise ValidationError('Invalid admin code. Please enter a valid admin code.')

    try:
        user_store.delete_unverified(db, email)
    except PersistenceError:
        logger.warning('Failed to clean up unverified profiles for %s; continuing registration.', email)

    try:
        principal = identity.register(email, password)
    except EmailAlreadyInUse:
        principal = identity.login(email, password)

    profile = user_store.create_profile(db, principal, role, profile_data)

    if role == 'admin':
        codes.consume(admin_code, principal.uid)

    identity.send_verification_email(principal)
    logger.info('Registered %s as %s; verification pending.', email, role)
    return profile


def login_for_role(db: Session, identity: IdentityAdapter, email: str, password: str, role: str) -> LoginResult:
    """Sign in to one role panel; a verified admin profile opens every panel."""
    email = user_store.normalize_email(email)
    profile = user_store.get_by_email_and_role(db, email, role)
    admin_profile = profile if role == 'admin' else user_store.get_by_email_and_role(db, email, 'admin')

    if profile is None and admin_profile is None:
        article = 'an' if role == 'admin' else 'a'
        raise RoleNotRegistered(f'This email is not registered as {article} {role}. Please register first.')

    principal = identity.login(email, password)
    if not principal.email_verified:
        raise EmailNotVerified()

    if profile is not None and not profile.email_verified:
        profile = user_store.mark_verified(db, profile.id)
    if admin_profile is not None and role != 'admin' and not admin_profile.email_verified:
        admin_profile = user_store.mark_verified(db, admin_profile.id)

    return LoginResult(
        principal=principal,
        profile=profile if profile is not None else admin_profile,
        admin_access=admin_profile is not None,
    )


def confirm_email(db: Session, identity: IdentityAdapter, code: str) -> int:
    """Apply a verification code and mark every profile of that identity verified."""
    principal = identity.verify_email(code)
    return user_store.mark_verified_for_uid(db, principal.uid)
