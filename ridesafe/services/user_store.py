import logging
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ridesafe.core.errors import DuplicateProfile, NotFound, ValidationError
from ridesafe.database import persistence_guard, utcnow
from ridesafe.models.user import ROLES, UserProfile, profile_id_for

logger = logging.getLogger(__name__)

COMMON_PROFILE_FIELDS = ('name', 'phone')
ROLE_REQUIRED_FIELDS = {
    'user': ('student_name',),
    'admin': ('admin_code',),
    'driver': ('license_number', 'vehicle_number', 'experience'),
}
ROLE_OPTIONAL_FIELDS = {
    'user': (
        'student_class',
        'school_name',
        'pickup_location',
        'drop_location',
        'guardian_name',
        'guardian_phone',
        'guardian_email',
        'alternate_phone',
        'emergency_contact',
        'medical_conditions',
        'special_requirements',
    ),
    'admin': (),
    'driver': (),
}
READ_ONLY_COLUMNS = frozenset({'id', 'uid', 'email', 'role', 'created_at'})


def normalize_email(email: str | None) -> str:
    return (email or '').strip().lower()


def validate_role_data(role: str, role_data: dict[str, Any]) -> dict[str, Any]:
    """Check the registration fields for ``role`` and return the accepted subset."""
    if role not in ROLES:
        raise ValidationError(f'Unknown role: {role}.')

    required = COMMON_PROFILE_FIELDS + ROLE_REQUIRED_FIELDS[role]
    allowed = set(required) | set(ROLE_OPTIONAL_FIELDS[role])

    unknown = sorted(set(role_data) - allowed)
    if unknown:
        raise ValidationError(f"Fields not allowed for the {role} role: {', '.join(unknown)}.")

    missing = [name for name in required if not str(role_data.get(name) or '').strip()]
    if missing:
        raise ValidationError(f"Please fill in all required fields: {', '.join(missing)}.")

    return {name: value for name, value in role_data.items() if name in allowed}


def get_by_email(db: Session, email: str) -> list[UserProfile]:
    with persistence_guard(db):
        return list(
            db.scalars(
                select(UserProfile).where(UserProfile.email == normalize_email(email)).order_by(UserProfile.role)
            )
        )


def get_by_email_and_role(db: Session, email: str, role: str) -> UserProfile | None:
    with persistence_guard(db):
        return db.scalars(
            select(UserProfile).where(
                UserProfile.email == normalize_email(email),
                UserProfile.role == role,
            )
        ).first()


def get_profile(db: Session, profile_id: str) -> UserProfile:
    with persistence_guard(db):
        profile = db.get(UserProfile, profile_id)
    if profile is None:
        raise NotFound('User profile not found.')
    return profile


def create_profile(db: Session, principal, role: str, role_data: dict[str, Any]) -> UserProfile:
    """Create the unverified profile of ``principal`` for ``role``."""
    values = validate_role_data(role, role_data)
    email = normalize_email(principal.email)

    if get_by_email_and_role(db, email, role) is not None:
        raise DuplicateProfile(f'An account with this email already exists for {role} role.')

    profile = UserProfile(
        id=profile_id_for(principal.uid, role),
        uid=principal.uid,
        email=email,
        role=role,
        email_verified=False,
        admission_status='none',
        **values,
    )
    with persistence_guard(db):
        db.add(profile)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise DuplicateProfile(f'An account with this email already exists for {role} role.') from exc
        db.refresh(profile)

    logger.info('Created %s profile %s.', role, profile.id)
    return profile


def update_profile(db: Session, profile_id: str, fields: dict[str, Any]) -> UserProfile:
    unknown = sorted(
        name for name in fields if name not in UserProfile.__table__.columns or name in READ_ONLY_COLUMNS
    )
    if unknown:
        raise ValidationError(f"Unknown or read-only profile fields: {', '.join(unknown)}.")

    profile = get_profile(db, profile_id)
    with persistence_guard(db):
        for name, value in fields.items():
            setattr(profile, name, value)
        profile.updated_at = utcnow()
        db.commit()
        db.refresh(profile)
    return profile


def mark_verified(db: Session, profile_id: str) -> UserProfile:
    return update_profile(db, profile_id, {'email_verified': True})


def mark_verified_for_uid(db: Session, uid: str) -> int:
    with persistence_guard(db):
        profiles = db.scalars(
            select(UserProfile).where(UserProfile.uid == uid, UserProfile.email_verified.is_(False))
        ).all()
        for profile in profiles:
            profile.email_verified = True
            profile.updated_at = utcnow()
        db.commit()
    return len(profiles)


def delete_unverified(db: Session, email: str) -> int:
    """Remove every never-verified profile registered under ``email``."""
    with persistence_guard(db):
        profiles = db.scalars(
            select(UserProfile).where(
                UserProfile.email == normalize_email(email),
                UserProfile.email_verified.is_(False),
            )
        ).all()
        for profile in profiles:
            db.delete(profile)
        db.commit()

    if profiles:
        logger.info('Cleaned up %d unverified profile(s) for %s.', len(profiles), normalize_email(email))
    return len(profiles)


def can_access_panel(profiles: Iterable[UserProfile], role: str) -> bool:
    """An admin profile also opens the user and driver panels."""
    verified_roles = {profile.role for profile in profiles if profile.email_verified}
    return role in verified_roles or 'admin' in verified_roles
