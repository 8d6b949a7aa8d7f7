"""Student dashboard view of a user profile.

``update_student`` is a command: it persists first and reports the outcome,
and the caller applies local state only when ``ok`` is true. Without an
``admin_email`` only the self-service keys may change; admission outcome,
fee and change-request fields are left to the review workflows.
"""
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from ridesafe.core.errors import NotFound, RideSafeError, SelfServiceForbidden, ValidationError
from ridesafe.models.user import UserProfile
from ridesafe.realtime.sync import update_user_data_with_sync
from ridesafe.services import user_store

# Dashboard key -> UserProfile column.
STUDENT_FIELD_MAP = {
    'name': 'student_name',
    'class': 'student_class',
    'school': 'school_name',
    'pickup_location': 'pickup_location',
    'drop_location': 'drop_location',
    'monthly_amount': 'monthly_amount',
    'guardian_name': 'guardian_name',
    'guardian_phone': 'guardian_phone',
    'alternate_phone': 'alternate_phone',
    'guardian_email': 'guardian_email',
    'admission_status': 'admission_status',
    'emergency_contact': 'emergency_contact',
    'medical_conditions': 'medical_conditions',
    'special_requirements': 'special_requirements',
}

SELF_SERVICE_KEYS = frozenset({'medical_conditions', 'special_requirements'})


@dataclass
class UpdateResult:
    ok: bool
    student: dict[str, Any] | None = None
    error: str | None = None
    status_code: int | None = None


def student_view(profile: UserProfile) -> dict[str, Any]:
    student = {'id': profile.id}
    for key, column in STUDENT_FIELD_MAP.items():
        value = getattr(profile, column)
        if value is None:
            value = 0 if column == 'monthly_amount' else ''
        student[key] = value
    return student


def update_student(
    db: Session,
    email: str,
    updates: dict[str, Any],
    admin_email: str | None = None,
) -> UpdateResult:
    try:
        unknown = sorted(set(updates) - set(STUDENT_FIELD_MAP))
        if unknown:
            raise ValidationError(f"Unknown student fields: {', '.join(unknown)}.")
        if admin_email is None:
            gated = sorted(set(updates) - SELF_SERVICE_KEYS)
            if gated:
                raise SelfServiceForbidden(
                    f"Only an admin or an approved change request can change: {', '.join(gated)}."
                )

        profile = user_store.get_by_email_and_role(db, email, 'user')
        if profile is None:
            raise NotFound('User profile not found.')

        profile_updates = {STUDENT_FIELD_MAP[key]: value for key, value in updates.items()}
        profile = update_user_data_with_sync(db, profile.id, profile_updates, admin_email)
    except RideSafeError as exc:
        return UpdateResult(ok=False, error=exc.message, status_code=exc.status_code)

    return UpdateResult(ok=True, student=student_view(profile))
