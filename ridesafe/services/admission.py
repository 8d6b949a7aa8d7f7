import logging
from dataclasses import dataclass
from numbers import Real
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ridesafe.core.errors import AlreadyReviewed, NotFound, ValidationError
from ridesafe.database import persistence_guard, utcnow
from ridesafe.models.admission import ADMISSION_PROFILE_FIELDS, REVIEW_STATUSES, AdmissionForm
from ridesafe.models.change_request import ChangeRequest
from ridesafe.models.user import UserProfile
from ridesafe.realtime.sync import update_admission_status_with_sync
from ridesafe.services.user_store import normalize_email

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_RESPONSE = 'Approved'


@dataclass
class AdminStats:
    total_users: int
    pending_admissions: int
    approved_admissions: int
    rejected_admissions: int
    pending_change_requests: int
    total_revenue: float


def submit_admission_form(db: Session, form_data: dict[str, Any]) -> str:
    """Store a new application as ``pending`` and return its id."""
    user_email = normalize_email(form_data.get('user_email'))
    if not user_email:
        raise ValidationError('User email is required.')
    if not str(form_data.get('student_name') or '').strip():
        raise ValidationError('Student name is required.')

    values = {name: form_data.get(name) for name in ADMISSION_PROFILE_FIELDS}
    form = AdmissionForm(user_email=user_email, status='pending', submitted_at=utcnow(), **values)

    with persistence_guard(db):
        db.add(form)
        profile = db.scalars(
            select(UserProfile).where(UserProfile.email == user_email, UserProfile.role == 'user')
        ).first()
        if profile is not None:
            profile.admission_status = 'pending'
            profile.updated_at = utcnow()
        db.commit()

    logger.info('Admission form %s submitted for %s.', form.id, user_email)
    return form.id


def list_admission_forms(db: Session) -> list[AdmissionForm]:
    with persistence_guard(db):
        return list(db.scalars(select(AdmissionForm).order_by(AdmissionForm.submitted_at.desc())))


def list_admission_forms_by_status(db: Session, status: str) -> list[AdmissionForm]:
    if status not in REVIEW_STATUSES:
        raise ValidationError(f'Unknown admission status: {status}.')
    with persistence_guard(db):
        return list(
            db.scalars(
                select(AdmissionForm)
                .where(AdmissionForm.status == status)
                .order_by(AdmissionForm.submitted_at.desc())
            )
        )


def get_admission_form(db: Session, form_id: str) -> AdmissionForm:
    with persistence_guard(db):
        form = db.get(AdmissionForm, form_id)
    if form is None:
        raise NotFound(f'Admission form {form_id} not found.')
    return form


def get_latest_admission_form(db: Session, email: str) -> AdmissionForm | None:
    with persistence_guard(db):
        return db.scalars(
            select(AdmissionForm)
            .where(AdmissionForm.user_email == normalize_email(email))
            .order_by(AdmissionForm.submitted_at.desc())
            .limit(1)
        ).first()


def _get_pending_form(db: Session, form_id: str) -> AdmissionForm:
    form = get_admission_form(db, form_id)
    if form.status != 'pending':
        raise AlreadyReviewed(f'Admission form {form_id} has already been {form.status}.')
    return form


def approve_admission_form(
    db: Session,
    form_id: str,
    reviewer_email: str,
    monthly_amount: float,
    admin_response: str | None = None,
) -> AdmissionForm:
    if isinstance(monthly_amount, bool) or not isinstance(monthly_amount, Real) or monthly_amount < 0:
        raise ValidationError('Monthly amount must be a non-negative number.')

    form = _get_pending_form(db, form_id)
    additional_data = {name: getattr(form, name) for name in ADMISSION_PROFILE_FIELDS}
    additional_data.update(
        monthly_amount=monthly_amount,
        admin_response=(admin_response or '').strip() or DEFAULT_APPROVAL_RESPONSE,
    )

    form = update_admission_status_with_sync(
        db,
        form_id,
        'approved',
        normalize_email(reviewer_email),
        form.user_email,
        additional_data,
    )
    logger.info('Admission form %s approved by %s.', form_id, reviewer_email)
    return form


def reject_admission_form(db: Session, form_id: str, reviewer_email: str, reason: str) -> AdmissionForm:
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('A rejection reason is required.')

    form = _get_pending_form(db, form_id)
    form = update_admission_status_with_sync(
        db,
        form_id,
        'rejected',
        normalize_email(reviewer_email),
        form.user_email,
        {'rejection_reason': reason},
    )
    logger.info('Admission form %s rejected by %s.', form_id, reviewer_email)
    return form


def get_admin_stats(db: Session) -> AdminStats:
    forms = list_admission_forms(db)
    with persistence_guard(db):
        change_requests = list(db.scalars(select(ChangeRequest)))

    return AdminStats(
        total_users=len(forms),
        pending_admissions=sum(1 for form in forms if form.status == 'pending'),
        approved_admissions=sum(1 for form in forms if form.status == 'approved'),
        rejected_admissions=sum(1 for form in forms if form.status == 'rejected'),
        pending_change_requests=sum(1 for request in change_requests if request.status == 'pending'),
        total_revenue=sum(
            form.monthly_amount for form in forms if form.status == 'approved' and form.monthly_amount
        ),
    )
