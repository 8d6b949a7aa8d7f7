import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ridesafe.core.errors import AlreadyReviewed, NotFound, ValidationError
from ridesafe.database import persistence_guard, utcnow
from ridesafe.models.change_request import CHANGE_REQUEST_FIELD_MAP, ChangeRequest
from ridesafe.models.user import UserProfile
from ridesafe.realtime.sync import record_sync_event, update_change_request_with_sync
from ridesafe.services.user_store import normalize_email

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_RESPONSE = 'Approved'
EDITABLE_FIELDS = tuple(CHANGE_REQUEST_FIELD_MAP)


def submit_change_request(db: Session, request_data: dict[str, Any]) -> str:
    """Store a pending single-field edit and return its id.

    The field name is not checked against ``CHANGE_REQUEST_FIELD_MAP``; an
    unmapped name is accepted here and simply changes nothing on approval.
    """
    user_email = normalize_email(request_data.get('user_email'))
    field = str(request_data.get('field') or '').strip()
    new_value = request_data.get('new_value')

    if not user_email:
        raise ValidationError('User email is required.')
    if not field:
        raise ValidationError('Field is required.')
    if new_value is None or not str(new_value).strip():
        raise ValidationError('New value is required.')

    change_request = ChangeRequest(
        user_email=user_email,
        field=field,
        old_value=request_data.get('old_value'),
        new_value=str(new_value).strip(),
        reason=request_data.get('reason'),
        status='pending',
        request_date=utcnow(),
    )

    with persistence_guard(db):
        db.add(change_request)
        db.flush()
        profile = db.scalars(
            select(UserProfile).where(UserProfile.email == user_email, UserProfile.role == 'user')
        ).first()
        record_sync_event(
            db,
            'change_request_submitted',
            profile.id if profile is not None else None,
            user_email,
            {'status': 'pending', 'request_id': change_request.id, 'field': field},
        )
        db.commit()

    logger.info('Change request %s submitted for %s (%s).', change_request.id, user_email, field)
    return change_request.id


def list_change_requests(db: Session) -> list[ChangeRequest]:
    with persistence_guard(db):
        return list(db.scalars(select(ChangeRequest).order_by(ChangeRequest.request_date.desc())))


def list_change_requests_for_user(db: Session, email: str) -> list[ChangeRequest]:
    with persistence_guard(db):
        return list(
            db.scalars(
                select(ChangeRequest)
                .where(ChangeRequest.user_email == normalize_email(email))
                .order_by(ChangeRequest.request_date.desc())
            )
        )


def get_change_request(db: Session, request_id: str) -> ChangeRequest:
    with persistence_guard(db):
        change_request = db.get(ChangeRequest, request_id)
    if change_request is None:
        raise NotFound(f'Change request {request_id} not found.')
    return change_request


def _get_pending_request(db: Session, request_id: str) -> ChangeRequest:
    change_request = get_change_request(db, request_id)
    if change_request.status != 'pending':
        raise AlreadyReviewed(f'Change request {request_id} has already been {change_request.status}.')
    return change_request


def approve_change_request(
    db: Session,
    request_id: str,
    reviewer_email: str,
    admin_response: str | None = None,
) -> ChangeRequest:
    change_request = _get_pending_request(db, request_id)
    change_request = update_change_request_with_sync(
        db,
        request_id,
        'approved',
        normalize_email(reviewer_email),
        change_request.user_email,
        {'admin_response': (admin_response or '').strip() or DEFAULT_APPROVAL_RESPONSE},
    )
    logger.info('Change request %s approved by %s.', request_id, reviewer_email)
    return change_request


def reject_change_request(db: Session, request_id: str, reviewer_email: str, reason: str) -> ChangeRequest:
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('A rejection reason is required.')

    change_request = _get_pending_request(db, request_id)
    change_request = update_change_request_with_sync(
        db,
        request_id,
        'rejected',
        normalize_email(reviewer_email),
        change_request.user_email,
        {'rejection_reason': reason},
    )
    logger.info('Change request %s rejected by %s.', request_id, reviewer_email)
    return change_request
