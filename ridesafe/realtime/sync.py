"""Real-time synchronisation between stored records and connected sessions.

``SyncSession`` bridges live queries into application callbacks. Each caller
owns its own session object, so two dashboards (or two tests) never share
listeners.

The ``*_with_sync`` writers apply an admin-side mutation and append its
``SyncEvent`` in one transaction, so subscribers see the new state and the
audit record together.
"""
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.orm import Session

from ridesafe.core.errors import AlreadyReviewed, NotFound, ValidationError
from ridesafe.database import persistence_guard, utcnow
from ridesafe.models.admission import AdmissionForm
from ridesafe.models.change_request import CHANGE_REQUEST_FIELD_MAP, ChangeRequest
from ridesafe.models.sync_event import SyncEvent
from ridesafe.models.user import UserProfile
from ridesafe.realtime.change_feed import ChangeFeed, Snapshot

logger = logging.getLogger(__name__)

ADMIN_KEY = 'admin'
FORWARDED_CHANGE_TYPES = ('added', 'modified')
PROTECTED_PROFILE_COLUMNS = frozenset({'id', 'uid', 'email', 'role', 'created_at', 'updated_at'})


def user_key(email: str) -> str:
    return f'user:{email}'


@dataclass
class SyncCallbacks:
    on_user_data_update: Callable[[dict], None] | None = None
    on_admission_status_change: Callable[[str, str], None] | None = None
    on_change_request_update: Callable[[str, dict], None] | None = None
    on_admin_action: Callable[[dict], None] | None = None


class SyncSession:
    """Keyed live-query subscriptions for one client session."""

    def __init__(self, feed: ChangeFeed):
        self._feed = feed
        self._unsubscribers: dict[str, list[Callable[[], None]]] = {}
        self._callbacks: dict[str, SyncCallbacks] = {}

    @property
    def active_keys(self) -> list[str]:
        return sorted(self._unsubscribers)

    def subscribe_user(self, email: str, callbacks: SyncCallbacks, role: str = 'user') -> Callable[[], None]:
        """Follow one user's profile, latest admission form and change requests.

        Subscribing again for the same email swaps the callbacks and keeps the
        existing live queries.
        """
        key = user_key(email)
        self._callbacks[key] = callbacks
        if key in self._unsubscribers:
            return partial(self.unsubscribe_user, email)

        self._unsubscribers[key] = [
            self._feed.listen(
                UserProfile,
                select(UserProfile)
                .where(UserProfile.email == email, UserProfile.role == role)
                .limit(1),
                partial(self._on_user_snapshot, key),
            ),
            self._feed.listen(
                AdmissionForm,
                select(AdmissionForm)
                .where(AdmissionForm.user_email == email)
                .order_by(AdmissionForm.submitted_at.desc())
                .limit(1),
                partial(self._on_admission_snapshot, key, email),
            ),
            self._feed.listen(
                ChangeRequest,
                select(ChangeRequest)
                .where(ChangeRequest.user_email == email)
                .order_by(ChangeRequest.request_date.desc()),
                partial(self._on_change_request_snapshot, key, email),
            ),
        ]
        return partial(self.unsubscribe_user, email)

    def subscribe_admin(self, callbacks: SyncCallbacks) -> Callable[[], None]:
        """Follow every admission form and change request."""
        self._callbacks[ADMIN_KEY] = callbacks
        if ADMIN_KEY in self._unsubscribers:
            return self.unsubscribe_admin

        self._unsubscribers[ADMIN_KEY] = [
            self._feed.listen(
                AdmissionForm,
                select(AdmissionForm).order_by(AdmissionForm.submitted_at.desc()),
                partial(self._on_admin_snapshot, 'admission_form_update', 'form_id'),
            ),
            self._feed.listen(
                ChangeRequest,
                select(ChangeRequest).order_by(ChangeRequest.request_date.desc()),
                partial(self._on_admin_snapshot, 'change_request_update', 'request_id'),
            ),
        ]
        return self.unsubscribe_admin

    def unsubscribe_user(self, email: str) -> None:
        self._unsubscribe(user_key(email))

    def unsubscribe_admin(self) -> None:
        self._unsubscribe(ADMIN_KEY)

    def close(self) -> None:
        for key in list(self._unsubscribers):
            self._unsubscribe(key)

    def _unsubscribe(self, key: str) -> None:
        for unsubscribe in self._unsubscribers.pop(key, []):
            unsubscribe()
        self._callbacks.pop(key, None)

    def _on_user_snapshot(self, key: str, snapshot: Snapshot) -> None:
        callbacks = self._callbacks.get(key)
        if snapshot.empty or callbacks is None or callbacks.on_user_data_update is None:
            return
        callbacks.on_user_data_update(snapshot.docs[0])

    def _on_admission_snapshot(self, key: str, email: str, snapshot: Snapshot) -> None:
        callbacks = self._callbacks.get(key)
        if snapshot.empty or callbacks is None or callbacks.on_admission_status_change is None:
            return
        callbacks.on_admission_status_change(email, snapshot.docs[0]['status'])

    def _on_change_request_snapshot(self, key: str, email: str, snapshot: Snapshot) -> None:
        callbacks = self._callbacks.get(key)
        if callbacks is None or callbacks.on_change_request_update is None:
            return
        for change in snapshot.changes:
            if change.change_type in FORWARDED_CHANGE_TYPES:
                callbacks.on_change_request_update(email, change.data)

    def _on_admin_snapshot(self, action_type: str, id_field: str, snapshot: Snapshot) -> None:
        callbacks = self._callbacks.get(ADMIN_KEY)
        if callbacks is None or callbacks.on_admin_action is None:
            return
        for change in snapshot.changes:
            if change.change_type in FORWARDED_CHANGE_TYPES:
                callbacks.on_admin_action({
                    'type': action_type,
                    id_field: change.doc_id,
                    'change_type': change.change_type,
                    'data': change.data,
                })


def _assign_columns(row, values: dict[str, Any]) -> None:
    columns = row.__table__.columns
    for name, value in values.items():
        if name in columns:
            setattr(row, name, value)


def _find_user_profile(db: Session, email: str) -> UserProfile | None:
    return db.scalars(
        select(UserProfile).where(UserProfile.email == email, UserProfile.role == 'user').limit(1)
    ).first()


def record_sync_event(
    db: Session,
    event_type: str,
    user_id: str | None,
    user_email: str | None,
    data: dict,
    admin_email: str | None = None,
) -> SyncEvent:
    """Stage an audit record in the caller's transaction."""
    sync_event = SyncEvent(
        type=event_type,
        user_id=user_id or '',
        user_email=user_email or '',
        timestamp=utcnow(),
        data=jsonable_encoder(data),
        admin_email=admin_email,
    )
    db.add(sync_event)
    return sync_event


def update_user_data_with_sync(
    db: Session,
    profile_id: str,
    updates: dict[str, Any],
    admin_email: str | None = None,
) -> UserProfile:
    with persistence_guard(db):
        profile = db.get(UserProfile, profile_id)
        if profile is None:
            raise NotFound('User profile not found.')

        unknown = sorted(
            name for name in updates
            if name not in UserProfile.__table__.columns or name in PROTECTED_PROFILE_COLUMNS
        )
        if unknown:
            raise ValidationError(f"Unknown or read-only profile fields: {', '.join(unknown)}.")

        _assign_columns(profile, updates)
        profile.updated_at = utcnow()
        record_sync_event(db, 'user_data_updated', profile.id, profile.email, dict(updates), admin_email)
        db.commit()
        db.refresh(profile)
    return profile


def update_admission_status_with_sync(
    db: Session,
    form_id: str,
    status: str,
    admin_email: str,
    user_email: str,
    additional_data: dict[str, Any] | None = None,
) -> AdmissionForm:
    """Review an admission form and mirror the outcome onto the user's profile.

    ``additional_data`` is written to every column of that name on both the
    form and the profile. The form is re-read under a row lock and must still
    be pending.
    """
    additional_data = dict(additional_data or {})

    with persistence_guard(db):
        form = db.get(AdmissionForm, form_id, with_for_update=True, populate_existing=True)
        if form is None:
            raise NotFound('Admission form not found.')
        if form.status != 'pending':
            raise AlreadyReviewed(f'Admission form {form_id} has already been {form.status}.')

        now = utcnow()
        _assign_columns(form, additional_data)
        form.status = status
        form.reviewed_at = now
        form.reviewed_by = admin_email

        profile = _find_user_profile(db, user_email)
        if profile is not None:
            _assign_columns(profile, additional_data)
            profile.admission_status = status
            profile.updated_at = now
        else:
            logger.warning('No user profile for %s; admission %s reviewed without profile update.', user_email, form_id)

        record_sync_event(
            db,
            'admission_status_changed',
            profile.id if profile is not None else None,
            user_email,
            {'status': status, 'form_id': form_id, **additional_data},
            admin_email,
        )
        db.commit()
        db.refresh(form)
    return form


def update_change_request_with_sync(
    db: Session,
    request_id: str,
    status: str,
    admin_email: str,
    user_email: str,
    additional_data: dict[str, Any] | None = None,
) -> ChangeRequest:
    """Review a pending change request; approval copies the new value onto one profile column."""
    additional_data = dict(additional_data or {})

    with persistence_guard(db):
        change_request = db.get(ChangeRequest, request_id, with_for_update=True, populate_existing=True)
        if change_request is None:
            raise NotFound('Change request not found.')
        if change_request.status != 'pending':
            raise AlreadyReviewed(f'Change request {request_id} has already been {change_request.status}.')

        now = utcnow()
        _assign_columns(change_request, additional_data)
        change_request.status = status
        change_request.reviewed_at = now
        change_request.reviewed_by = admin_email

        profile = _find_user_profile(db, user_email)
        if status == 'approved' and profile is not None:
            column = CHANGE_REQUEST_FIELD_MAP.get(change_request.field)
            if column is not None:
                setattr(profile, column, change_request.new_value)
                profile.updated_at = now
            else:
                logger.info('Change request %s names unmapped field %r; profile left unchanged.',
                            request_id, change_request.field)

        if status == 'approved':
            event_type = 'change_request_approved'
        elif status == 'rejected':
            event_type = 'change_request_rejected'
        else:
            event_type = 'change_request_submitted'

        record_sync_event(
            db,
            event_type,
            profile.id if profile is not None else None,
            user_email,
            {
                'status': status,
                'request_id': request_id,
                'field': change_request.field,
                'new_value': change_request.new_value,
                **additional_data,
            },
            admin_email,
        )
        db.commit()
        db.refresh(change_request)
    return change_request
