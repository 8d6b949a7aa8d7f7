from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ridesafe.auth.dependencies import get_current_principal, require_admin
from ridesafe.auth.identity import Principal
from ridesafe.core.errors import RideSafeError, http_error
from ridesafe.database import get_db
from ridesafe.routes.admission_routes import RejectRequest
from ridesafe.services import change_requests

router = APIRouter(tags=['change-requests'])

MAX_REASON_LENGTH = 600


class CreateChangeRequest(BaseModel):
    field: str
    old_value: str | None = None
    new_value: str
    reason: str | None = None

    @field_validator('field', 'new_value')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer.')

        return normalized


class ApproveChangeRequest(BaseModel):
    admin_response: str | None = None


class ChangeRequestResponse(BaseModel):
    id: str
    user_email: str
    field: str
    old_value: str | None = None
    new_value: str | None = None
    reason: str | None = None
    status: str
    request_date: datetime
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    admin_response: str | None = None
    rejection_reason: str | None = None

    class Config:
        from_attributes = True


class EditableFieldResponse(BaseModel):
    field: str
    column: str


@router.get('/fields', response_model=list[EditableFieldResponse])
def list_editable_fields():
    return [
        EditableFieldResponse(field=field, column=column)
        for field, column in change_requests.CHANGE_REQUEST_FIELD_MAP.items()
    ]


@router.post('/', response_model=ChangeRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_change_request(
    data: CreateChangeRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        request_id = change_requests.submit_change_request(db, {'user_email': principal.email, **data.model_dump()})
        return change_requests.get_change_request(db, request_id)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.get('/mine', response_model=list[ChangeRequestResponse])
def list_my_change_requests(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        return change_requests.list_change_requests_for_user(db, principal.email)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.get('/', response_model=list[ChangeRequestResponse])
def list_change_requests(_admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return change_requests.list_change_requests(db)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.post('/{request_id}/approve', response_model=ChangeRequestResponse)
def approve_change_request(
    request_id: str,
    data: ApproveChangeRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return change_requests.approve_change_request(db, request_id, admin.email, data.admin_response)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.post('/{request_id}/reject', response_model=ChangeRequestResponse)
def reject_change_request(
    request_id: str,
    data: RejectRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return change_requests.reject_change_request(db, request_id, admin.email, data.reason)
    except RideSafeError as exc:
        raise http_error(exc) from exc
