from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ridesafe.auth.dependencies import get_current_principal, require_admin
from ridesafe.auth.identity import Principal
from ridesafe.core.errors import RideSafeError, http_error
from ridesafe.database import get_db
from ridesafe.services import admission

router = APIRouter(tags=['admissions'])

MAX_NOTES_LENGTH = 1000


class AdmissionFormRequest(BaseModel):
    student_name: str
    student_class: str
    school_name: str
    pickup_location: str
    drop_location: str
    guardian_name: str
    guardian_phone: str
    guardian_email: str
    alternate_phone: str = ''
    emergency_contact: str = ''
    medical_conditions: str = ''
    special_requirements: str = ''

    @field_validator('student_name', 'student_class', 'school_name', 'pickup_location', 'drop_location',
                     'guardian_name', 'guardian_phone', 'guardian_email')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('medical_conditions', 'special_requirements')
    @classmethod
    def validate_notes(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) > MAX_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')
        return normalized


class ApproveAdmissionRequest(BaseModel):
    monthly_amount: float
    admin_response: str | None = None

    @field_validator('monthly_amount')
    @classmethod
    def validate_amount(cls, value: float) -> float:
        if value < 0:
            raise ValueError('Monthly amount must be a non-negative number.')
        return value


class RejectRequest(BaseModel):
    reason: str

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A rejection reason is required.')
        return normalized


class AdmissionFormResponse(BaseModel):
    id: str
    user_email: str
    student_name: str | None = None
    student_class: str | None = None
    school_name: str | None = None
    pickup_location: str | None = None
    drop_location: str | None = None
    guardian_name: str | None = None
    guardian_phone: str | None = None
    guardian_email: str | None = None
    alternate_phone: str | None = None
    emergency_contact: str | None = None
    medical_conditions: str | None = None
    special_requirements: str | None = None
    status: str
    submitted_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    admin_response: str | None = None
    monthly_amount: float | None = None
    rejection_reason: str | None = None

    class Config:
        from_attributes = True


class AdminStatsResponse(BaseModel):
    total_users: int
    pending_admissions: int
    approved_admissions: int
    rejected_admissions: int
    pending_change_requests: int
    total_revenue: float

    class Config:
        from_attributes = True


@router.post('/', response_model=AdmissionFormResponse, status_code=status.HTTP_201_CREATED)
def submit_admission_form(
    data: AdmissionFormRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        form_id = admission.submit_admission_form(db, {'user_email': principal.email, **data.model_dump()})
        return admission.get_admission_form(db, form_id)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.get('/mine', response_model=AdmissionFormResponse)
def get_my_admission_form(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        form = admission.get_latest_admission_form(db, principal.email)
    except RideSafeError as exc:
        raise http_error(exc) from exc
    if form is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No admission form submitted yet.')
    return form


@router.get('/stats', response_model=AdminStatsResponse)
def get_admin_stats(_admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return admission.get_admin_stats(db)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.get('/', response_model=list[AdmissionFormResponse])
def list_admission_forms(
    status_filter: str | None = Query(default=None, alias='status'),
    _admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        if status_filter:
            return admission.list_admission_forms_by_status(db, status_filter.strip().lower())
        return admission.list_admission_forms(db)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.post('/{form_id}/approve', response_model=AdmissionFormResponse)
def approve_admission_form(
    form_id: str,
    data: ApproveAdmissionRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return admission.approve_admission_form(db, form_id, admin.email, data.monthly_amount, data.admin_response)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.post('/{form_id}/reject', response_model=AdmissionFormResponse)
def reject_admission_form(
    form_id: str,
    data: RejectRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return admission.reject_admission_form(db, form_id, admin.email, data.reason)
    except RideSafeError as exc:
        raise http_error(exc) from exc
