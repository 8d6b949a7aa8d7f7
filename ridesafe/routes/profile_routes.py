from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ridesafe.auth.dependencies import get_current_principal, require_admin
from ridesafe.auth.identity import Principal
from ridesafe.core.errors import RideSafeError, http_error
from ridesafe.database import get_db
from ridesafe.services import student_data, user_store

router = APIRouter(tags=['profile'])


class StudentUpdateRequest(BaseModel):
    updates: dict[str, Any]


@router.get('/student')
def get_student(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        profile = user_store.get_by_email_and_role(db, principal.email, 'user')
    except RideSafeError as exc:
        raise http_error(exc) from exc
    if profile is None:
        raise HTTPException(status_code=404, detail='User profile not found.')
    return student_data.student_view(profile)


@router.patch('/student')
def update_student(
    data: StudentUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    result = student_data.update_student(db, principal.email, data.updates)
    if not result.ok:
        raise HTTPException(status_code=result.status_code or 400, detail=result.error)
    return result.student


@router.patch('/student/{email}')
def update_student_as_admin(
    email: str,
    data: StudentUpdateRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = student_data.update_student(db, user_store.normalize_email(email), data.updates, admin_email=admin.email)
    if not result.ok:
        raise HTTPException(status_code=result.status_code or 400, detail=result.error)
    return result.student
