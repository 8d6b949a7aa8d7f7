from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ridesafe.auth.dependencies import require_admin
from ridesafe.auth.identity import Principal
from ridesafe.core.errors import RideSafeError, http_error
from ridesafe.database import get_db
from ridesafe.services.admin_codes import AdminCodeRegistry

router = APIRouter(tags=['admin-codes'])


class CreateAdminCodeRequest(BaseModel):
    code: str

    @field_validator('code')
    @classmethod
    def validate_code(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Admin code is required.')
        return normalized


class AdminCodeResponse(BaseModel):
    code: str
    is_active: bool
    created_by: str | None = None
    created_at: datetime | None = None
    used_by: str | None = None
    used_at: datetime | None = None
    is_bypass: bool = False

    class Config:
        from_attributes = True


@router.get('/validate/{code}')
def validate_admin_code(code: str, db: Session = Depends(get_db)):
    return {'valid': AdminCodeRegistry(db).validate(code)}


@router.get('/', response_model=list[AdminCodeResponse])
def list_admin_codes(_admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return AdminCodeRegistry(db).list_all()
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.post('/', response_model=AdminCodeResponse, status_code=status.HTTP_201_CREATED)
def add_admin_code(
    data: CreateAdminCodeRequest,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return AdminCodeRegistry(db).add(data.code, admin.email)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.post('/initialize')
def initialize_admin_codes(_admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return {'seeded': AdminCodeRegistry(db).initialize_defaults()}
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.post('/{code}/deactivate', status_code=status.HTTP_204_NO_CONTENT)
def deactivate_admin_code(code: str, _admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        found = AdminCodeRegistry(db).deactivate(code)
    except RideSafeError as exc:
        raise http_error(exc) from exc
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Admin code not found.')


@router.delete('/{code}', status_code=status.HTTP_204_NO_CONTENT)
def delete_admin_code(code: str, _admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        found = AdminCodeRegistry(db).delete(code)
    except RideSafeError as exc:
        raise http_error(exc) from exc
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Admin code not found.')
