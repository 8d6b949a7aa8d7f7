from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ridesafe.auth import jwt_handler
from ridesafe.auth.dependencies import get_current_principal
from ridesafe.auth.identity import IdentityAdapter, Principal
from ridesafe.auth.local_provider import LocalAuthProvider
from ridesafe.core.errors import RideSafeError, http_error
from ridesafe.database import get_db
from ridesafe.services import registration, user_store

router = APIRouter(tags=["auth"])


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    role: str
    name: str
    phone: str
    student_name: str | None = None
    license_number: str | None = None
    vehicle_number: str | None = None
    experience: str | None = None
    admin_code: str | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"user", "admin", "driver"}:
            raise ValueError("Role must be user, admin or driver.")
        return normalized

    def profile_data(self) -> dict:
        role_fields = {
            "user": ("student_name",),
            "driver": ("license_number", "vehicle_number", "experience"),
            "admin": (),
        }[self.role]
        data = {"name": self.name, "phone": self.phone}
        data.update({name: getattr(self, name) for name in role_fields})
        return data


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    role: str = "user"

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class CodeRequest(BaseModel):
    code: str


class ResetPasswordRequest(BaseModel):
    email: EmailStr


class ConfirmResetRequest(BaseModel):
    code: str
    new_password: str


class ProfileSummary(BaseModel):
    id: str
    email: str
    role: str
    name: str | None = None
    email_verified: bool
    admission_status: str

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile: ProfileSummary
    admin_access: bool


def identity_for(db: Session) -> IdentityAdapter:
    return IdentityAdapter(LocalAuthProvider(db))


@router.post("/register", response_model=ProfileSummary, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    try:
        return registration.register_account(
            db,
            identity_for(db),
            data.email,
            data.password,
            data.role,
            data.profile_data(),
            admin_code=data.admin_code,
        )
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.post("/login", response_model=LoginResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    try:
        result = registration.login_for_role(db, identity_for(db), data.email, data.password, data.role)
    except RideSafeError as exc:
        raise http_error(exc) from exc

    token = jwt_handler.create_access_token(subject=result.principal.email, uid=result.principal.uid)
    return LoginResponse(
        access_token=token,
        profile=ProfileSummary.model_validate(result.profile),
        admin_access=result.admin_access,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    LocalAuthProvider(db).sign_out(principal)


@router.post("/send-verification", status_code=status.HTTP_202_ACCEPTED)
def send_verification(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        identity_for(db).send_verification_email(principal)
    except RideSafeError as exc:
        raise http_error(exc) from exc
    return {"sent": not principal.email_verified}


@router.post("/verify-email")
def verify_email(data: CodeRequest, db: Session = Depends(get_db)):
    try:
        verified = registration.confirm_email(db, identity_for(db), data.code.strip())
    except RideSafeError as exc:
        raise http_error(exc) from exc
    return {"verified_profiles": verified}


@router.post("/reset-password", status_code=status.HTTP_202_ACCEPTED)
def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    try:
        identity_for(db).reset_password(data.email)
    except RideSafeError as exc:
        raise http_error(exc) from exc
    return {"sent": True}


@router.post("/confirm-reset", status_code=status.HTTP_204_NO_CONTENT)
def confirm_reset(data: ConfirmResetRequest, db: Session = Depends(get_db)):
    try:
        identity_for(db).confirm_password_reset(data.code.strip(), data.new_password)
    except RideSafeError as exc:
        raise http_error(exc) from exc


@router.get("/me", response_model=list[ProfileSummary])
def me(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    try:
        profiles = user_store.get_by_email(db, principal.email)
    except RideSafeError as exc:
        raise http_error(exc) from exc
    if not profiles:
        raise HTTPException(status_code=404, detail="No profiles registered for this account.")
    return profiles
