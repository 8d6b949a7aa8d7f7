import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ridesafe.auth import jwt_handler
from ridesafe.auth.identity import Principal
from ridesafe.database import get_db
from ridesafe.models.identity import Identity
from ridesafe.models.user import UserProfile

security = HTTPBearer()


def principal_from_token(token: str, db: Session) -> Principal:
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    identity = db.query(Identity).filter(Identity.email == email).first()
    if identity is None or identity.disabled:
        raise HTTPException(status_code=401, detail="User not found")
    # The uid claim, when present, must name the identity behind the email.
    if payload.get("uid") and payload["uid"] != identity.uid:
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return Principal(uid=identity.uid, email=identity.email, email_verified=identity.email_verified)


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Principal:
    return principal_from_token(credentials.credentials, db)


def require_admin(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> Principal:
    admin_profile = (
        db.query(UserProfile)
        .filter(UserProfile.email == principal.email, UserProfile.role == "admin")
        .first()
    )
    if admin_profile is None or not admin_profile.email_verified:
        raise HTTPException(status_code=403, detail="Only admins can perform this action.")
    return principal
