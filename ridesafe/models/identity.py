"""Identity model definitions for the bundled auth provider."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from ridesafe.database import Base, utcnow


class Identity(Base):
    """Represents login credentials for one email address."""
    __tablename__ = "identities"

    uid = Column(String, primary_key=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    disabled = Column(Boolean, default=False, nullable=False)
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class ActionCode(Base):
    """One-time code for email verification or password reset."""
    __tablename__ = "action_codes"

    code = Column(String, primary_key=True)
    uid = Column(String, ForeignKey("identities.uid"), index=True, nullable=False)
    purpose = Column(String, nullable=False)  # verify_email/reset_password
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
