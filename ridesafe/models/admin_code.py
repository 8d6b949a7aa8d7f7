"""Admin invitation code model definitions."""

from sqlalchemy import Boolean, Column, DateTime, String

from ridesafe.database import Base, utcnow


class AdminCode(Base):
    """Invitation code gating admin self-registration."""
    __tablename__ = "admin_codes"

    code = Column(String, primary_key=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String)
    created_at = Column(DateTime, default=utcnow)
    used_by = Column(String)
    used_at = Column(DateTime)
