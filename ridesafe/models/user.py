"""User profile model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Float, Index, String, UniqueConstraint

from ridesafe.database import Base, utcnow

ROLES = ('user', 'admin', 'driver')
ADMISSION_STATUSES = ('none', 'pending', 'approved', 'rejected')


def profile_id_for(uid: str, role: str) -> str:
    return f'{uid}_{role}'


class UserProfile(Base):
    """One record per person per role."""
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint('email', 'role', name='uq_users_email_role'),
        Index('idx_users_email_verified', 'email', 'email_verified'),
    )

    id = Column(String, primary_key=True)
    uid = Column(String, index=True, nullable=False)
    email = Column(String, index=True, nullable=False)
    role = Column(String, nullable=False)  # user/admin/driver
    name = Column(String)
    phone = Column(String)
    email_verified = Column(Boolean, default=False, nullable=False)
    admission_status = Column(String, default='none', nullable=False)

    # user role
    student_name = Column(String)
    student_class = Column(String)
    school_name = Column(String)
    pickup_location = Column(String)
    drop_location = Column(String)
    guardian_name = Column(String)
    guardian_phone = Column(String)
    guardian_email = Column(String)
    alternate_phone = Column(String)
    emergency_contact = Column(String)
    medical_conditions = Column(String)
    special_requirements = Column(String)
    monthly_amount = Column(Float)
    admin_response = Column(String)
    rejection_reason = Column(String)

    # driver role
    license_number = Column(String)
    vehicle_number = Column(String)
    experience = Column(String)

    # admin role
    admin_code = Column(String)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
