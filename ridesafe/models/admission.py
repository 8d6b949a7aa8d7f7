"""Admission form model definitions."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Float, Index, String

from ridesafe.database import Base, utcnow

REVIEW_STATUSES = ('pending', 'approved', 'rejected')

# Applicant fields shared with UserProfile; copied onto the profile on approval.
ADMISSION_PROFILE_FIELDS = (
    'student_name',
    'student_class',
    'school_name',
    'pickup_location',
    'drop_location',
    'guardian_name',
    'guardian_phone',
    'guardian_email',
    'alternate_phone',
    'emergency_contact',
    'medical_conditions',
    'special_requirements',
)


def new_document_id() -> str:
    return uuid4().hex


class AdmissionForm(Base):
    """An application to enroll a student in the transport service."""
    __tablename__ = "admission_forms"
    __table_args__ = (
        Index('idx_admission_forms_email_submitted', 'user_email', 'submitted_at'),
        Index('idx_admission_forms_status', 'status'),
    )

    id = Column(String, primary_key=True, default=new_document_id)
    user_email = Column(String, index=True, nullable=False)
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
    status = Column(String, default='pending', nullable=False)
    submitted_at = Column(DateTime, default=utcnow, nullable=False)
    reviewed_at = Column(DateTime)
    reviewed_by = Column(String)
    admin_response = Column(String)
    monthly_amount = Column(Float)
    rejection_reason = Column(String)
