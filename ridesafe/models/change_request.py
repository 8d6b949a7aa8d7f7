"""Change request model definitions."""

from sqlalchemy import Column, DateTime, Index, String

from ridesafe.database import Base, utcnow
from ridesafe.models.admission import new_document_id

# Display name of an editable field -> UserProfile column.
CHANGE_REQUEST_FIELD_MAP = {
    'Student Name': 'student_name',
    'Class': 'student_class',
    'School': 'school_name',
    'Pickup Location': 'pickup_location',
    'Drop Location': 'drop_location',
    'Guardian Name': 'guardian_name',
    'Guardian Phone': 'guardian_phone',
    'Guardian Email': 'guardian_email',
    'Alternate Phone': 'alternate_phone',
    'Emergency Contact': 'emergency_contact',
}


class ChangeRequest(Base):
    """A request to edit one approved profile field."""
    __tablename__ = "change_requests"
    __table_args__ = (Index('idx_change_requests_email_date', 'user_email', 'request_date'),)

    id = Column(String, primary_key=True, default=new_document_id)
    user_email = Column(String, index=True, nullable=False)
    field = Column(String, nullable=False)
    old_value = Column(String)
    new_value = Column(String)
    reason = Column(String)
    status = Column(String, default='pending', nullable=False)
    request_date = Column(DateTime, default=utcnow, nullable=False)
    reviewed_at = Column(DateTime)
    reviewed_by = Column(String)
    admin_response = Column(String)
    rejection_reason = Column(String)
