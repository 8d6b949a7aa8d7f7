"""Sync event model definitions."""

from sqlalchemy import JSON, Column, DateTime, String

from ridesafe.database import Base, utcnow
from ridesafe.models.admission import new_document_id

SYNC_EVENT_TYPES = (
    'user_data_updated',
    'admission_status_changed',
    'change_request_submitted',
    'change_request_approved',
    'change_request_rejected',
)


class SyncEvent(Base):
    """Append-only audit record written with every admin-side mutation."""
    __tablename__ = "sync_events"

    id = Column(String, primary_key=True, default=new_document_id)
    type = Column(String, nullable=False)
    user_id = Column(String)
    user_email = Column(String)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    data = Column(JSON)
    admin_email = Column(String)
