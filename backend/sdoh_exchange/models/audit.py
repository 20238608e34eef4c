from sqlalchemy import Column, String, Integer

from .base import Base, TimestampMixin, generate_uuid


class AuditLog(Base, TimestampMixin):
    """Audit trail for requests that read or change patient data."""
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False)  # fhirUser of the session, or "anonymous"
    patient_id = Column(String(64), nullable=True, index=True)
    action = Column(String(50), nullable=False)  # view, create, update, delete
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String, nullable=False)
    ip_address = Column(String(45), nullable=True)
    request_method = Column(String(10), nullable=True)
    request_path = Column(String(500), nullable=True)
    status_code = Column(Integer, nullable=True)
