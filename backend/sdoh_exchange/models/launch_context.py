from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from .base import Base, TimestampMixin, generate_uuid


class LaunchContext(Base, TimestampMixin):
    """Tokens and launch parameters obtained from one SMART-on-FHIR login."""
    __tablename__ = "launch_contexts"

    id = Column(String, primary_key=True, default=generate_uuid)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    id_token = Column(Text, nullable=True)
    token_type = Column(String(20), nullable=False, default="Bearer")
    scope = Column(Text, nullable=True)  # space separated, as granted by the auth server
    expires_at = Column(DateTime, nullable=True)

    patient_id = Column(String(64), nullable=True, index=True)
    fhir_user = Column(String(255), nullable=True)  # e.g. "Practitioner/123"

    @property
    def scopes(self) -> list:
        return (self.scope or "").replace(",", " ").split()

    def is_expired(self, now: datetime = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.utcnow()) >= self.expires_at
