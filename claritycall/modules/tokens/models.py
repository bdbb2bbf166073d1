"""Stored Google OAuth credentials."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, String, Text

from claritycall.database import Base, UTCDateTime, utcnow


class GoogleToken(Base):
    """One OAuth credential per user; token values are encrypted at rest."""

    __tablename__ = "google_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), nullable=False, unique=True, index=True)
    user_email = Column(String(320), nullable=False, default="")
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<GoogleToken(user_id={self.user_id}, expires_at={self.expires_at})>"
