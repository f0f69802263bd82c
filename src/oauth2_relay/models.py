"""Database models for OAuth2 token storage."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class TokenRow(Base):
    """Stores the tokens of one device for one provider."""

    __tablename__ = "oauth2_tokens"

    # "{device_id}:{provider}", one row per pair
    id = Column(String(512), primary_key=True)

    device_id = Column(String(255), nullable=False, index=True)
    provider = Column(String(50), nullable=False)

    # OAuth tokens (encrypted when a key is configured)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)

    # Unix timestamp, NULL for tokens that never expire
    expires_at = Column(Float, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
