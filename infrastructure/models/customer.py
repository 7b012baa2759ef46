"""
User profile table, read for invoice customer details.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from .base import Base


class UserProfileModel(Base):
    __tablename__ = "user_profiles"

    user_id = Column(String(64), primary_key=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
