"""
Preview Model
Database model for preview jobs.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime

from preview_orchestrator.core.database import Base


class Preview(Base):
    """Preview job record. Created once, mutated in place, never deleted."""

    __tablename__ = "previews"

    id = Column(String, primary_key=True)  # preview_<ms>_<suffix> format

    # Request
    prompt = Column(Text, nullable=False)
    user_id = Column(String, nullable=False, index=True)

    # Status: building, generating, deploying, live, failed
    status = Column(String, default="building", nullable=False, index=True)
    live_url = Column(String, nullable=True)  # Set only when live
    error = Column(Text, nullable=True)  # Set only when failed

    # Retry bookkeeping
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)  # Most recent non-final attempt failure

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow)
