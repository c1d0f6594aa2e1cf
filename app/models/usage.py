"""API usage ledger model."""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Text, Float
from sqlalchemy.sql import func
from app.db import Base


class ApiUsageLog(Base):
    """One row per vendor call attempt, successful or not."""

    __tablename__ = "api_usage_logs"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    endpoint = Column(String, nullable=False)  # e.g. /api/analyze-image
    provider = Column(String(50), nullable=False)
    model = Column(String, nullable=False, default="")
    input_tokens = Column(Integer, default=0, nullable=False)
    output_tokens = Column(Integer, default=0, nullable=False)
    estimated_cost = Column(Float, default=0.0, nullable=False)  # USD
    success = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)
    used_user_key = Column(Boolean, default=False, nullable=False)  # excluded from shared ceilings
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
