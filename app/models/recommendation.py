"""Override history and system settings models."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from app.db import Base


class RecommendationOverride(Base):
    """A recorded disagreement between the suggested and the chosen outcome.

    Append-only; read in bulk (most recent first) by the pattern miner.
    """

    __tablename__ = "recommendation_overrides"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    item_category = Column(String(50), nullable=True)
    ai_suggestion = Column(String(50), nullable=False)
    user_choice = Column(String(50), nullable=False)
    override_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class SystemSetting(Base):
    """Versioned key/value configuration written by the admin interface."""

    __tablename__ = "system_settings"

    setting_key = Column(String(100), primary_key=True)
    setting_value = Column(Text, nullable=True)  # JSON blob or plain string
    version = Column(Integer, default=1, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
