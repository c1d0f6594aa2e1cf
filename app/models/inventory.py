"""User, item and category models read by the decision pipeline.

These tables are owned by the CRUD layer; the decision pipeline reads them
and only writes the recommendation fields on items.
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Text, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from app.db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class User(Base):
    """User account with decluttering preferences."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Recommendation preferences
    personality_mode = Column(String(50), nullable=True, default="balanced")  # see services.personalities
    user_goal = Column(String(50), nullable=True, default="general")  # general, moving, downsizing, ...

    # Bring-your-own-key vendor settings
    llm_provider = Column(String(50), nullable=True)  # anthropic, openai, google, ollama
    llm_api_key = Column(Text, nullable=True)


class Category(Base):
    """Item category vocabulary for a deployment."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    slug = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)


class Item(Base):
    """A physical possession being evaluated."""

    __tablename__ = "items"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True, index=True)  # category slug

    # Context fields
    last_used_timeframe = Column(String(50), nullable=True)
    item_condition = Column(String(50), nullable=True)
    is_sentimental = Column(Boolean, default=False, nullable=False)
    user_notes = Column(Text, nullable=True)

    # Evaluation answers: {usage, sentimental, condition, value, replaceability, space}
    answers = Column(JSONType, nullable=True)

    # Engine output and the user's final decision
    recommendation = Column(String(50), nullable=True)
    recommendation_reasoning = Column(Text, nullable=True)
    decision = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
