"""Database models."""
# Import User first as other models have foreign keys to it
from app.models.inventory import User, Category, Item
from app.models.recommendation import RecommendationOverride, SystemSetting
from app.models.usage import ApiUsageLog

__all__ = [
    "User",
    "Category",
    "Item",
    "RecommendationOverride",
    "SystemSetting",
    "ApiUsageLog",
]
