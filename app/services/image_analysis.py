"""Turning a vendor's image description into a validated item draft."""
import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Sequence

from app.errors import ResponseParseError

logger = logging.getLogger(__name__)

# First "{" to last "}", across newlines
JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

UNKNOWN_ITEM_NAME = "Unknown Item"


@dataclass
class ImageAnalysis:
    """Item draft suggested from a photo."""
    name: str
    description: str
    category: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return asdict(self)


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Vendors often wrap the object in prose or code fences, so the greedy
    brace span is tried first and the whole text second.

    Raises:
        ResponseParseError: If neither parses to a JSON object
    """
    text = text or ""
    match = JSON_OBJECT_RE.search(text)
    candidate = match.group(0) if match else text
    try:
        data = json.loads(candidate)
    except ValueError as e:
        logger.warning(f"Could not parse AI response: {e}")
        raise ResponseParseError(f"Could not parse AI response: {e}", raw_text=text) from e

    if not isinstance(data, dict):
        raise ResponseParseError("AI response is not a JSON object", raw_text=text)
    return data


def normalize_analysis(
    data: Dict[str, Any],
    category_vocabulary: Sequence[str],
    default_category: str,
) -> ImageAnalysis:
    """
    Validate a parsed reply against the category vocabulary.

    Categories are matched case-insensitively and returned in their
    vocabulary spelling. Anything else becomes the default category.
    """
    by_lower = {slug.lower(): slug for slug in category_vocabulary}
    raw_category = data.get("category")
    category = by_lower.get(raw_category.strip().lower()) if isinstance(raw_category, str) else None
    if category is None:
        if raw_category:
            logger.info(f"AI suggested unknown category {raw_category!r}, using '{default_category}'")
        category = default_category

    name = data.get("name")
    description = data.get("description")
    return ImageAnalysis(
        name=(str(name).strip() if name else "") or UNKNOWN_ITEM_NAME,
        description=str(description).strip() if description else "",
        category=category,
    )
