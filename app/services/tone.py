"""Emotional tone detection from free-text item notes."""
from dataclasses import dataclass
from typing import Dict, Optional

SENTIMENTAL = "sentimental"
FRUSTRATED = "frustrated"
ENTHUSIASTIC = "enthusiastic"
NEUTRAL = "neutral"

EMOTIONAL_TONES = (SENTIMENTAL, FRUSTRATED, ENTHUSIASTIC, NEUTRAL)

# Earlier entries win ties
TONE_PRIORITY = (SENTIMENTAL, FRUSTRATED, ENTHUSIASTIC)

TONE_KEYWORDS: Dict[str, tuple] = {
    SENTIMENTAL: (
        "grandmother", "grandma", "grandfather", "grandpa", "childhood", "memories",
        "passed down", "inherited", "family", "heirloom", "remember", "memorial",
        "wedding", "baby", "first", "mother", "father", "mom", "dad", "gift from",
        "belonged to", "grew up", "nostalgic", "sentimental", "precious", "irreplaceable",
    ),
    FRUSTRATED: (
        "stupid", "waste", "taking up space", "never use", "hate", "annoying",
        "junk", "clutter", "sick of", "tired of", "useless", "broken", "garbage",
        "trash", "get rid of", "eyesore", "ugly", "regret buying", "waste of money",
        "can't stand", "fed up", "done with",
    ),
    ENTHUSIASTIC: (
        "love", "favorite", "perfect", "amazing", "beautiful", "awesome",
        "best", "treasure", "adore", "wonderful", "fantastic", "great condition",
        "proud of", "collection", "rare", "unique", "special", "joy", "happy",
        "excited", "thrilled",
    ),
}

TONE_INSTRUCTIONS: Dict[str, str] = {
    SENTIMENTAL: (
        "User has emotional attachment. Be gentle and respectful. Suggest ways to honor "
        "memories while being practical (photo documentation, keeping one representative piece, etc)."
    ),
    FRUSTRATED: (
        "User is eager to declutter this. Match their energy. Be direct and supportive "
        "of removal. Validate their desire to let go."
    ),
    ENTHUSIASTIC: (
        "User loves this item. Validate their feelings while being honest about practical "
        "use. If recommending keeping, affirm their choice."
    ),
    NEUTRAL: "Standard recommendation approach. Be helpful and balanced.",
}


@dataclass(frozen=True)
class ToneResult:
    """Detected tone, its prose instruction and the per-tone hit counts."""
    tone: str
    instructions: str
    scores: Dict[str, int]


def count_keyword_hits(user_notes: Optional[str]) -> Dict[str, int]:
    """Count case-insensitive keyword substring hits per tone."""
    scores = {tone: 0 for tone in TONE_PRIORITY}
    if not user_notes or not user_notes.strip():
        return scores

    text = user_notes.lower()
    for tone, keywords in TONE_KEYWORDS.items():
        scores[tone] = sum(1 for keyword in keywords if keyword in text)
    return scores


def detect_emotional_tone(user_notes: Optional[str]) -> str:
    """
    Classify notes into sentimental, frustrated, enthusiastic or neutral.

    The tone with the most keyword hits wins, ties go to the earlier tone in
    TONE_PRIORITY, and text without any hit is neutral.
    """
    scores = count_keyword_hits(user_notes)
    best = max(scores.values())
    if best == 0:
        return NEUTRAL
    for tone in TONE_PRIORITY:
        if scores[tone] == best:
            return tone
    return NEUTRAL


def get_tone_instructions(tone: Optional[str]) -> str:
    """Prose-generation instruction for a tone; unknown tones read as neutral."""
    return TONE_INSTRUCTIONS.get(tone or NEUTRAL, TONE_INSTRUCTIONS[NEUTRAL])


def classify_tone(user_notes: Optional[str]) -> ToneResult:
    """Detect the tone and bundle it with its instruction string."""
    scores = count_keyword_hits(user_notes)
    tone = detect_emotional_tone(user_notes)
    return ToneResult(tone=tone, instructions=get_tone_instructions(tone), scores=scores)
