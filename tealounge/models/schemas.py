"""
Pydantic schemas for JSON payloads returned by the hosted model.

The schemas are deliberately lenient about values (unknown enum members and
out-of-range numbers are coerced to safe defaults) and strict about shape
(a payload missing its required structure fails validation and the caller
falls back).
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core import EMOTIONS, INTENSITIES, clamp_confidence


class ExtractedFactSchema(BaseModel):
    """One fact as reported by the extraction prompt."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    content: str = Field(..., min_length=1, max_length=500)
    category: Optional[str] = None
    confidence: float = 0.0
    needs_verification: bool = Field(default=False, alias='needsVerification')

    @field_validator('content')
    @classmethod
    def _strip_content(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('content must not be blank')
        return value

    @field_validator('category', mode='before')
    @classmethod
    def _normalise_category(cls, value: Any) -> Optional[str]:
        return value.strip().lower() if isinstance(value, str) else None

    @field_validator('confidence', mode='before')
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return clamp_confidence(value)


class FactExtractionPayload(BaseModel):
    """Top-level fact extraction response: {"facts": [...]}."""
    model_config = ConfigDict(extra='ignore')

    facts: List[Any]  # Items are validated one by one with ExtractedFactSchema


class EmotionPayload(BaseModel):
    """Emotion classification response."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore', validate_default=True)

    primary_emotion: str = Field(default='neutral', alias='primaryEmotion')
    intensity: str = 'medium'
    emotion_scores: Dict[str, float] = Field(default_factory=dict, alias='emotionScores')
    is_angry_with_specific_person: bool = Field(default=False, alias='isAngryWithSpecificPerson')
    emotional_triggers: List[str] = Field(default_factory=list, alias='emotionalTriggers')
    confidence: float = 0.5

    @field_validator('primary_emotion', mode='before')
    @classmethod
    def _validate_emotion(cls, value: Any) -> str:
        value = value.strip().lower() if isinstance(value, str) else ''
        return value if value in EMOTIONS else 'neutral'

    @field_validator('intensity', mode='before')
    @classmethod
    def _validate_intensity(cls, value: Any) -> str:
        value = value.strip().lower() if isinstance(value, str) else ''
        return value if value in INTENSITIES else 'medium'

    @field_validator('emotion_scores', mode='before')
    @classmethod
    def _validate_scores(cls, value: Any) -> Dict[str, float]:
        scores = {emotion: 0.0 for emotion in EMOTIONS}
        scores['neutral'] = 0.5
        if isinstance(value, dict):
            for emotion in EMOTIONS:
                raw = value.get(emotion)
                if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                    scores[emotion] = clamp_confidence(raw)
        return scores

    @field_validator('is_angry_with_specific_person', mode='before')
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return bool(value)

    @field_validator('emotional_triggers', mode='before')
    @classmethod
    def _limit_triggers(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(trigger) for trigger in value if trigger is not None][:5]

    @field_validator('confidence', mode='before')
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return clamp_confidence(value, default=0.5)
