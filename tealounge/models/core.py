"""
Core data models for the conversational knowledge pipeline.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..utils.timestamp_utils import parse_timestamp

FACT_CATEGORIES = ('personal', 'relationship', 'preferences', 'emotions', 'plans', 'interests', 'concerns')
EMOTIONS = ('happy', 'sad', 'angry', 'excited', 'neutral', 'anxious', 'frustrated', 'love', 'confused')
INTENSITIES = ('low', 'medium', 'high')
SENDERS = ('user', 'agent')
CONFLICT_TYPES = ('contradiction', 'inconsistency', 'ambiguity', 'temporal')
SEVERITIES = ('low', 'medium', 'high')
SUGGESTED_RESOLUTIONS = ('update', 'ignore', 'clarify', 'merge')
RESOLUTION_CHOICES = ('new', 'existing', 'merge')

# Client-side names for the agent side of the conversation
_SENDER_ALIASES = {'assistant': 'agent', 'gigi': 'agent', 'bot': 'agent'}


def clamp_confidence(value: Any, default: float = 0.0) -> float:
    """Coerce a value to a float in [0, 1]; non-numeric values become `default`."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


@dataclass(frozen=True)
class Message:
    """A single chat message. Immutable once created."""
    id: str
    text: str
    sender: str  # 'user' or 'agent'
    timestamp: datetime

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        """Build a message from an inbound payload dict.

        Raises:
            ValueError: If the payload is not a usable message
        """
        if not isinstance(data, dict):
            raise ValueError(f'Message must be an object, got {type(data).__name__}')

        text = data.get('text')
        if not isinstance(text, str):
            raise ValueError('Message text must be a string')

        sender = str(data.get('sender', '')).strip().lower()
        sender = _SENDER_ALIASES.get(sender, sender)
        if sender not in SENDERS:
            raise ValueError(f'Unknown message sender: {data.get("sender")!r}')

        timestamp = data.get('timestamp')
        return cls(id=str(data.get('id') or uuid.uuid4()),
                   text=text,
                   sender=sender,
                   timestamp=parse_timestamp(timestamp) if timestamp is not None else datetime.now())

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'text': self.text, 'sender': self.sender, 'timestamp': self.timestamp.isoformat()}


@dataclass
class SessionContext:
    """Conversation-level context derived from a session's messages."""
    current_topics: List[str] = field(default_factory=list)  # At most 5, oldest first
    emotional_state: str = 'neutral'
    ongoing_concerns: List[str] = field(default_factory=list)


@dataclass
class Session:
    """Per-conversation state owned by the session store."""
    session_id: str
    messages: List[Message] = field(default_factory=list)
    last_activity: datetime = field(default_factory=datetime.now)
    context: SessionContext = field(default_factory=SessionContext)


@dataclass
class Fact:
    """A single piece of information learned about the user."""
    id: str
    content: str
    category: str  # One of FACT_CATEGORIES
    confidence: float  # 0.0 to 1.0
    timestamp: datetime
    source: str  # The originating message text
    verified: bool = False

    def __post_init__(self):
        if self.category not in FACT_CATEGORIES:
            raise ValueError(f'Unknown fact category: {self.category!r}')
        self.confidence = clamp_confidence(self.confidence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'content': self.content,
            'category': self.category,
            'confidence': self.confidence,
            'timestamp': self.timestamp.isoformat(),
            'source': self.source,
            'verified': self.verified,
        }


@dataclass
class MemoryEntry:
    """A stored fact plus retrieval bookkeeping. Owned by the memory bank."""
    fact: Fact
    last_accessed: datetime
    access_count: int
    verified: bool
    confidence: float  # May diverge from fact.confidence after resolution
    related_facts: List[str] = field(default_factory=list)


@dataclass
class FactExtractionResult:
    """Facts extracted from one message."""
    facts: List[Fact]
    confidence: float
    needs_verification: List[Fact] = field(default_factory=list)


@dataclass
class EmotionAnalysis:
    """Emotional reading of the latest user message."""
    primary_emotion: str
    intensity: str
    emotion_scores: Dict[str, float]
    is_angry_with_specific_person: bool
    emotional_triggers: List[str]
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'primary_emotion': self.primary_emotion,
            'intensity': self.intensity,
            'emotion_scores': dict(self.emotion_scores),
            'is_angry_with_specific_person': self.is_angry_with_specific_person,
            'emotional_triggers': list(self.emotional_triggers),
            'confidence': self.confidence,
        }


@dataclass
class ConflictInfo:
    """A tension between a newly extracted fact and a stored one. Lives for one request."""
    conflict_id: str
    new_fact: Fact
    existing_fact: Fact
    conflict_type: str  # One of CONFLICT_TYPES
    severity: str  # One of SEVERITIES
    clarification_question: str
    suggested_resolution: str  # One of SUGGESTED_RESOLUTIONS

    def to_clarification(self) -> Dict[str, str]:
        return {'conflict_id': self.conflict_id, 'question': self.clarification_question, 'severity': self.severity}


@dataclass
class ConflictResolutionResult:
    """Outcome of checking a batch of new facts against a snapshot."""
    conflicts: List[ConflictInfo] = field(default_factory=list)
    needs_immediate_attention: List[ConflictInfo] = field(default_factory=list)
    auto_resolvable: List[ConflictInfo] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0


@dataclass
class MemoryStats:
    """Aggregate view of the memory bank."""
    total_facts: int
    facts_by_category: Dict[str, int]
    average_confidence: float
    verified_facts: int
    recently_learned: int  # Facts learned in the last 24 hours

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalFacts': self.total_facts,
            'factsByCategory': dict(self.facts_by_category),
            'averageConfidence': self.average_confidence,
            'verifiedFacts': self.verified_facts,
            'recentlyLearned': self.recently_learned,
        }


@dataclass
class ResponseContext:
    """Everything the response engine needs to pick a strategy and build a prompt."""
    current_message: str
    emotion: EmotionAnalysis
    learned_facts: List[Fact] = field(default_factory=list)
    conflicts: List[ConflictInfo] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    relevant_facts: List[Fact] = field(default_factory=list)
    message_count: int = 0
    conversation_duration: float = 0.0  # seconds


@dataclass
class ResponseResult:
    """A generated reply. Same shape on the success and fallback paths."""
    response: str
    response_type: str
    confidence: float
    learned_facts: List[Fact] = field(default_factory=list)
    needs_clarification: List[ConflictInfo] = field(default_factory=list)


@dataclass
class ChatResult:
    """What one inbound turn returns to the request-handling layer."""
    reply_text: str
    session_id: str
    emotional_state: Optional[Dict[str, Any]] = None
    detected_emotion: Optional[EmotionAnalysis] = None
    learned_facts: List[str] = field(default_factory=list)
    clarifications: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'reply_text': self.reply_text,
            'session_id': self.session_id,
            'emotional_state': self.emotional_state,
            'detected_emotion': self.detected_emotion.to_dict() if self.detected_emotion else None,
            'learned_facts': list(self.learned_facts),
            'clarifications': list(self.clarifications),
        }
