"""
Conflict Resolution Service comparing new facts against a knowledge snapshot.

Detection only reads the snapshot it is given; resolving a conflict is the
memory bank's job.
"""

import itertools
import re
import time
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from ..models.core import ConflictInfo, ConflictResolutionResult, Fact
from ..utils.config import CompanionConfig, config
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import find_time_reference

logger = get_logger(__name__)

# Snapshots carry no metadata, so stored facts are compared as if they had this confidence
SNAPSHOT_CONFIDENCE = 0.8

EMOTION_POLARITY_PAIRS = [
    (['happy', 'excited', 'joy'], ['sad', 'angry', 'depressed']),
    (['love', 'like'], ['hate', 'dislike']),
    (['calm', 'relaxed'], ['nervous', 'anxious', 'stressed']),
]

LIKE_WORDS = ['like', 'love', 'enjoy', 'prefer']
DISLIKE_WORDS = ['hate', 'dislike', "don't like", 'avoid']

HIGH_PRIORITY_PREFIX = 'Wait, '
MEDIUM_PRIORITY_PREFIX = 'By the way, '


def content_similarity(text1: str, text2: str) -> float:
    """Jaccard index over lowercase whitespace-separated words."""
    words1 = set(text1.lower().split())
    words2 = set(text2.lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def find_common_terms(text1: str, text2: str) -> List[str]:
    """Words longer than 3 characters present in both texts, in `text1` order."""
    words2 = {word for word in text2.split() if len(word) > 3}
    common = []
    for word in text1.split():
        if len(word) > 3 and word in words2 and word not in common:
            common.append(word)
    return common


def contains_any(text: str, words: List[str]) -> bool:
    """Whether any word starts a word in `text`, so 'like' matches 'likes' but not 'dislike'."""
    return any(re.search(r'\b' + re.escape(word), text) for word in words)


def polarity(text: str, positive: List[str], negative: List[str]) -> Tuple[bool, bool]:
    """(positive, negative) hits for `text`. Negative phrases are removed first, so 'don't like' is not a like."""
    has_negative = contains_any(text, negative)
    for word in negative:
        text = re.sub(r'\b' + re.escape(word), ' ', text)
    return contains_any(text, positive), has_negative


def clarification_response(reply: str, conflicts: List[ConflictInfo]) -> str:
    """Append at most one clarification question to a reply.

    High-severity conflicts and contradictions take priority over
    medium-severity ones; low-severity conflicts alone add nothing.
    """
    if not conflicts:
        return reply

    urgent = [c for c in conflicts if c.severity == 'high' or c.conflict_type == 'contradiction']
    if urgent:
        return f'{reply}\n\n{HIGH_PRIORITY_PREFIX}{urgent[0].clarification_question}'

    medium = [c for c in conflicts if c.severity == 'medium']
    if medium:
        return f'{reply}\n\n{MEDIUM_PRIORITY_PREFIX}{medium[0].clarification_question}'

    return reply


class ConflictResolutionService:
    """Detect contradictions, temporal clashes, inconsistencies and ambiguities."""

    def __init__(self, companion: Optional[CompanionConfig] = None):
        self.companion = companion or config.companion
        self._counter = itertools.count(1)

        logger.info('Initialized ConflictResolutionService')

    def detect_conflicts(self, new_facts: List[Fact], existing_knowledge: Dict[str, Dict[str, str]]) -> ConflictResolutionResult:
        """Compare each new fact with the snapshot facts of the same category.

        Args:
            new_facts: Facts extracted from the current message
            existing_knowledge: Snapshot as category -> fact id -> content

        Returns:
            ConflictResolutionResult; each (new, existing) pair yields at most one conflict
        """
        result = ConflictResolutionResult()

        for new_fact in new_facts:
            category_facts = existing_knowledge.get(new_fact.category) or {}
            for existing_id, existing_content in category_facts.items():
                if existing_id == new_fact.id:
                    continue

                conflict = self.analyze_pair(new_fact, self._snapshot_fact(existing_id, existing_content, new_fact.category))
                if conflict is None:
                    continue

                result.conflicts.append(conflict)
                if conflict.severity == 'high' or conflict.conflict_type == 'contradiction':
                    result.needs_immediate_attention.append(conflict)
                if conflict.suggested_resolution in ('update', 'merge') and conflict.severity != 'high':
                    result.auto_resolvable.append(conflict)

        if result.has_conflicts:
            logger.info(f'Detected {len(result.conflicts)} conflicts '
                        f'({len(result.needs_immediate_attention)} need attention)')
        return result

    def analyze_pair(self, new_fact: Fact, existing_fact: Fact) -> Optional[ConflictInfo]:
        """Run the detectors in order; the first one that fires wins."""
        if new_fact.category != existing_fact.category:
            return None

        return (self._check_contradiction(new_fact, existing_fact)
                or self._check_temporal(new_fact, existing_fact)
                or self._check_inconsistency(new_fact, existing_fact)
                or self._check_ambiguity(new_fact, existing_fact))

    def generate_clarification_response(self, reply: str, conflicts: List[ConflictInfo]) -> str:
        return clarification_response(reply, conflicts)

    def _check_contradiction(self, new_fact: Fact, existing_fact: Fact) -> Optional[ConflictInfo]:
        new_content = new_fact.content.lower()
        existing_content = existing_fact.content.lower()

        if new_fact.category == 'emotions':
            for positive, negative in EMOTION_POLARITY_PAIRS:
                new_positive, new_negative = polarity(new_content, positive, negative)
                existing_positive, existing_negative = polarity(existing_content, positive, negative)

                if (new_positive and existing_negative) or (new_negative and existing_positive):
                    question = (f'I noticed you mentioned feeling {"positive" if new_positive else "negative"} now, '
                                f'but earlier you seemed {"positive" if existing_positive else "negative"}. '
                                f'How are you actually feeling right now?')
                    return self._conflict(new_fact, existing_fact, 'contradiction', 'high', question, 'clarify')

        if new_fact.category == 'relationship':
            partner = self.companion.partner_name.lower()
            if partner and 'single' in new_content and partner in existing_content:
                question = (f'are you single or are you with {self.companion.partner_name}? '
                            f"I'm getting mixed signals here!")
                return self._conflict(new_fact, existing_fact, 'contradiction', 'high', question, 'clarify')

        if new_fact.category == 'preferences':
            new_likes, new_dislikes = polarity(new_content, LIKE_WORDS, DISLIKE_WORDS)
            existing_likes, existing_dislikes = polarity(existing_content, LIKE_WORDS, DISLIKE_WORDS)

            if (new_likes and existing_dislikes) or (new_dislikes and existing_likes):
                common_terms = find_common_terms(new_content, existing_content)
                if common_terms:
                    question = f"I'm confused, do you like or dislike {common_terms[0]}? You've mentioned both!"
                    return self._conflict(new_fact, existing_fact, 'contradiction', 'medium', question, 'clarify')

        return None

    def _check_temporal(self, new_fact: Fact, existing_fact: Fact) -> Optional[ConflictInfo]:
        if new_fact.category != 'plans':
            return None

        new_content = new_fact.content.lower()
        existing_content = existing_fact.content.lower()
        if 'date' not in new_content or 'date' not in existing_content:
            return None

        new_time = find_time_reference(new_content)
        existing_time = find_time_reference(existing_content)
        if new_time and existing_time and new_time != existing_time:
            question = f'I heard about a date {new_time}, but earlier you mentioned {existing_time}. Which one is happening?'
            return self._conflict(new_fact, existing_fact, 'temporal', 'medium', question, 'clarify')

        return None

    def _check_inconsistency(self, new_fact: Fact, existing_fact: Fact) -> Optional[ConflictInfo]:
        if new_fact.confidence >= 0.6 or existing_fact.confidence <= 0.8:
            return None

        similarity = content_similarity(new_fact.content, existing_fact.content)
        if 0.3 < similarity < 0.8:
            question = 'I want to make sure I understand correctly, you mentioned something similar before. Can you clarify?'
            return self._conflict(new_fact, existing_fact, 'inconsistency', 'low', question, 'merge')

        return None

    def _check_ambiguity(self, new_fact: Fact, existing_fact: Fact) -> Optional[ConflictInfo]:
        if new_fact.verified:
            return None

        similarity = content_similarity(new_fact.content, existing_fact.content)
        if 0.5 < similarity < 0.9:
            question = 'Just to be clear, are you talking about the same thing as before, or is this something new?'
            return self._conflict(new_fact, existing_fact, 'ambiguity', 'low', question, 'clarify')

        return None

    def _conflict(self, new_fact: Fact, existing_fact: Fact, conflict_type: str, severity: str, question: str,
                  resolution: str) -> ConflictInfo:
        return ConflictInfo(conflict_id=f'conflict_{int(time.time() * 1000)}_{next(self._counter)}',
                            new_fact=new_fact,
                            existing_fact=existing_fact,
                            conflict_type=conflict_type,
                            severity=severity,
                            clarification_question=question,
                            suggested_resolution=resolution)

    @staticmethod
    def _snapshot_fact(fact_id: str, content: str, category: str) -> Fact:
        return Fact(id=fact_id,
                    content=content,
                    category=category,
                    confidence=SNAPSHOT_CONFIDENCE,
                    timestamp=datetime.now() - timedelta(days=1),
                    source='previous conversation',
                    verified=True)
