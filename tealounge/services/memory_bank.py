"""
Memory Bank: in-process store of every learned fact with category and
timeline indexes, relevance-ranked retrieval and snapshot import/export.

Conflict resolution is additive. Superseded facts are demoted, never
deleted, so the history of what was believed stays inspectable.
"""

import itertools
import threading
import time
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..models.core import FACT_CATEGORIES, RESOLUTION_CHOICES, ConflictInfo, Fact, MemoryEntry, MemoryStats, clamp_confidence
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

IMPORTED_CONFIDENCE = 0.8
DEMOTED_CONFIDENCE = 0.3
REJECTED_CONFIDENCE = 0.2
CONFIRMATION_BOOST = 0.2
CONTEXT_SCORE_THRESHOLD = 0.5

Snapshot = Dict[str, Dict[str, str]]


class MemoryBank:
    """Thread-safe map of fact id -> MemoryEntry plus derived indexes.

    The category and day indexes are views over the entries: every id in an
    index has an entry and every entry appears in exactly one bucket of each
    index. Empty buckets are removed.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._memory: Dict[str, MemoryEntry] = {}
        self._category_index: Dict[str, Set[str]] = {}
        self._timeline_index: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()
        self._merge_counter = itertools.count(1)

        logger.info('Initialized MemoryBank')

    def __len__(self) -> int:
        with self._lock:
            return len(self._memory)

    def __contains__(self, fact_id: str) -> bool:
        with self._lock:
            return fact_id in self._memory

    def store_fact(self, fact: Fact, related_ids: Optional[List[str]] = None) -> None:
        """Insert or overwrite the entry for `fact.id` and index it."""
        if fact.category not in FACT_CATEGORIES:
            raise ValueError(f'Unknown fact category: {fact.category!r}')

        entry = MemoryEntry(fact=fact,
                            last_accessed=self._clock(),
                            access_count=0,
                            verified=fact.verified,
                            confidence=clamp_confidence(fact.confidence),
                            related_facts=list(related_ids or []))

        with self._lock:
            previous = self._memory.get(fact.id)
            if previous is not None:
                self._unindex(previous.fact)
            self._memory[fact.id] = entry
            self._index(fact)

        logger.info(f'Stored fact: {fact.content} (confidence: {entry.confidence:.2f})')

    def get_fact(self, fact_id: str) -> Optional[Fact]:
        with self._lock:
            entry = self._memory.get(fact_id)
            return entry.fact if entry else None

    def get_entry(self, fact_id: str) -> Optional[MemoryEntry]:
        with self._lock:
            return self._memory.get(fact_id)

    def get_facts_by_category(self, category: str, min_confidence: float = 0.5) -> List[Fact]:
        """Facts in a category at or above `min_confidence`, most confident first."""
        with self._lock:
            entries = [self._memory[fact_id] for fact_id in self._category_index.get(category, ())]
            selected = [entry for entry in entries if entry.confidence >= min_confidence]
            self._touch(selected)
            selected.sort(key=lambda entry: entry.confidence, reverse=True)
            return [entry.fact for entry in selected]

    def get_facts_by_day(self, day: date) -> List[Fact]:
        """Facts learned on a calendar day, oldest first."""
        with self._lock:
            facts = [self._memory[fact_id].fact for fact_id in self._timeline_index.get(day.isoformat(), ())]
        return sorted(facts, key=lambda fact: fact.timestamp)

    def get_recent_facts(self, hours_back: float = 24) -> List[Fact]:
        """Facts learned within the last `hours_back` hours, newest first."""
        cutoff = self._clock() - timedelta(hours=hours_back)
        with self._lock:
            selected = [entry for entry in self._memory.values() if entry.fact.timestamp >= cutoff]
            self._touch(selected)
        return sorted((entry.fact for entry in selected), key=lambda fact: fact.timestamp, reverse=True)

    def search_facts(self, keywords: Iterable[str], min_confidence: float = 0.5) -> List[Fact]:
        """Facts whose content contains any keyword (case-insensitive), most confident first."""
        lowered = [keyword.lower() for keyword in keywords if keyword]
        if not lowered:
            return []

        with self._lock:
            selected = []
            for entry in self._memory.values():
                if entry.confidence < min_confidence:
                    continue
                content = entry.fact.content.lower()
                if any(keyword in content for keyword in lowered):
                    selected.append(entry)
            self._touch(selected)
            selected.sort(key=lambda entry: entry.confidence, reverse=True)
            return [entry.fact for entry in selected]

    def get_contextual_facts(self, message: str, categories: Optional[List[str]] = None, limit: int = 5) -> List[Fact]:
        """Rank facts by relevance to `message` and return the best `limit`.

        Score components:
            +0.3 when `categories` is empty or contains the fact's category
            +0.2 per word longer than 3 characters shared with the message
            +0.3 x fact confidence
            +0.2 when the fact is less than 24 hours old
            +0.1 x access count, capped at +0.3
        Only facts scoring above 0.5 are kept.
        """
        categories = categories or []
        message_words = {word for word in message.lower().split() if len(word) > 3}
        now = self._clock()

        with self._lock:
            scored = []
            for entry in self._memory.values():
                fact = entry.fact
                score = 0.0

                if not categories or fact.category in categories:
                    score += 0.3

                fact_words = set(fact.content.lower().split())
                score += len(message_words & fact_words) * 0.2

                score += fact.confidence * 0.3

                if now - fact.timestamp < timedelta(hours=24):
                    score += 0.2

                score += min(entry.access_count * 0.1, 0.3)

                if score > CONTEXT_SCORE_THRESHOLD:
                    scored.append((score, entry))

            scored.sort(key=lambda item: item[0], reverse=True)
            selected = [entry for _, entry in scored[:limit]]
            self._touch(selected)
            return [entry.fact for entry in selected]

    def update_fact_confidence(self, fact_id: str, new_confidence: float, verified: bool = False) -> None:
        """Overwrite an entry's confidence (clamped) and verification flag. Unknown ids are ignored."""
        with self._lock:
            entry = self._memory.get(fact_id)
            if entry is None:
                return
            entry.confidence = clamp_confidence(new_confidence)
            entry.verified = verified
            entry.last_accessed = self._clock()

        logger.info(f'Updated fact confidence: {entry.fact.content} -> {entry.confidence:.2f}')

    def resolve_conflict(self, conflict: ConflictInfo, choice: str) -> Fact:
        """Apply the user's answer to a conflict. Nothing is deleted.

        Args:
            conflict: The conflict being resolved
            choice: 'new' keeps the new fact and demotes the old one,
                'existing' confirms the old fact and stores the new one demoted,
                'merge' stores a combined fact linked to both

        Returns:
            The fact written by this resolution

        Raises:
            ValueError: If `choice` is not one of RESOLUTION_CHOICES
        """
        if choice not in RESOLUTION_CHOICES:
            raise ValueError(f'Invalid resolution choice: {choice!r}')

        new_fact = conflict.new_fact
        existing_fact = conflict.existing_fact

        with self._lock:
            if choice == 'new':
                self.update_fact_confidence(existing_fact.id, DEMOTED_CONFIDENCE, verified=False)
                result = new_fact
                self.store_fact(result, [existing_fact.id])

            elif choice == 'existing':
                entry = self._memory.get(existing_fact.id)
                base = entry.confidence if entry else existing_fact.confidence
                self.update_fact_confidence(existing_fact.id, min(1.0, base + CONFIRMATION_BOOST), verified=True)
                result = replace(new_fact, confidence=REJECTED_CONFIDENCE)
                self.store_fact(result, [existing_fact.id])

            else:
                if new_fact.id not in self._memory:
                    self.store_fact(new_fact)
                result = Fact(id=f'merged_{int(time.time() * 1000)}_{next(self._merge_counter)}',
                              content=f'{existing_fact.content}; {new_fact.content}',
                              category=new_fact.category,
                              confidence=(existing_fact.confidence + new_fact.confidence) / 2,
                              timestamp=self._clock(),
                              source=f'Merged: {new_fact.source}',
                              verified=True)
                self.store_fact(result, [existing_fact.id, new_fact.id])

        logger.info(f'Conflict resolved: {choice} chosen for "{new_fact.content}"')
        return result

    def get_memory_stats(self) -> MemoryStats:
        cutoff = self._clock() - timedelta(hours=24)
        with self._lock:
            entries = list(self._memory.values())

        facts_by_category: Dict[str, int] = {}
        for entry in entries:
            facts_by_category[entry.fact.category] = facts_by_category.get(entry.fact.category, 0) + 1

        total = len(entries)
        return MemoryStats(total_facts=total,
                           facts_by_category=facts_by_category,
                           average_confidence=sum(entry.confidence for entry in entries) / total if total else 0.0,
                           verified_facts=sum(1 for entry in entries if entry.verified),
                           recently_learned=sum(1 for entry in entries if entry.fact.timestamp >= cutoff))

    def export_knowledge(self) -> Snapshot:
        """Snapshot as category -> fact id -> content.

        Confidence, verification and timestamps are not part of the snapshot.
        """
        exported: Snapshot = {}
        with self._lock:
            for entry in self._memory.values():
                exported.setdefault(entry.fact.category, {})[entry.fact.id] = entry.fact.content
        return exported

    def import_knowledge(self, snapshot: Snapshot) -> int:
        """Load a snapshot. Imported facts get confidence 0.8 and are marked verified.

        Unknown categories and non-string contents are skipped.

        Returns:
            Number of facts imported
        """
        imported = 0
        now = self._clock()
        for category, facts in snapshot.items():
            if category not in FACT_CATEGORIES or not isinstance(facts, dict):
                logger.warning(f'Skipping unknown knowledge category: {category!r}')
                continue
            for fact_id, content in facts.items():
                if not isinstance(content, str) or not content.strip():
                    continue
                self.store_fact(Fact(id=str(fact_id),
                                     content=content,
                                     category=category,
                                     confidence=IMPORTED_CONFIDENCE,
                                     timestamp=now,
                                     source='imported knowledge',
                                     verified=True))
                imported += 1

        logger.info(f'Imported {imported} facts across {len(snapshot)} categories')
        return imported

    def cleanup(self, min_confidence: float = 0.3, max_age_days: int = 30) -> int:
        """Delete facts that are low-confidence, old, and never accessed.

        All three conditions must hold; a fact that was ever read survives.

        Returns:
            Number of facts deleted
        """
        cutoff = self._clock() - timedelta(days=max_age_days)
        with self._lock:
            doomed = [fact_id for fact_id, entry in self._memory.items()
                      if entry.confidence < min_confidence and entry.fact.timestamp < cutoff and entry.access_count == 0]
            for fact_id in doomed:
                self._delete_fact(fact_id)

        logger.info(f'Cleaned up {len(doomed)} low-quality facts')
        return len(doomed)

    def _touch(self, entries: Iterable[MemoryEntry]) -> None:
        now = self._clock()
        for entry in entries:
            entry.last_accessed = now
            entry.access_count += 1

    def _index(self, fact: Fact) -> None:
        self._category_index.setdefault(fact.category, set()).add(fact.id)
        self._timeline_index.setdefault(fact.timestamp.date().isoformat(), set()).add(fact.id)

    def _unindex(self, fact: Fact) -> None:
        for index, key in ((self._category_index, fact.category), (self._timeline_index, fact.timestamp.date().isoformat())):
            bucket = index.get(key)
            if bucket is None:
                continue
            bucket.discard(fact.id)
            if not bucket:
                del index[key]

    def _delete_fact(self, fact_id: str) -> None:
        entry = self._memory.pop(fact_id, None)
        if entry is not None:
            self._unindex(entry.fact)
