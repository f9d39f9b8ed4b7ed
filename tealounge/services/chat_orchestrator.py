"""
Chat Orchestrator: runs one conversational turn through the whole pipeline.

Per turn: detect emotion -> extract facts -> detect conflicts against the
current knowledge snapshot -> store facts -> update the session -> fetch
contextual facts -> generate the reply -> maybe persist the knowledge.
"""

import random
import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.core import FACT_CATEGORIES, RESOLUTION_CHOICES, ChatResult, ConflictInfo, Message, ResponseContext
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import AppConfig, config
from ..utils.health_check import get_health_status
from ..utils.knowledge_store import KnowledgeStore, KnowledgeStoreError
from ..utils.logging_config import get_logger
from .conflict_resolution import ConflictResolutionService
from .emotion_detection import EmotionDetectionService
from .fact_extraction import FactExtractionService
from .memory_bank import MemoryBank
from .response_engine import ResponseEngine
from .session_store import SessionStore

logger = get_logger(__name__)

EMPTY_HISTORY_REPLY = "Hey hun! What's going on in your world today?"
NO_USER_MESSAGE_REPLY = "I'm here to chat - what's on your mind?"
DUPLICATE_REPLY = 'I just responded to that! What else is on your mind?'

FALLBACK_REPLIES = [
    'Oops, I zoned out for a second! What were you saying, babe?',
    'Sorry hun, my brain did a little hiccup there. Say that again?',
    "Ugh, technical difficulties! I'm still here for you though, try me again!",
]

MAX_PENDING_CONFLICTS = 100
RECENT_FACTS_LIMIT = 10


class ChatRequestError(ValueError):
    """Raised when an inbound turn payload cannot be turned into messages."""
    pass


class ChatOrchestrator:
    """Owns the session store and memory bank and sequences the services around them.

    Turns for the same session id are serialised; turns for different
    sessions may run concurrently.
    """

    def __init__(self,
                 llm: Optional[BedrockLLM] = None,
                 session_store: Optional[SessionStore] = None,
                 memory_bank: Optional[MemoryBank] = None,
                 fact_extractor: Optional[FactExtractionService] = None,
                 emotion_detector: Optional[EmotionDetectionService] = None,
                 conflict_resolver: Optional[ConflictResolutionService] = None,
                 response_engine: Optional[ResponseEngine] = None,
                 knowledge_store: Optional[KnowledgeStore] = None,
                 app_config: Optional[AppConfig] = None,
                 rng: Optional[random.Random] = None):
        """Initialize the orchestrator.

        Args:
            llm: Hosted model client shared by the services built here
            session_store: Session state; a fresh store when None
            memory_bank: Fact storage; a fresh bank when None
            fact_extractor: Fact extraction service
            emotion_detector: Emotion detection service
            conflict_resolver: Conflict detection service
            response_engine: Reply generation service
            knowledge_store: Snapshot file store; built from the memory config when None
            app_config: Configuration; the global config when None
            rng: Random source for the periodic save and fallback replies
        """
        self.config = app_config or config
        companion = self.config.companion

        self.llm = llm or BedrockLLM(self.config.bedrock_llm)
        # Both stores define __len__, so an empty one is falsy
        self.sessions = session_store if session_store is not None else SessionStore(self.config.session,
                                                                                     companion.partner_name)
        self.memory_bank = memory_bank if memory_bank is not None else MemoryBank()
        self.fact_extractor = fact_extractor or FactExtractionService(self.llm, companion)
        self.emotion_detector = emotion_detector or EmotionDetectionService(self.llm, companion)
        self.conflict_resolver = conflict_resolver or ConflictResolutionService(companion)
        self.response_engine = response_engine or ResponseEngine(self.llm, companion)
        self.knowledge_store = knowledge_store or KnowledgeStore(self.config.memory.knowledge_path)
        self._rng = rng or random.Random()

        self._lock = threading.Lock()
        self._session_locks: Dict[str, threading.Lock] = {}
        self._pending_conflicts: 'OrderedDict[str, ConflictInfo]' = OrderedDict()

        logger.info('Initialized ChatOrchestrator')

    def handle_turn(self, conversation_history: List[Any], session_id: Optional[str] = None) -> ChatResult:
        """Process one inbound turn.

        Args:
            conversation_history: Messages (dicts or Message objects), oldest first
            session_id: Existing session id; a new session is created when None

        Returns:
            ChatResult; pipeline failures produce a canned reply, never an exception

        Raises:
            ChatRequestError: If the payload is not a list of valid messages
        """
        history = self._parse_history(conversation_history)
        session = self.sessions.get_or_create(session_id)
        session_id = session.session_id

        if not history:
            return ChatResult(reply_text=EMPTY_HISTORY_REPLY, session_id=session_id)

        user_messages = [msg for msg in history if msg.sender == 'user']
        if not user_messages:
            return ChatResult(reply_text=NO_USER_MESSAGE_REPLY, session_id=session_id)

        latest = user_messages[-1]

        with self._session_lock(session_id):
            if not self.sessions.is_newer(session_id, latest):
                stored = self.sessions.get_latest_user_message(session_id)
                if stored is not None and stored.text == latest.text:
                    logger.info(f'Duplicate message for session {session_id[:8]}, skipping pipeline')
                    return ChatResult(reply_text=DUPLICATE_REPLY, session_id=session_id)

            try:
                result = self._run_pipeline(session_id, user_messages, latest)
            except Exception as e:
                logger.error(f'Chat turn failed for session {session_id[:8]}: {e}', exc_info=True)
                return ChatResult(reply_text=self._rng.choice(FALLBACK_REPLIES), session_id=session_id)

        self.maybe_save_knowledge()
        return result

    def get_knowledge(self) -> Dict[str, Any]:
        """Summary of what has been learned so far."""
        stats = self.memory_bank.get_memory_stats()
        recent = self.memory_bank.get_recent_facts(24)[:RECENT_FACTS_LIMIT]
        total = stats.total_facts

        return {
            'memory_stats': stats.to_dict(),
            'recent_facts': [fact.to_dict() for fact in recent],
            'categories': list(FACT_CATEGORIES),
            'verification_rate': round(stats.verified_facts / total * 100) if total else 0,
            'average_confidence': round(stats.average_confidence * 100),
        }

    def resolve_conflict(self, conflict_id: str, choice: str) -> Dict[str, Any]:
        """Apply the user's answer to a clarification surfaced by an earlier turn."""
        if choice not in RESOLUTION_CHOICES:
            return {'success': False, 'message': f'Invalid choice {choice!r}, expected one of {list(RESOLUTION_CHOICES)}'}

        with self._lock:
            conflict = self._pending_conflicts.pop(conflict_id, None)
        if conflict is None:
            return {'success': False, 'message': f'Unknown or already resolved conflict: {conflict_id}'}

        fact = self.memory_bank.resolve_conflict(conflict, choice)
        return {'success': True, 'conflict_id': conflict_id, 'choice': choice, 'fact': fact.to_dict()}

    def load_knowledge(self) -> int:
        """Import the snapshot file into the memory bank. Returns facts imported."""
        try:
            snapshot = self.knowledge_store.load()
        except KnowledgeStoreError as e:
            logger.error(f'Could not load knowledge: {e}')
            return 0

        if not snapshot:
            return 0
        return self.memory_bank.import_knowledge(snapshot)

    def save_knowledge(self) -> bool:
        try:
            self.knowledge_store.save(self.memory_bank.export_knowledge(), self.memory_bank.get_memory_stats().to_dict())
        except KnowledgeStoreError as e:
            logger.error(f'Could not save knowledge: {e}')
            return False

        logger.info('Knowledge saved')
        return True

    def maybe_save_knowledge(self) -> bool:
        """Save with the configured probability. Returns whether a save succeeded."""
        if self._rng.random() < self.config.memory.save_probability:
            return self.save_knowledge()
        return False

    def sweep_sessions(self) -> int:
        """Expire idle sessions and forget their turn locks."""
        removed = self.sessions.cleanup_expired()
        with self._lock:
            for session_id in [sid for sid in self._session_locks if sid not in self.sessions]:
                del self._session_locks[session_id]
        return removed

    def cleanup_memory(self) -> int:
        memory_config = self.config.memory
        return self.memory_bank.cleanup(memory_config.cleanup_min_confidence, memory_config.cleanup_max_age_days)

    def health(self) -> Dict[str, Any]:
        return get_health_status(self.llm, self.memory_bank)

    def _run_pipeline(self, session_id: str, user_messages: List[Message], latest: Message) -> ChatResult:
        emotion = self.emotion_detector.detect_emotion(user_messages)

        extraction = self.fact_extractor.extract_facts(latest.text, [])
        conflicts = self.conflict_resolver.detect_conflicts(extraction.facts, self.memory_bank.export_knowledge())

        for fact in extraction.facts:
            self.memory_bank.store_fact(fact)

        self.sessions.update(session_id, latest, emotion.primary_emotion)

        session_context = self.sessions.get_session_context(session_id)
        categories = ['emotions'] if emotion.primary_emotion == 'sad' else []
        relevant_facts = self.memory_bank.get_contextual_facts(latest.text, categories,
                                                               self.config.memory.contextual_fact_limit)
        stats = self.sessions.get_session_stats(session_id)

        context = ResponseContext(current_message=latest.text,
                                  emotion=emotion,
                                  learned_facts=extraction.facts,
                                  conflicts=conflicts.needs_immediate_attention,
                                  topics=list(session_context.current_topics),
                                  relevant_facts=relevant_facts,
                                  message_count=stats['message_count'],
                                  conversation_duration=stats['conversation_duration'])
        response = self.response_engine.generate_response(context)

        reply = Message(id=f'agent_{int(time.time() * 1000)}',
                        text=response.response,
                        sender='agent',
                        timestamp=datetime.now())
        self.sessions.update(session_id, reply, emotion.primary_emotion)

        self._remember_conflicts(conflicts.needs_immediate_attention)

        logger.info(f'Turn complete for session {session_id[:8]}: strategy={response.response_type}, '
                    f'facts={len(extraction.facts)}, conflicts={len(conflicts.conflicts)}')

        return ChatResult(reply_text=response.response,
                          session_id=session_id,
                          emotional_state={'primary_emotion': emotion.primary_emotion,
                                           'intensity': emotion.intensity,
                                           'topics': list(session_context.current_topics)},
                          detected_emotion=emotion,
                          learned_facts=[fact.content for fact in extraction.facts],
                          clarifications=[c.to_clarification() for c in conflicts.needs_immediate_attention])

    def _remember_conflicts(self, conflicts: List[ConflictInfo]) -> None:
        with self._lock:
            for conflict in conflicts:
                self._pending_conflicts[conflict.conflict_id] = conflict
            while len(self._pending_conflicts) > MAX_PENDING_CONFLICTS:
                self._pending_conflicts.popitem(last=False)

    def _session_lock(self, session_id: str) -> threading.Lock:
        with self._lock:
            lock = self._session_locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._session_locks[session_id] = lock
            return lock

    @staticmethod
    def _parse_history(conversation_history: Any) -> List[Message]:
        if conversation_history is None:
            return []
        if not isinstance(conversation_history, list):
            raise ChatRequestError('conversation_history must be a list of messages')

        history = []
        for index, item in enumerate(conversation_history):
            if isinstance(item, Message):
                history.append(item)
                continue
            try:
                history.append(Message.from_dict(item))
            except ValueError as e:
                raise ChatRequestError(f'Invalid message at position {index}: {e}')
        return history
