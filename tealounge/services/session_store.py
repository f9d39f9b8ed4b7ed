"""
Session Store holding per-conversation state in memory.
"""

import re
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..models.core import Message, Session, SessionContext
from ..utils.config import SessionConfig, config
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

MAX_TOPICS = 5
DUPLICATE_WINDOW = timedelta(seconds=1)

TOPIC_PATTERNS = [
    (r'\b(date|dating|going out)\b', 'dating'),
    (r'\b(dress|outfit|wearing|clothes)\b', 'fashion'),
    (r'\b(restaurant|food|eating|meal)\b', 'food'),
    (r'\b({partner}boyfriend|girlfriend|partner)\b', 'relationship'),
    (r'\b(website|dreamscape|project)\b', 'projects'),
    (r'\b(sad|happy|excited|nervous|angry)\b', 'emotions'),
    (r'\b(work|job|office)\b', 'work'),
    (r'\b(family|friends|social)\b', 'social'),
]


class SessionStore:
    """In-memory map of sessions keyed by session id.

    All reads and writes go through one re-entrant lock, so the store can be
    shared between request handlers and the maintenance worker.
    """

    def __init__(self,
                 session_config: Optional[SessionConfig] = None,
                 partner_name: Optional[str] = None,
                 clock: Callable[[], datetime] = datetime.now):
        session_config = session_config or config.session
        self.timeout = timedelta(minutes=session_config.timeout_minutes)
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()

        partner_name = (partner_name if partner_name is not None else config.companion.partner_name).strip().lower()
        partner = f'{re.escape(partner_name)}|' if partner_name else ''
        self._topic_patterns = [(re.compile(pattern.replace('{partner}', partner)), topic) for pattern, topic in TOPIC_PATTERNS]

        logger.info('Initialized SessionStore')

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def get_or_create(self, session_id: Optional[str] = None, initial_message: Optional[Message] = None) -> Session:
        """Return the session for `session_id`, creating it when absent.

        A missing id mints a fresh one. Existing sessions get their
        last_activity refreshed.
        """
        if not session_id:
            session_id = str(uuid.uuid4())

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id=session_id,
                                  messages=[initial_message] if initial_message else [],
                                  last_activity=self._clock())
                self._sessions[session_id] = session
                logger.debug(f'Created session {session_id}')
            else:
                session.last_activity = self._clock()
            return session

    def update(self, session_id: str, message: Message, emotion_label: Optional[str] = None) -> None:
        """Append a message to a session. Unknown sessions and duplicates are ignored."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return

            if self._is_duplicate(session, message):
                logger.debug(f'Message already in session, skipping duplicate: {message.text[:30]}')
                return

            session.messages.append(message)
            session.last_activity = self._clock()

            logger.debug(f'Added message to session {session_id[:8]} (total: {len(session.messages)})')

            if emotion_label:
                session.context.emotional_state = emotion_label

            if message.sender == 'user':
                self._merge_topics(session.context, self.extract_topics(message.text))

    def is_newer(self, session_id: str, message: Message) -> bool:
        """Whether `message` is later than the latest stored user message.

        Equal timestamps count as newer only when the ids differ.
        """
        latest = self.get_latest_user_message(session_id)
        if latest is None:
            return True
        return message.timestamp > latest.timestamp or (message.timestamp == latest.timestamp and message.id != latest.id)

    def cleanup_expired(self) -> int:
        """Drop every session idle for longer than the timeout. Returns how many went."""
        now = self._clock()
        with self._lock:
            expired = [sid for sid, session in self._sessions.items() if now - session.last_activity > self.timeout]
            for session_id in expired:
                del self._sessions[session_id]

        if expired:
            logger.info(f'Expired {len(expired)} idle sessions')
        return len(expired)

    def get_user_messages(self, session_id: str) -> List[Message]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return []
            return [msg for msg in session.messages if msg.sender == 'user']

    def get_latest_user_message(self, session_id: str) -> Optional[Message]:
        user_messages = self.get_user_messages(session_id)
        return user_messages[-1] if user_messages else None

    def get_session_context(self, session_id: str) -> SessionContext:
        """Context for an existing session, or a fresh default for unknown ids."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return SessionContext()
            return session.context

    def get_session_stats(self, session_id: str) -> Dict[str, object]:
        """Message counts and duration (seconds) of a session."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return {'message_count': 0, 'user_message_count': 0, 'conversation_duration': 0.0, 'topics_discussed': []}

            started = session.messages[0].timestamp if session.messages else session.last_activity
            duration = (session.last_activity - started).total_seconds()
            return {
                'message_count': len(session.messages),
                'user_message_count': sum(1 for msg in session.messages if msg.sender == 'user'),
                'conversation_duration': max(0.0, duration),
                'topics_discussed': list(session.context.current_topics),
            }

    def extract_topics(self, text: str) -> List[str]:
        """Topic tags matched in a message, in pattern order."""
        lower_text = text.lower()
        topics = []
        for pattern, topic in self._topic_patterns:
            if topic not in topics and pattern.search(lower_text):
                topics.append(topic)
        return topics

    @staticmethod
    def _is_duplicate(session: Session, message: Message) -> bool:
        for existing in session.messages:
            if existing.id == message.id:
                return True
            if (existing.text == message.text and existing.sender == message.sender
                    and abs(existing.timestamp - message.timestamp) < DUPLICATE_WINDOW):
                return True
        return False

    @staticmethod
    def _merge_topics(context: SessionContext, topics: List[str]) -> None:
        merged = list(context.current_topics)
        for topic in topics:
            if topic not in merged:
                merged.append(topic)
        # Oldest topics drop first
        context.current_topics = merged[-MAX_TOPICS:]
