"""
Emotion Detection Service: hosted-model classification with a keyword fallback.
"""

import re
from typing import Dict, List, Optional

from ..models.core import EMOTIONS, EmotionAnalysis, Message
from ..models.schemas import EmotionPayload
from ..utils.bedrock_llm import BedrockLLM, BedrockLLMError
from ..utils.config import CompanionConfig, config
from ..utils.json_utils import decode_payload
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

CONTEXT_WINDOW = 5
FALLBACK_CONFIDENCE = 0.6
THIRD_PARTY_ANGER_THRESHOLD = 0.3

GREETINGS = ('hi', 'hello', 'hey', 'good morning', 'good evening')

EMOTION_KEYWORDS: Dict[str, List[str]] = {
    'happy': ['happy', 'joy', 'excited', 'amazing', 'wonderful', 'great', 'awesome', 'yay'],
    'sad': ['sad', 'depressed', 'down', 'upset', 'crying', 'hurt', 'disappointed'],
    'angry': ['angry', 'mad', 'furious', 'annoyed', 'irritated', 'frustrated', 'pissed'],
    'excited': ['excited', 'thrilled', "can't wait", 'amazing', 'omg', 'wow'],
    'anxious': ['worried', 'nervous', 'anxious', 'scared', 'concerned', 'stress'],
    'confused': ['confused', "don't understand", 'what', 'huh', 'unclear'],
    'love': ['love', 'adore', 'amazing', 'perfect', 'best', 'wonderful'],
}

TRIGGER_WORDS = ['boyfriend', 'relationship', 'annoying', 'frustrated', 'happy', 'sad', 'excited', 'worried',
                 'confused', 'angry', 'love']

RELATIONSHIP_WORDS = ['boyfriend', 'he']
COMPLAINT_WORDS = ['annoying', 'frustrating', 'stupid', 'wrong', 'bad', 'hate']

EMOTION_PROMPT = """You are an expert emotion analyst. Read {user_name}'s latest message in the context of the recent conversation.

LATEST MESSAGE: "{latest_message}"

RECENT CONVERSATION:
{context}

Work out:
1. The primary emotion, one of: {emotions}
2. Its intensity: low, medium or high
3. Whether {user_name} is angry specifically with {partner_name}
4. The words or phrases that signal the emotion
5. How confident you are, from 0.0 to 1.0

Signals to look for:
- Complaints about {partner_name} or relationship frustration -> angry, and angry with {partner_name}
- Excitement about events or achievements -> happy or excited
- Sadness or disappointment -> sad
- Questions and uncertainty -> confused
- Worry about upcoming things -> anxious
- Ordinary chat without strong feeling -> neutral

Return ONLY this JSON:
{{
  "primaryEmotion": "emotion_name",
  "intensity": "low|medium|high",
  "emotionScores": {{{score_template}}},
  "isAngryWithSpecificPerson": false,
  "emotionalTriggers": ["word1", "word2"],
  "confidence": 0.85
}}"""


def _empty_scores(neutral: float = 0.0) -> Dict[str, float]:
    scores = {emotion: 0.0 for emotion in EMOTIONS}
    scores['neutral'] = neutral
    return scores


class EmotionDetectionService:
    """Classify the emotional tone of the latest user message."""

    def __init__(self, llm: Optional[BedrockLLM] = None, companion: Optional[CompanionConfig] = None):
        """Initialize the emotion detection service.

        Args:
            llm: Hosted model client; a Bedrock client from the global config when None
            companion: Names used in prompts and the third-party anger check
        """
        self.llm = llm or BedrockLLM(config.bedrock_llm)
        self.companion = companion or config.companion

        logger.info('Initialized EmotionDetectionService')

    def detect_emotion(self, history: List[Message]) -> EmotionAnalysis:
        """Analyse the last message of `history`, using earlier ones as context.

        Args:
            history: Conversation messages, oldest first

        Returns:
            EmotionAnalysis; the keyword fallback is used when the model fails
        """
        if not history:
            return self.default_emotion()

        latest = history[-1]

        if self.is_simple_greeting(latest.text):
            scores = _empty_scores(neutral=0.2)
            scores['happy'] = 0.8
            return EmotionAnalysis(primary_emotion='happy',
                                   intensity='low',
                                   emotion_scores=scores,
                                   is_angry_with_specific_person=False,
                                   emotional_triggers=['greeting'],
                                   confidence=0.9)

        try:
            response = self.llm.complete(self._build_prompt(latest.text, self._build_context(history)))
        except BedrockLLMError as e:
            logger.warning(f'Emotion model call failed, using keyword fallback: {e}')
            return self.fallback_detection(latest.text)
        except Exception as e:
            logger.error(f'Unexpected error during emotion detection: {e}')
            return self.fallback_detection(latest.text)

        decoded = decode_payload(response, EmotionPayload)
        if not decoded.ok:
            logger.warning(f'Could not decode emotion response ({decoded.error}), using keyword fallback')
            return self.fallback_detection(latest.text)

        payload: EmotionPayload = decoded.value
        return EmotionAnalysis(primary_emotion=payload.primary_emotion,
                               intensity=payload.intensity,
                               emotion_scores=payload.emotion_scores,
                               is_angry_with_specific_person=payload.is_angry_with_specific_person,
                               emotional_triggers=payload.emotional_triggers,
                               confidence=payload.confidence)

    def fallback_detection(self, message: str) -> EmotionAnalysis:
        """Keyword-bucket scoring; each bucket scores matches / bucket size."""
        lower_message = message.lower()

        primary_emotion = 'neutral'
        max_score = 0.0
        scores = _empty_scores(neutral=0.5)

        for emotion, keywords in EMOTION_KEYWORDS.items():
            score = sum(1 for keyword in keywords if keyword in lower_message) / len(keywords)
            scores[emotion] = score
            if score > max_score:
                max_score = score
                primary_emotion = emotion

        if max_score > 0.6:
            intensity = 'high'
        elif max_score > 0.3:
            intensity = 'medium'
        else:
            intensity = 'low'

        partner = self.companion.partner_name.lower()
        is_angry_with_partner = bool(partner) and partner in lower_message and (
            scores['angry'] > THIRD_PARTY_ANGER_THRESHOLD or scores['frustrated'] > THIRD_PARTY_ANGER_THRESHOLD)

        return EmotionAnalysis(primary_emotion=primary_emotion,
                               intensity=intensity,
                               emotion_scores=scores,
                               is_angry_with_specific_person=is_angry_with_partner,
                               emotional_triggers=self.extract_triggers(message),
                               confidence=FALLBACK_CONFIDENCE)

    def extract_triggers(self, message: str) -> List[str]:
        """Up to three emotionally loaded words present in the message."""
        lower_message = message.lower()
        words = [self.companion.partner_name.lower()] + TRIGGER_WORDS
        return [word for word in words if word and word in lower_message][:3]

    def is_simple_greeting(self, message: str) -> bool:
        lower_message = message.lower().strip()
        assistant = self.companion.assistant_name.lower()
        return any(lower_message == greeting or lower_message == f'{greeting} {assistant}'
                   or lower_message.startswith(f'{greeting} ') for greeting in GREETINGS)

    def contains_relationship_complaint(self, message: str) -> bool:
        """A reference to the partner together with a complaint word."""
        lower_message = message.lower()
        partner = self.companion.partner_name.lower()
        references = [word for word in [partner] + RELATIONSHIP_WORDS if word]
        mentions_partner = any(re.search(rf'\b{re.escape(word)}\b', lower_message) for word in references)
        return mentions_partner and any(word in lower_message for word in COMPLAINT_WORDS)

    @staticmethod
    def default_emotion() -> EmotionAnalysis:
        return EmotionAnalysis(primary_emotion='neutral',
                               intensity='low',
                               emotion_scores=_empty_scores(neutral=1.0),
                               is_angry_with_specific_person=False,
                               emotional_triggers=[],
                               confidence=1.0)

    def _build_context(self, history: List[Message]) -> str:
        lines = []
        for msg in history[-CONTEXT_WINDOW:]:
            speaker = self.companion.user_name if msg.sender == 'user' else self.companion.assistant_name
            lines.append(f'{speaker}: {msg.text}')
        return '\n'.join(lines)

    def _build_prompt(self, latest_message: str, context: str) -> str:
        score_template = ', '.join(f'"{emotion}": 0.0' for emotion in EMOTIONS)
        return EMOTION_PROMPT.format(user_name=self.companion.user_name,
                                     partner_name=self.companion.partner_name,
                                     latest_message=latest_message,
                                     context=context,
                                     emotions=', '.join(EMOTIONS),
                                     score_template=score_template)
