"""
Fact Extraction Service: hosted-model extraction with a regex fallback.
"""

import itertools
import re
import time
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError

from ..models.core import FACT_CATEGORIES, Fact, FactExtractionResult
from ..models.schemas import ExtractedFactSchema, FactExtractionPayload
from ..utils.bedrock_llm import BedrockLLM, BedrockLLMError
from ..utils.config import CompanionConfig, config
from ..utils.json_utils import decode_payload
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import find_time_reference

logger = get_logger(__name__)

MIN_FACT_CONFIDENCE = 0.5
FALLBACK_CONFIDENCE = 0.7

SIMPLE_MESSAGE_PATTERNS = [
    re.compile(r'^(hi|hello|hey|yes|no|ok|okay|thanks|bye)[.!?]*$', re.IGNORECASE),
    re.compile(r'^[a-z]{1,3}[.!?]*$', re.IGNORECASE),
    re.compile(r'^(lol|haha|omg|wow)[.!?]*$', re.IGNORECASE),
]

DATE_PLAN_PATTERN = re.compile(r"\bgoing\b.*?\b(date|dinner|out)\b.*?\bwith\s+([A-Za-z][\w'-]*)", re.IGNORECASE)
OUTFIT_PATTERN = re.compile(r'\bwearing\b.*?\b(dress|outfit|clothes)\b', re.IGNORECASE)
EMOTION_PATTERN = re.compile(r'\bfeel(?:ing)?\s+(sad|happy|excited|nervous|angry)\b', re.IGNORECASE)
DESTINATION_PATTERN = re.compile(r'\bgoing\s+to\s+([^.!?]+)', re.IGNORECASE)

_PRONOUNS = {'him', 'her', 'them'}
_OUTING_PHRASES = {'date': 'go on a date', 'dinner': 'go to dinner', 'out': 'go out'}

# Ordered: the first category whose keywords appear wins
_CATEGORY_KEYWORDS = [
    ('relationship', ('boyfriend', 'girlfriend', 'relationship')),
    ('emotions', ('feel', 'sad', 'happy', 'excited', 'nervous')),
    ('plans', ('going', 'date', 'plan', 'tomorrow', 'next')),
    ('preferences', ('like', 'love', 'hate', 'prefer')),
    ('concerns', ('worried', 'concerned', 'problem', 'issue')),
    ('interests', ('hobby', 'enjoy', 'interested')),
]

_VALIDATION_PATTERNS = {
    'emotions': re.compile(r'\b(happy|sad|excited|nervous|angry|love|joy|fear|anxiety|depression)\b', re.IGNORECASE),
    'plans': re.compile(r'\b(going|will|plan|date|visit|meet|tomorrow|next|future)\b', re.IGNORECASE),
    'relationship': re.compile(r'\b(boyfriend|girlfriend|partner|date|love|relationship)\b', re.IGNORECASE),
}

FACT_EXTRACTION_PROMPT = """You are a careful fact extraction system. Pull concrete facts about {user_name} out of their latest message.

MESSAGE: "{message}"
{context_line}
Answer with JSON in exactly this shape:
{{
  "facts": [
    {{
      "content": "the fact, written as a short statement",
      "category": "personal|relationship|preferences|emotions|plans|interests|concerns",
      "confidence": 0.9,
      "needsVerification": false
    }}
  ]
}}

Rules:
1. Extract concrete facts only, never opinions or small talk.
2. Categories:
   - personal: about {user_name} themselves (job, family, age, home)
   - relationship: about {partner_name} or their romantic life
   - preferences: likes and dislikes (food, places, activities)
   - emotions: how they feel right now
   - plans: future activities and scheduled events
   - interests: hobbies and topics they follow
   - concerns: worries and problems
3. Confidence: 0.9-1.0 explicitly stated, 0.7-0.8 strongly implied, 0.5-0.6 uncertain. Skip anything below 0.5.
4. Set needsVerification to true when the fact is surprising or goes against what they usually say.

Examples:
- "I'm going on a date with {partner_name} tomorrow" -> plans: "Date with {partner_name} scheduled for tomorrow"
- "I love blue dresses" -> preferences: "Likes blue dresses"
- "I feel sad about the cheesecake" -> emotions: "Feeling sad about the cheesecake"

Return {{"facts": []}} when there is nothing to extract. Return only the JSON."""


class FactExtractionService:
    """Extract facts from single user messages."""

    def __init__(self, llm: Optional[BedrockLLM] = None, companion: Optional[CompanionConfig] = None):
        """Initialize the fact extraction service.

        Args:
            llm: Hosted model client; a Bedrock client from the global config when None
            companion: Names used in prompts and fallback templates
        """
        self.llm = llm or BedrockLLM(config.bedrock_llm)
        self.companion = companion or config.companion
        self._counter = itertools.count(1)

        logger.info('Initialized FactExtractionService')

    def extract_facts(self, message: str, context: Optional[List[str]] = None) -> FactExtractionResult:
        """Extract facts from one message.

        Model failures and unusable model output degrade to pattern matching;
        nothing is raised to the caller.

        Args:
            message: The user's message text
            context: Optional context strings (topics, earlier messages) for the prompt

        Returns:
            FactExtractionResult with accepted facts and those flagged for verification
        """
        if self.is_simple_message(message):
            return FactExtractionResult(facts=[], confidence=1.0, needs_verification=[])

        try:
            prompt = self._build_prompt(message, context)
            response = self.llm.complete(prompt)
        except BedrockLLMError as e:
            logger.warning(f'Fact extraction model call failed, using pattern fallback: {e}')
            return self.fallback_extraction(message)
        except Exception as e:
            logger.error(f'Unexpected error during fact extraction: {e}')
            return self.fallback_extraction(message)

        decoded = decode_payload(response, FactExtractionPayload)
        if not decoded.ok:
            logger.warning(f'Could not decode fact extraction response ({decoded.error}), using pattern fallback')
            return self.fallback_extraction(message)

        return self._build_result(decoded.value, message)

    def fallback_extraction(self, message: str) -> FactExtractionResult:
        """Pattern-based extraction used when the model is unavailable."""
        facts = []

        match = DATE_PLAN_PATTERN.search(message)
        if match:
            companion = match.group(2)
            if companion.lower() in _PRONOUNS:
                companion = self.companion.partner_name
            content = f'Plans to {_OUTING_PHRASES[match.group(1).lower()]} with {companion}'
            when = find_time_reference(message)
            if when:
                content = f'{content} {when}'
            facts.append(self._new_fact(content, 'plans', FALLBACK_CONFIDENCE, message))

        match = OUTFIT_PATTERN.search(message)
        if match:
            facts.append(self._new_fact(f'Outfit choice: {match.group(0)}', 'preferences', FALLBACK_CONFIDENCE, message))

        match = EMOTION_PATTERN.search(message)
        if match:
            facts.append(self._new_fact(f'Current emotion: {match.group(1).lower()}', 'emotions', FALLBACK_CONFIDENCE, message))

        match = DESTINATION_PATTERN.search(message)
        if match:
            facts.append(self._new_fact(f'Plans to visit: {match.group(1).strip()}', 'plans', FALLBACK_CONFIDENCE, message))

        return FactExtractionResult(facts=facts, confidence=FALLBACK_CONFIDENCE if facts else 0.0, needs_verification=[])

    @staticmethod
    def is_simple_message(message: str) -> bool:
        """Greetings, acknowledgements and very short exclamations carry no facts."""
        text = message.strip()
        if not text:
            return True
        return any(pattern.match(text) for pattern in SIMPLE_MESSAGE_PATTERNS)

    def categorize_fact(self, content: str) -> str:
        """Best-guess category for a fact from its wording."""
        lower_content = content.lower()
        partner = self.companion.partner_name.lower()
        if partner and partner in lower_content:
            return 'relationship'
        for category, keywords in _CATEGORY_KEYWORDS:
            if any(keyword in lower_content for keyword in keywords):
                return category
        return 'personal'

    def validate_fact(self, fact: Fact) -> bool:
        """Sanity check a fact against its category."""
        if len(fact.content) < 5 or fact.confidence < 0.3:
            return False
        partner = self.companion.partner_name.lower()
        if fact.category == 'relationship' and partner and partner in fact.content.lower():
            return True
        pattern = _VALIDATION_PATTERNS.get(fact.category)
        return bool(pattern.search(fact.content)) if pattern else True

    def _build_prompt(self, message: str, context: Optional[List[str]]) -> str:
        context_line = f'CONTEXT: {", ".join(context)}\n' if context else ''
        return FACT_EXTRACTION_PROMPT.format(user_name=self.companion.user_name,
                                             partner_name=self.companion.partner_name,
                                             message=message,
                                             context_line=context_line)

    def _build_result(self, payload: FactExtractionPayload, message: str) -> FactExtractionResult:
        facts = []
        needs_verification = []

        for item in payload.facts:
            if not isinstance(item, dict):
                continue
            try:
                extracted = ExtractedFactSchema.model_validate(item)
            except ValidationError:
                logger.debug(f'Skipping malformed fact entry: {item}')
                continue

            if extracted.confidence < MIN_FACT_CONFIDENCE:
                continue

            category = extracted.category if extracted.category in FACT_CATEGORIES else self.categorize_fact(extracted.content)
            fact = self._new_fact(extracted.content, category, extracted.confidence, message,
                                  verified=not extracted.needs_verification)
            facts.append(fact)
            if extracted.needs_verification:
                needs_verification.append(fact)

        logger.debug(f'Extracted {len(facts)} facts from message')
        return FactExtractionResult(facts=facts,
                                    confidence=max((f.confidence for f in facts), default=0.0),
                                    needs_verification=needs_verification)

    def _new_fact(self, content: str, category: str, confidence: float, source: str, verified: bool = True) -> Fact:
        return Fact(id=self._generate_fact_id(),
                    content=content,
                    category=category,
                    confidence=confidence,
                    timestamp=datetime.now(),
                    source=source,
                    verified=verified)

    def _generate_fact_id(self) -> str:
        return f'fact_{int(time.time() * 1000)}_{next(self._counter)}'
