"""
Response Engine: picks a reply strategy and asks the hosted model for the reply.
"""

import random
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..models.core import ResponseContext, ResponseResult
from ..utils.bedrock_llm import BedrockLLM, BedrockLLMError
from ..utils.config import CompanionConfig, config
from ..utils.logging_config import get_logger
from .conflict_resolution import clarification_response

logger = get_logger(__name__)

FALLBACK_CONFIDENCE = 0.5

FALLBACK_RESPONSES = [
    "Bestie, I'm having a moment here! Give me a sec to collect my thoughts...",
    'My brain just glitched! Can you say that again? I was too busy being fabulous!',
    "Technical difficulties! But I'm still on your team 100%. Try again, honey!",
]

GREETING_PATTERNS = [
    re.compile(r'^(hi|hello|hey|hiya|sup|yo)(\s|$)', re.IGNORECASE),
    re.compile(r'^good\s+(morning|afternoon|evening)', re.IGNORECASE),
    re.compile(r"^what'?s\s+up", re.IGNORECASE),
]

QUESTION_OPENERS = ('what', 'how', 'why', 'when', 'where', 'who', 'can you', 'do you')

# Learned-fact categories that steer the strategy, in priority order
FACT_STRATEGIES = [
    ('plans', 'plan_acknowledgment'),
    ('relationship', 'relationship_focus'),
    ('preferences', 'preference_exploration'),
]

BASE_PROMPT = """You are {assistant_name}, {user_name}'s emotionally intelligent best friend who learns and adapts in real time.

CURRENT CONTEXT:
Message: "{message}"
Emotion: {emotion} ({intensity}){anger_line}
Topics: {topics}
Conversation so far: {message_count} messages over {minutes} min
Facts learned just now: {learned}
Things you remember: {remembered}{conflict_line}

STRATEGY: {strategy}"""


@dataclass(frozen=True)
class Strategy:
    """A response mode chosen for the current turn."""
    type: str
    confidence: float
    priority: str  # 'clarify', 'immediate', 'learn' or 'respond'


@dataclass(frozen=True)
class StrategyTemplate:
    heading: str
    brief: str
    guidelines: List[str]
    persona: str
    examples: str = ''


STRATEGY_TEMPLATES: Dict[str, StrategyTemplate] = {
    'clarification_required': StrategyTemplate(
        heading='CLARIFICATION NEEDED',
        brief=('Something {user_name} said clashes with what you already know. Answer the message first, '
               'then ask about the clash naturally.'),
        guidelines=['Acknowledge what was just said', 'Move smoothly into the clarification',
                    'Be gentle but direct about the confusion', 'Make it feel like curiosity, not an interrogation'],
        persona='clarifying',
        examples='"That sounds amazing! By the way, I\'m a bit confused about ... could you help me understand?"'),
    'supportive_roast': StrategyTemplate(
        heading='SUPPORTIVE ROAST MODE',
        brief='{user_name} is angry with {partner_name}. Validate the feelings and sassily roast {partner_name}.',
        guidelines=['Use modern slang and dramatic expressions', 'Validate the feelings completely',
                    'Roast {partner_name} specifically, not people in general', 'Stay supportive while being sassy',
                    'Make {user_name} feel heard'],
        persona='supportive roasting',
        examples='"The AUDACITY!", "I cannot with them sometimes!"'),
    'emotional_support': StrategyTemplate(
        heading='EMOTIONAL SUPPORT MODE',
        brief='{user_name} needs comfort. Be the caring friend they need right now.',
        guidelines=['Acknowledge the feelings with empathy', 'Say that these emotions are normal',
                    'Offer comfort', 'Ask caring follow-up questions', "Don't try to fix everything at once"],
        persona='caring'),
    'excitement_matching': StrategyTemplate(
        heading='EXCITEMENT MATCHING MODE',
        brief='{user_name} is excited! Match the energy and celebrate together.',
        guidelines=['React with immediate excitement', 'Use enthusiastic language', 'Ask excited follow-up questions',
                    'Share the joy genuinely', 'Reference the specific details mentioned'],
        persona='celebrating',
        examples='"YES!", "I\'m SO happy for you!", "Tell me EVERYTHING!"'),
    'plan_acknowledgment': StrategyTemplate(
        heading='PLAN ACKNOWLEDGMENT MODE',
        brief='{user_name} shared plans. Show interest and ask about them.',
        guidelines=['Acknowledge the specific plans', 'Show genuine interest', 'Ask thoughtful follow-up questions',
                    'Reference the details provided', 'Be the friend who remembers things'],
        persona='interested'),
    'relationship_focus': StrategyTemplate(
        heading='RELATIONSHIP FOCUS MODE',
        brief='The conversation is about relationships. Be the wise, supportive friend.',
        guidelines=['Handle relationship topics sensitively', 'Show interest in their love life',
                    'Ask how they feel about it', 'Give thoughtful advice only if it fits'],
        persona='relationship-wise'),
    'preference_exploration': StrategyTemplate(
        heading='PREFERENCE EXPLORATION MODE',
        brief='{user_name} mentioned likes or dislikes. Explore them with curiosity.',
        guidelines=['Reflect the preference back warmly', 'Ask what makes it special to them',
                    'Connect it to things you already know about them', 'Share a light opinion of your own'],
        persona='curious'),
    'contextual_greeting': StrategyTemplate(
        heading='CONTEXTUAL GREETING MODE',
        brief='Greet {user_name} back, keeping the ongoing conversation in mind.',
        guidelines=['Greet warmly and naturally', 'Reference earlier conversation if relevant',
                    'Ask how things are going or pick up an open topic', 'Set a positive tone'],
        persona='welcoming'),
    'intelligent_answer': StrategyTemplate(
        heading='INTELLIGENT ANSWER MODE',
        brief='{user_name} asked a question. Give a thoughtful, helpful answer.',
        guidelines=['Address the question directly', 'Use what you know about their life',
                    "Be honest when you don't know", 'Ask a clarifying question if needed'],
        persona='helpful'),
    'adaptive_conversation': StrategyTemplate(
        heading='ADAPTIVE CONVERSATION MODE',
        brief='Natural conversation. Be aware of context and responsive.',
        guidelines=['Respond directly to what was said', 'Keep the conversation flowing',
                    'Show that you are listening', 'Ask relevant follow-up questions',
                    'Bring in remembered facts when they fit', 'Be warm and authentic'],
        persona='naturally adaptive'),
}


class ResponseEngine:
    """Turn a ResponseContext into reply text."""

    def __init__(self,
                 llm: Optional[BedrockLLM] = None,
                 companion: Optional[CompanionConfig] = None,
                 rng: Optional[random.Random] = None):
        self.llm = llm or BedrockLLM(config.bedrock_llm)
        self.companion = companion or config.companion
        self._rng = rng or random.Random()

        logger.info('Initialized ResponseEngine')

    def generate_response(self, context: ResponseContext) -> ResponseResult:
        """Generate the reply for one turn.

        Any model failure yields a canned reply with response_type 'fallback';
        the result carries the same fields either way.
        """
        strategy = self.determine_strategy(context)
        prompt = self.build_prompt(context, strategy)

        try:
            reply = self.llm.complete(prompt)
            if not reply:
                raise BedrockLLMError('empty reply from model')
        except Exception as e:
            logger.error(f'Response generation failed: {e}')
            return self.fallback_response(context)

        if context.conflicts:
            reply = clarification_response(reply, context.conflicts)

        return ResponseResult(response=reply,
                              response_type=strategy.type,
                              confidence=strategy.confidence,
                              learned_facts=context.learned_facts,
                              needs_clarification=context.conflicts)

    def determine_strategy(self, context: ResponseContext) -> Strategy:
        """First matching rule wins; see the module's strategy table."""
        emotion = context.emotion

        if any(conflict.severity == 'high' for conflict in context.conflicts):
            return Strategy('clarification_required', 0.95, 'clarify')

        if emotion.intensity == 'high':
            if emotion.is_angry_with_specific_person:
                return Strategy('supportive_roast', 0.9, 'immediate')
            if emotion.primary_emotion == 'sad':
                return Strategy('emotional_support', 0.9, 'immediate')
            if emotion.primary_emotion == 'excited':
                return Strategy('excitement_matching', 0.9, 'immediate')

        if context.learned_facts:
            categories = {fact.category for fact in context.learned_facts}
            for category, strategy_type in FACT_STRATEGIES:
                if category in categories:
                    return Strategy(strategy_type, 0.8, 'learn')

        message = context.current_message.strip()
        if self.is_greeting(message):
            return Strategy('contextual_greeting', 0.9, 'respond')
        if self.is_question(message):
            return Strategy('intelligent_answer', 0.7, 'respond')

        return Strategy('adaptive_conversation', 0.8, 'respond')

    def build_prompt(self, context: ResponseContext, strategy: Strategy) -> str:
        names = {'user_name': self.companion.user_name, 'partner_name': self.companion.partner_name}
        emotion = context.emotion

        base = BASE_PROMPT.format(
            assistant_name=self.companion.assistant_name,
            user_name=self.companion.user_name,
            message=context.current_message,
            emotion=emotion.primary_emotion,
            intensity=emotion.intensity,
            anger_line=f'\nANGRY WITH {self.companion.partner_name.upper()}' if emotion.is_angry_with_specific_person else '',
            topics=', '.join(context.topics) or 'none yet',
            message_count=context.message_count,
            minutes=int(context.conversation_duration // 60),
            learned='; '.join(fact.content for fact in context.learned_facts) or 'none',
            remembered='; '.join(fact.content for fact in context.relevant_facts) or 'nothing relevant',
            conflict_line=f'\nConflicts detected: {len(context.conflicts)}' if context.conflicts else '',
            strategy=strategy.type)

        template = STRATEGY_TEMPLATES.get(strategy.type, STRATEGY_TEMPLATES['adaptive_conversation'])
        guidelines = '\n'.join(f'{i}. {line.format(**names)}' for i, line in enumerate(template.guidelines, start=1))
        sections = [base, f'{template.heading}:\n{template.brief.format(**names)}', f'Guidelines:\n{guidelines}']
        if template.examples:
            sections.append(f'Examples: {template.examples}')
        sections.append(f'Respond as {template.persona} {self.companion.assistant_name}:')
        return '\n\n'.join(sections)

    def fallback_response(self, context: ResponseContext) -> ResponseResult:
        return ResponseResult(response=self._rng.choice(FALLBACK_RESPONSES),
                              response_type='fallback',
                              confidence=FALLBACK_CONFIDENCE,
                              learned_facts=context.learned_facts,
                              needs_clarification=context.conflicts)

    @staticmethod
    def is_greeting(message: str) -> bool:
        return any(pattern.search(message) for pattern in GREETING_PATTERNS)

    @staticmethod
    def is_question(message: str) -> bool:
        return '?' in message or message.lower().startswith(QUESTION_OPENERS)
