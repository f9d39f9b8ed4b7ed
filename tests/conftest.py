"""Shared fixtures for the pipeline tests."""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

import pytest

from tealounge.models.core import EmotionAnalysis, EMOTIONS, Fact, Message
from tealounge.utils.bedrock_llm import BedrockLLMError
from tealounge.utils.config import (AppConfig, BedrockLLMConfig, CompanionConfig, MCPConfig, MemoryConfig,
                                    SessionConfig)

Reply = Union[str, Exception, Callable[[str], str]]

# Substrings that identify which service built a prompt
EMOTION_PROMPT = 'emotion analyst'
FACT_PROMPT = 'fact extraction system'
RESPONSE_PROMPT = 'STRATEGY:'


class FakeLLM:
    """Stand-in for BedrockLLM.

    Replies are chosen by the first route whose marker appears in the prompt,
    else `default`. A reply may be a string, an exception to raise, or a
    callable taking the prompt.
    """

    def __init__(self, routes: Optional[Dict[str, Reply]] = None, default: Reply = 'OK', healthy: bool = True):
        self.routes = routes or {}
        self.default = default
        self.healthy = healthy
        self.prompts: List[str] = []

    def complete(self, prompt: str, max_tokens=None, temperature=None) -> str:
        self.prompts.append(prompt)
        reply = self.default
        for marker, routed in self.routes.items():
            if marker in prompt:
                reply = routed
                break

        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(prompt)
        return reply.strip()

    def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def companion():
    return CompanionConfig(assistant_name='Gigi', user_name='Kittu', partner_name='Sam')


@pytest.fixture
def app_config(tmp_path, companion):
    return AppConfig(environment='test',
                     log_level='DEBUG',
                     bedrock_llm=BedrockLLMConfig(region='us-east-1',
                                                  model_id='test-model',
                                                  max_tokens=256,
                                                  temperature=0.0,
                                                  retry_attempts=1,
                                                  retry_delay=0.0),
                     companion=companion,
                     session=SessionConfig(timeout_minutes=30, sweep_interval_minutes=15),
                     memory=MemoryConfig(knowledge_path=str(tmp_path / 'knowledge_base.json'),
                                         save_probability=0.0,
                                         cleanup_interval_hours=1,
                                         cleanup_min_confidence=0.3,
                                         cleanup_max_age_days=30,
                                         contextual_fact_limit=5),
                     mcp=MCPConfig(transport='stdio', host='127.0.0.1', port=8000))


@pytest.fixture
def failing_llm():
    """A model that is always down, forcing every fallback path."""
    return FakeLLM(default=BedrockLLMError('Bedrock unavailable'))


@pytest.fixture
def fake_llm():
    return FakeLLM()


def make_fact(fact_id: str = 'fact_1',
              content: str = 'Likes spicy food',
              category: str = 'preferences',
              confidence: float = 0.9,
              timestamp: Optional[datetime] = None,
              verified: bool = True) -> Fact:
    return Fact(id=fact_id,
                content=content,
                category=category,
                confidence=confidence,
                timestamp=timestamp or datetime.now(),
                source=content,
                verified=verified)


def make_message(text: str, sender: str = 'user', message_id: Optional[str] = None,
                 timestamp: Optional[datetime] = None) -> Message:
    return Message(id=message_id or f'msg_{abs(hash((text, sender)))}',
                   text=text,
                   sender=sender,
                   timestamp=timestamp or datetime.now())


def make_emotion(primary: str = 'neutral', intensity: str = 'low', angry_at_partner: bool = False) -> EmotionAnalysis:
    scores = {emotion: 0.0 for emotion in EMOTIONS}
    scores[primary] = 0.8
    return EmotionAnalysis(primary_emotion=primary,
                           intensity=intensity,
                           emotion_scores=scores,
                           is_angry_with_specific_person=angry_at_partner,
                           emotional_triggers=[],
                           confidence=0.8)
