"""Tests for EmotionDetectionService."""

import json

import pytest

from conftest import FakeLLM, make_message
from tealounge.models.core import EMOTIONS
from tealounge.services.emotion_detection import EmotionDetectionService


@pytest.fixture
def fallback_detector(failing_llm, companion):
    return EmotionDetectionService(failing_llm, companion)


class TestShortCircuits:

    def test_greeting_bypasses_model(self, fake_llm, companion):
        detector = EmotionDetectionService(fake_llm, companion)

        emotion = detector.detect_emotion([make_message('hi')])

        assert emotion.primary_emotion == 'happy'
        assert emotion.intensity == 'low'
        assert emotion.confidence == 0.9
        assert emotion.emotional_triggers == ['greeting']
        assert fake_llm.prompts == []

    def test_empty_history_is_neutral(self, fake_llm, companion):
        emotion = EmotionDetectionService(fake_llm, companion).detect_emotion([])

        assert emotion.primary_emotion == 'neutral'
        assert emotion.intensity == 'low'
        assert emotion.emotion_scores['neutral'] == 1.0
        assert emotion.confidence == 1.0
        assert fake_llm.prompts == []

    @pytest.mark.parametrize('message, expected', [
        ('hi', True),
        ('Hey Gigi', True),
        ('hello there', True),
        ('good morning', True),
        ('history is boring', False),
        ('they said hi', False),
    ])
    def test_is_simple_greeting(self, fake_llm, companion, message, expected):
        assert EmotionDetectionService(fake_llm, companion).is_simple_greeting(message) is expected


class TestModelDetection:

    def test_valid_payload(self, companion):
        reply = json.dumps({'primaryEmotion': 'sad',
                            'intensity': 'high',
                            'emotionScores': {'sad': 0.9, 'neutral': 0.1},
                            'isAngryWithSpecificPerson': False,
                            'emotionalTriggers': ['crying'],
                            'confidence': 0.85})
        llm = FakeLLM(default=reply)
        detector = EmotionDetectionService(llm, companion)

        emotion = detector.detect_emotion([make_message('I have been crying all day')])

        assert emotion.primary_emotion == 'sad'
        assert emotion.intensity == 'high'
        assert set(emotion.emotion_scores) == set(EMOTIONS)
        assert emotion.emotion_scores['sad'] == 0.9
        assert emotion.emotion_scores['angry'] == 0.0
        assert emotion.emotional_triggers == ['crying']
        assert emotion.confidence == 0.85
        assert 'I have been crying all day' in llm.prompts[0]

    def test_prompt_includes_recent_context(self, companion):
        llm = FakeLLM(default='{"primaryEmotion": "neutral"}')
        detector = EmotionDetectionService(llm, companion)
        history = [make_message(f'message number {i}', message_id=f'm{i}') for i in range(8)]

        detector.detect_emotion(history)

        assert 'Kittu: message number 7' in llm.prompts[0]
        assert 'message number 3' in llm.prompts[0]
        assert 'message number 2' not in llm.prompts[0]

    def test_out_of_range_values_are_coerced(self, companion):
        reply = json.dumps({'primaryEmotion': 'ecstatic',
                            'intensity': 'extreme',
                            'emotionScores': {'happy': 4, 'sad': 'lots'},
                            'isAngryWithSpecificPerson': 1,
                            'emotionalTriggers': ['a', 'b', 'c', 'd', 'e', 'f', 'g'],
                            'confidence': 12})
        emotion = EmotionDetectionService(FakeLLM(default=reply), companion).detect_emotion([make_message('whoa')])

        assert emotion.primary_emotion == 'neutral'
        assert emotion.intensity == 'medium'
        assert emotion.emotion_scores['happy'] == 1.0
        assert emotion.emotion_scores['sad'] == 0.0
        assert emotion.is_angry_with_specific_person is True
        assert len(emotion.emotional_triggers) == 5
        assert emotion.confidence == 1.0

    def test_garbage_reply_uses_keyword_fallback(self, companion):
        detector = EmotionDetectionService(FakeLLM(default='I think they are sad?'), companion)
        emotion = detector.detect_emotion([make_message('I am so sad and upset')])
        assert emotion.primary_emotion == 'sad'
        assert emotion.confidence == 0.6


class TestKeywordFallback:

    def test_anger_at_partner_sets_flag(self, fallback_detector):
        emotion = fallback_detector.detect_emotion([make_message("I'm so angry, mad and frustrated with Sam")])

        assert emotion.primary_emotion == 'angry'
        assert emotion.intensity == 'medium'
        assert emotion.is_angry_with_specific_person is True
        assert emotion.emotional_triggers == ['sam', 'frustrated', 'angry']
        assert emotion.confidence == 0.6

    def test_anger_without_partner_does_not_set_flag(self, fallback_detector):
        emotion = fallback_detector.detect_emotion([make_message("I'm so angry, mad and frustrated with work")])
        assert emotion.primary_emotion == 'angry'
        assert emotion.is_angry_with_specific_person is False

    def test_mild_anger_at_partner_does_not_set_flag(self, fallback_detector):
        emotion = fallback_detector.detect_emotion([make_message('Sam made me a bit annoyed')])
        assert emotion.primary_emotion == 'angry'
        assert emotion.intensity == 'low'
        assert emotion.is_angry_with_specific_person is False

    def test_no_keywords_is_neutral(self, fallback_detector):
        emotion = fallback_detector.detect_emotion([make_message('The train leaves at noon')])

        assert emotion.primary_emotion == 'neutral'
        assert emotion.intensity == 'low'
        assert emotion.emotion_scores['neutral'] == 0.5
        assert set(emotion.emotion_scores) == set(EMOTIONS)

    def test_ties_keep_the_first_bucket(self, fallback_detector):
        # 'amazing' scores happy 1/8, excited 1/6 and love 1/6; excited comes first
        emotion = fallback_detector.detect_emotion([make_message('That show was amazing')])
        assert emotion.primary_emotion == 'excited'


class TestRelationshipComplaint:

    @pytest.mark.parametrize('message, expected', [
        ('Sam is being so annoying', True),
        ('he is wrong about everything', True),
        ('Sam is wonderful', False),
        ('Samantha is annoying', False),
        ('the weather is bad', False),
    ])
    def test_contains_relationship_complaint(self, fallback_detector, message, expected):
        assert fallback_detector.contains_relationship_complaint(message) is expected
