"""Tests for the core data models."""

from datetime import datetime, timezone

import pytest

from conftest import make_emotion, make_fact
from tealounge.models.core import ChatResult, Fact, Message, clamp_confidence


class TestMessageFromDict:

    def test_minimal_payload(self):
        message = Message.from_dict({'text': 'hello', 'sender': 'user'})
        assert message.text == 'hello'
        assert message.sender == 'user'
        assert message.id
        assert isinstance(message.timestamp, datetime)

    @pytest.mark.parametrize('sender', ['assistant', 'Gigi', 'bot', 'AGENT'])
    def test_agent_aliases(self, sender):
        assert Message.from_dict({'text': 'hey', 'sender': sender}).sender == 'agent'

    def test_millisecond_epoch_timestamp(self):
        message = Message.from_dict({'id': 'm1', 'text': 'hi', 'sender': 'user', 'timestamp': 1717243200000})
        assert message.timestamp == datetime.fromtimestamp(1717243200)

    def test_iso_timestamp_with_zulu_suffix(self):
        message = Message.from_dict({'text': 'hi', 'sender': 'user', 'timestamp': '2024-06-01T12:00:00Z'})
        expected = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
        assert message.timestamp == expected

    @pytest.mark.parametrize('payload', [
        'hello',
        {'sender': 'user'},
        {'text': 42, 'sender': 'user'},
        {'text': 'hi', 'sender': 'narrator'},
        {'text': 'hi', 'sender': 'user', 'timestamp': 'yesterday-ish'},
    ])
    def test_invalid_payloads(self, payload):
        with pytest.raises(ValueError):
            Message.from_dict(payload)


class TestFact:

    def test_confidence_is_clamped(self):
        assert make_fact(confidence=-0.5).confidence == 0.0
        assert make_fact(confidence=2).confidence == 1.0

    def test_category_must_be_known(self):
        with pytest.raises(ValueError):
            Fact(id='f', content='x', category='secrets', confidence=0.5, timestamp=datetime.now(), source='x')

    @pytest.mark.parametrize('value, expected', [(0.4, 0.4), ('0.7', 0.7), (None, 0.0), ('abc', 0.0), (float('nan'), 0.0)])
    def test_clamp_confidence(self, value, expected):
        assert clamp_confidence(value) == expected


class TestChatResult:

    def test_to_dict(self):
        result = ChatResult(reply_text='Hi!',
                            session_id='s1',
                            detected_emotion=make_emotion('happy', 'low'),
                            learned_facts=['Loves sushi'],
                            clarifications=[{'conflict_id': 'c1', 'question': 'Really?', 'severity': 'high'}])

        data = result.to_dict()

        assert data['reply_text'] == 'Hi!'
        assert data['session_id'] == 's1'
        assert data['detected_emotion']['primary_emotion'] == 'happy'
        assert data['learned_facts'] == ['Loves sushi']
        assert data['clarifications'][0]['conflict_id'] == 'c1'
        assert data['emotional_state'] is None
