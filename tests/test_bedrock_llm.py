"""Tests for the Bedrock client wrapper, with the boto3 runtime client mocked out."""

from dataclasses import replace
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from tealounge.utils import bedrock_llm
from tealounge.utils.bedrock_llm import BedrockLLM, BedrockLLMError


def stream_of(*chunks):
    events = [{'contentBlockDelta': {'delta': {'text': chunk}}} for chunk in chunks]
    events.append({'metadata': {'usage': {'inputTokens': 12, 'outputTokens': 3}}})
    return {'stream': events}


def throttled():
    return ClientError({'Error': {'Code': 'ThrottlingException', 'Message': 'slow down'}}, 'ConverseStream')


@pytest.fixture
def runtime(monkeypatch):
    client = Mock()
    monkeypatch.setattr(bedrock_llm.boto3, 'client', Mock(return_value=client))
    monkeypatch.setattr(bedrock_llm.time, 'sleep', Mock())
    return client


class TestComplete:

    def test_joins_stream_deltas_and_strips(self, runtime, app_config):
        runtime.converse_stream.return_value = stream_of('  Hey ', 'hun!\n')
        llm = BedrockLLM(app_config.bedrock_llm)

        assert llm.complete('hello') == 'Hey hun!'

        request = runtime.converse_stream.call_args.kwargs
        assert request['modelId'] == 'test-model'
        assert request['messages'] == [{'role': 'user', 'content': [{'text': 'hello'}]}]
        assert request['inferenceConfig']['maxTokens'] == 256
        assert 'system' not in request

    def test_returns_plain_text(self, runtime, app_config):
        runtime.converse_stream.return_value = stream_of('OK')
        llm = BedrockLLM(app_config.bedrock_llm)

        assert llm.generate_response([{'role': 'user', 'content': [{'text': 'Hi'}]}], system_prompt='Be brief') == 'OK'
        assert runtime.converse_stream.call_args.kwargs['system'] == [{'text': 'Be brief'}]

    def test_retries_client_errors(self, runtime, app_config):
        runtime.converse_stream.side_effect = [throttled(), stream_of('back')]
        llm = BedrockLLM(replace(app_config.bedrock_llm, retry_attempts=2))

        assert llm.complete('hello') == 'back'
        assert runtime.converse_stream.call_count == 2
        bedrock_llm.time.sleep.assert_called_once()

    def test_gives_up_after_last_attempt(self, runtime, app_config):
        runtime.converse_stream.side_effect = throttled()
        llm = BedrockLLM(replace(app_config.bedrock_llm, retry_attempts=2))

        with pytest.raises(BedrockLLMError, match='after 2 attempts'):
            llm.complete('hello')

    def test_unexpected_errors_are_wrapped(self, runtime, app_config):
        runtime.converse_stream.side_effect = KeyError('stream')
        llm = BedrockLLM(app_config.bedrock_llm)

        with pytest.raises(BedrockLLMError, match='Unexpected'):
            llm.complete('hello')
        assert runtime.converse_stream.call_count == 1


class TestHealthCheck:

    def test_healthy_when_model_answers(self, runtime, app_config):
        runtime.converse_stream.return_value = stream_of('OK')
        assert BedrockLLM(app_config.bedrock_llm).health_check() is True

    def test_unhealthy_on_failure(self, runtime, app_config):
        runtime.converse_stream.side_effect = throttled()
        assert BedrockLLM(app_config.bedrock_llm).health_check() is False
