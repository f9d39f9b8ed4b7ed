"""Tests for FactExtractionService."""

import json

import pytest

from conftest import FakeLLM, make_fact
from tealounge.services.fact_extraction import FactExtractionService
from tealounge.utils.bedrock_llm import BedrockLLMError


def facts_reply(*facts) -> str:
    return json.dumps({'facts': list(facts)})


@pytest.fixture
def fallback_service(failing_llm, companion):
    return FactExtractionService(failing_llm, companion)


class TestTrivialMessages:

    @pytest.mark.parametrize('message', ['hi', 'Hello!', 'ok', 'thanks.', 'lol', 'wow!!', 'yo', '   '])
    def test_trivial_message_short_circuits(self, fake_llm, companion, message):
        service = FactExtractionService(fake_llm, companion)
        result = service.extract_facts(message)

        assert result.facts == []
        assert result.confidence == 1.0
        assert result.needs_verification == []
        assert fake_llm.prompts == []

    def test_real_sentence_is_not_trivial(self):
        assert not FactExtractionService.is_simple_message('I adopted a cat')


class TestModelExtraction:

    def test_valid_payload_becomes_facts(self, companion):
        llm = FakeLLM(default=facts_reply({'content': 'Likes spicy food', 'category': 'preferences', 'confidence': 0.9}))
        service = FactExtractionService(llm, companion)

        result = service.extract_facts('I love spicy food')

        assert len(result.facts) == 1
        fact = result.facts[0]
        assert fact.content == 'Likes spicy food'
        assert fact.category == 'preferences'
        assert fact.confidence == 0.9
        assert fact.verified is True
        assert fact.source == 'I love spicy food'
        assert fact.id.startswith('fact_')
        assert result.confidence == 0.9
        assert 'I love spicy food' in llm.prompts[0]

    def test_code_fenced_payload_is_accepted(self, companion):
        reply = '```json\n' + facts_reply({'content': 'Works as a nurse', 'category': 'personal', 'confidence': 0.95}) + '\n```'
        service = FactExtractionService(FakeLLM(default=reply), companion)

        result = service.extract_facts('I work as a nurse')

        assert [fact.content for fact in result.facts] == ['Works as a nurse']

    def test_low_confidence_facts_are_dropped(self, companion):
        reply = facts_reply({'content': 'Might like jazz', 'category': 'preferences', 'confidence': 0.4},
                            {'content': 'Plays the piano', 'category': 'interests', 'confidence': 0.8})
        service = FactExtractionService(FakeLLM(default=reply), companion)

        result = service.extract_facts('I play piano and maybe like jazz')

        assert [fact.content for fact in result.facts] == ['Plays the piano']

    def test_flagged_facts_need_verification(self, companion):
        reply = facts_reply({'content': 'Hates chocolate now', 'category': 'preferences', 'confidence': 0.7,
                             'needsVerification': True})
        service = FactExtractionService(FakeLLM(default=reply), companion)

        result = service.extract_facts('honestly I hate chocolate now')

        assert len(result.needs_verification) == 1
        assert result.needs_verification[0] is result.facts[0]
        assert result.facts[0].verified is False

    def test_unknown_category_is_recategorised(self, companion):
        reply = facts_reply({'content': 'Has been seeing Sam for a year', 'category': 'romance', 'confidence': 0.9})
        service = FactExtractionService(FakeLLM(default=reply), companion)

        result = service.extract_facts('Sam and I have been together a year')

        assert result.facts[0].category == 'relationship'

    def test_out_of_range_confidence_is_clamped(self, companion):
        reply = facts_reply({'content': 'Lives in Lisbon', 'category': 'personal', 'confidence': 3})
        service = FactExtractionService(FakeLLM(default=reply), companion)

        assert service.extract_facts('I live in Lisbon').facts[0].confidence == 1.0

    def test_malformed_items_are_skipped(self, companion):
        reply = facts_reply('not a fact', {'content': '   ', 'confidence': 0.9}, {'category': 'personal'},
                            {'content': 'Owns a bakery', 'category': 'personal', 'confidence': 0.9})
        service = FactExtractionService(FakeLLM(default=reply), companion)

        result = service.extract_facts('I own a bakery')

        assert [fact.content for fact in result.facts] == ['Owns a bakery']

    def test_empty_fact_list(self, companion):
        service = FactExtractionService(FakeLLM(default='{"facts": []}'), companion)
        result = service.extract_facts('Just thinking out loud here')
        assert result.facts == []
        assert result.confidence == 0.0

    def test_fact_ids_are_unique(self, companion):
        reply = facts_reply({'content': 'Owns a cat', 'category': 'personal', 'confidence': 0.9},
                            {'content': 'Owns a dog', 'category': 'personal', 'confidence': 0.9})
        service = FactExtractionService(FakeLLM(default=reply), companion)

        ids = [fact.id for fact in service.extract_facts('I have a cat and a dog').facts]
        ids += [fact.id for fact in service.extract_facts('I have a cat and a dog').facts]

        assert len(set(ids)) == 4


class TestFallbackExtraction:

    def test_date_plan_with_named_person(self, fallback_service):
        result = fallback_service.extract_facts("I'm going on a date with Sam tomorrow")

        assert len(result.facts) == 1
        fact = result.facts[0]
        assert fact.category == 'plans'
        assert fact.confidence == 0.7
        assert 'date' in fact.content
        assert 'Sam' in fact.content
        assert 'tomorrow' in fact.content
        assert result.confidence == 0.7

    def test_pronoun_maps_to_partner(self, fallback_service):
        result = fallback_service.extract_facts('We are going out to dinner with him on Friday')
        assert 'Sam' in result.facts[0].content

    @pytest.mark.parametrize('reply', ['this is not json', '{"facts": "nope"}', '{"facts": [', '[1, 2, 3]', ''])
    def test_bad_model_output_uses_fallback(self, companion, reply):
        service = FactExtractionService(FakeLLM(default=reply), companion)

        result = service.extract_facts('I feel sad today')

        assert [fact.content for fact in result.facts] == ['Current emotion: sad']
        assert result.facts[0].category == 'emotions'

    def test_unexpected_model_error_uses_fallback(self, companion):
        service = FactExtractionService(FakeLLM(default=RuntimeError('boom')), companion)
        result = service.extract_facts('I am going to Paris next month')
        assert [fact.content for fact in result.facts] == ['Plans to visit: Paris next month']

    def test_outfit_is_a_preference(self, fallback_service):
        result = fallback_service.extract_facts("I'll be wearing my red dress")
        assert [(fact.category, fact.content) for fact in result.facts] == [('preferences', 'Outfit choice: wearing my red dress')]

    def test_nothing_matches(self, fallback_service):
        result = fallback_service.extract_facts('The weather is odd')
        assert result.facts == []
        assert result.confidence == 0.0


class TestCategorizeAndValidate:

    @pytest.mark.parametrize('content, expected', [
        ('Dinner with Sam on Friday', 'relationship'),
        ('Misses their old boyfriend', 'relationship'),
        ('Feels nervous about exams', 'emotions'),
        ('Going hiking next weekend', 'plans'),
        ('Loves sushi', 'preferences'),
        ('Worried about rent', 'concerns'),
        ('Has a pottery hobby', 'interests'),
        ('Works as an engineer', 'personal'),
    ])
    def test_categorize_fact(self, fallback_service, content, expected):
        assert fallback_service.categorize_fact(content) == expected

    def test_validate_accepts_matching_keywords(self, fallback_service):
        assert fallback_service.validate_fact(make_fact(content='Feeling sad today', category='emotions'))
        assert fallback_service.validate_fact(make_fact(content='Will visit Rome', category='plans'))
        assert fallback_service.validate_fact(make_fact(content='Dating Sam now', category='relationship'))
        assert fallback_service.validate_fact(make_fact(content='Works at a bank', category='personal'))

    def test_validate_rejects_bad_facts(self, fallback_service):
        assert not fallback_service.validate_fact(make_fact(content='Abc', category='personal'))
        assert not fallback_service.validate_fact(make_fact(content='Works at a bank', category='personal', confidence=0.2))
        assert not fallback_service.validate_fact(make_fact(content='Feeling meh', category='emotions'))

    def test_model_error_type_is_not_leaked(self, companion):
        service = FactExtractionService(FakeLLM(default=BedrockLLMError('throttled')), companion)
        assert service.extract_facts('Random words here').facts == []
