"""Tests for document analysis: LLM path, parsing, and heuristic fallbacks."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from advisory_engine.core.analyzer import (
    FALLBACK_KEY_POINT,
    TOO_SHORT_SUMMARY,
    DocumentAnalyzer,
    extract_keywords,
    find_json_object,
    parse_analysis_response,
)
from tests.fakes.fake_providers import make_message_response

LLM_PAYLOAD = {
    "summary": "Acme plans a pilot of the onboarding tool in May.",
    "key_points": ["Pilot starts in May", "Budget is 40k", "Support load doubled"],
    "entities": {
        "people": ["Dana Lee"],
        "organizations": ["Acme"],
        "dates": ["May"],
        "amounts": ["40k"],
    },
    "business_relevance": 0.8,
    "keywords": [{"word": "Pilot", "importance": 0.9}, "Budget"],
    "insights": [{"type": "risk", "content": "Support load may grow", "importance": "high"}],
}

TEXT = (
    "Acme wants to pilot the onboarding tool in May. Dana Lee approved a budget of 40k. "
    "Support tickets doubled, so onboarding automation is the priority for onboarding."
)


def make_analyzer(create) -> DocumentAnalyzer:
    client = MagicMock()
    client.messages.create = create
    return DocumentAnalyzer(client=client)


@pytest.mark.asyncio
async def test_llm_response_parsed():
    raw = "Here is the analysis:\n```json\n" + json.dumps(LLM_PAYLOAD) + "\n```"
    analyzer = make_analyzer(AsyncMock(return_value=make_message_response(raw)))

    result = await analyzer.analyze(TEXT, "pilot.txt")

    assert result.source == "llm"
    assert result.summary == LLM_PAYLOAD["summary"]
    assert result.key_points == LLM_PAYLOAD["key_points"]
    assert result.entities.organizations == ["Acme"]
    assert result.business_relevance == 0.8
    assert [k.word for k in result.keywords] == ["Pilot", "Budget"]
    assert result.insights[0].importance == "high"


@pytest.mark.asyncio
async def test_prompt_is_bounded_and_names_document():
    create = AsyncMock(return_value=make_message_response(json.dumps(LLM_PAYLOAD)))
    analyzer = make_analyzer(create)
    analyzer.max_chars = 100

    await analyzer.analyze("x" * 5000, "big.pdf")

    prompt = create.call_args.kwargs["messages"][0]["content"]
    assert "Document name: big.pdf" in prompt
    assert "x" * 100 in prompt
    assert "x" * 101 not in prompt


@pytest.mark.asyncio
async def test_provider_failure_degrades_to_fallback():
    analyzer = make_analyzer(AsyncMock(side_effect=RuntimeError("rate limited")))

    result = await analyzer.analyze(TEXT, "pilot.txt")

    assert result.source == "fallback"
    assert result.summary == f'Document "pilot.txt" uploaded successfully. Contains {len(TEXT.split())} words.'
    assert result.key_points == [FALLBACK_KEY_POINT]
    assert 1 <= len(result.key_points) <= 5
    assert result.business_relevance == 0.5
    assert len(result.insights) == 1
    assert result.insights[0].type == "note"


@pytest.mark.asyncio
async def test_unparsable_response_degrades_to_fallback():
    analyzer = make_analyzer(AsyncMock(return_value=make_message_response("I cannot do that.")))
    result = await analyzer.analyze(TEXT, "pilot.txt")
    assert result.source == "fallback"


@pytest.mark.asyncio
async def test_missing_required_fields_degrade_to_fallback():
    payload = {"summary": "Only a summary"}
    analyzer = make_analyzer(AsyncMock(return_value=make_message_response(json.dumps(payload))))
    result = await analyzer.analyze(TEXT, "pilot.txt")
    assert result.source == "fallback"


@pytest.mark.asyncio
async def test_no_provider_uses_heuristics():
    result = await DocumentAnalyzer(client=None).analyze(TEXT, "pilot.txt")
    assert result.source == "fallback"
    assert result.business_relevance == 0.5


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "tiny", "123456789"])
async def test_too_short_text_skips_provider(text):
    create = AsyncMock()
    result = await make_analyzer(create).analyze(text, "empty.txt")

    assert result.source == "too_short"
    assert result.summary == TOO_SHORT_SUMMARY
    assert result.keywords == []
    assert result.insights == []
    assert result.business_relevance == 0.0
    create.assert_not_awaited()


@pytest.mark.asyncio
async def test_fifty_word_text_without_provider():
    text = " ".join(f"word{i % 7}" for i in range(50)) + "."
    result = await DocumentAnalyzer(client=None).analyze(text, "notes.txt")

    assert 0 <= len(result.key_points) <= 5
    assert result.business_relevance == 0.5


def test_relevance_clamped_and_lists_capped():
    payload = dict(LLM_PAYLOAD, business_relevance=3.5, key_points=[f"p{i}" for i in range(8)])
    result = parse_analysis_response(json.dumps(payload))
    assert result.business_relevance == 1.0
    assert len(result.key_points) == 5


def test_find_json_object_ignores_braces_in_strings():
    raw = 'noise {"summary": "a } brace", "nested": {"k": 1}} trailing {"second": 2}'
    assert json.loads(find_json_object(raw)) == {"summary": "a } brace", "nested": {"k": 1}}


def test_find_json_object_skips_unbalanced_prefix():
    assert find_json_object("{ broken") is None
    assert find_json_object("no json here") is None


def test_extract_keywords_frequency_and_stop_words():
    text = "Revenue revenue REVENUE growth growth with with with that this team"
    keywords = extract_keywords(text)

    assert [k.word for k in keywords] == ["Revenue", "Growth", "Team"]
    assert keywords[0].importance == pytest.approx(0.3)


def test_extract_keywords_capped_at_ten():
    text = " ".join(f"term{chr(97 + i)}" for i in range(15))
    assert len(extract_keywords(text)) <= 10
