"""Unit tests for the answer synthesis client and output parsing."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import openai
import pytest
from pydantic import SecretStr

from policyrag.errors import UpstreamUnavailable
from policyrag.llm.client import (
    SYSTEM_PROMPT,
    DeterministicStubClient,
    OpenAIClient,
    build_context,
    get_llm_client,
    parse_synthesis_output,
)
from policyrag.models.answer import (
    FALLBACK_RATIONALE,
    ClauseSource,
    FallbackAnswer,
    MatchedClause,
    StructuredAnswer,
)


def _clause(snippet: str = "Flood damage is excluded.", score: float = 0.91) -> MatchedClause:
    return MatchedClause(
        snippet=snippet,
        score=score,
        source=ClauseSource(document_id="doc-1", filename="policy.txt", chunk_index=3),
    )


def test_parse_valid_json_is_structured() -> None:
    """Test that a well-formed answer parses into StructuredAnswer."""
    raw = json.dumps(
        {
            "answer": "No, flood damage is excluded.",
            "covered": False,
            "conditions": ["Flood exclusion in section 4"],
            "matched_clauses": [],
            "rationale": "Clause 1 excludes floods.",
        }
    )

    result = parse_synthesis_output(raw)

    assert isinstance(result, StructuredAnswer)
    assert result.answer.covered is False
    assert result.answer.conditions == ["Flood exclusion in section 4"]


def test_parse_fenced_json_is_structured() -> None:
    """Test that markdown code fences around JSON are tolerated."""
    raw = '```json\n{"answer": "Yes", "covered": true}\n```'

    result = parse_synthesis_output(raw)

    assert isinstance(result, StructuredAnswer)
    assert result.answer.covered is True
    assert result.answer.rationale == ""


@pytest.mark.parametrize(
    "raw",
    [
        "I think the answer is yes.",
        "[1, 2, 3]",
        '{"covered": true}',
        '{"answer": "Yes", "covered": "sometimes maybe"}',
        "",
    ],
)
def test_parse_unusable_output_falls_back(raw: str) -> None:
    """Test that non-JSON or schema-violating output becomes FallbackAnswer."""
    result = parse_synthesis_output(raw)

    assert isinstance(result, FallbackAnswer)
    assert result.raw_text == raw


def test_fallback_to_answer_shape() -> None:
    """Test the degraded answer carries raw text, contexts and covered=false."""
    contexts = [_clause()]

    answer = FallbackAnswer(raw_text="free text").to_answer(contexts)

    assert answer.answer == "free text"
    assert answer.covered is False
    assert answer.conditions == []
    assert answer.matched_clauses == contexts
    assert answer.rationale == FALLBACK_RATIONALE


def test_build_context_lists_clauses_in_order() -> None:
    """Test that the prompt numbers clauses and includes their sources."""
    message = build_context("Is flood covered?", [_clause("first"), _clause("second", 0.5)])

    assert message.startswith("Question: Is flood covered?")
    assert message.index("first") < message.index("second")
    assert "policy.txt #3" in message


def test_build_context_marks_empty_context() -> None:
    """Test that an empty context is stated explicitly."""
    assert "(no matching clauses)" in build_context("Anything?", [])


@pytest.mark.asyncio
async def test_stub_client_returns_parseable_json() -> None:
    """Test that the stub output parses and never claims coverage."""
    stub = DeterministicStubClient()

    raw = await stub.complete(question="Is theft covered?", contexts=[_clause()])
    result = parse_synthesis_output(raw)

    assert isinstance(result, StructuredAnswer)
    assert result.answer.covered is False
    assert result.answer.matched_clauses[0].snippet == "Flood damage is excluded."


@pytest.mark.asyncio
async def test_stub_client_without_context() -> None:
    """Test that the stub reports no matching clauses for empty context."""
    raw = await DeterministicStubClient().complete(question="Anything?", contexts=[])

    payload = json.loads(raw)
    assert payload["covered"] is False
    assert payload["matched_clauses"] == []


@pytest.mark.asyncio
async def test_openai_client_sends_prompt_and_returns_text() -> None:
    """Test that OpenAIClient calls the chat API and returns raw content (mocked)."""
    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = '{"answer": "Yes", "covered": true}'

    mock_openai_client = AsyncMock()
    mock_openai_client.chat.completions.create = AsyncMock(return_value=mock_response)

    client = OpenAIClient(api_key="test_key", client=mock_openai_client)
    raw = await client.complete(question="Is theft covered?", contexts=[_clause()])

    assert raw == '{"answer": "Yes", "covered": true}'
    kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["temperature"] == 0
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert "Is theft covered?" in kwargs["messages"][1]["content"]


@pytest.mark.asyncio
async def test_openai_client_empty_choices_returns_empty_text() -> None:
    """Test that a response without choices yields empty text."""
    mock_response = MagicMock()
    mock_response.choices = []
    mock_openai_client = AsyncMock()
    mock_openai_client.chat.completions.create = AsyncMock(return_value=mock_response)

    client = OpenAIClient(api_key="test_key", client=mock_openai_client)

    assert await client.complete(question="q", contexts=[]) == ""


@pytest.mark.asyncio
async def test_openai_client_wraps_api_errors() -> None:
    """Test that OpenAI errors surface as UpstreamUnavailable."""
    mock_openai_client = AsyncMock()
    mock_openai_client.chat.completions.create = AsyncMock(
        side_effect=openai.OpenAIError("API error")
    )
    client = OpenAIClient(api_key="test_key", client=mock_openai_client)

    with pytest.raises(UpstreamUnavailable):
        await client.complete(question="q", contexts=[])


def test_get_llm_client_returns_stub_without_key() -> None:
    """Test that the factory returns the stub when no API key is configured."""
    with patch("policyrag.llm.client.get_settings") as mock_settings:
        mock_settings.return_value.openai_api_key = None

        client = get_llm_client()

    assert isinstance(client, DeterministicStubClient)


def test_get_llm_client_returns_openai_with_key() -> None:
    """Test that the factory returns OpenAIClient when a key is configured."""
    with patch("policyrag.llm.client.get_settings") as mock_settings:
        mock_settings.return_value.openai_api_key = SecretStr("sk-test")
        mock_settings.return_value.openai_chat_model = "gpt-4o-mini"
        mock_settings.return_value.http_timeout_s = 5.0

        client = get_llm_client()

    assert isinstance(client, OpenAIClient)
    assert client.model == "gpt-4o-mini"
