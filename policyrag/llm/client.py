"""LLM client for grounded answer synthesis with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic stub when no key is present for testing.

The client returns raw model text; parse_synthesis_output turns it into a
tagged StructuredAnswer | FallbackAnswer so callers see which path ran.
"""

import json
import logging
from typing import Protocol

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from policyrag.config import get_settings
from policyrag.errors import UpstreamUnavailable
from policyrag.models.answer import (
    FallbackAnswer,
    MatchedClause,
    PolicyAnswer,
    StructuredAnswer,
    SynthesisResult,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an insurance policy assistant. Use only the provided context snippets
to answer the user's question.

Return STRICT JSON with exactly these keys:
- answer (string): direct answer to the question
- covered (boolean): whether the policy covers what was asked
- conditions (array of strings): conditions, limits or exclusions that apply
- matched_clauses (array of {snippet, score, source}): the clauses you relied on,
  copied from the context
- rationale (string): short explanation tying the answer to the clauses

CRITICAL CONSTRAINTS:
- Do NOT use knowledge outside the provided context.
- If the context is empty or insufficient, set covered=false and say so in rationale.
- Respond with pure JSON only, no markdown fences or commentary."""


def build_context(question: str, contexts: list[MatchedClause]) -> str:
    """Build the user message from the question and retrieved clauses."""
    lines = [f"Question: {question}", "", "Context:"]

    if not contexts:
        lines.append("(no matching clauses)")

    for i, clause in enumerate(contexts, start=1):
        source = clause.source
        label = f"{source.filename or 'unknown'} #{source.chunk_index}"
        lines.append(f"Clause {i} (score {clause.score:.3f}, {label}):")
        lines.append(clause.snippet)
        lines.append("")

    return "\n".join(lines)


def _strip_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def parse_synthesis_output(raw_text: str) -> SynthesisResult:
    """Parse model output into a tagged result.

    Never raises: anything that is not a JSON object matching PolicyAnswer
    becomes a FallbackAnswer carrying the raw text.
    """
    try:
        payload = json.loads(_strip_fences(raw_text))
    except ValueError:
        return FallbackAnswer(raw_text=raw_text)

    if not isinstance(payload, dict):
        return FallbackAnswer(raw_text=raw_text)

    try:
        return StructuredAnswer(answer=PolicyAnswer.model_validate(payload))
    except ValidationError:
        return FallbackAnswer(raw_text=raw_text)


class SynthesisClient(Protocol):
    """Protocol for answer synthesis implementations."""

    async def complete(self, *, question: str, contexts: list[MatchedClause]) -> str:
        """Return raw model text for the question and context.

        Raises:
            UpstreamUnavailable: If the endpoint cannot be reached
        """
        ...


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required)."""

    async def complete(self, *, question: str, contexts: list[MatchedClause]) -> str:
        """Generate deterministic JSON answer."""
        if not contexts:
            body = {
                "answer": "No matching clauses were found in your documents.",
                "covered": False,
                "conditions": [],
                "matched_clauses": [],
                "rationale": "No context provided.",
            }
        else:
            top = contexts[0]
            preview = top.snippet if len(top.snippet) <= 300 else top.snippet[:297] + "..."
            body = {
                "answer": f"Closest clause: {preview}",
                "covered": False,
                "conditions": [],
                "matched_clauses": [c.model_dump(mode="json") for c in contexts],
                "rationale": "Stub synthesis: coverage not assessed without a model.",
            }
        return json.dumps(body)


class OpenAIClient:
    """OpenAI-backed synthesis client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout_s: float = 30.0,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from settings)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
            timeout_s: Request timeout
            client: Optional preconfigured client (for testing with mocks)
        """
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout_s, max_retries=0)
        self.model = model

    async def complete(self, *, question: str, contexts: list[MatchedClause]) -> str:
        """Generate answer text using OpenAI API."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_context(question, contexts)},
                ],
                temperature=0,
                max_tokens=1500,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI API call failed: {e}")
            raise UpstreamUnavailable(f"Synthesis endpoint unavailable: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def get_llm_client() -> SynthesisClient:
    """Factory function to get appropriate LLM client based on config.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    settings = get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for synthesis")
        return OpenAIClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_chat_model,
            timeout_s=settings.http_timeout_s,
        )

    logger.warning("No OpenAI API key configured, using deterministic stub client")
    return DeterministicStubClient()
