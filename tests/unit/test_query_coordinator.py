"""Unit tests for the query coordinator."""

import json

import pytest

from policyrag.db.context import RequestContext
from policyrag.docs.ingest import ingest_document
from policyrag.docs.query import answer_query
from policyrag.docs.services import PipelineServices
from policyrag.errors import EmbeddingUnavailable, UpstreamUnavailable
from policyrag.models.answer import (
    FALLBACK_RATIONALE,
    FallbackAnswer,
    MatchedClause,
    StructuredAnswer,
)
from policyrag.models.vectors import VectorItem, VectorMetadata
from tests.conftest import USER_A, USER_B


class RecordingSynthesizer:
    """Synthesis client that returns canned text and records its calls."""

    def __init__(self, reply: str | None = None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, list[MatchedClause]]] = []

    async def complete(self, *, question: str, contexts: list[MatchedClause]) -> str:
        self.calls.append((question, contexts))
        if self.error is not None:
            raise self.error
        if self.reply is not None:
            return self.reply
        return json.dumps(
            {
                "answer": "Yes, theft is covered.",
                "covered": True,
                "conditions": ["Vehicle must be locked"],
                "matched_clauses": [c.model_dump(mode="json") for c in contexts[:1]],
                "rationale": "Section 1 covers theft.",
            }
        )


class DownEmbedder:
    model = "down"

    async def embed(self, texts: list[str]):
        raise EmbeddingUnavailable("endpoint down")


async def _ingest(services: PipelineServices, ctx: RequestContext, path: str, text: str) -> str:
    services.objects.put(path, text.encode())
    result = await ingest_document(
        ctx=ctx, storage_path=path, filename="policy.txt", mime_type=None, services=services
    )
    return str(result.document_id)


@pytest.mark.asyncio
async def test_query_returns_structured_answer_with_sources(
    services: PipelineServices, ctx_a: RequestContext
) -> None:
    """Test retrieval, synthesis and source attribution on the happy path."""
    text = "Theft of the insured car is covered."
    document_id = await _ingest(services, ctx_a, f"{USER_A}/p.txt", text)
    services.synthesizer = RecordingSynthesizer()

    outcome = await answer_query(ctx=ctx_a, query="Is theft covered?", services=services)

    assert isinstance(outcome.synthesis, StructuredAnswer)
    assert outcome.degraded is False
    assert outcome.answer.covered is True
    assert len(outcome.contexts) == 1
    clause = outcome.contexts[0]
    assert clause.snippet == "Theft of the insured car is covered."
    assert clause.source.document_id == document_id
    assert clause.source.filename == "policy.txt"
    assert clause.source.chunk_index == 0
    assert services.synthesizer.calls[0][1] == outcome.contexts


@pytest.mark.asyncio
async def test_query_contexts_ordered_by_score_and_capped(
    services: PipelineServices, ctx_a: RequestContext
) -> None:
    """Test that at most top_k clauses come back in descending score order."""
    services.settings.query_top_k = 3
    for i in range(5):
        await _ingest(services, ctx_a, f"{USER_A}/{i}.txt", f"Clause {i} about theft and fire {i}.")

    outcome = await answer_query(ctx=ctx_a, query="theft", services=services)

    scores = [c.score for c in outcome.contexts]
    assert len(scores) == 3
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_query_never_sees_other_users_clauses(
    services: PipelineServices, ctx_a: RequestContext, ctx_b: RequestContext
) -> None:
    """Test namespace isolation between owners."""
    await _ingest(services, ctx_a, f"{USER_A}/p.txt", "Secret clause owned by user A about theft.")
    await _ingest(services, ctx_b, f"{USER_B}/p.txt", "User B clause about floods.")

    outcome = await answer_query(ctx=ctx_b, query="theft", services=services)

    assert all("user A" not in c.snippet for c in outcome.contexts)
    assert ("query", ctx_a.namespace) not in services.vectors.calls


@pytest.mark.asyncio
async def test_query_without_index_is_not_covered(
    services: PipelineServices, ctx_a: RequestContext
) -> None:
    """Test that a user with nothing indexed gets covered=false and synthesis still runs."""
    services.synthesizer = RecordingSynthesizer()

    outcome = await answer_query(ctx=ctx_a, query="Is theft covered?", services=services)

    assert outcome.contexts == []
    assert outcome.answer.covered is False
    assert len(services.synthesizer.calls) == 1
    assert services.synthesizer.calls[0][1] == []


@pytest.mark.asyncio
async def test_query_with_empty_namespace_is_not_covered(
    services: PipelineServices, ctx_a: RequestContext, ctx_b: RequestContext
) -> None:
    """Test covered=false when the index exists but the caller has no vectors."""
    await _ingest(services, ctx_a, f"{USER_A}/p.txt", "Theft is covered.")
    services.synthesizer = RecordingSynthesizer()

    outcome = await answer_query(ctx=ctx_b, query="Is theft covered?", services=services)

    assert outcome.contexts == []
    assert outcome.answer.covered is False


@pytest.mark.asyncio
async def test_unparseable_output_degrades_to_fallback(
    services: PipelineServices, ctx_a: RequestContext
) -> None:
    """Test that free-text model output becomes the fallback answer."""
    await _ingest(services, ctx_a, f"{USER_A}/p.txt", "Theft is covered.")
    services.synthesizer = RecordingSynthesizer(reply="Honestly, probably yes.")

    outcome = await answer_query(ctx=ctx_a, query="Is theft covered?", services=services)

    assert isinstance(outcome.synthesis, FallbackAnswer)
    assert outcome.degraded is True
    assert outcome.answer.answer == "Honestly, probably yes."
    assert outcome.answer.covered is False
    assert outcome.answer.conditions == []
    assert outcome.answer.matched_clauses == outcome.contexts
    assert outcome.answer.rationale == FALLBACK_RATIONALE


@pytest.mark.asyncio
async def test_synthesis_outage_degrades_instead_of_raising(
    services: PipelineServices, ctx_a: RequestContext
) -> None:
    """Test that an unreachable synthesis endpoint still yields an answer."""
    await _ingest(services, ctx_a, f"{USER_A}/p.txt", "Theft is covered.")
    services.synthesizer = RecordingSynthesizer(error=UpstreamUnavailable("down"))

    outcome = await answer_query(ctx=ctx_a, query="Is theft covered?", services=services)

    assert isinstance(outcome.synthesis, FallbackAnswer)
    assert outcome.synthesis.reason == "synthesis_unavailable"
    assert outcome.answer.covered is False
    assert len(outcome.contexts) == 1


@pytest.mark.asyncio
async def test_retrieval_outage_degrades_without_synthesis(
    services: PipelineServices, ctx_a: RequestContext
) -> None:
    """Test that embedding or index failures degrade without calling synthesis."""
    await _ingest(services, ctx_a, f"{USER_A}/p.txt", "Theft is covered.")
    services.synthesizer = RecordingSynthesizer()
    services.embedder = DownEmbedder()

    outcome = await answer_query(ctx=ctx_a, query="Is theft covered?", services=services)

    assert isinstance(outcome.synthesis, FallbackAnswer)
    assert outcome.synthesis.reason == "retrieval_unavailable"
    assert outcome.answer.covered is False
    assert services.synthesizer.calls == []


@pytest.mark.asyncio
async def test_vector_query_outage_degrades(
    services: PipelineServices, ctx_a: RequestContext
) -> None:
    """Test that a failing similarity query degrades to the fallback answer."""
    await _ingest(services, ctx_a, f"{USER_A}/p.txt", "Theft is covered.")
    services.vectors.fail_on.add("query")

    outcome = await answer_query(ctx=ctx_a, query="theft", services=services)

    assert outcome.degraded is True
    assert outcome.contexts == []


@pytest.mark.asyncio
async def test_vector_without_chunk_row_gets_empty_snippet(
    services: PipelineServices, ctx_a: RequestContext
) -> None:
    """Test that unresolved matches keep their source from vector metadata."""
    handle = await services.vectors.ensure_index("policy-clauses", 32)
    batch = await services.embedder.embed(["orphan clause"])
    await services.vectors.upsert(
        handle,
        ctx_a.namespace,
        [
            VectorItem(
                id="orphan_4",
                values=batch.vectors[0],
                metadata=VectorMetadata(document_id="orphan", filename="gone.txt", chunk_index=4),
            )
        ],
    )

    outcome = await answer_query(ctx=ctx_a, query="orphan clause", services=services)

    assert len(outcome.contexts) == 1
    clause = outcome.contexts[0]
    assert clause.snippet == ""
    assert clause.source.document_id == "orphan"
    assert clause.source.filename == "gone.txt"
    assert clause.source.chunk_index == 4


@pytest.mark.asyncio
async def test_query_is_logged(services: PipelineServices, ctx_a: RequestContext) -> None:
    """Test that each answered query appends a query log entry."""
    await _ingest(services, ctx_a, f"{USER_A}/p.txt", "Theft is covered.")

    outcome = await answer_query(ctx=ctx_a, query="Is theft covered?", services=services)

    logs = await services.store.list_query_logs(ctx_a.user_id)
    assert len(logs) == 1
    assert logs[0].id == outcome.log_id
    assert logs[0].query_text == "Is theft covered?"
    assert logs[0].match_count == 1
    assert logs[0].answer["covered"] == outcome.answer.covered


@pytest.mark.asyncio
async def test_query_log_failure_still_returns_answer(
    services: PipelineServices, ctx_a: RequestContext
) -> None:
    """Test that a failing audit write never fails the query."""
    await _ingest(services, ctx_a, f"{USER_A}/p.txt", "Theft is covered.")
    services.store.fail_query_log = True

    outcome = await answer_query(ctx=ctx_a, query="Is theft covered?", services=services)

    assert outcome.log_id is None
    assert outcome.answer.answer
