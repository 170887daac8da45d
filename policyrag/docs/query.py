"""Answer a question from the caller's indexed clauses."""

import logging
import time

from policyrag.db.context import RequestContext
from policyrag.docs.services import PipelineServices
from policyrag.errors import IndexNotFound, UpstreamUnavailable
from policyrag.llm.client import parse_synthesis_output
from policyrag.models.answer import (
    ClauseSource,
    FallbackAnswer,
    MatchedClause,
    PolicyAnswer,
    QueryOutcome,
    StructuredAnswer,
    SynthesisResult,
)
from policyrag.models.docs import ChunkRecord
from policyrag.models.vectors import VectorMatch
from policyrag.utils.logging import StructuredPipelineLogger

logger = logging.getLogger(__name__)

RETRIEVAL_UNAVAILABLE = "Clause search is temporarily unavailable. Please try again."
SYNTHESIS_UNAVAILABLE = "The answer service is temporarily unavailable. Please try again."


async def retrieve_clauses(
    *,
    ctx: RequestContext,
    query: str,
    services: PipelineServices,
    log: StructuredPipelineLogger,
) -> list[MatchedClause]:
    """Embed the query and return the caller's nearest clauses, best first.

    A caller with no index yet gets an empty list.

    Raises:
        UpstreamUnavailable: If embedding or the vector search fails
    """
    settings = services.settings

    with log.stage("embed"):
        batch = await services.embedder.embed([query])

    try:
        with log.stage("resolve_index"):
            handle = await services.vectors.get_index(settings.vector_index_name)
    except IndexNotFound:
        return []

    with log.stage("search", top_k=settings.query_top_k):
        matches = await services.vectors.query(
            handle, ctx.namespace, batch.vectors[0], settings.query_top_k
        )

    with log.stage("resolve_chunks", match_count=len(matches)):
        chunks = await services.store.get_chunks_by_vector_ids(
            ctx.user_id, [m.id for m in matches]
        )

    return [_to_clause(match, chunks.get(match.id)) for match in matches]


def _to_clause(match: VectorMatch, chunk: ChunkRecord | None) -> MatchedClause:
    meta = match.metadata
    if chunk is None:
        # Vector without a chunk row; source comes from vector metadata only
        return MatchedClause(
            snippet="",
            score=match.score,
            source=ClauseSource(
                document_id=meta.document_id,
                filename=meta.filename,
                chunk_index=meta.chunk_index,
            ),
        )

    return MatchedClause(
        snippet=chunk.content,
        score=match.score,
        source=ClauseSource(
            document_id=str(chunk.document_id),
            filename=meta.filename or chunk.metadata.get("filename"),
            chunk_index=chunk.chunk_index,
        ),
    )


def _finalize(synthesis: SynthesisResult, contexts: list[MatchedClause]) -> PolicyAnswer:
    if isinstance(synthesis, StructuredAnswer):
        answer = synthesis.answer
    else:
        answer = synthesis.to_answer(contexts)

    if not contexts and answer.covered:
        answer = answer.model_copy(update={"covered": False})
    return answer


async def answer_query(
    *,
    ctx: RequestContext,
    query: str,
    services: PipelineServices,
) -> QueryOutcome:
    """Retrieve clauses, synthesize a grounded answer and log the query.

    Upstream failures degrade to a fallback answer instead of raising. An
    answer with no supporting clauses is never reported as covered. Failing
    to write the query log does not affect the answer.

    Args:
        ctx: Caller identity
        query: Natural-language question
        services: Pipeline collaborators

    Returns:
        QueryOutcome with the answer and the tagged synthesis result
    """
    log = StructuredPipelineLogger("query", ctx.user_id)
    start = time.perf_counter()
    synthesis: SynthesisResult

    try:
        contexts = await retrieve_clauses(ctx=ctx, query=query, services=services, log=log)
    except UpstreamUnavailable as e:
        log.failed(e)
        contexts = []
        synthesis = FallbackAnswer(raw_text=RETRIEVAL_UNAVAILABLE, reason="retrieval_unavailable")
    else:
        try:
            with log.stage("synthesize", context_count=len(contexts)):
                raw_text = await services.synthesizer.complete(question=query, contexts=contexts)
        except UpstreamUnavailable as e:
            log.failed(e)
            synthesis = FallbackAnswer(
                raw_text=SYNTHESIS_UNAVAILABLE, reason="synthesis_unavailable"
            )
        else:
            synthesis = parse_synthesis_output(raw_text)

    if isinstance(synthesis, FallbackAnswer):
        log.metrics.inc_fallback(synthesis.reason)
        logger.warning(f"Query answered with fallback ({synthesis.reason})")

    answer = _finalize(synthesis, contexts)
    duration_ms = int((time.perf_counter() - start) * 1000)

    log_id = None
    try:
        log_id = await services.store.append_query_log(
            user_id=ctx.user_id,
            query_text=query,
            answer=answer.model_dump(mode="json"),
            matched_clauses=[c.model_dump(mode="json") for c in contexts],
            match_count=len(contexts),
            duration_ms=duration_ms,
        )
    except Exception:
        logger.exception("Failed to write query log")

    return QueryOutcome(
        answer=answer,
        synthesis=synthesis,
        contexts=contexts,
        duration_ms=duration_ms,
        log_id=log_id,
    )
