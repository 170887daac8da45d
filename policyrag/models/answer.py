"""Answer models for POST /rag/query."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field


class ClauseSource(BaseModel):
    """Where a matched clause came from."""

    document_id: str | None = None
    filename: str | None = None
    chunk_index: int | None = None


class MatchedClause(BaseModel):
    """Retrieved context entry shown to the synthesis endpoint."""

    snippet: str = ""
    score: float = 0.0
    source: ClauseSource = Field(default_factory=ClauseSource)


class PolicyAnswer(BaseModel):
    """External response contract for POST /rag/query."""

    answer: str = Field(..., description="Plain-language answer to the question")
    covered: bool = Field(..., description="Whether the policy covers the situation asked about")
    conditions: list[str] = Field(
        default_factory=list, description="Conditions or exclusions that apply"
    )
    matched_clauses: list[MatchedClause] = Field(
        default_factory=list, description="Clauses the answer relies on"
    )
    rationale: str = Field("", description="Why the answer follows from the clauses")


FALLBACK_RATIONALE = "unparseable model output"


class StructuredAnswer(BaseModel):
    """Synthesis output that parsed into a PolicyAnswer."""

    kind: Literal["structured"] = "structured"
    answer: PolicyAnswer


class FallbackAnswer(BaseModel):
    """Synthesis output that could not be parsed; raw text kept verbatim."""

    kind: Literal["fallback"] = "fallback"
    raw_text: str
    reason: str = FALLBACK_RATIONALE

    def to_answer(self, contexts: list[MatchedClause]) -> PolicyAnswer:
        """Degraded answer carrying the raw model text."""
        return PolicyAnswer(
            answer=self.raw_text,
            covered=False,
            conditions=[],
            matched_clauses=contexts,
            rationale=FALLBACK_RATIONALE,
        )


SynthesisResult = Annotated[StructuredAnswer | FallbackAnswer, Field(discriminator="kind")]


class QueryOutcome(BaseModel):
    """Answer plus retrieval bookkeeping returned by the query coordinator."""

    answer: PolicyAnswer
    synthesis: SynthesisResult
    contexts: list[MatchedClause]
    duration_ms: int
    log_id: Any = None

    @property
    def degraded(self) -> bool:
        return isinstance(self.synthesis, FallbackAnswer)
