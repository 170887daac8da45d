"""Models package - re-exports for convenience."""

from policyrag.models.answer import (
    ClauseSource,
    FallbackAnswer,
    MatchedClause,
    PolicyAnswer,
    QueryOutcome,
    StructuredAnswer,
    SynthesisResult,
)
from policyrag.models.docs import (
    ChunkRecord,
    DocumentRecord,
    DocumentStatus,
    IngestResult,
    QueryLogRecord,
    TextChunk,
    vector_id_for,
)
from policyrag.models.vectors import IndexHandle, VectorItem, VectorMatch, VectorMetadata

__all__ = [
    # Answer
    "ClauseSource",
    "FallbackAnswer",
    "MatchedClause",
    "PolicyAnswer",
    "QueryOutcome",
    "StructuredAnswer",
    "SynthesisResult",
    # Docs
    "ChunkRecord",
    "DocumentRecord",
    "DocumentStatus",
    "IngestResult",
    "QueryLogRecord",
    "TextChunk",
    "vector_id_for",
    # Vectors
    "IndexHandle",
    "VectorItem",
    "VectorMatch",
    "VectorMetadata",
]
