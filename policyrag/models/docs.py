"""Document domain models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    """Document lifecycle marker."""

    pending = "pending"
    indexed = "indexed"
    failed = "failed"


class DocumentRecord(BaseModel):
    """Document metadata row."""

    id: UUID
    user_id: UUID
    filename: str
    mime_type: str | None = None
    size_bytes: int | None = None
    storage_path: str | None = None
    checksum: str | None = None
    source: str | None = None
    embedding_model: str | None = None
    status: DocumentStatus = DocumentStatus.pending
    created_at: datetime
    updated_at: datetime


class ChunkRecord(BaseModel):
    """Document chunk row with text content."""

    id: UUID
    document_id: UUID
    user_id: UUID
    chunk_index: int  # 0-based
    content: str
    tokens: int  # character count
    vector_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class QueryLogRecord(BaseModel):
    """Append-only audit entry for one answered query."""

    id: UUID
    user_id: UUID
    query_text: str
    answer: dict[str, Any]
    matched_clauses: list[dict[str, Any]]
    match_count: int
    duration_ms: int
    created_at: datetime


class TextChunk(BaseModel):
    """One chunker window."""

    content: str
    index: int


class IngestResult(BaseModel):
    """Outcome of an ingest or reindex."""

    document_id: UUID
    chunk_count: int
    embedding_model: str


def vector_id_for(document_id: UUID, chunk_index: int) -> str:
    """Deterministic vector id for one chunk."""
    return f"{document_id}_{chunk_index}"
