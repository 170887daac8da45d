"""In-memory implementation of the metadata store."""

import uuid
from datetime import datetime, timezone
from typing import Any

from policyrag.models.docs import ChunkRecord, DocumentRecord, DocumentStatus, QueryLogRecord

_UPDATABLE = {"status", "embedding_model", "size_bytes", "checksum", "storage_path"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryMetadataStore:
    """In-memory implementation of MetadataStore."""

    def __init__(self) -> None:
        self._documents: dict[uuid.UUID, DocumentRecord] = {}
        self._chunks: dict[uuid.UUID, list[ChunkRecord]] = {}
        self._query_logs: list[QueryLogRecord] = []
        self._leases: dict[uuid.UUID, tuple[str, datetime]] = {}
        self.fail_query_log = False

    async def create_document(
        self,
        *,
        user_id: uuid.UUID,
        filename: str,
        mime_type: str | None,
        size_bytes: int | None,
        storage_path: str | None,
        checksum: str | None,
        source: str | None,
        embedding_model: str | None,
        status: DocumentStatus = DocumentStatus.pending,
    ) -> DocumentRecord:
        """Insert a new document."""
        now = _now()
        record = DocumentRecord(
            id=uuid.uuid4(),
            user_id=user_id,
            filename=filename,
            mime_type=mime_type,
            size_bytes=size_bytes,
            storage_path=storage_path,
            checksum=checksum,
            source=source,
            embedding_model=embedding_model,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self._documents[record.id] = record
        return record

    async def get_document(self, document_id: uuid.UUID) -> DocumentRecord | None:
        """Get document by id."""
        return self._documents.get(document_id)

    async def list_documents(self, user_id: uuid.UUID) -> list[DocumentRecord]:
        """List owner's documents, newest first."""
        docs = [d for d in self._documents.values() if d.user_id == user_id]
        docs.sort(key=lambda d: d.created_at, reverse=True)
        return docs

    async def update_document(self, document_id: uuid.UUID, **fields: Any) -> None:
        """Update mutable fields."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update document fields: {sorted(unknown)}")

        record = self._documents.get(document_id)
        if record is None:
            return
        self._documents[document_id] = record.model_copy(update={**fields, "updated_at": _now()})

    async def delete_document(self, document_id: uuid.UUID) -> None:
        """Delete document and cascade to its chunks."""
        self._documents.pop(document_id, None)
        self._chunks.pop(document_id, None)

    async def insert_chunks(self, chunks: list[ChunkRecord]) -> None:
        """Bulk insert chunks."""
        for chunk in chunks:
            existing = self._chunks.setdefault(chunk.document_id, [])
            if any(c.chunk_index == chunk.chunk_index for c in existing):
                raise ValueError(
                    f"Duplicate chunk_index {chunk.chunk_index} for document {chunk.document_id}"
                )
            existing.append(chunk)

    async def replace_chunks(self, document_id: uuid.UUID, chunks: list[ChunkRecord]) -> None:
        """Delete-all then insert-all."""
        self._chunks.pop(document_id, None)
        await self.insert_chunks(chunks)

    async def delete_chunks(self, document_id: uuid.UUID) -> int:
        """Delete document's chunks."""
        return len(self._chunks.pop(document_id, []))

    async def list_chunks(self, document_id: uuid.UUID) -> list[ChunkRecord]:
        """List chunks by chunk_index."""
        return sorted(self._chunks.get(document_id, []), key=lambda c: c.chunk_index)

    async def get_chunks_by_vector_ids(
        self, user_id: uuid.UUID, vector_ids: list[str]
    ) -> dict[str, ChunkRecord]:
        """Resolve vector ids within the owner's chunks."""
        wanted = set(vector_ids)
        return {
            chunk.vector_id: chunk
            for chunks in self._chunks.values()
            for chunk in chunks
            if chunk.vector_id in wanted and chunk.user_id == user_id
        }

    async def append_query_log(
        self,
        *,
        user_id: uuid.UUID,
        query_text: str,
        answer: dict[str, Any],
        matched_clauses: list[dict[str, Any]],
        match_count: int,
        duration_ms: int,
    ) -> uuid.UUID:
        """Append query log."""
        if self.fail_query_log:
            raise RuntimeError("Simulated query log failure")

        record = QueryLogRecord(
            id=uuid.uuid4(),
            user_id=user_id,
            query_text=query_text,
            answer=answer,
            matched_clauses=matched_clauses,
            match_count=match_count,
            duration_ms=duration_ms,
            created_at=_now(),
        )
        self._query_logs.append(record)
        return record.id

    async def list_query_logs(self, user_id: uuid.UUID) -> list[QueryLogRecord]:
        """List owner's query logs, newest first."""
        return [log for log in reversed(self._query_logs) if log.user_id == user_id]

    async def acquire_lease(
        self, document_id: uuid.UUID, holder: str, expires_at: datetime, now: datetime
    ) -> bool:
        """Take lease unless held by someone else and unexpired."""
        current = self._leases.get(document_id)
        if current is not None:
            current_holder, current_expiry = current
            if current_holder != holder and current_expiry > now:
                return False
        self._leases[document_id] = (holder, expires_at)
        return True

    async def release_lease(self, document_id: uuid.UUID, holder: str) -> None:
        """Release lease held by holder."""
        current = self._leases.get(document_id)
        if current is not None and current[0] == holder:
            del self._leases[document_id]
