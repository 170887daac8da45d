"""Repository protocol interfaces for metadata access."""

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from policyrag.models.docs import ChunkRecord, DocumentRecord, DocumentStatus, QueryLogRecord


class DocumentRepository(Protocol):
    """Repository for document rows."""

    async def create_document(
        self,
        *,
        user_id: UUID,
        filename: str,
        mime_type: str | None,
        size_bytes: int | None,
        storage_path: str | None,
        checksum: str | None,
        source: str | None,
        embedding_model: str | None,
        status: DocumentStatus = DocumentStatus.pending,
    ) -> DocumentRecord:
        """Insert a new document row.

        Returns:
            Created document with generated id and timestamps
        """
        ...

    async def get_document(self, document_id: UUID) -> DocumentRecord | None:
        """Get document by id regardless of owner.

        Ownership is checked by the caller so it can tell Forbidden from NotFound.
        """
        ...

    async def list_documents(self, user_id: UUID) -> list[DocumentRecord]:
        """List the owner's documents, newest first."""
        ...

    async def update_document(self, document_id: UUID, **fields: Any) -> None:
        """Update mutable document fields (status, embedding_model, size_bytes, checksum)."""
        ...

    async def delete_document(self, document_id: UUID) -> None:
        """Delete the document row."""
        ...


class ChunkRepository(Protocol):
    """Repository for document chunk rows."""

    async def insert_chunks(self, chunks: list[ChunkRecord]) -> None:
        """Bulk insert chunk rows."""
        ...

    async def replace_chunks(self, document_id: UUID, chunks: list[ChunkRecord]) -> None:
        """Delete every chunk of the document, then insert the new set."""
        ...

    async def delete_chunks(self, document_id: UUID) -> int:
        """Delete every chunk of the document.

        Returns:
            Number of rows deleted
        """
        ...

    async def list_chunks(self, document_id: UUID) -> list[ChunkRecord]:
        """List chunks ordered by chunk_index."""
        ...

    async def get_chunks_by_vector_ids(
        self, user_id: UUID, vector_ids: list[str]
    ) -> dict[str, ChunkRecord]:
        """Resolve vector ids to the owner's chunk rows.

        Returns:
            Mapping of vector_id to chunk; unresolvable ids are absent
        """
        ...


class QueryLogRepository(Protocol):
    """Append-only repository for query logs."""

    async def append_query_log(
        self,
        *,
        user_id: UUID,
        query_text: str,
        answer: dict[str, Any],
        matched_clauses: list[dict[str, Any]],
        match_count: int,
        duration_ms: int,
    ) -> UUID:
        """Append a query log row.

        Returns:
            Log id
        """
        ...

    async def list_query_logs(self, user_id: UUID) -> list[QueryLogRecord]:
        """List the owner's query logs, newest first."""
        ...


class LeaseStore(Protocol):
    """Advisory per-document leases."""

    async def acquire_lease(
        self, document_id: UUID, holder: str, expires_at: datetime, now: datetime
    ) -> bool:
        """Take the lease unless another holder has an unexpired one.

        Returns:
            True if the lease is now held by holder
        """
        ...

    async def release_lease(self, document_id: UUID, holder: str) -> None:
        """Release the lease if held by holder."""
        ...


class MetadataStore(DocumentRepository, ChunkRepository, QueryLogRepository, LeaseStore, Protocol):
    """Relational metadata store used by the coordinators."""
