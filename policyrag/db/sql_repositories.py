"""SQL implementation of the metadata store."""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from policyrag.db.models import Document, DocumentChunk, DocumentLease, QueryLog
from policyrag.db.queries import owned_chunks, owned_documents, owned_query_logs
from policyrag.models.docs import ChunkRecord, DocumentRecord, DocumentStatus, QueryLogRecord

_UPDATABLE = {"status", "embedding_model", "size_bytes", "checksum", "storage_path"}


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _to_document(doc: Document) -> DocumentRecord:
    return DocumentRecord(
        id=doc.id,
        user_id=doc.user_id,
        filename=doc.filename,
        mime_type=doc.mime_type,
        size_bytes=doc.size_bytes,
        storage_path=doc.storage_path,
        checksum=doc.checksum,
        source=doc.source,
        embedding_model=doc.embedding_model,
        status=DocumentStatus(doc.status),
        created_at=doc.created_at,
        updated_at=doc.updated_at,
    )


def _to_chunk(chunk: DocumentChunk) -> ChunkRecord:
    return ChunkRecord(
        id=chunk.id,
        document_id=chunk.document_id,
        user_id=chunk.user_id,
        chunk_index=chunk.chunk_index,
        content=chunk.content,
        tokens=chunk.tokens or len(chunk.content),
        vector_id=chunk.vector_id,
        metadata=chunk.metadata_ or {},
    )


def _to_row(chunk: ChunkRecord) -> DocumentChunk:
    return DocumentChunk(
        id=chunk.id,
        document_id=chunk.document_id,
        user_id=chunk.user_id,
        chunk_index=chunk.chunk_index,
        content=chunk.content,
        tokens=chunk.tokens,
        vector_id=chunk.vector_id,
        metadata_=chunk.metadata,
    )


class SqlMetadataStore:
    """SQL implementation of MetadataStore.

    Each method commits on its own; callers get no cross-call transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        """Commit on success, roll back on any failure so the session stays usable."""
        try:
            yield
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

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
        now = datetime.now(timezone.utc)
        doc = Document(
            id=uuid.uuid4(),
            user_id=user_id,
            filename=filename,
            mime_type=mime_type,
            size_bytes=size_bytes,
            storage_path=storage_path,
            checksum=checksum,
            source=source,
            embedding_model=embedding_model,
            status=status.value,
            created_at=now,
            updated_at=now,
        )
        record = _to_document(doc)
        async with self._transaction():
            self._session.add(doc)

        return record

    async def get_document(self, document_id: uuid.UUID) -> DocumentRecord | None:
        """Get document by id."""
        result = await self._session.execute(select(Document).where(Document.id == document_id))
        doc = result.scalar_one_or_none()
        return _to_document(doc) if doc is not None else None

    async def list_documents(self, user_id: uuid.UUID) -> list[DocumentRecord]:
        """List owner's documents, newest first."""
        result = await self._session.execute(
            owned_documents(user_id).order_by(Document.created_at.desc())
        )
        return [_to_document(doc) for doc in result.scalars().all()]

    async def update_document(self, document_id: uuid.UUID, **fields: Any) -> None:
        """Update mutable fields."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update document fields: {sorted(unknown)}")

        if "status" in fields and isinstance(fields["status"], DocumentStatus):
            fields["status"] = fields["status"].value

        async with self._transaction():
            await self._session.execute(
                update(Document)
                .where(Document.id == document_id)
                .values(**fields, updated_at=datetime.now(timezone.utc))
            )

    async def delete_document(self, document_id: uuid.UUID) -> None:
        """Delete document row."""
        async with self._transaction():
            await self._session.execute(delete(Document).where(Document.id == document_id))

    async def insert_chunks(self, chunks: list[ChunkRecord]) -> None:
        """Bulk insert chunks."""
        async with self._transaction():
            self._session.add_all([_to_row(chunk) for chunk in chunks])

    async def replace_chunks(self, document_id: uuid.UUID, chunks: list[ChunkRecord]) -> None:
        """Delete-all then insert-all in one transaction."""
        async with self._transaction():
            await self._session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
            self._session.add_all([_to_row(chunk) for chunk in chunks])

    async def delete_chunks(self, document_id: uuid.UUID) -> int:
        """Delete document's chunks."""
        async with self._transaction():
            result = await self._session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def list_chunks(self, document_id: uuid.UUID) -> list[ChunkRecord]:
        """List chunks by chunk_index."""
        result = await self._session.execute(
            select(DocumentChunk)
            .where(DocumentChunk.document_id == document_id)
            .order_by(DocumentChunk.chunk_index)
        )
        return [_to_chunk(chunk) for chunk in result.scalars().all()]

    async def get_chunks_by_vector_ids(
        self, user_id: uuid.UUID, vector_ids: list[str]
    ) -> dict[str, ChunkRecord]:
        """Resolve vector ids within the owner's chunks."""
        if not vector_ids:
            return {}

        result = await self._session.execute(
            owned_chunks(user_id).where(DocumentChunk.vector_id.in_(vector_ids))
        )
        return {chunk.vector_id: _to_chunk(chunk) for chunk in result.scalars().all()}

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
        log = QueryLog(
            id=uuid.uuid4(),
            user_id=user_id,
            query_text=query_text,
            answer=answer,
            matched_clauses=matched_clauses,
            match_count=match_count,
            duration_ms=duration_ms,
            created_at=datetime.now(timezone.utc),
        )
        log_id = log.id
        async with self._transaction():
            self._session.add(log)
        return log_id

    async def list_query_logs(self, user_id: uuid.UUID) -> list[QueryLogRecord]:
        """List owner's query logs, newest first."""
        result = await self._session.execute(
            owned_query_logs(user_id).order_by(QueryLog.created_at.desc())
        )
        return [
            QueryLogRecord(
                id=log.id,
                user_id=log.user_id,
                query_text=log.query_text,
                answer=log.answer or {},
                matched_clauses=log.matched_clauses or [],
                match_count=log.match_count or 0,
                duration_ms=log.duration_ms or 0,
                created_at=log.created_at,
            )
            for log in result.scalars().all()
        ]

    async def acquire_lease(
        self, document_id: uuid.UUID, holder: str, expires_at: datetime, now: datetime
    ) -> bool:
        """Take lease unless held by someone else and unexpired."""
        lease = await self._session.get(
            DocumentLease, document_id, with_for_update=True, populate_existing=True
        )

        if lease is not None:
            if lease.holder != holder and _as_utc(lease.expires_at) > now:
                await self._session.rollback()
                return False
            lease.holder = holder
            lease.expires_at = expires_at
        else:
            self._session.add(
                DocumentLease(document_id=document_id, holder=holder, expires_at=expires_at)
            )

        try:
            await self._session.commit()
        except IntegrityError:
            # Another request inserted the lease row first
            await self._session.rollback()
            return False
        return True

    async def release_lease(self, document_id: uuid.UUID, holder: str) -> None:
        """Release lease held by holder."""
        async with self._transaction():
            await self._session.execute(
                delete(DocumentLease).where(
                    DocumentLease.document_id == document_id, DocumentLease.holder == holder
                )
            )
