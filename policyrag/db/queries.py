"""Tenancy-safe query helpers."""

from uuid import UUID

from sqlalchemy import Select, select

from policyrag.db.models import Document, DocumentChunk, QueryLog


def owned_documents(user_id: UUID) -> Select[tuple[Document]]:
    """Select documents with owner scoping enforced.

    Args:
        user_id: Owner id

    Returns:
        Select filtered by user_id
    """
    return select(Document).where(Document.user_id == user_id)


def owned_chunks(user_id: UUID) -> Select[tuple[DocumentChunk]]:
    """Select chunks with owner scoping enforced.

    Args:
        user_id: Owner id

    Returns:
        Select filtered by user_id
    """
    return select(DocumentChunk).where(DocumentChunk.user_id == user_id)


def owned_query_logs(user_id: UUID) -> Select[tuple[QueryLog]]:
    """Select query logs with owner scoping enforced."""
    return select(QueryLog).where(QueryLog.user_id == user_id)
