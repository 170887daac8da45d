"""Document listing endpoint - GET /documents."""

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from policyrag.api.auth import get_current_context
from policyrag.api.deps import get_services
from policyrag.db.context import RequestContext
from policyrag.docs.services import PipelineServices
from policyrag.models.docs import DocumentStatus

router = APIRouter(prefix="/documents", tags=["documents"])


class DocumentSummary(BaseModel):
    """One row of GET /documents."""

    id: uuid.UUID
    filename: str
    mime_type: str | None
    size_bytes: int | None
    status: DocumentStatus
    embedding_model: str | None
    created_at: datetime
    updated_at: datetime


class DocumentListResponse(BaseModel):
    """Response for GET /documents."""

    documents: list[DocumentSummary]


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[PipelineServices, Depends(get_services)],
) -> DocumentListResponse:
    """List the caller's documents, newest first.

    Args:
        ctx: Request context (user_id)
        services: Pipeline collaborators

    Returns:
        Documents without chunk content
    """
    docs = await services.store.list_documents(ctx.user_id)

    return DocumentListResponse(
        documents=[
            DocumentSummary(
                id=doc.id,
                filename=doc.filename,
                mime_type=doc.mime_type,
                size_bytes=doc.size_bytes,
                status=doc.status,
                embedding_model=doc.embedding_model,
                created_at=doc.created_at,
                updated_at=doc.updated_at,
            )
            for doc in docs
        ]
    )
