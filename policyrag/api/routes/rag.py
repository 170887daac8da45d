"""Clause retrieval endpoints - POST /rag/index, /rag/reindex, /rag/delete, /rag/query."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field

from policyrag.api.auth import get_current_context
from policyrag.api.deps import get_services
from policyrag.db.context import RequestContext
from policyrag.docs.delete import delete_document
from policyrag.docs.ingest import ingest_document
from policyrag.docs.query import answer_query
from policyrag.docs.reindex import reindex_document
from policyrag.docs.services import PipelineServices
from policyrag.models.answer import PolicyAnswer
from policyrag.models.docs import IngestResult

router = APIRouter(prefix="/rag", tags=["rag"])


class IndexRequest(BaseModel):
    """Request body for POST /rag/index."""

    storage_path: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("storage_path", "path"),
        description="Object store path of the uploaded file",
    )
    filename: str = Field(..., min_length=1, max_length=255, description="Original filename")
    mime_type: str | None = Field(None, description="Declared MIME type")


class DocumentRequest(BaseModel):
    """Request body for POST /rag/reindex."""

    document_id: uuid.UUID


class DeleteRequest(BaseModel):
    """Request body for POST /rag/delete."""

    document_id: uuid.UUID
    delete_file: bool = False


class QueryRequest(BaseModel):
    """Request body for POST /rag/query."""

    query: str = Field(..., min_length=1, max_length=2000, description="Question to answer")


class IndexResponse(BaseModel):
    """Response for POST /rag/index and POST /rag/reindex."""

    ok: bool = True
    document_id: uuid.UUID
    chunk_count: int
    embedding_model: str

    @classmethod
    def from_result(cls, result: IngestResult) -> "IndexResponse":
        return cls(
            document_id=result.document_id,
            chunk_count=result.chunk_count,
            embedding_model=result.embedding_model,
        )


class OkResponse(BaseModel):
    """Response for POST /rag/delete."""

    ok: bool = True


@router.post("/index", response_model=IndexResponse)
async def index_document(
    request: IndexRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[PipelineServices, Depends(get_services)],
) -> IndexResponse:
    """Ingest an uploaded file.

    Args:
        request: Storage path and declared file details
        ctx: Request context (user_id)
        services: Pipeline collaborators

    Returns:
        New document id, chunk count and embedding model
    """
    result = await ingest_document(
        ctx=ctx,
        storage_path=request.storage_path,
        filename=request.filename,
        mime_type=request.mime_type,
        services=services,
    )
    return IndexResponse.from_result(result)


@router.post("/reindex", response_model=IndexResponse)
async def reindex(
    request: DocumentRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[PipelineServices, Depends(get_services)],
) -> IndexResponse:
    """Rebuild a document's vectors and chunks from its stored file."""
    result = await reindex_document(ctx=ctx, document_id=request.document_id, services=services)
    return IndexResponse.from_result(result)


@router.post("/delete", response_model=OkResponse)
async def delete(
    request: DeleteRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[PipelineServices, Depends(get_services)],
) -> OkResponse:
    """Delete a document, optionally with its stored file."""
    await delete_document(
        ctx=ctx,
        document_id=request.document_id,
        delete_file=request.delete_file,
        services=services,
    )
    return OkResponse()


@router.post("/query", response_model=PolicyAnswer)
async def query(
    request: QueryRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    services: Annotated[PipelineServices, Depends(get_services)],
) -> PolicyAnswer:
    """Answer a question from the caller's documents.

    Returns:
        PolicyAnswer; degraded to covered=false when upstreams fail
    """
    outcome = await answer_query(ctx=ctx, query=request.query, services=services)
    return outcome.answer
