"""Document ingestion - chunk, embed, upsert vectors, persist rows."""

import uuid
from dataclasses import dataclass
from uuid import UUID

from policyrag.db.context import RequestContext
from policyrag.docs.chunker import chunk_text
from policyrag.docs.extract import checksum, extract_text
from policyrag.docs.services import (
    PipelineServices,
    check_storage_path,
    document_lease,
    mark_document_failed,
)
from policyrag.errors import NotFound, UnextractableText
from policyrag.llm.embeddings import EmbeddingBatch
from policyrag.models.docs import (
    ChunkRecord,
    DocumentStatus,
    IngestResult,
    TextChunk,
    vector_id_for,
)
from policyrag.models.vectors import IndexHandle, VectorItem, VectorMetadata
from policyrag.utils.logging import StructuredPipelineLogger


@dataclass(frozen=True)
class PreparedDocument:
    """Source bytes with their chunks and embeddings, ready to write."""

    size_bytes: int
    checksum: str
    chunks: list[TextChunk]
    embeddings: EmbeddingBatch


async def prepare_document(
    storage_path: str,
    *,
    services: PipelineServices,
    log: StructuredPipelineLogger,
) -> PreparedDocument:
    """Download, extract, chunk and embed a stored file.

    No metadata or vector writes happen here, so a failure leaves no trace.

    Raises:
        NotFound: If the stored file is missing
        UnextractableText: If the file decodes to empty text
        EmbeddingUnavailable: If any chunk could not be embedded
    """
    settings = services.settings

    with log.stage("download"):
        data = await services.objects.download(storage_path)

    with log.stage("extract"):
        text = extract_text(data)
        if not text:
            raise UnextractableText(
                "Could not extract text from file. Ensure it is text-based."
            )

    with log.stage("chunk"):
        chunks = chunk_text(text, chunk_size=settings.chunk_size, overlap=settings.chunk_overlap)

    with log.stage("embed", chunk_count=len(chunks)):
        embeddings = await services.embedder.embed([c.content for c in chunks])

    return PreparedDocument(
        size_bytes=len(data),
        checksum=checksum(data),
        chunks=chunks,
        embeddings=embeddings,
    )


def build_index_payload(
    *,
    ctx: RequestContext,
    document_id: UUID,
    filename: str,
    prepared: PreparedDocument,
) -> tuple[list[VectorItem], list[ChunkRecord]]:
    """Pair every chunk with its vector item and chunk row.

    Both sides share the vector id `{document_id}_{chunk_index}`.
    """
    items: list[VectorItem] = []
    rows: list[ChunkRecord] = []

    for chunk, vector in zip(prepared.chunks, prepared.embeddings.vectors, strict=True):
        vector_id = vector_id_for(document_id, chunk.index)
        items.append(
            VectorItem(
                id=vector_id,
                values=vector,
                metadata=VectorMetadata(
                    user_id=str(ctx.user_id),
                    document_id=str(document_id),
                    filename=filename,
                    chunk_index=chunk.index,
                ),
            )
        )
        rows.append(
            ChunkRecord(
                id=uuid.uuid4(),
                document_id=document_id,
                user_id=ctx.user_id,
                chunk_index=chunk.index,
                content=chunk.content,
                tokens=len(chunk.content),
                vector_id=vector_id,
                metadata={"filename": filename},
            )
        )

    return items, rows


async def ingest_document(
    *,
    ctx: RequestContext,
    storage_path: str,
    filename: str,
    mime_type: str | None,
    services: PipelineServices,
) -> IngestResult:
    """Ingest an uploaded file into the vector index and metadata store.

    Everything that can fail without side effects (download, extraction,
    embedding, index provisioning) runs before the document row exists.
    The document stays "pending" until vectors and chunk rows are written,
    then becomes "indexed"; a later failure marks it "failed" and reindex
    is the repair path. The vector upsert and the chunk insert are not one
    transaction.

    Args:
        ctx: Caller identity
        storage_path: Object store path of the uploaded file
        filename: Declared filename
        mime_type: Declared MIME type
        services: Pipeline collaborators

    Returns:
        IngestResult with document_id, chunk_count and embedding_model

    Raises:
        Forbidden: If storage_path is outside the caller's `{user_id}/` folder
    """
    settings = services.settings
    log = StructuredPipelineLogger("ingest", ctx.user_id)

    try:
        check_storage_path(ctx, storage_path)
        prepared = await prepare_document(storage_path, services=services, log=log)

        with log.stage("ensure_index"):
            handle: IndexHandle = await services.vectors.ensure_index(
                settings.vector_index_name, prepared.embeddings.dimension
            )

        with log.stage("create_document"):
            doc = await services.store.create_document(
                user_id=ctx.user_id,
                filename=filename,
                mime_type=mime_type,
                size_bytes=prepared.size_bytes,
                storage_path=storage_path,
                checksum=prepared.checksum,
                source="upload",
                embedding_model=prepared.embeddings.model,
                status=DocumentStatus.pending,
            )
        log.document_id = doc.id

        items, rows = build_index_payload(
            ctx=ctx, document_id=doc.id, filename=filename, prepared=prepared
        )

        try:
            async with document_lease(services, doc.id):
                # A delete may have landed before the lease was granted
                if await services.store.get_document(doc.id) is None:
                    raise NotFound("Document was deleted during ingestion")

                with log.stage("upsert", vector_count=len(items)):
                    await services.vectors.upsert(handle, ctx.namespace, items)

                with log.stage("persist_chunks"):
                    await services.store.insert_chunks(rows)
                    await services.store.update_document(doc.id, status=DocumentStatus.indexed)
        except Exception:
            await mark_document_failed(services, doc.id)
            raise
    except Exception as e:
        log.failed(e)
        raise

    log.metrics.inc_chunks("ingest", len(rows))
    return IngestResult(
        document_id=doc.id,
        chunk_count=len(rows),
        embedding_model=prepared.embeddings.model,
    )
