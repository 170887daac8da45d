"""Rebuild a document's vectors and chunk rows from its stored file."""

from uuid import UUID

from policyrag.db.context import RequestContext
from policyrag.docs.ingest import build_index_payload, prepare_document
from policyrag.docs.services import (
    PipelineServices,
    document_lease,
    load_owned_document,
    mark_document_failed,
)
from policyrag.errors import MissingSource
from policyrag.models.docs import DocumentStatus, IngestResult
from policyrag.utils.logging import StructuredPipelineLogger


async def reindex_document(
    *,
    ctx: RequestContext,
    document_id: UUID,
    services: PipelineServices,
) -> IngestResult:
    """Re-chunk and re-embed a document, replacing its vectors and chunk rows.

    Old vectors are removed before the new ones are written, so the document
    is briefly unsearchable. Running it twice on the same bytes leaves the
    same vector ids and chunk rows behind. A failure after the old vectors
    are removed marks the document "failed" until a reindex succeeds.

    Args:
        ctx: Caller identity
        document_id: Document to rebuild
        services: Pipeline collaborators

    Returns:
        IngestResult with the new chunk count and embedding model

    Raises:
        NotFound: If the document does not exist
        Forbidden: If the caller does not own it
        MissingSource: If no stored file is recorded for it
        DocumentBusy: If another operation holds the document lease
    """
    settings = services.settings
    log = StructuredPipelineLogger("reindex", ctx.user_id, document_id)

    try:
        doc = await load_owned_document(services, ctx, document_id)
        if not doc.storage_path:
            raise MissingSource("No storage_path for this document; cannot reindex.")

        async with document_lease(services, doc.id):
            # A delete may have finished before the lease was granted
            doc = await load_owned_document(services, ctx, document_id)
            if not doc.storage_path:
                raise MissingSource("No storage_path for this document; cannot reindex.")

            prepared = await prepare_document(doc.storage_path, services=services, log=log)

            with log.stage("resolve_index"):
                handle = await services.vectors.ensure_index(
                    settings.vector_index_name, prepared.embeddings.dimension
                )

            items, rows = build_index_payload(
                ctx=ctx, document_id=doc.id, filename=doc.filename, prepared=prepared
            )

            with log.stage("delete_vectors"):
                await services.vectors.delete_by_filter(
                    handle, ctx.namespace, {"document_id": str(doc.id)}
                )

            # Old vectors are gone from here on
            try:
                with log.stage("upsert", vector_count=len(items)):
                    await services.vectors.upsert(handle, ctx.namespace, items)

                with log.stage("persist_chunks"):
                    await services.store.replace_chunks(doc.id, rows)
                    await services.store.update_document(
                        doc.id,
                        embedding_model=prepared.embeddings.model,
                        size_bytes=prepared.size_bytes,
                        checksum=prepared.checksum,
                        status=DocumentStatus.indexed,
                    )
            except Exception:
                await mark_document_failed(services, doc.id)
                raise
    except Exception as e:
        log.failed(e)
        raise

    log.metrics.inc_chunks("reindex", len(rows))
    return IngestResult(
        document_id=doc.id,
        chunk_count=len(rows),
        embedding_model=prepared.embeddings.model,
    )
