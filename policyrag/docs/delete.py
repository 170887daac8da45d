"""Remove a document from the vector index, the metadata store and storage."""

import logging
from uuid import UUID

from policyrag.db.context import RequestContext
from policyrag.docs.services import PipelineServices, document_lease, load_owned_document
from policyrag.errors import IndexNotFound, VectorDeleteFailed
from policyrag.utils.logging import StructuredPipelineLogger

logger = logging.getLogger(__name__)


async def delete_document(
    *,
    ctx: RequestContext,
    document_id: UUID,
    delete_file: bool = False,
    services: PipelineServices,
) -> None:
    """Delete a document's vectors, chunk rows and document row.

    Vectors go first; if that fails nothing else is touched and the call can
    simply be retried. Removing the stored file is best effort.

    Args:
        ctx: Caller identity
        document_id: Document to delete
        delete_file: Also remove the stored file
        services: Pipeline collaborators

    Raises:
        NotFound: If the document does not exist
        Forbidden: If the caller does not own it
        DocumentBusy: If another operation holds the document lease
        VectorDeleteFailed: If the vector index refused or failed the delete
    """
    settings = services.settings
    log = StructuredPipelineLogger("delete", ctx.user_id, document_id)

    try:
        doc = await load_owned_document(services, ctx, document_id)

        async with document_lease(services, doc.id):
            # Another delete may have finished before the lease was granted
            doc = await load_owned_document(services, ctx, document_id)

            with log.stage("delete_vectors"):
                try:
                    handle = await services.vectors.get_index(settings.vector_index_name)
                    await services.vectors.delete_by_filter(
                        handle, ctx.namespace, {"document_id": str(doc.id)}
                    )
                except IndexNotFound:
                    logger.info(f"No vector index yet; nothing to delete for {doc.id}")
                except Exception as e:
                    raise VectorDeleteFailed(f"Failed to delete vectors: {e}") from e

            with log.stage("delete_metadata"):
                removed = await services.store.delete_chunks(doc.id)
                await services.store.delete_document(doc.id)
    except Exception as e:
        log.failed(e)
        raise

    logger.info(f"Deleted document {doc.id} ({removed} chunks)")

    if delete_file and doc.storage_path:
        try:
            await services.objects.remove(doc.storage_path)
        except Exception:
            logger.exception(f"Could not remove stored file {doc.storage_path}")
