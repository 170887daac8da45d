"""Collaborators shared by the pipeline coordinators."""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import UUID

from policyrag.config import Settings, get_settings
from policyrag.db.context import RequestContext
from policyrag.db.repositories import MetadataStore
from policyrag.errors import DocumentBusy, Forbidden, NotFound
from policyrag.llm.client import SynthesisClient
from policyrag.llm.embeddings import EmbeddingClient
from policyrag.models.docs import DocumentRecord, DocumentStatus
from policyrag.storage.objects import ObjectStore
from policyrag.vector.gateway import VectorIndexGateway

logger = logging.getLogger(__name__)


@dataclass
class PipelineServices:
    """External systems one coordinator invocation talks to."""

    store: MetadataStore
    vectors: VectorIndexGateway
    embedder: EmbeddingClient
    objects: ObjectStore
    synthesizer: SynthesisClient
    settings: Settings = field(default_factory=get_settings)


async def load_owned_document(
    services: PipelineServices, ctx: RequestContext, document_id: UUID
) -> DocumentRecord:
    """Fetch a document and verify the caller owns it.

    Raises:
        NotFound: If the document does not exist
        Forbidden: If another user owns it
    """
    doc = await services.store.get_document(document_id)
    if doc is None:
        raise NotFound("Document not found")
    if doc.user_id != ctx.user_id:
        raise Forbidden("Forbidden")
    return doc


@asynccontextmanager
async def document_lease(services: PipelineServices, document_id: UUID) -> AsyncIterator[str]:
    """Hold the per-document advisory lease for the duration of the block.

    The lease expires on its own after lease_ttl_seconds, so a request that
    dies mid-flight cannot lock the document forever.

    Raises:
        DocumentBusy: If another holder has an unexpired lease
    """
    holder = f"lease-{uuid.uuid4()}"
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=services.settings.lease_ttl_seconds)

    if not await services.store.acquire_lease(document_id, holder, expires_at, now):
        raise DocumentBusy("Another operation is in progress for this document")

    try:
        yield holder
    finally:
        await services.store.release_lease(document_id, holder)


def check_storage_path(ctx: RequestContext, storage_path: str) -> None:
    """Reject stored files outside the caller's `{user_id}/` prefix.

    Raises:
        Forbidden: If the path belongs to another owner or escapes the prefix
    """
    prefix = f"{ctx.user_id}/"
    if not storage_path.startswith(prefix) or ".." in storage_path.split("/"):
        raise Forbidden("Storage path is outside the caller's folder")


async def mark_document_failed(services: PipelineServices, document_id: UUID) -> None:
    """Best-effort status flip to "failed" after a partial write."""
    try:
        await services.store.update_document(document_id, status=DocumentStatus.failed)
    except Exception:
        logger.exception(f"Could not mark document {document_id} as failed")
