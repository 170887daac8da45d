"""FastAPI dependencies wiring the pipeline collaborators."""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from policyrag.config import Settings, get_settings
from policyrag.db.engine import get_session
from policyrag.db.sql_repositories import SqlMetadataStore
from policyrag.docs.services import PipelineServices
from policyrag.llm.client import SynthesisClient, get_llm_client
from policyrag.llm.embeddings import EmbeddingClient, get_embedding_client
from policyrag.storage.objects import ObjectStore, create_object_store
from policyrag.vector.gateway import PineconeGateway, VectorIndexGateway
from policyrag.vector.inmemory import InMemoryVectorIndex

logger = logging.getLogger(__name__)


@lru_cache
def get_vector_gateway() -> VectorIndexGateway:
    """Process-wide vector gateway.

    Returns:
        PineconeGateway if an API key is configured, InMemoryVectorIndex otherwise
    """
    settings = get_settings()
    api_key = settings.pinecone_api_key

    if api_key and api_key.get_secret_value():
        return PineconeGateway(
            api_key.get_secret_value(),
            control_url=settings.pinecone_control_url,
            cloud=settings.pinecone_cloud,
            region=settings.pinecone_region,
            poll_attempts=settings.vector_index_poll_attempts,
            poll_interval_s=settings.vector_index_poll_interval_s,
            upsert_batch_size=settings.vector_upsert_batch_size,
            timeout_s=settings.http_timeout_s,
        )

    logger.warning("No Pinecone API key configured, using in-memory vector index")
    return InMemoryVectorIndex()


@lru_cache
def get_embedder() -> EmbeddingClient:
    """Process-wide embedding client."""
    return get_embedding_client()


@lru_cache
def get_synthesizer() -> SynthesisClient:
    """Process-wide synthesis client."""
    return get_llm_client()


@lru_cache
def get_object_store() -> ObjectStore:
    """Process-wide object store."""
    return create_object_store(get_settings())


async def get_services(
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> PipelineServices:
    """Collaborators for one request, sharing the request's DB session."""
    return PipelineServices(
        store=SqlMetadataStore(session),
        vectors=get_vector_gateway(),
        embedder=get_embedder(),
        objects=get_object_store(),
        synthesizer=get_synthesizer(),
        settings=settings,
    )


async def close_clients() -> None:
    """Close HTTP clients held by the process-wide collaborators.

    Factories that were never called are skipped, so shutdown opens nothing.
    """
    for factory in (get_vector_gateway, get_object_store):
        if factory.cache_info().currsize == 0:
            continue
        client = factory()
        aclose = getattr(client, "aclose", None)
        if aclose is not None:
            await aclose()
        factory.cache_clear()
