"""Health check endpoints.

- /health: liveness, always 200
- /healthz: database and vector index configuration status
"""

import json
from typing import Any

from fastapi import APIRouter, Response
from sqlalchemy import text

from policyrag.config import Settings, get_settings
from policyrag.db.engine import create_engine_from_settings, create_session_factory

router = APIRouter()


async def check_db(settings: Settings) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        engine = create_engine_from_settings(settings)
        session_factory = create_session_factory(engine)

        with session_factory() as session:
            session.execute(text("SELECT 1"))

        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


def check_upstreams(settings: Settings) -> dict[str, str]:
    """Report which upstreams are configured and which run on local fallbacks."""
    openai_key = settings.openai_api_key
    pinecone_key = settings.pinecone_api_key
    return {
        "embeddings": "openai" if openai_key and openai_key.get_secret_value() else "deterministic",
        "vector_index": "pinecone" if pinecone_key and pinecone_key.get_secret_value() else "memory",
        "storage": settings.storage_backend,
    }


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz() -> dict[str, Any] | Response:
    """Health check endpoint.

    Returns:
        200 with component status if the database is reachable
        503 otherwise
    """
    settings = get_settings()

    db_ok, db_status = await check_db(settings)

    response_body = {
        "status": "ok" if db_ok else "degraded",
        "components": {"db": db_status, **check_upstreams(settings)},
    }

    if not db_ok:
        return Response(
            content=json.dumps(response_body),
            status_code=503,
            media_type="application/json",
        )

    return response_body
