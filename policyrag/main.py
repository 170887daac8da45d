"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from policyrag.api.deps import close_clients
from policyrag.api.routes.documents import router as documents_router
from policyrag.api.routes.health import router as health_router
from policyrag.api.routes.metrics import router as metrics_router
from policyrag.api.routes.rag import router as rag_router
from policyrag.config import get_settings
from policyrag.errors import BadRequest, PipelineError, ServerError, Unauthorized

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Close upstream HTTP clients on shutdown."""
    yield
    await close_clients()


app = FastAPI(title="Policy Clause Retrieval API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(rag_router)
app.include_router(documents_router)


def error_response(error: PipelineError) -> JSONResponse:
    """Render a pipeline error as the JSON error envelope."""
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(error, Unauthorized) else None
    return JSONResponse(
        status_code=error.status_code,
        content={"error": error.message, "code": error.code},
        headers=headers,
    )


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg', 'invalid request')}" if field else "Invalid request body"
    return error_response(BadRequest(message))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(ServerError("Server error"))


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Policy Clause Retrieval API", "version": "0.1.0"}
