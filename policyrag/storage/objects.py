"""Object storage for uploaded source files.

Files are uploaded by the client before ingestion; the pipeline only
downloads them (ingest, reindex) and optionally removes them (delete).
"""

import asyncio
import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx

from policyrag.config import Settings, get_settings
from policyrag.errors import BadRequest, NotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    """Store for raw uploaded files."""

    async def download(self, path: str) -> bytes:
        """Fetch file bytes.

        Raises:
            NotFound: If no object exists at path
            UpstreamUnavailable: On any other storage failure
        """
        ...

    async def remove(self, path: str) -> None:
        """Delete the object at path (missing objects are not an error)."""
        ...


class LocalObjectStore:
    """Filesystem-backed store rooted at a directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self._root / path.lstrip("/")).resolve()
        if not target.is_relative_to(self._root):
            raise BadRequest(f"Storage path escapes storage root: {path}")
        return target

    async def download(self, path: str) -> bytes:
        """Read file bytes from disk."""
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as e:
            raise NotFound(f"Stored file not found: {path}") from e
        except OSError as e:
            raise UpstreamUnavailable(f"Storage read failed: {type(e).__name__}") from e

    async def remove(self, path: str) -> None:
        """Unlink file from disk."""
        target = self._resolve(path)
        await asyncio.to_thread(target.unlink, True)


class SupabaseObjectStore:
    """Supabase Storage bucket over its REST API."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str = "fd-docs",
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize store.

        Args:
            base_url: Supabase project URL
            service_key: Service role key
            bucket: Storage bucket holding uploads
            timeout_s: Request timeout when the store owns its client
            client: Optional httpx client (for testing with mocks)
        """
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._bucket = bucket
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def aclose(self) -> None:
        """Close the underlying client if the store created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._service_key}", "apikey": self._service_key}

    async def download(self, path: str) -> bytes:
        """GET /storage/v1/object/{bucket}/{path}."""
        url = f"{self._base_url}/storage/v1/object/{self._bucket}/{quote(path)}"
        try:
            response = await self._client.get(url, headers=self._headers)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Storage unreachable: {type(e).__name__}") from e

        # Supabase reports a missing object as 400 with an error body as well as 404
        if response.status_code in (400, 404):
            raise NotFound(f"Stored file not found: {path}")
        if response.is_error:
            raise UpstreamUnavailable(f"Storage download failed ({response.status_code})")
        return response.content

    async def remove(self, path: str) -> None:
        """DELETE /storage/v1/object/{bucket} with the path as a prefix."""
        url = f"{self._base_url}/storage/v1/object/{self._bucket}"
        try:
            response = await self._client.request(
                "DELETE", url, headers=self._headers, json={"prefixes": [path]}
            )
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Storage unreachable: {type(e).__name__}") from e

        if response.is_error:
            raise UpstreamUnavailable(f"Storage remove failed ({response.status_code})")


class InMemoryObjectStore:
    """In-memory implementation of ObjectStore."""

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}

    def put(self, path: str, data: bytes) -> None:
        """Store bytes at path."""
        self._objects[path] = data

    def exists(self, path: str) -> bool:
        return path in self._objects

    async def download(self, path: str) -> bytes:
        """Return stored bytes."""
        if path not in self._objects:
            raise NotFound(f"Stored file not found: {path}")
        return self._objects[path]

    async def remove(self, path: str) -> None:
        """Drop stored bytes."""
        self._objects.pop(path, None)


def create_object_store(settings: Settings | None = None) -> ObjectStore:
    """Build the configured object store.

    Raises:
        ValueError: If the Supabase backend is selected without credentials
    """
    settings = settings or get_settings()

    if settings.storage_backend == "supabase":
        key = settings.supabase_service_key
        if not settings.supabase_url or key is None or not key.get_secret_value():
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set for supabase storage"
            )
        return SupabaseObjectStore(
            base_url=settings.supabase_url,
            service_key=key.get_secret_value(),
            bucket=settings.storage_bucket,
            timeout_s=settings.http_timeout_s,
        )

    return LocalObjectStore(settings.storage_root)
