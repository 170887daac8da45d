"""Vector index gateway backed by the Pinecone REST API.

Namespaces partition vectors by owner: every data-plane call takes the
namespace explicitly and never crosses it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

import httpx

from policyrag.errors import (
    DimensionMismatch,
    IndexNotFound,
    IndexProvisioningTimeout,
    UpstreamUnavailable,
)
from policyrag.models.vectors import IndexHandle, VectorItem, VectorMatch, VectorMetadata

logger = logging.getLogger(__name__)

PINECONE_API_VERSION = "2024-10"


def check_dimension(handle: IndexHandle, vectors: Sequence[Sequence[float]]) -> None:
    """Raise DimensionMismatch if any vector length differs from the index."""
    for vector in vectors:
        if len(vector) != handle.dimension:
            raise DimensionMismatch(
                f"Vector has dimension {len(vector)}, index '{handle.name}' "
                f"expects {handle.dimension}"
            )


class VectorIndexGateway(Protocol):
    """Gateway over an external similarity index."""

    async def ensure_index(self, name: str, dimension: int) -> IndexHandle:
        """Return the index, creating it (cosine, `dimension`) if absent.

        Raises:
            IndexProvisioningTimeout: If the index never becomes ready
            DimensionMismatch: If it exists with another dimension
        """
        ...

    async def get_index(self, name: str) -> IndexHandle:
        """Return an existing index without creating it.

        Raises:
            IndexNotFound: If the index does not exist
        """
        ...

    async def upsert(self, handle: IndexHandle, namespace: str, items: list[VectorItem]) -> None:
        """Insert or overwrite vectors by id."""
        ...

    async def query(
        self, handle: IndexHandle, namespace: str, vector: list[float], top_k: int
    ) -> list[VectorMatch]:
        """Return up to top_k nearest vectors, descending score."""
        ...

    async def delete_by_filter(
        self, handle: IndexHandle, namespace: str, filter: dict[str, Any]
    ) -> None:
        """Remove every vector in namespace whose metadata matches filter."""
        ...


class PineconeGateway:
    """Pinecone control-plane + data-plane client over httpx."""

    def __init__(
        self,
        api_key: str,
        *,
        control_url: str = "https://api.pinecone.io",
        cloud: str = "aws",
        region: str = "us-east-1",
        poll_attempts: int = 10,
        poll_interval_s: float = 3.0,
        upsert_batch_size: int = 100,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize gateway.

        Args:
            api_key: Pinecone API key
            control_url: Control plane base URL
            cloud: Serverless cloud used when creating the index
            region: Serverless region used when creating the index
            poll_attempts: Describe attempts after creating an index
            poll_interval_s: Delay between describe attempts
            upsert_batch_size: Max vectors per upsert request
            timeout_s: Request timeout when the gateway owns its client
            client: Optional httpx client (for testing with mocks)
            sleep: Awaitable sleep used between polls
        """
        self._api_key = api_key
        self._control_url = control_url.rstrip("/")
        self._cloud = cloud
        self._region = region
        self._poll_attempts = poll_attempts
        self._poll_interval_s = poll_interval_s
        self._upsert_batch_size = upsert_batch_size
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def aclose(self) -> None:
        """Close the underlying client if the gateway created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Api-Key": self._api_key,
            "Content-Type": "application/json",
            "X-Pinecone-API-Version": PINECONE_API_VERSION,
        }

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Vector service unreachable: {type(e).__name__}") from e

    async def _describe(self, name: str) -> dict[str, Any] | None:
        response = await self._request("GET", f"{self._control_url}/indexes/{name}")
        if response.status_code == 404:
            return None
        if response.is_error:
            raise UpstreamUnavailable(
                f"Describe index failed ({response.status_code}): {response.text}"
            )
        return dict(response.json())

    @staticmethod
    def _ready(info: dict[str, Any]) -> bool:
        status = info.get("status") or {}
        return bool(info.get("host")) and status.get("ready", True) is not False

    @staticmethod
    def _handle(info: dict[str, Any]) -> IndexHandle:
        return IndexHandle(
            name=info["name"],
            dimension=int(info["dimension"]),
            host=info["host"],
            metric=info.get("metric", "cosine"),
        )

    async def get_index(self, name: str) -> IndexHandle:
        """Describe an existing index."""
        info = await self._describe(name)
        if info is None or not info.get("host"):
            raise IndexNotFound(f"Vector index '{name}' not found")
        return self._handle(info)

    async def ensure_index(self, name: str, dimension: int) -> IndexHandle:
        """Describe, create if absent, then poll until a ready host is reported."""
        info = await self._describe(name)

        if info is None:
            logger.info(f"Creating vector index {name} (dimension={dimension}, metric=cosine)")
            response = await self._request(
                "POST",
                f"{self._control_url}/indexes",
                json={
                    "name": name,
                    "dimension": dimension,
                    "metric": "cosine",
                    "spec": {"serverless": {"cloud": self._cloud, "region": self._region}},
                },
            )
            # 409: created concurrently by another request; fall through to polling
            if response.is_error and response.status_code != 409:
                raise UpstreamUnavailable(
                    f"Failed to create vector index ({response.status_code}): {response.text}"
                )

        attempts = 0
        while info is None or not self._ready(info):
            if attempts >= self._poll_attempts:
                raise IndexProvisioningTimeout(
                    f"Vector index '{name}' not ready after {self._poll_attempts} attempts"
                )
            attempts += 1
            await self._sleep(self._poll_interval_s)
            info = await self._describe(name)

        handle = self._handle(info)
        if handle.dimension != dimension:
            raise DimensionMismatch(
                f"Index '{name}' has dimension {handle.dimension}, embeddings have {dimension}"
            )
        return handle

    async def upsert(self, handle: IndexHandle, namespace: str, items: list[VectorItem]) -> None:
        """Upsert vectors in batches."""
        check_dimension(handle, [item.values for item in items])

        for start in range(0, len(items), self._upsert_batch_size):
            batch = items[start : start + self._upsert_batch_size]
            response = await self._request(
                "POST",
                f"https://{handle.host}/vectors/upsert",
                json={
                    "namespace": namespace,
                    "vectors": [
                        {"id": item.id, "values": item.values, "metadata": item.metadata.to_wire()}
                        for item in batch
                    ],
                },
            )
            if response.is_error:
                raise UpstreamUnavailable(
                    f"Vector upsert failed ({response.status_code}): {response.text}"
                )

    async def query(
        self, handle: IndexHandle, namespace: str, vector: list[float], top_k: int
    ) -> list[VectorMatch]:
        """Similarity query restricted to namespace."""
        check_dimension(handle, [vector])

        response = await self._request(
            "POST",
            f"https://{handle.host}/query",
            json={
                "namespace": namespace,
                "vector": vector,
                "topK": top_k,
                "includeMetadata": True,
                "includeValues": False,
            },
        )
        if response.is_error:
            raise UpstreamUnavailable(
                f"Vector query failed ({response.status_code}): {response.text}"
            )

        matches = [
            VectorMatch(
                id=m["id"],
                score=float(m.get("score") or 0.0),
                metadata=VectorMetadata.model_validate(m.get("metadata") or {}),
            )
            for m in response.json().get("matches", [])
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def delete_by_filter(
        self, handle: IndexHandle, namespace: str, filter: dict[str, Any]
    ) -> None:
        """Delete vectors matching a metadata filter."""
        response = await self._request(
            "POST",
            f"https://{handle.host}/vectors/delete",
            json={"namespace": namespace, "deleteAll": False, "filter": filter},
        )
        # 404: namespace never written, so nothing matches the filter
        if response.status_code == 404:
            return
        if response.is_error:
            raise UpstreamUnavailable(
                f"Vector delete failed ({response.status_code}): {response.text}"
            )
