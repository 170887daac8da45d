"""In-memory implementation of the vector index gateway."""

import math
from typing import Any

from policyrag.errors import DimensionMismatch, IndexNotFound, UpstreamUnavailable
from policyrag.models.vectors import IndexHandle, VectorItem, VectorMatch
from policyrag.vector.gateway import check_dimension


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero norm."""
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return dot / norm


class InMemoryVectorIndex:
    """In-memory implementation of VectorIndexGateway.

    Every call is recorded in `calls` as (operation, namespace) so tests can
    assert which operations reached the index.
    """

    def __init__(self) -> None:
        self._indexes: dict[str, IndexHandle] = {}
        self._vectors: dict[tuple[str, str], dict[str, VectorItem]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise UpstreamUnavailable(f"Simulated {operation} failure")

    async def ensure_index(self, name: str, dimension: int) -> IndexHandle:
        """Create the index if absent."""
        self.calls.append(("ensure_index", ""))
        self._maybe_fail("ensure_index")

        handle = self._indexes.get(name)
        if handle is None:
            handle = IndexHandle(name=name, dimension=dimension, host=f"memory://{name}")
            self._indexes[name] = handle
        elif handle.dimension != dimension:
            raise DimensionMismatch(
                f"Index '{name}' has dimension {handle.dimension}, embeddings have {dimension}"
            )
        return handle

    async def get_index(self, name: str) -> IndexHandle:
        """Return an existing index."""
        self.calls.append(("get_index", ""))
        self._maybe_fail("get_index")

        handle = self._indexes.get(name)
        if handle is None:
            raise IndexNotFound(f"Vector index '{name}' not found")
        return handle

    async def upsert(self, handle: IndexHandle, namespace: str, items: list[VectorItem]) -> None:
        """Insert or overwrite vectors."""
        self.calls.append(("upsert", namespace))
        self._maybe_fail("upsert")
        check_dimension(handle, [item.values for item in items])

        bucket = self._vectors.setdefault((handle.name, namespace), {})
        for item in items:
            bucket[item.id] = item.model_copy(deep=True)

    async def query(
        self, handle: IndexHandle, namespace: str, vector: list[float], top_k: int
    ) -> list[VectorMatch]:
        """Brute-force cosine search within namespace."""
        self.calls.append(("query", namespace))
        self._maybe_fail("query")
        check_dimension(handle, [vector])

        bucket = self._vectors.get((handle.name, namespace), {})
        matches = [
            VectorMatch(
                id=item.id,
                score=cosine_similarity(vector, item.values),
                metadata=item.metadata.model_copy(),
            )
            for item in bucket.values()
        ]
        # Tie-break on id for determinism
        matches.sort(key=lambda m: (-m.score, m.id))
        return matches[:top_k]

    async def delete_by_filter(
        self, handle: IndexHandle, namespace: str, filter: dict[str, Any]
    ) -> None:
        """Delete vectors whose metadata equals every filter value."""
        self.calls.append(("delete_by_filter", namespace))
        self._maybe_fail("delete_by_filter")

        bucket = self._vectors.get((handle.name, namespace), {})
        doomed = [
            vector_id
            for vector_id, item in bucket.items()
            if all(item.metadata.model_dump().get(k) == v for k, v in filter.items())
        ]
        for vector_id in doomed:
            del bucket[vector_id]

    def ids(self, namespace: str, index_name: str | None = None) -> set[str]:
        """Vector ids currently stored in a namespace (test helper)."""
        ids: set[str] = set()
        for (name, ns), bucket in self._vectors.items():
            if ns == namespace and (index_name is None or name == index_name):
                ids.update(bucket)
        return ids
