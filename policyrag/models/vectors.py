"""Vector index models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VectorMetadata(BaseModel):
    """Metadata stored alongside each vector.

    Recognised keys are typed; any other key is kept as an extra field so
    metadata written by other producers survives a round trip.
    """

    model_config = ConfigDict(extra="allow")

    user_id: str | None = None
    document_id: str | None = None
    filename: str | None = None
    chunk_index: int | None = None

    def to_wire(self) -> dict[str, Any]:
        """Dump without unset recognised keys (the index rejects nulls)."""
        return self.model_dump(exclude_none=True)


class IndexHandle(BaseModel):
    """Resolved vector index."""

    name: str
    dimension: int
    host: str = ""
    metric: str = "cosine"


class VectorItem(BaseModel):
    """Vector to upsert."""

    id: str
    values: list[float]
    metadata: VectorMetadata = Field(default_factory=VectorMetadata)


class VectorMatch(BaseModel):
    """Similarity query result."""

    id: str
    score: float
    metadata: VectorMetadata = Field(default_factory=VectorMetadata)
