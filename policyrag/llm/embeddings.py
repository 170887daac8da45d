"""Embedding client for chunk and query vectors.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic hashing embedder when no key is present so the
pipeline runs end to end in tests and local development.
"""

import hashlib
import logging
import math
import re
from dataclasses import dataclass
from typing import Protocol

import openai
from openai import AsyncOpenAI

from policyrag.config import get_settings
from policyrag.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"\w+")


@dataclass(frozen=True)
class EmbeddingBatch:
    """Vectors for one embed call, in input order."""

    vectors: list[list[float]]
    model: str
    dimension: int


def validate_batch(texts: list[str], vectors: list[list[float]], model: str) -> EmbeddingBatch:
    """Enforce one non-empty vector per input, all of equal dimension.

    Raises:
        EmbeddingUnavailable: On any missing, empty or ragged vector
    """
    if len(vectors) != len(texts):
        raise EmbeddingUnavailable(
            f"Embedding endpoint returned {len(vectors)} vectors for {len(texts)} inputs"
        )
    if not vectors:
        return EmbeddingBatch(vectors=[], model=model, dimension=0)

    dimension = len(vectors[0])
    for i, vector in enumerate(vectors):
        if not vector:
            raise EmbeddingUnavailable(f"Embedding endpoint returned no vector for input {i}")
        if len(vector) != dimension:
            raise EmbeddingUnavailable(
                f"Embedding dimension changed within batch ({len(vector)} != {dimension})"
            )

    return EmbeddingBatch(vectors=vectors, model=model, dimension=dimension)


class EmbeddingClient(Protocol):
    """Protocol for embedding client implementations."""

    model: str

    async def embed(self, texts: list[str]) -> EmbeddingBatch:
        """Embed texts, one vector per input.

        Partial failure is total failure: either every input gets a vector
        or EmbeddingUnavailable is raised.
        """
        ...


class DeterministicEmbeddingClient:
    """Hashing bag-of-words embedder (no API key required).

    Texts sharing words get similar vectors, which keeps retrieval tests
    meaningful without a model endpoint.
    """

    def __init__(self, dimension: int = 64, model: str = "hashing-bow-v1") -> None:
        self.dimension = dimension
        self.model = model

    def _vector(self, text: str) -> list[float]:
        values = [0.0] * self.dimension
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            values[bucket] += sign

        norm = math.sqrt(sum(v * v for v in values))
        if norm == 0:
            # Keep the vector non-empty and non-zero so cosine stays defined
            values[0] = 1.0
            return values
        return [v / norm for v in values]

    async def embed(self, texts: list[str]) -> EmbeddingBatch:
        """Generate deterministic vectors."""
        return validate_batch(texts, [self._vector(t) for t in texts], self.model)


class OpenAIEmbeddingClient:
    """OpenAI-backed embedding client."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        timeout_s: float = 30.0,
        batch_size: int = 256,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize OpenAI embedding client.

        Args:
            api_key: OpenAI API key (read from settings)
            model: Embedding model name
            timeout_s: Request timeout per call
            batch_size: Max inputs per API request
            client: Optional preconfigured client (for testing with mocks)
        """
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout_s, max_retries=0)
        self.model = model
        self.batch_size = batch_size

    async def embed(self, texts: list[str]) -> EmbeddingBatch:
        """Embed texts using the OpenAI embeddings API."""
        vectors: list[list[float]] = []

        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            try:
                response = await self.client.embeddings.create(model=self.model, input=batch)
            except openai.OpenAIError as e:
                logger.error(f"OpenAI embeddings call failed: {e}")
                raise EmbeddingUnavailable(f"Embedding endpoint unavailable: {e}") from e

            # Responses carry an index per item; order by it rather than trusting list order
            items = sorted(response.data, key=lambda item: item.index)
            vectors.extend(list(item.embedding) for item in items)

        return validate_batch(texts, vectors, self.model)


def get_embedding_client() -> EmbeddingClient:
    """Factory function to get appropriate embedding client based on config.

    Returns:
        OpenAIEmbeddingClient if API key is configured, DeterministicEmbeddingClient otherwise
    """
    settings = get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        return OpenAIEmbeddingClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_embedding_model,
            timeout_s=settings.http_timeout_s,
        )

    logger.warning("No OpenAI API key configured, using deterministic embedding client")
    return DeterministicEmbeddingClient()
