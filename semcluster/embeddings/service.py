"""Embedding service interface and implementations."""

import asyncio
import time
from abc import ABC, abstractmethod
from pathlib import Path

import httpx

from semcluster.config import EmbeddingSettings, get_settings
from semcluster.exceptions import EmbeddingError, ErrorCode
from semcluster.logging_config import get_logger
from semcluster.observability.metrics import track_embedding_request
from semcluster.vectors.models import AnalysisType, SemanticEmbedding

logger = get_logger(__name__)


class EmbeddingService(ABC):
    """Abstract base class for embedding services.

    Defines the interface for turning text into fixed-dimension vectors.
    """

    @abstractmethod
    async def embed(self, text: str) -> SemanticEmbedding:
        """Generate embedding for a single text.

        Raises:
            EmbeddingError: If embedding fails.
        """
        ...

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[SemanticEmbedding]:
        """Generate embeddings for multiple texts, aligned with the input.

        Raises:
            EmbeddingError: If embedding fails.
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name used for embeddings."""
        ...

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Get the shared embedding dimension."""
        ...


class HTTPEmbeddingService(EmbeddingService):
    """Embedding service using HTTP API.

    Compatible with OpenAI-style embedding APIs and
    text-embeddings-inference (TEI) servers. Returned vectors are fitted
    to the shared dimension.
    """

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        dimension: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP embedding service.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            dimension: Shared vector dimension. Defaults to the clustering
                configuration.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().embedding
        self._dimension = dimension or get_settings().clustering.dimension
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def model_name(self) -> str:
        return self._settings.model

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> SemanticEmbedding:
        results = await self.embed_batch([text])
        return results[0]

    async def embed_batch(self, texts: list[str]) -> list[SemanticEmbedding]:
        if not texts:
            return []

        client = await self._get_client()
        url = f"{self._settings.base_url}/embeddings"

        all_results: list[SemanticEmbedding] = []
        batch_size = self._settings.batch_size

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            start = time.perf_counter()
            try:
                batch_results = await self._embed_batch_request(client, url, batch)
            except EmbeddingError:
                track_embedding_request(
                    self.model_name, time.perf_counter() - start, len(batch), success=False
                )
                raise
            track_embedding_request(self.model_name, time.perf_counter() - start, len(batch))
            all_results.extend(batch_results)

        return all_results

    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        url: str,
        texts: list[str],
    ) -> list[SemanticEmbedding]:
        """Make embedding request for a batch.

        Raises:
            EmbeddingError: If the request fails or the response is malformed.
        """
        payload = {
            "input": texts,
            "model": self._settings.model,
        }

        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Embedding request failed: {e.response.status_code}",
                extra={"url": url, "status": e.response.status_code},
            )
            raise EmbeddingError(
                f"Embedding service returned {e.response.status_code}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Embedding request error: {e}", extra={"url": url})
            raise EmbeddingError(
                f"Failed to connect to embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"url": url},
            ) from e

        try:
            data = response.json()
            embeddings = data["data"]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"error": str(e)},
            ) from e

        if len(embeddings) != len(texts):
            raise EmbeddingError(
                "Embedding service returned a different number of vectors",
                code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
                details={"expected": len(texts), "received": len(embeddings)},
            )

        return [
            SemanticEmbedding.from_vector(
                emb_data.get("embedding", []),
                self._dimension,
                AnalysisType.DOCUMENT,
            )
            for emb_data in embeddings
        ]


class ItemVectorizer(ABC):
    """Produces a vector for a content item given its identity.

    Vectorization may be slow or fail; callers must not hold a workspace
    lock while awaiting it.
    """

    @abstractmethod
    async def vectorize(self, item_id: str) -> SemanticEmbedding:
        """Analyse an item.

        Returns:
            The item's embedding; a zero vector when the item has no
            analysable content.

        Raises:
            EmbeddingError: If the item cannot be read or analysed.
        """
        ...


class TextFileVectorizer(ItemVectorizer):
    """Vectorizes text files whose item id is their filesystem path."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        max_chars: int | None = None,
    ) -> None:
        """Initialize the vectorizer.

        Args:
            embedding_service: Service used to embed file text.
            max_chars: Characters of text sent for embedding.
        """
        self._embedding_service = embedding_service
        self._max_chars = max_chars or get_settings().embedding.max_chars

    async def vectorize(self, item_id: str) -> SemanticEmbedding:
        path = Path(item_id)
        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise EmbeddingError(
                f"Cannot read item: {e}",
                code=ErrorCode.ITEM_NOT_READABLE,
                details={"item_id": item_id},
            ) from e

        text = raw.decode("utf-8", errors="replace").strip()[: self._max_chars]
        if not text:
            logger.debug("Item has no text content", extra={"item_id": item_id})
            return SemanticEmbedding.empty(self._embedding_service.dimension)

        return await self._embedding_service.embed(text)
