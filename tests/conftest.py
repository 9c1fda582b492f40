"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from semcluster.api.app import create_app
from semcluster.clustering.models import Item
from semcluster.embeddings.service import ItemVectorizer
from semcluster.exceptions import EmbeddingError, ErrorCode
from semcluster.vectors.models import AnalysisType, SemanticEmbedding
from semcluster.workspaces.repository import InMemoryWorkspaceRepository
from semcluster.workspaces.service import WorkspaceService


class StaticVectorizer(ItemVectorizer):
    """Vectorizer returning preset vectors keyed by item id."""

    def __init__(self, vectors: dict[str, list[float]] | None = None) -> None:
        self.vectors = dict(vectors or {})
        self.calls: list[str] = []

    async def vectorize(self, item_id: str) -> SemanticEmbedding:
        self.calls.append(item_id)
        if item_id not in self.vectors:
            raise EmbeddingError(
                f"Cannot read item: {item_id}",
                code=ErrorCode.ITEM_NOT_READABLE,
                details={"item_id": item_id},
            )
        return SemanticEmbedding(
            vector=self.vectors[item_id],
            analysis_type=AnalysisType.DOCUMENT,
        )


def make_item(item_id: str, *vector: float) -> Item:
    """Build an item; no components means no vector."""
    return Item(id=item_id, vector=list(vector) if vector else None)


@pytest.fixture
def vectorizer() -> StaticVectorizer:
    return StaticVectorizer(
        {
            "docs/a.txt": [1.0, 0.0, 0.0],
            "docs/b.txt": [0.9, 0.1, 0.0],
            "docs/c.txt": [0.0, 0.0, 1.0],
            "docs/empty.txt": [0.0, 0.0, 0.0],
        }
    )


@pytest.fixture
def repository() -> InMemoryWorkspaceRepository:
    return InMemoryWorkspaceRepository()


@pytest.fixture
def workspace_service(
    repository: InMemoryWorkspaceRepository,
    vectorizer: StaticVectorizer,
) -> WorkspaceService:
    return WorkspaceService(repository=repository, vectorizer=vectorizer)


@pytest.fixture
def app(workspace_service: WorkspaceService) -> FastAPI:
    return create_app(workspace_service=workspace_service)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
