"""Clustering data models."""

from collections.abc import Callable, Iterable
from typing import Any
from uuid import UUID, uuid4

import numpy as np
from pydantic import BaseModel, Field

from semcluster.vectors import ops
from semcluster.vectors.models import SemanticEmbedding


class Item(BaseModel):
    """A content item to cluster.

    Attributes:
        id: Opaque item identifier (a file path, for instance).
        vector: Embedding vector, if the item has one.
        metadata: Free-form item metadata carried through clustering.
    """

    id: str = Field(description="Item identifier")
    vector: list[float] | None = Field(default=None, description="Embedding vector")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Item metadata")

    @classmethod
    def from_embedding(
        cls,
        item_id: str,
        embedding: SemanticEmbedding | None,
        **metadata: Any,
    ) -> "Item":
        """Build an item from an optional embedding result."""
        vector = embedding.vector if embedding is not None else None
        return cls(id=item_id, vector=vector, metadata=metadata)

    @property
    def has_valid_vector(self) -> bool:
        """True when the item carries a non-zero vector.

        An all-zero vector marks a missing embedding and is never used as a
        direction for similarity.
        """
        return self.vector is not None and not ops.is_zero_vector(self.vector)


class Cluster(BaseModel):
    """A group of items with a centroid and coherence score.

    Centroid and coherence are kept consistent with membership: every
    mutating method recomputes them before returning. Identity is the
    cluster id; two clusters are equal when their ids are equal, whatever
    their members.

    Attributes:
        id: Stable cluster identifier.
        items: Member items.
        centroid: Mean of member vectors, None when no member has one.
        coherence: Mean cosine similarity of member vectors to the centroid.
    """

    id: UUID = Field(default_factory=uuid4, description="Cluster identifier")
    items: list[Item] = Field(default_factory=list, description="Member items")
    centroid: list[float] | None = Field(default=None, description="Centroid vector")
    coherence: float = Field(default=0.0, description="Coherence score")

    @classmethod
    def from_items(cls, items: Iterable[Item]) -> "Cluster":
        """Create a cluster with computed centroid and coherence."""
        cluster = cls(items=list(items))
        cluster.recompute_centroid()
        return cluster

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cluster):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def member_count(self) -> int:
        return len(self.items)

    @property
    def member_vectors(self) -> list[list[float]]:
        """Vectors of members that have a valid one."""
        return [item.vector for item in self.items if item.has_valid_vector]  # type: ignore[misc]

    def centroid_computed(self) -> list[float] | None:
        """Compute the centroid without changing stored state."""
        vectors = self.member_vectors
        if not vectors:
            return None
        return ops.average(vectors)

    def recompute_centroid(self) -> list[float] | None:
        """Recompute centroid and coherence from all members.

        Returns:
            The new centroid, or None if no member has a valid vector.
        """
        vectors = self.member_vectors
        if not vectors:
            self.centroid = None
            self.coherence = 0.0
            return None

        self.centroid = ops.average(vectors)
        self.coherence = (
            self._coherence(self.centroid, vectors) if self.centroid is not None else 0.0
        )
        return self.centroid

    def add(self, item: Item) -> None:
        """Add a member, updating the centroid as a running mean.

        The centroid moves in O(D) but coherence is recomputed exactly,
        since every member's similarity to a shifted centroid changes.
        """
        self.items.append(item)

        if not item.has_valid_vector:
            if self.centroid is None:
                self.recompute_centroid()
            return

        vector = item.vector or []
        if self.centroid is None or len(self.centroid) != len(vector):
            self.recompute_centroid()
            return

        n = len(self.items)
        updated = (np.asarray(self.centroid) * (n - 1) + np.asarray(vector)) / n
        self.centroid = updated.tolist()
        self.coherence = self._coherence(self.centroid, self.member_vectors)

    def remove(self, predicate: Callable[[Item], bool]) -> list[Item]:
        """Remove members matching ``predicate`` and recompute fully.

        Returns:
            The removed items.
        """
        kept: list[Item] = []
        removed: list[Item] = []
        for item in self.items:
            (removed if predicate(item) else kept).append(item)

        self.items = kept
        self.recompute_centroid()
        return removed

    def replace_members(self, items: Iterable[Item]) -> None:
        """Replace all members and recompute."""
        self.items = list(items)
        self.recompute_centroid()

    @staticmethod
    def _coherence(centroid: list[float], vectors: list[list[float]]) -> float:
        comparable = [v for v in vectors if len(v) == len(centroid)]
        if not comparable:
            return 0.0
        sims = ops.batch_cosine_similarity(centroid, comparable)
        return sum(sims) / len(sims)
