"""Workspace data models."""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from semcluster.clustering.models import Item


def utc_now() -> datetime:
    return datetime.now(UTC)


class Membership(BaseModel):
    """An item's membership in a workspace.

    Attributes:
        item: The member item (with its vector).
        similarity: Similarity to the workspace centroid when admitted.
        created_at: When the item joined.
        updated_at: When the membership last changed.
    """

    item: Item = Field(description="Member item")
    similarity: float = Field(description="Similarity to centroid at admission")
    created_at: datetime = Field(default_factory=utc_now, description="Join time")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update time")


class WorkspaceState(BaseModel):
    """Long-lived, centroid-tracked collection of items.

    Owned by exactly one writer at a time; the workspace service serializes
    every mutation behind a per-workspace lock.

    Attributes:
        id: Workspace identifier.
        name: Display name.
        threshold: Minimum centroid similarity for admission. Negative
            values admit everything, values above 1 admit nothing.
        centroid: Mean of member vectors, None until seeded.
        memberships: Members keyed by item id.
    """

    id: UUID = Field(default_factory=uuid4, description="Workspace identifier")
    name: str = Field(description="Workspace name")
    threshold: float = Field(description="Admission similarity threshold")
    centroid: list[float] | None = Field(default=None, description="Centroid vector")
    memberships: dict[str, Membership] = Field(
        default_factory=dict,
        description="Members keyed by item id",
    )
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update time")

    @property
    def member_count(self) -> int:
        return len(self.memberships)

    @property
    def items(self) -> list[Item]:
        return [m.item for m in self.memberships.values()]

    def touch(self) -> None:
        self.updated_at = utc_now()


class AggregationDecision(str, Enum):
    """Outcome of applying one change to a workspace."""

    SEEDED = "seeded"
    ADMITTED = "admitted"
    UPDATED = "updated"
    REJECTED = "rejected"
    RENAMED = "renamed"
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"

    @property
    def mutated(self) -> bool:
        """Whether the workspace state changed."""
        return self not in (
            AggregationDecision.REJECTED,
            AggregationDecision.NOT_FOUND,
            AggregationDecision.SKIPPED,
        )


class AggregationResult(BaseModel):
    """What a single aggregator operation did.

    Attributes:
        decision: Outcome of the operation.
        item_id: Item the operation concerned.
        similarity: Similarity to the centroid, when computed.
        centroid_changed: Whether the centroid moved.
    """

    decision: AggregationDecision = Field(description="Outcome")
    item_id: str = Field(description="Item identifier")
    similarity: float | None = Field(default=None, description="Centroid similarity")
    centroid_changed: bool = Field(default=False, description="Centroid moved")


class WorkspaceChange(BaseModel):
    """Notification emitted by the workspace service after a mutation batch.

    Attributes:
        workspace_id: Affected workspace.
        event_type: Change that triggered the update, or "bulk"/"recluster".
        results: Per-item outcomes in the batch.
        member_count: Members after the batch.
        has_centroid: Whether the workspace has a centroid after the batch.
        timestamp: When the batch was applied.
    """

    workspace_id: UUID = Field(description="Workspace identifier")
    event_type: str = Field(description="Triggering change")
    results: list[AggregationResult] = Field(default_factory=list)
    member_count: int = Field(description="Members after the change")
    has_centroid: bool = Field(description="Centroid present after the change")
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def mutated(self) -> bool:
        return any(r.decision.mutated for r in self.results)
