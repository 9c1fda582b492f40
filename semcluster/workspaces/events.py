"""Item change events delivered by the monitoring collaborator."""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class ChangeType(str, Enum):
    """Kinds of item change."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class ChangeEvent(BaseModel):
    """A discrete change to one item.

    Attributes:
        id: Event identifier.
        event_type: What happened to the item.
        item_id: Current identity of the item (its new path for renames).
        old_item_id: Previous identity, required for renames.
        timestamp: When the change was observed.
    """

    id: UUID = Field(default_factory=uuid4, description="Event identifier")
    event_type: ChangeType = Field(description="Change type")
    item_id: str = Field(description="Affected item identifier")
    old_item_id: str | None = Field(default=None, description="Previous identifier")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Observation time",
    )

    def model_post_init(self, __context: object) -> None:
        """Validate that renames carry their previous identity."""
        if self.event_type == ChangeType.RENAMED and not self.old_item_id:
            raise ValueError("renamed events require old_item_id")

    @classmethod
    def creation(cls, item_id: str) -> "ChangeEvent":
        return cls(event_type=ChangeType.CREATED, item_id=item_id)

    @classmethod
    def modification(cls, item_id: str) -> "ChangeEvent":
        return cls(event_type=ChangeType.MODIFIED, item_id=item_id)

    @classmethod
    def deletion(cls, item_id: str) -> "ChangeEvent":
        return cls(event_type=ChangeType.DELETED, item_id=item_id)

    @classmethod
    def rename(cls, old_item_id: str, new_item_id: str) -> "ChangeEvent":
        return cls(
            event_type=ChangeType.RENAMED,
            item_id=new_item_id,
            old_item_id=old_item_id,
        )

    @property
    def is_rename(self) -> bool:
        return self.event_type == ChangeType.RENAMED and self.old_item_id is not None

    @property
    def is_removal_like(self) -> bool:
        """Deletes and renames both take an identity away."""
        return self.event_type in (ChangeType.DELETED, ChangeType.RENAMED)

    @property
    def needs_vector(self) -> bool:
        """Creates and modifications require fresh vector production."""
        return self.event_type in (ChangeType.CREATED, ChangeType.MODIFIED)
