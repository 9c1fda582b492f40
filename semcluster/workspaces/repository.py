"""Workspace persistence interface and implementations."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from semcluster.clustering.models import Item
from semcluster.exceptions import PersistenceError
from semcluster.logging_config import get_logger
from semcluster.workspaces.models import Membership, WorkspaceState

logger = get_logger(__name__)


class MemberRecord(BaseModel):
    """Persisted form of one membership."""

    item_id: str = Field(description="Item identifier")
    vector: list[float] | None = Field(default=None, description="Item vector")
    similarity: float = Field(description="Similarity at admission")
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class WorkspaceRecord(BaseModel):
    """Plain-data snapshot of a workspace for storage.

    Attributes:
        id: Workspace identifier.
        name: Workspace name.
        threshold: Admission threshold.
        centroid: Centroid floats, or None.
        members: Membership records.
    """

    id: UUID
    name: str
    threshold: float
    centroid: list[float] | None = None
    members: list[MemberRecord] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @property
    def item_ids(self) -> list[str]:
        return [m.item_id for m in self.members]

    @classmethod
    def from_state(cls, state: WorkspaceState) -> "WorkspaceRecord":
        return cls(
            id=state.id,
            name=state.name,
            threshold=state.threshold,
            centroid=list(state.centroid) if state.centroid is not None else None,
            members=[
                MemberRecord(
                    item_id=item_id,
                    vector=list(m.item.vector) if m.item.vector is not None else None,
                    similarity=m.similarity,
                    metadata=dict(m.item.metadata),
                    created_at=m.created_at,
                    updated_at=m.updated_at,
                )
                for item_id, m in state.memberships.items()
            ],
            created_at=state.created_at,
            updated_at=state.updated_at,
        )

    def to_state(self) -> WorkspaceState:
        return WorkspaceState(
            id=self.id,
            name=self.name,
            threshold=self.threshold,
            centroid=list(self.centroid) if self.centroid is not None else None,
            memberships={
                m.item_id: Membership(
                    item=Item(id=m.item_id, vector=m.vector, metadata=dict(m.metadata)),
                    similarity=m.similarity,
                    created_at=m.created_at,
                    updated_at=m.updated_at,
                )
                for m in self.members
            },
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class WorkspaceRepository(ABC):
    """Abstract base class for workspace storage.

    Implementations persist plain ``WorkspaceRecord`` snapshots; callers
    never share live state with the store.
    """

    @abstractmethod
    async def save(self, record: WorkspaceRecord) -> None:
        """Insert or replace a workspace record.

        Raises:
            PersistenceError: If the record cannot be stored.
        """
        ...

    @abstractmethod
    async def load(self, workspace_id: UUID) -> WorkspaceRecord | None:
        """Load a workspace record.

        Returns:
            The record, or None if it does not exist.

        Raises:
            PersistenceError: If the store cannot be read.
        """
        ...

    @abstractmethod
    async def delete(self, workspace_id: UUID) -> bool:
        """Delete a workspace record.

        Returns:
            True if a record was deleted.
        """
        ...

    @abstractmethod
    async def list_ids(self) -> list[UUID]:
        """List stored workspace identifiers."""
        ...


class InMemoryWorkspaceRepository(WorkspaceRepository):
    """Process-local repository, used in tests and by default."""

    def __init__(self) -> None:
        self._records: dict[UUID, WorkspaceRecord] = {}

    async def save(self, record: WorkspaceRecord) -> None:
        self._records[record.id] = record.model_copy(deep=True)

    async def load(self, workspace_id: UUID) -> WorkspaceRecord | None:
        record = self._records.get(workspace_id)
        return record.model_copy(deep=True) if record is not None else None

    async def delete(self, workspace_id: UUID) -> bool:
        return self._records.pop(workspace_id, None) is not None

    async def list_ids(self) -> list[UUID]:
        return list(self._records)


class JSONFileWorkspaceRepository(WorkspaceRepository):
    """Stores one JSON document per workspace in a directory."""

    def __init__(self, directory: Path) -> None:
        """Initialize the repository.

        Args:
            directory: Directory holding ``<workspace_id>.json`` files.
                Created on first save.
        """
        self._directory = Path(directory)

    def _path(self, workspace_id: UUID) -> Path:
        return self._directory / f"{workspace_id}.json"

    async def save(self, record: WorkspaceRecord) -> None:
        path = self._path(record.id)
        payload = record.model_dump_json(indent=2)

        def _write() -> None:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(path)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise PersistenceError(
                f"Failed to save workspace: {e}",
                details={"workspace_id": str(record.id), "path": str(path)},
            ) from e

        logger.debug(
            "Saved workspace",
            extra={"workspace_id": str(record.id), "members": len(record.members)},
        )

    async def load(self, workspace_id: UUID) -> WorkspaceRecord | None:
        path = self._path(workspace_id)
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(
                f"Failed to read workspace: {e}",
                details={"workspace_id": str(workspace_id), "path": str(path)},
            ) from e

        try:
            return WorkspaceRecord.model_validate_json(raw)
        except PydanticValidationError as e:
            raise PersistenceError(
                f"Corrupt workspace record: {e}",
                details={"workspace_id": str(workspace_id), "path": str(path)},
            ) from e

    async def delete(self, workspace_id: UUID) -> bool:
        path = self._path(workspace_id)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(
                f"Failed to delete workspace: {e}",
                details={"workspace_id": str(workspace_id), "path": str(path)},
            ) from e
        return True

    async def list_ids(self) -> list[UUID]:
        if not self._directory.exists():
            return []
        ids: list[UUID] = []
        for path in sorted(self._directory.glob("*.json")):
            try:
                ids.append(UUID(path.stem))
            except ValueError:
                logger.warning("Ignoring unexpected file", extra={"path": str(path)})
        return ids
