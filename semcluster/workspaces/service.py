"""Workspace service: serialized membership updates, persistence and reclustering."""

import asyncio
import inspect
import threading
from collections.abc import Awaitable, Callable, Sequence
from uuid import UUID

from semcluster.clustering.engine import ClusteringEngine
from semcluster.clustering.models import Cluster, Item
from semcluster.config import Settings, get_settings
from semcluster.embeddings.service import ItemVectorizer
from semcluster.exceptions import (
    ErrorCode,
    NoEmbeddingsFoundError,
    ValidationError,
    WorkspaceError,
)
from semcluster.logging_config import get_logger
from semcluster.observability.metrics import track_workspace_event
from semcluster.workspaces.aggregator import IncrementalAggregator
from semcluster.workspaces.events import ChangeEvent, ChangeType
from semcluster.workspaces.models import AggregationResult, WorkspaceChange, WorkspaceState
from semcluster.workspaces.repository import WorkspaceRecord, WorkspaceRepository

logger = get_logger(__name__)

ChangeListener = Callable[[WorkspaceChange], Awaitable[None] | None]


class WorkspaceService:
    """Owns workspaces and applies changes to them one at a time.

    Each workspace is a serialized mutation domain guarded by its own
    ``asyncio.Lock``; different workspaces proceed concurrently. Vectors are
    produced before the lock is taken and batch clustering runs in a worker
    thread on a snapshot, so neither blocks other updates. After every
    applied change the state is saved through the repository and a
    ``WorkspaceChange`` is delivered to subscribers.
    """

    def __init__(
        self,
        repository: WorkspaceRepository,
        vectorizer: ItemVectorizer | None = None,
        engine: ClusteringEngine | None = None,
        aggregator: IncrementalAggregator | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            repository: Workspace storage.
            vectorizer: Produces vectors for created and modified items.
                Without one, only ``admit_items`` and removals are possible.
            engine: Batch clustering engine.
            aggregator: Incremental membership logic.
            settings: Application settings. Uses defaults if not provided.
        """
        self._settings = settings or get_settings()
        self._repository = repository
        self._vectorizer = vectorizer
        self._engine = engine or ClusteringEngine(self._settings.clustering)
        self._aggregator = aggregator or IncrementalAggregator()
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._clusters: dict[UUID, list[Cluster]] = {}
        self._versions: dict[UUID, int] = {}
        self._listeners: list[ChangeListener] = []

    def _lock(self, workspace_id: UUID) -> asyncio.Lock:
        return self._locks.setdefault(workspace_id, asyncio.Lock())

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener.

        Args:
            listener: Sync or async callable receiving each ``WorkspaceChange``.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, change: WorkspaceChange) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(change)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Change listener failed",
                    extra={"workspace_id": str(change.workspace_id)},
                )

    async def _load(self, workspace_id: UUID) -> WorkspaceState:
        record = await self._repository.load(workspace_id)
        if record is None:
            self._forget(workspace_id)
            raise WorkspaceError(
                f"Workspace not found: {workspace_id}",
                code=ErrorCode.WORKSPACE_NOT_FOUND,
                details={"workspace_id": str(workspace_id)},
            )
        return record.to_state()

    def _forget(self, workspace_id: UUID) -> None:
        self._locks.pop(workspace_id, None)
        self._clusters.pop(workspace_id, None)
        self._versions.pop(workspace_id, None)

    async def _save(self, state: WorkspaceState) -> None:
        await self._repository.save(WorkspaceRecord.from_state(state))

    async def create_workspace(self, name: str, threshold: float | None = None) -> WorkspaceState:
        """Create an empty workspace.

        Raises:
            ValidationError: If the name is blank.
            WorkspaceError: If a workspace with this name already exists.
        """
        name = name.strip()
        if not name:
            raise ValidationError("Workspace name must not be empty")

        for existing in await self.list_workspaces():
            if existing.name == name:
                raise WorkspaceError(
                    f"Workspace already exists: {name}",
                    code=ErrorCode.WORKSPACE_EXISTS,
                    details={"name": name, "workspace_id": str(existing.id)},
                )

        state = WorkspaceState(
            name=name,
            threshold=(
                self._settings.clustering.default_threshold if threshold is None else threshold
            ),
        )
        await self._save(state)
        logger.info(
            "Workspace created",
            extra={"workspace_id": str(state.id), "name": name, "threshold": state.threshold},
        )
        return state

    async def get_workspace(self, workspace_id: UUID) -> WorkspaceState:
        """Load a workspace.

        Raises:
            WorkspaceError: If the workspace does not exist.
        """
        return await self._load(workspace_id)

    async def list_workspaces(self) -> list[WorkspaceState]:
        states = []
        for workspace_id in await self._repository.list_ids():
            record = await self._repository.load(workspace_id)
            if record is not None:
                states.append(record.to_state())
        return sorted(states, key=lambda s: s.created_at)

    async def delete_workspace(self, workspace_id: UUID) -> None:
        """Delete a workspace and its cached clusters.

        Raises:
            WorkspaceError: If the workspace does not exist.
        """
        async with self._lock(workspace_id):
            deleted = await self._repository.delete(workspace_id)
        self._forget(workspace_id)

        if not deleted:
            raise WorkspaceError(
                f"Workspace not found: {workspace_id}",
                code=ErrorCode.WORKSPACE_NOT_FOUND,
                details={"workspace_id": str(workspace_id)},
            )
        logger.info("Workspace deleted", extra={"workspace_id": str(workspace_id)})

    async def _vectorize(self, item_id: str) -> Item:
        if self._vectorizer is None:
            raise ValidationError(
                "No vectorizer configured; items must be supplied with vectors",
                details={"item_id": item_id},
            )
        embedding = await self._vectorizer.vectorize(item_id)
        return Item.from_embedding(item_id, embedding)

    async def handle_event(
        self,
        workspace_id: UUID,
        event: ChangeEvent,
        force_add: bool = False,
    ) -> WorkspaceChange:
        """Apply one item change to a workspace.

        Created and modified items are vectorized before the workspace lock
        is taken. Renamed members keep their vector; a rename of an unknown
        item is handled as a creation.

        Args:
            workspace_id: Target workspace.
            event: The change.
            force_add: Admit regardless of similarity.

        Returns:
            The applied change.

        Raises:
            WorkspaceError: If the workspace does not exist.
            EmbeddingError: If vector production fails.
        """
        old_item_id = event.old_item_id or ""
        item = Item(id=event.item_id)
        if event.needs_vector:
            item = await self._vectorize(event.item_id)
        elif event.is_rename:
            state = await self._load(workspace_id)
            existing = state.memberships.get(old_item_id)
            if existing is None or not existing.item.has_valid_vector:
                item = await self._vectorize(event.item_id)

        async with self._lock(workspace_id):
            state = await self._load(workspace_id)
            if event.event_type == ChangeType.DELETED:
                result = self._aggregator.remove(state, event.item_id)
            elif event.is_rename:
                result = self._aggregator.rename(state, old_item_id, item, force_add=force_add)
            else:
                result = self._aggregator.admit_or_seed(state, item, force_add=force_add)

            if result.decision.mutated:
                await self._save(state)
            change = self._record_change(state, event.event_type.value, [result])

        logger.info(
            "Workspace event applied",
            extra={
                "workspace_id": str(workspace_id),
                "event_type": event.event_type.value,
                "item_id": event.item_id,
                "decision": result.decision.value,
                "similarity": result.similarity,
            },
        )
        await self._notify(change)
        return change

    async def admit_items(
        self,
        workspace_id: UUID,
        items: Sequence[Item],
        force_add: bool = True,
    ) -> WorkspaceChange:
        """Add already-vectorized items in one batch.

        Args:
            workspace_id: Target workspace.
            items: Items with vectors.
            force_add: Bypass the similarity gate (default for bulk import).

        Raises:
            WorkspaceError: If the workspace does not exist.
        """
        async with self._lock(workspace_id):
            state = await self._load(workspace_id)
            results = [
                self._aggregator.admit_or_seed(state, item, force_add=force_add) for item in items
            ]
            if any(r.decision.mutated for r in results):
                await self._save(state)
            change = self._record_change(state, "bulk", results)

        logger.info(
            "Bulk admission applied",
            extra={
                "workspace_id": str(workspace_id),
                "items": len(items),
                "members": change.member_count,
            },
        )
        await self._notify(change)
        return change

    def _record_change(
        self,
        state: WorkspaceState,
        event_type: str,
        results: list[AggregationResult],
    ) -> WorkspaceChange:
        for result in results:
            track_workspace_event(event_type, result.decision.value, result.similarity)
        if any(r.decision.mutated for r in results):
            self._clusters.pop(state.id, None)
            self._versions[state.id] = self._versions.get(state.id, 0) + 1
        return WorkspaceChange(
            workspace_id=state.id,
            event_type=event_type,
            results=results,
            member_count=state.member_count,
            has_centroid=state.centroid is not None,
        )

    async def recluster(
        self,
        workspace_id: UUID,
        threshold: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[Cluster]:
        """Batch-cluster the workspace members.

        The result is cached for ``get_clusters`` only if the workspace did
        not change while the engine was running.

        Args:
            workspace_id: Target workspace.
            threshold: New threshold to store and cluster with. Defaults to
                the workspace's own threshold.
            cancel_event: Stops the run between merge steps when set.

        Returns:
            Clusters sorted by size then coherence; empty when no member
            has a vector yet.

        Raises:
            WorkspaceError: If the workspace does not exist.
            ClusteringCancelledError: If the run was cancelled.
        """
        async with self._lock(workspace_id):
            state = await self._load(workspace_id)
            if threshold is not None and threshold != state.threshold:
                state.threshold = threshold
                state.touch()
                await self._save(state)
                self._versions[workspace_id] = self._versions.get(workspace_id, 0) + 1
            tau = state.threshold
            snapshot = [item.model_copy(deep=True) for item in state.items]
            version = self._versions.setdefault(workspace_id, 0)

        if not snapshot:
            clusters: list[Cluster] = []
        else:
            try:
                clusters = await self._engine.cluster_async(snapshot, tau, cancel_event)
            except NoEmbeddingsFoundError:
                logger.info(
                    "No embeddings in workspace yet; no clusters",
                    extra={"workspace_id": str(workspace_id), "items": len(snapshot)},
                )
                clusters = []

        if self._versions.get(workspace_id) == version:
            self._clusters[workspace_id] = clusters
        else:
            logger.info(
                "Workspace changed during recluster; result not cached",
                extra={"workspace_id": str(workspace_id)},
            )
        await self._notify(
            WorkspaceChange(
                workspace_id=workspace_id,
                event_type="recluster",
                member_count=len(snapshot),
                has_centroid=state.centroid is not None,
            )
        )
        return clusters

    def get_clusters(self, workspace_id: UUID) -> list[Cluster] | None:
        """Latest recluster result, or None if stale or never computed."""
        return self._clusters.get(workspace_id)
