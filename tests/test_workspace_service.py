"""Tests for the workspace service."""

import asyncio
import threading
from collections.abc import Sequence
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from semcluster.clustering.engine import ClusteringEngine
from semcluster.clustering.models import Cluster, Item
from semcluster.exceptions import (
    ClusteringCancelledError,
    EmbeddingError,
    ErrorCode,
    ValidationError,
    WorkspaceError,
)
from semcluster.vectors.models import SemanticEmbedding
from semcluster.workspaces.events import ChangeEvent
from semcluster.workspaces.models import AggregationDecision, WorkspaceChange
from semcluster.workspaces.repository import InMemoryWorkspaceRepository
from semcluster.workspaces.service import WorkspaceService
from tests.conftest import StaticVectorizer, make_item


class GatedVectorizer(StaticVectorizer):
    """Vectorizer that waits for a release signal before answering."""

    def __init__(self, vectors: dict[str, list[float]]) -> None:
        super().__init__(vectors)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def vectorize(self, item_id: str) -> SemanticEmbedding:
        self.entered.set()
        await self.release.wait()
        return await super().vectorize(item_id)


class GatedEngine(ClusteringEngine):
    """Engine that waits for a release signal before clustering."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def cluster_async(
        self,
        items: Sequence[Item],
        threshold: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[Cluster]:
        self.entered.set()
        await self.release.wait()
        return await super().cluster_async(items, threshold, cancel_event)


class TestWorkspaceLifecycle:
    """Tests for workspace CRUD."""

    @pytest.mark.asyncio
    async def test_create_uses_default_threshold(self, workspace_service: WorkspaceService) -> None:
        """New workspaces take the configured threshold."""
        state = await workspace_service.create_workspace("Reports")

        assert state.name == "Reports"
        assert state.threshold == 0.75
        assert state.centroid is None

    @pytest.mark.asyncio
    async def test_create_and_get(self, workspace_service: WorkspaceService) -> None:
        """Created workspaces can be loaded."""
        created = await workspace_service.create_workspace("Reports", threshold=0.5)
        loaded = await workspace_service.get_workspace(created.id)
        assert loaded == created

    @pytest.mark.asyncio
    async def test_duplicate_name(self, workspace_service: WorkspaceService) -> None:
        """Names are unique."""
        await workspace_service.create_workspace("Reports")
        with pytest.raises(WorkspaceError) as exc_info:
            await workspace_service.create_workspace("Reports")
        assert exc_info.value.code == ErrorCode.WORKSPACE_EXISTS

    @pytest.mark.asyncio
    async def test_blank_name(self, workspace_service: WorkspaceService) -> None:
        """Blank names are rejected."""
        with pytest.raises(ValidationError):
            await workspace_service.create_workspace("   ")

    @pytest.mark.asyncio
    async def test_list_in_creation_order(self, workspace_service: WorkspaceService) -> None:
        """Workspaces are listed oldest first."""
        first = await workspace_service.create_workspace("One")
        second = await workspace_service.create_workspace("Two")

        listed = await workspace_service.list_workspaces()

        assert [s.id for s in listed] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_delete(self, workspace_service: WorkspaceService) -> None:
        """Deleted workspaces are gone."""
        state = await workspace_service.create_workspace("Reports")
        await workspace_service.delete_workspace(state.id)

        with pytest.raises(WorkspaceError):
            await workspace_service.get_workspace(state.id)
        with pytest.raises(WorkspaceError):
            await workspace_service.delete_workspace(state.id)


class TestHandleEvent:
    """Tests for change event handling."""

    @pytest.mark.asyncio
    async def test_created_items_seed_then_admit(self, workspace_service: WorkspaceService) -> None:
        """The first item seeds, similar ones are admitted, others rejected."""
        state = await workspace_service.create_workspace("Docs", threshold=0.8)

        seeded = await workspace_service.handle_event(state.id, ChangeEvent.creation("docs/a.txt"))
        admitted = await workspace_service.handle_event(
            state.id, ChangeEvent.creation("docs/b.txt")
        )
        rejected = await workspace_service.handle_event(
            state.id, ChangeEvent.creation("docs/c.txt")
        )

        assert seeded.results[0].decision == AggregationDecision.SEEDED
        assert admitted.results[0].decision == AggregationDecision.ADMITTED
        assert rejected.results[0].decision == AggregationDecision.REJECTED
        assert not rejected.mutated

        loaded = await workspace_service.get_workspace(state.id)
        assert sorted(loaded.memberships) == ["docs/a.txt", "docs/b.txt"]

    @pytest.mark.asyncio
    async def test_force_add(self, workspace_service: WorkspaceService) -> None:
        """Forced events bypass the threshold."""
        state = await workspace_service.create_workspace("Docs", threshold=0.8)
        await workspace_service.handle_event(state.id, ChangeEvent.creation("docs/a.txt"))

        change = await workspace_service.handle_event(
            state.id, ChangeEvent.creation("docs/c.txt"), force_add=True
        )

        assert change.results[0].decision == AggregationDecision.ADMITTED
        assert change.member_count == 2

    @pytest.mark.asyncio
    async def test_empty_item_is_skipped(self, workspace_service: WorkspaceService) -> None:
        """Items vectorized to zero are not admitted."""
        state = await workspace_service.create_workspace("Docs")
        change = await workspace_service.handle_event(
            state.id, ChangeEvent.creation("docs/empty.txt")
        )

        assert change.results[0].decision == AggregationDecision.SKIPPED
        assert not change.has_centroid

    @pytest.mark.asyncio
    async def test_deleted(self, workspace_service: WorkspaceService) -> None:
        """Deletion removes the member and recomputes the centroid."""
        state = await workspace_service.create_workspace("Docs", threshold=0.8)
        await workspace_service.handle_event(state.id, ChangeEvent.creation("docs/a.txt"))
        await workspace_service.handle_event(state.id, ChangeEvent.creation("docs/b.txt"))

        change = await workspace_service.handle_event(state.id, ChangeEvent.deletion("docs/b.txt"))

        assert change.results[0].decision == AggregationDecision.REMOVED
        loaded = await workspace_service.get_workspace(state.id)
        assert loaded.centroid == [1.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_rename_member_skips_vectorization(
        self,
        workspace_service: WorkspaceService,
        vectorizer: StaticVectorizer,
    ) -> None:
        """Renamed members keep their vector without re-analysis."""
        state = await workspace_service.create_workspace("Docs")
        await workspace_service.handle_event(state.id, ChangeEvent.creation("docs/a.txt"))
        vectorizer.calls.clear()

        change = await workspace_service.handle_event(
            state.id, ChangeEvent.rename("docs/a.txt", "docs/renamed.txt")
        )

        assert change.results[0].decision == AggregationDecision.RENAMED
        assert vectorizer.calls == []
        loaded = await workspace_service.get_workspace(state.id)
        assert loaded.memberships["docs/renamed.txt"].item.vector == [1.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_rename_unknown_is_creation(
        self,
        workspace_service: WorkspaceService,
        vectorizer: StaticVectorizer,
    ) -> None:
        """Renaming an unknown item vectorizes and admits it."""
        state = await workspace_service.create_workspace("Docs")

        change = await workspace_service.handle_event(
            state.id, ChangeEvent.rename("docs/gone.txt", "docs/a.txt")
        )

        assert change.results[0].decision == AggregationDecision.SEEDED
        assert vectorizer.calls == ["docs/a.txt"]

    @pytest.mark.asyncio
    async def test_vectorizer_failure_propagates(self, workspace_service: WorkspaceService) -> None:
        """Vectorization errors leave the workspace unchanged."""
        state = await workspace_service.create_workspace("Docs")

        with pytest.raises(EmbeddingError):
            await workspace_service.handle_event(state.id, ChangeEvent.creation("docs/missing"))

        loaded = await workspace_service.get_workspace(state.id)
        assert loaded.member_count == 0

    @pytest.mark.asyncio
    async def test_unknown_workspace(self, workspace_service: WorkspaceService) -> None:
        """Events for unknown workspaces raise WorkspaceError."""
        state = await workspace_service.create_workspace("Docs")
        await workspace_service.delete_workspace(state.id)

        with pytest.raises(WorkspaceError):
            await workspace_service.handle_event(state.id, ChangeEvent.deletion("docs/a.txt"))

    @pytest.mark.asyncio
    async def test_without_vectorizer(self) -> None:
        """Creations need a vectorizer."""
        service = WorkspaceService(repository=InMemoryWorkspaceRepository())
        state = await service.create_workspace("Docs")

        with pytest.raises(ValidationError):
            await service.handle_event(state.id, ChangeEvent.creation("docs/a.txt"))

    @pytest.mark.asyncio
    async def test_concurrent_events_are_serialized(
        self,
        workspace_service: WorkspaceService,
    ) -> None:
        """Concurrent events on one workspace are all applied."""
        state = await workspace_service.create_workspace("Docs", threshold=-1.0)

        await asyncio.gather(
            *(
                workspace_service.handle_event(state.id, ChangeEvent.creation(item_id))
                for item_id in ("docs/a.txt", "docs/b.txt", "docs/c.txt")
            )
        )

        loaded = await workspace_service.get_workspace(state.id)
        assert loaded.member_count == 3

    @pytest.mark.asyncio
    async def test_vectorizing_does_not_hold_the_lock(self) -> None:
        """Other changes to a workspace finish while one of its items is vectorized."""
        vectorizer = GatedVectorizer({"docs/b.txt": [0.0, 1.0, 0.0]})
        service = WorkspaceService(repository=InMemoryWorkspaceRepository(), vectorizer=vectorizer)
        state = await service.create_workspace("Docs")
        await service.admit_items(state.id, [make_item("a", 1.0, 0.0, 0.0)])

        pending = asyncio.create_task(
            service.handle_event(state.id, ChangeEvent.creation("docs/b.txt"), force_add=True)
        )
        await vectorizer.entered.wait()

        removed = await asyncio.wait_for(
            service.handle_event(state.id, ChangeEvent.deletion("a")), timeout=1.0
        )
        admitted = await asyncio.wait_for(
            service.admit_items(state.id, [make_item("c", 1.0, 0.0, 0.0)]), timeout=1.0
        )
        assert not pending.done()

        vectorizer.release.set()
        created = await pending

        assert removed.results[0].decision == AggregationDecision.REMOVED
        assert admitted.results[0].decision == AggregationDecision.SEEDED
        assert created.results[0].decision == AggregationDecision.ADMITTED
        loaded = await service.get_workspace(state.id)
        assert sorted(loaded.memberships) == ["c", "docs/b.txt"]


class TestAdmitItems:
    """Tests for bulk admission."""

    @pytest.mark.asyncio
    async def test_bulk_force_add(self, workspace_service: WorkspaceService) -> None:
        """Bulk imports admit everything by default in one change."""
        state = await workspace_service.create_workspace("Docs", threshold=0.99)
        items = [make_item("x", 1.0, 0.0), make_item("y", 0.0, 1.0), make_item("z")]

        change = await workspace_service.admit_items(state.id, items)

        assert [r.decision for r in change.results] == [
            AggregationDecision.SEEDED,
            AggregationDecision.ADMITTED,
            AggregationDecision.SKIPPED,
        ]
        assert change.member_count == 2
        assert change.event_type == "bulk"

    @pytest.mark.asyncio
    async def test_bulk_with_gate(self, workspace_service: WorkspaceService) -> None:
        """Bulk imports can respect the threshold."""
        state = await workspace_service.create_workspace("Docs", threshold=0.9)
        items = [make_item("x", 1.0, 0.0), make_item("y", 0.0, 1.0)]

        change = await workspace_service.admit_items(state.id, items, force_add=False)

        assert change.results[1].decision == AggregationDecision.REJECTED
        assert change.member_count == 1


class TestRecluster:
    """Tests for batch reclustering of a workspace."""

    @pytest.mark.asyncio
    async def test_recluster(self, workspace_service: WorkspaceService) -> None:
        """Members are grouped and the result cached."""
        state = await workspace_service.create_workspace("Docs", threshold=0.9)
        await workspace_service.admit_items(
            state.id,
            [make_item("a", 1.0, 0.0), make_item("b", 0.99, 0.05), make_item("c", 0.0, 1.0)],
        )

        clusters = await workspace_service.recluster(state.id)

        assert [c.member_count for c in clusters] == [2, 1]
        assert workspace_service.get_clusters(state.id) == clusters

    @pytest.mark.asyncio
    async def test_recluster_stores_threshold(self, workspace_service: WorkspaceService) -> None:
        """A new threshold is saved on the workspace."""
        state = await workspace_service.create_workspace("Docs", threshold=0.9)
        await workspace_service.admit_items(
            state.id, [make_item("a", 1.0, 0.0), make_item("c", 0.0, 1.0)]
        )

        clusters = await workspace_service.recluster(state.id, threshold=-1.0)

        assert len(clusters) == 1
        assert (await workspace_service.get_workspace(state.id)).threshold == -1.0

    @pytest.mark.asyncio
    async def test_recluster_without_vectors(self, workspace_service: WorkspaceService) -> None:
        """Workspaces without vectors have no clusters yet."""
        state = await workspace_service.create_workspace("Docs")
        assert await workspace_service.recluster(state.id) == []
        assert workspace_service.get_clusters(state.id) == []

    @pytest.mark.asyncio
    async def test_recluster_cancelled(self, workspace_service: WorkspaceService) -> None:
        """Cancellation propagates and nothing is cached."""
        state = await workspace_service.create_workspace("Docs")
        await workspace_service.admit_items(
            state.id, [make_item("a", 1.0, 0.0), make_item("b", 1.0, 0.0)]
        )
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ClusteringCancelledError):
            await workspace_service.recluster(state.id, cancel_event=cancel)
        assert workspace_service.get_clusters(state.id) is None

    @pytest.mark.asyncio
    async def test_mutation_invalidates_cache(self, workspace_service: WorkspaceService) -> None:
        """Applied changes drop cached clusters."""
        state = await workspace_service.create_workspace("Docs")
        await workspace_service.admit_items(state.id, [make_item("a", 1.0, 0.0)])
        await workspace_service.recluster(state.id)

        await workspace_service.handle_event(state.id, ChangeEvent.deletion("a"))

        assert workspace_service.get_clusters(state.id) is None

    @pytest.mark.asyncio
    async def test_change_during_recluster_is_not_cached(self) -> None:
        """A result computed before a concurrent admission is returned but not cached."""
        engine = GatedEngine()
        service = WorkspaceService(repository=InMemoryWorkspaceRepository(), engine=engine)
        state = await service.create_workspace("Docs", threshold=0.9)
        await service.admit_items(state.id, [make_item("a", 1.0, 0.0)])

        running = asyncio.create_task(service.recluster(state.id))
        await engine.entered.wait()
        await service.admit_items(state.id, [make_item("b", 1.0, 0.0)])
        engine.release.set()
        outdated = await running

        assert [c.member_count for c in outdated] == [1]
        assert service.get_clusters(state.id) is None

        clusters = await service.recluster(state.id)

        assert sorted(item.id for item in clusters[0].items) == ["a", "b"]
        assert service.get_clusters(state.id) == clusters

    @pytest.mark.asyncio
    async def test_delete_during_recluster_is_not_cached(self) -> None:
        """Clusters of a workspace deleted mid-run are dropped."""
        engine = GatedEngine()
        service = WorkspaceService(repository=InMemoryWorkspaceRepository(), engine=engine)
        state = await service.create_workspace("Docs")
        await service.admit_items(state.id, [make_item("a", 1.0, 0.0)])

        running = asyncio.create_task(service.recluster(state.id))
        await engine.entered.wait()
        await service.delete_workspace(state.id)
        engine.release.set()
        await running

        assert service.get_clusters(state.id) is None


class TestSubscriptions:
    """Tests for change notifications."""

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self, workspace_service: WorkspaceService) -> None:
        """Both kinds of listener receive each change."""
        sync_listener = MagicMock(return_value=None)
        async_listener = AsyncMock()
        workspace_service.subscribe(sync_listener)
        workspace_service.subscribe(async_listener)
        state = await workspace_service.create_workspace("Docs")

        change = await workspace_service.handle_event(state.id, ChangeEvent.creation("docs/a.txt"))

        sync_listener.assert_called_once_with(change)
        async_listener.assert_awaited_once_with(change)

    @pytest.mark.asyncio
    async def test_unsubscribe(self, workspace_service: WorkspaceService) -> None:
        """Unsubscribed listeners are not called."""
        listener = MagicMock(return_value=None)
        unsubscribe = workspace_service.subscribe(listener)
        unsubscribe()
        state = await workspace_service.create_workspace("Docs")

        await workspace_service.handle_event(state.id, ChangeEvent.creation("docs/a.txt"))

        listener.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_updates(
        self,
        workspace_service: WorkspaceService,
    ) -> None:
        """A listener error is logged and the change still applies."""
        received: list[WorkspaceChange] = []
        workspace_service.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        workspace_service.subscribe(received.append)
        state = await workspace_service.create_workspace("Docs")

        await workspace_service.handle_event(state.id, ChangeEvent.creation("docs/a.txt"))

        assert len(received) == 1
        assert (await workspace_service.get_workspace(state.id)).member_count == 1

    @pytest.mark.asyncio
    async def test_recluster_notifies(self, workspace_service: WorkspaceService) -> None:
        """Reclustering announces itself."""
        received: list[WorkspaceChange] = []
        workspace_service.subscribe(received.append)
        state = await workspace_service.create_workspace("Docs")

        await workspace_service.recluster(state.id)

        assert received[-1].event_type == "recluster"
        assert received[-1].workspace_id == state.id


class TestLockRegistry:
    """Tests for per-workspace lock bookkeeping."""

    @pytest.mark.asyncio
    async def test_unknown_workspaces_leave_no_locks(
        self,
        workspace_service: WorkspaceService,
    ) -> None:
        """Calls on missing workspaces do not accumulate locks."""
        for _ in range(25):
            with pytest.raises(WorkspaceError):
                await workspace_service.handle_event(uuid4(), ChangeEvent.deletion("x"))
            with pytest.raises(WorkspaceError):
                await workspace_service.admit_items(uuid4(), [make_item("x", 1.0, 0.0)])
            with pytest.raises(WorkspaceError):
                await workspace_service.recluster(uuid4())
            with pytest.raises(WorkspaceError):
                await workspace_service.delete_workspace(uuid4())

        assert workspace_service._locks == {}
        assert workspace_service._versions == {}

    @pytest.mark.asyncio
    async def test_lock_released_on_delete(self, workspace_service: WorkspaceService) -> None:
        """Existing workspaces keep their lock until deleted."""
        state = await workspace_service.create_workspace("Docs")
        await workspace_service.admit_items(state.id, [make_item("a", 1.0, 0.0)])
        assert list(workspace_service._locks) == [state.id]

        await workspace_service.delete_workspace(state.id)

        assert workspace_service._locks == {}
