"""API routes for clustering and workspace operations."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from semcluster.clustering.engine import ClusteringEngine
from semcluster.clustering.models import Cluster, Item
from semcluster.exceptions import NoEmbeddingsFoundError, ValidationError
from semcluster.logging_config import get_logger
from semcluster.workspaces.events import ChangeEvent, ChangeType
from semcluster.workspaces.models import WorkspaceChange, WorkspaceState
from semcluster.workspaces.service import WorkspaceService

logger = get_logger(__name__)


router = APIRouter(prefix="/api/v1", tags=["Clustering"])


def get_workspace_service(request: Request) -> WorkspaceService:
    return request.app.state.workspace_service


def get_engine(request: Request) -> ClusteringEngine:
    return request.app.state.engine


ServiceDep = Annotated[WorkspaceService, Depends(get_workspace_service)]
EngineDep = Annotated[ClusteringEngine, Depends(get_engine)]


class ClusterRequest(BaseModel):
    """Request body for one-off clustering."""

    items: list[Item] = Field(description="Items to cluster")
    threshold: float | None = Field(
        default=None,
        description="Merge threshold; the configured default when omitted",
    )


class ClusterSummary(BaseModel):
    """One cluster in a response."""

    id: UUID = Field(description="Cluster identifier")
    item_ids: list[str] = Field(description="Member item identifiers")
    member_count: int = Field(description="Number of members")
    coherence: float = Field(description="Mean member similarity to the centroid")
    centroid: list[float] | None = Field(default=None, description="Centroid vector")

    @classmethod
    def from_cluster(cls, cluster: Cluster, include_centroid: bool = False) -> "ClusterSummary":
        return cls(
            id=cluster.id,
            item_ids=[item.id for item in cluster.items],
            member_count=cluster.member_count,
            coherence=cluster.coherence,
            centroid=cluster.centroid if include_centroid else None,
        )


class ClusterResponse(BaseModel):
    """Clustering result."""

    clusters: list[ClusterSummary] = Field(description="Clusters, largest first")
    message: str | None = Field(default=None, description="Informational message")


class CreateWorkspaceRequest(BaseModel):
    """Request body for workspace creation."""

    name: str = Field(min_length=1, description="Workspace name")
    threshold: float | None = Field(default=None, description="Admission threshold")


class WorkspaceResponse(BaseModel):
    """Workspace summary."""

    id: UUID
    name: str
    threshold: float
    member_count: int
    has_centroid: bool
    item_ids: list[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_state(cls, state: WorkspaceState) -> "WorkspaceResponse":
        return cls(
            id=state.id,
            name=state.name,
            threshold=state.threshold,
            member_count=state.member_count,
            has_centroid=state.centroid is not None,
            item_ids=list(state.memberships),
            created_at=state.created_at,
            updated_at=state.updated_at,
        )


class AdmitItemsRequest(BaseModel):
    """Request body for bulk item admission."""

    items: list[Item] = Field(description="Items with vectors")
    force_add: bool = Field(default=True, description="Bypass the similarity gate")


class EventRequest(BaseModel):
    """Request body for an item change event."""

    event_type: ChangeType = Field(description="Change type")
    item_id: str = Field(description="Affected item identifier")
    old_item_id: str | None = Field(default=None, description="Previous identifier for renames")
    force_add: bool = Field(default=False, description="Admit regardless of similarity")


class ReclusterRequest(BaseModel):
    """Request body for workspace reclustering."""

    threshold: float | None = Field(default=None, description="New workspace threshold")
    include_centroids: bool = Field(default=False, description="Return centroid vectors")


@router.post("/cluster", response_model=ClusterResponse)
async def cluster_endpoint(request: ClusterRequest, engine: EngineDep) -> ClusterResponse:
    """Cluster a set of items without storing them."""
    try:
        clusters = await engine.cluster_async(request.items, request.threshold)
    except NoEmbeddingsFoundError as e:
        return ClusterResponse(clusters=[], message=e.message)

    return ClusterResponse(clusters=[ClusterSummary.from_cluster(c) for c in clusters])


@router.get("/workspaces", response_model=list[WorkspaceResponse])
async def list_workspaces(service: ServiceDep) -> list[WorkspaceResponse]:
    return [WorkspaceResponse.from_state(s) for s in await service.list_workspaces()]


@router.post(
    "/workspaces",
    response_model=WorkspaceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_workspace(
    request: CreateWorkspaceRequest,
    service: ServiceDep,
) -> WorkspaceResponse:
    state = await service.create_workspace(request.name, request.threshold)
    return WorkspaceResponse.from_state(state)


@router.get("/workspaces/{workspace_id}", response_model=WorkspaceResponse)
async def get_workspace(workspace_id: UUID, service: ServiceDep) -> WorkspaceResponse:
    return WorkspaceResponse.from_state(await service.get_workspace(workspace_id))


@router.delete("/workspaces/{workspace_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workspace(workspace_id: UUID, service: ServiceDep) -> None:
    await service.delete_workspace(workspace_id)


@router.post("/workspaces/{workspace_id}/items", response_model=WorkspaceChange)
async def admit_items(
    workspace_id: UUID,
    request: AdmitItemsRequest,
    service: ServiceDep,
) -> WorkspaceChange:
    """Add already-vectorized items to a workspace."""
    return await service.admit_items(workspace_id, request.items, force_add=request.force_add)


@router.delete("/workspaces/{workspace_id}/items/{item_id:path}", response_model=WorkspaceChange)
async def remove_item(workspace_id: UUID, item_id: str, service: ServiceDep) -> WorkspaceChange:
    return await service.handle_event(workspace_id, ChangeEvent.deletion(item_id))


@router.post("/workspaces/{workspace_id}/events", response_model=WorkspaceChange)
async def post_event(
    workspace_id: UUID,
    request: EventRequest,
    service: ServiceDep,
) -> WorkspaceChange:
    """Apply an item change event to a workspace."""
    try:
        event = ChangeEvent(
            event_type=request.event_type,
            item_id=request.item_id,
            old_item_id=request.old_item_id,
        )
    except ValueError as e:
        raise ValidationError(str(e), details={"event_type": request.event_type.value}) from e

    return await service.handle_event(workspace_id, event, force_add=request.force_add)


@router.post("/workspaces/{workspace_id}/recluster", response_model=ClusterResponse)
async def recluster_workspace(
    workspace_id: UUID,
    request: ReclusterRequest,
    service: ServiceDep,
) -> ClusterResponse:
    clusters = await service.recluster(workspace_id, threshold=request.threshold)
    return _cluster_response(clusters, request.include_centroids)


@router.get("/workspaces/{workspace_id}/clusters", response_model=ClusterResponse)
async def get_workspace_clusters(workspace_id: UUID, service: ServiceDep) -> ClusterResponse:
    """Latest clusters for a workspace, reclustering when none are cached."""
    clusters = service.get_clusters(workspace_id)
    if clusters is None:
        clusters = await service.recluster(workspace_id)
    return _cluster_response(clusters)


def _cluster_response(clusters: list[Cluster], include_centroids: bool = False) -> ClusterResponse:
    message = None if clusters else "No clusters yet"
    return ClusterResponse(
        clusters=[ClusterSummary.from_cluster(c, include_centroids) for c in clusters],
        message=message,
    )
