"""Workspace membership, persistence and change handling."""

from semcluster.workspaces.aggregator import IncrementalAggregator
from semcluster.workspaces.events import ChangeEvent, ChangeType
from semcluster.workspaces.models import (
    AggregationDecision,
    AggregationResult,
    Membership,
    WorkspaceChange,
    WorkspaceState,
)
from semcluster.workspaces.repository import (
    InMemoryWorkspaceRepository,
    JSONFileWorkspaceRepository,
    WorkspaceRecord,
    WorkspaceRepository,
)
from semcluster.workspaces.service import WorkspaceService

__all__ = [
    "AggregationDecision",
    "AggregationResult",
    "ChangeEvent",
    "ChangeType",
    "IncrementalAggregator",
    "InMemoryWorkspaceRepository",
    "JSONFileWorkspaceRepository",
    "Membership",
    "WorkspaceChange",
    "WorkspaceRecord",
    "WorkspaceRepository",
    "WorkspaceService",
    "WorkspaceState",
]
