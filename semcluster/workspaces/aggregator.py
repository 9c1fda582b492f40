"""Incremental workspace membership."""

from semcluster.clustering.models import Item
from semcluster.logging_config import get_logger
from semcluster.vectors import ops
from semcluster.workspaces.models import (
    AggregationDecision,
    AggregationResult,
    Membership,
    WorkspaceState,
    utc_now,
)

logger = get_logger(__name__)


class IncrementalAggregator:
    """Decides workspace membership one item at a time.

    A candidate is compared with the workspace centroid and admitted when
    its cosine similarity reaches the workspace threshold. Every admission
    and removal recomputes the centroid over all current members, so the
    centroid never drifts from the true mean.

    Methods mutate the ``WorkspaceState`` they are given. Callers must
    serialize calls per workspace; the aggregator itself keeps no state.
    """

    @staticmethod
    def should_include(similarity: float, threshold: float) -> bool:
        return similarity >= threshold

    def recompute_centroid(self, state: WorkspaceState) -> list[float] | None:
        """Recompute the centroid from all member vectors.

        Returns:
            The new centroid, or None if no member has a valid vector.
        """
        vectors = [m.item.vector for m in state.memberships.values() if m.item.has_valid_vector]
        state.centroid = ops.average(vectors) if vectors else None  # type: ignore[arg-type]
        state.touch()
        return state.centroid

    def admit_or_seed(
        self,
        state: WorkspaceState,
        item: Item,
        force_add: bool = False,
    ) -> AggregationResult:
        """Admit an item if it is similar enough, or seed an empty workspace.

        Args:
            state: Workspace to update.
            item: Candidate item.
            force_add: Bypass the similarity gate (bulk imports and items
                the user added explicitly).

        Returns:
            The decision taken and the candidate's centroid similarity.
        """
        if not item.has_valid_vector:
            logger.debug(
                "Item has no embedding; skipping membership update",
                extra={"item_id": item.id, "workspace_id": str(state.id)},
            )
            return AggregationResult(decision=AggregationDecision.SKIPPED, item_id=item.id)

        if state.centroid is None and any(
            m.item.has_valid_vector for m in state.memberships.values()
        ):
            # Loaded without a centroid; rebuild it before comparing.
            self.recompute_centroid(state)

        if state.centroid is None:
            self._upsert(state, item, 1.0)
            self.recompute_centroid(state)
            logger.info(
                "Workspace seeded",
                extra={"item_id": item.id, "workspace_id": str(state.id)},
            )
            return AggregationResult(
                decision=AggregationDecision.SEEDED,
                item_id=item.id,
                similarity=1.0,
                centroid_changed=True,
            )

        similarity = ops.cosine_similarity(state.centroid, item.vector)  # type: ignore[arg-type]
        logger.debug(
            "Similarity to workspace centroid",
            extra={
                "item_id": item.id,
                "similarity": similarity,
                "threshold": state.threshold,
                "force_add": force_add,
            },
        )

        if not (force_add or self.should_include(similarity, state.threshold)):
            return AggregationResult(
                decision=AggregationDecision.REJECTED,
                item_id=item.id,
                similarity=similarity,
            )

        existed = item.id in state.memberships
        self._upsert(state, item, similarity)
        self.recompute_centroid(state)
        return AggregationResult(
            decision=AggregationDecision.UPDATED if existed else AggregationDecision.ADMITTED,
            item_id=item.id,
            similarity=similarity,
            centroid_changed=True,
        )

    def remove(self, state: WorkspaceState, item_id: str) -> AggregationResult:
        """Remove a member and recompute the centroid from the rest."""
        membership = state.memberships.pop(item_id, None)
        if membership is None:
            return AggregationResult(decision=AggregationDecision.NOT_FOUND, item_id=item_id)

        self.recompute_centroid(state)
        return AggregationResult(
            decision=AggregationDecision.REMOVED,
            item_id=item_id,
            similarity=membership.similarity,
            centroid_changed=membership.item.has_valid_vector,
        )

    def rename(
        self,
        state: WorkspaceState,
        old_item_id: str,
        item: Item,
        force_add: bool = False,
    ) -> AggregationResult:
        """Move a member to a new identity.

        If ``old_item_id`` is not a member the rename is handled as a
        creation of ``item``.

        Args:
            state: Workspace to update.
            old_item_id: Previous identity.
            item: The item under its new identity. When it carries no
                vector the member's existing vector is kept.
            force_add: Passed through to the creation fallback.
        """
        existing = state.memberships.pop(old_item_id, None)
        if existing is None:
            logger.debug(
                "Rename source not found; treating as creation",
                extra={"old_item_id": old_item_id, "item_id": item.id},
            )
            return self.admit_or_seed(state, item, force_add=force_add)

        renamed = item if item.has_valid_vector else existing.item.model_copy(
            update={"id": item.id, "metadata": {**existing.item.metadata, **item.metadata}}
        )

        similarity = existing.similarity
        if state.centroid is not None and renamed.has_valid_vector:
            similarity = ops.cosine_similarity(state.centroid, renamed.vector or [])

        state.memberships[renamed.id] = Membership(
            item=renamed,
            similarity=similarity,
            created_at=existing.created_at,
        )
        self.recompute_centroid(state)
        return AggregationResult(
            decision=AggregationDecision.RENAMED,
            item_id=renamed.id,
            similarity=similarity,
            centroid_changed=renamed.vector != existing.item.vector,
        )

    @staticmethod
    def _upsert(state: WorkspaceState, item: Item, similarity: float) -> None:
        membership = state.memberships.get(item.id)
        if membership is not None:
            membership.item = item
            membership.similarity = similarity
            membership.updated_at = utc_now()
        else:
            state.memberships[item.id] = Membership(item=item, similarity=similarity)
