"""Single-link agglomerative clustering engine."""

import asyncio
import heapq
import threading
import time
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray

from semcluster.clustering.models import Cluster, Item
from semcluster.config import ClusteringSettings, get_settings
from semcluster.exceptions import (
    ClusteringCancelledError,
    ClusteringError,
    InsufficientDataError,
    InvariantViolationError,
    NoEmbeddingsFoundError,
)
from semcluster.logging_config import get_logger
from semcluster.observability.metrics import track_clustering_run
from semcluster.vectors import ops

logger = get_logger(__name__)

# Similarity assigned to any pair where one side has no valid vector.
MISSING_SIMILARITY = -1.0


class ClusteringEngine:
    """Agglomerative clustering with the single-link criterion.

    Each item starts as its own cluster. The engine repeatedly merges the
    pair of clusters with the highest single-link similarity (the maximum
    cosine similarity between any two of their members) while that
    similarity is at least the threshold.

    Candidate pairs live in a max-heap with lazy deletion: clusters that
    are merged away are retired, and heap entries referencing a retired
    cluster are dropped when popped. After a merge only the pairs between
    the new cluster and the remaining active clusters are evaluated, and
    only those meeting the threshold are enqueued. Overall cost is
    O(n^2 log n) for n items, plus one vectorised O(n^2 D) similarity pass.

    Equal similarities are resolved in enqueue order: initial pairs in
    row-major ``(i, j)`` order of the input, later pairs in the creation
    order of the active clusters. Callers should only rely on the final
    partition, not on which of several equal pairs merged first.

    The engine holds no state between calls, so one instance can serve
    concurrent callers that each own their input list.
    """

    def __init__(self, settings: ClusteringSettings | None = None) -> None:
        """Initialize the engine.

        Args:
            settings: Clustering configuration. Uses defaults if not provided.
        """
        self._settings = settings or get_settings().clustering

    @property
    def default_threshold(self) -> float:
        return self._settings.default_threshold

    def cluster(
        self,
        items: Sequence[Item],
        threshold: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[Cluster]:
        """Partition items into similarity clusters.

        Args:
            items: Items to cluster. Items without a valid vector are
                allowed and stay singletons unless the threshold is <= -1.
            threshold: Merge while the best similarity is >= threshold.
                Defaults to the configured threshold.
            cancel_event: Checked between merge steps; when set the run
                stops with ClusteringCancelledError.

        Returns:
            Clusters sorted by member count, then coherence, descending.

        Raises:
            InsufficientDataError: If ``items`` is empty.
            NoEmbeddingsFoundError: If no item has a valid vector.
            ClusteringCancelledError: If ``cancel_event`` was set.
        """
        tau = self.default_threshold if threshold is None else threshold
        start = time.perf_counter()

        try:
            clusters, merges = self._run(items, tau, cancel_event)
        except ClusteringError as e:
            track_clustering_run(
                duration=time.perf_counter() - start,
                status=e.code.name.lower(),
                item_count=len(items),
            )
            raise

        duration = time.perf_counter() - start
        track_clustering_run(
            duration=duration,
            status="success",
            item_count=len(items),
            cluster_count=len(clusters),
            merges=merges,
        )
        logger.info(
            "Clustering completed",
            extra={
                "items": len(items),
                "clusters": len(clusters),
                "merges": merges,
                "threshold": tau,
                "duration_ms": round(duration * 1000, 2),
            },
        )
        return clusters

    async def cluster_async(
        self,
        items: Sequence[Item],
        threshold: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[Cluster]:
        """Run :meth:`cluster` in a worker thread."""
        return await asyncio.to_thread(self.cluster, items, threshold, cancel_event)

    def _run(
        self,
        items: Sequence[Item],
        threshold: float,
        cancel_event: threading.Event | None,
    ) -> tuple[list[Cluster], int]:
        if not items:
            raise InsufficientDataError()

        if not any(item.has_valid_vector for item in items):
            logger.debug(
                "No embeddings found among items",
                extra={"items": len(items)},
            )
            raise NoEmbeddingsFoundError(details={"item_count": len(items)})

        n = len(items)
        sims = self._pairwise_similarities(items)

        # Cluster handles: 0..n-1 are the initial singletons, merged
        # clusters get fresh handles so retired ones never come back.
        clusters: dict[int, Cluster] = {
            i: Cluster.from_items([item]) for i, item in enumerate(items)
        }
        members: dict[int, list[int]] = {i: [i] for i in range(n)}
        # links[h][k]: best similarity between any member of h and item k.
        links: dict[int, NDArray[np.float64]] = {i: sims[i] for i in range(n)}
        retired: set[int] = set()

        heap: list[tuple[float, int, int, int]] = []
        rows, cols = np.nonzero(np.triu(sims >= threshold, k=1))
        for seq, (i, j) in enumerate(zip(rows.tolist(), cols.tolist(), strict=True)):
            heap.append((-float(sims[i, j]), seq, i, j))
        heapq.heapify(heap)
        seq = len(heap)

        next_handle = n
        merges = 0

        while heap and len(clusters) > 1:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Clustering cancelled", extra={"merges": merges})
                raise ClusteringCancelledError(details={"merges": merges})

            neg_sim, _, a, b = heapq.heappop(heap)
            if a in retired or b in retired:
                continue

            merged_members = members.pop(a) + members.pop(b)
            merged = Cluster.from_items(clusters.pop(a).items + clusters.pop(b).items)
            merged_links = np.maximum(links.pop(a), links.pop(b))
            retired.update((a, b))

            handle = next_handle
            next_handle += 1
            merges += 1
            logger.debug(
                "Merging clusters",
                extra={
                    "left": a,
                    "right": b,
                    "similarity": -neg_sim,
                    "threshold": threshold,
                },
            )

            for other, other_members in members.items():
                sim = float(merged_links[other_members].max())
                if sim >= threshold:
                    heapq.heappush(heap, (-sim, seq, handle, other))
                    seq += 1

            clusters[handle] = merged
            members[handle] = merged_members
            links[handle] = merged_links

        result = list(clusters.values())
        for cluster in result:
            cluster.recompute_centroid()

        self._check_partition(result, n)

        result.sort(key=lambda c: (-c.member_count, -c.coherence))
        return result, merges

    @staticmethod
    def _pairwise_similarities(items: Sequence[Item]) -> NDArray[np.float64]:
        """Item-by-item cosine similarities.

        Pairs involving an item without a valid vector get
        MISSING_SIMILARITY; valid vectors of different lengths compare
        as 0.0.
        """
        n = len(items)
        sims = np.full((n, n), MISSING_SIMILARITY)

        by_dimension: dict[int, list[int]] = {}
        for idx, item in enumerate(items):
            if item.has_valid_vector and item.vector is not None:
                by_dimension.setdefault(len(item.vector), []).append(idx)

        valid = [idx for group in by_dimension.values() for idx in group]
        sims[np.ix_(valid, valid)] = 0.0

        for group in by_dimension.values():
            vectors = [items[idx].vector or [] for idx in group]
            sims[np.ix_(group, group)] = ops.similarity_matrix(vectors)

        return sims

    @staticmethod
    def _check_partition(clusters: list[Cluster], expected: int) -> None:
        total = sum(cluster.member_count for cluster in clusters)
        if total != expected:
            logger.critical(
                "Clustering lost or duplicated items",
                extra={"expected": expected, "actual": total},
            )
            raise InvariantViolationError(
                "Clustering output does not partition its input",
                details={"expected": expected, "actual": total},
            )
