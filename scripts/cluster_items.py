#!/usr/bin/env python
"""Cluster a batch of vectorized items from a JSON file.

Usage:
    python -m scripts.cluster_items --items data/items.json --threshold 0.8

The input file holds a JSON list of ``{"id": ..., "vector": [...],
"metadata": {...}}`` objects. Items without a vector are allowed and end up
as singletons.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from semcluster.clustering.engine import ClusteringEngine
from semcluster.clustering.models import Item
from semcluster.exceptions import ClusteringError, NoEmbeddingsFoundError
from semcluster.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

_ITEMS_ADAPTER = TypeAdapter(list[Item])


def load_items(path: Path) -> list[Item]:
    """Load and validate items from a JSON file.

    Raises:
        OSError: If the file cannot be read.
        pydantic.ValidationError: If the content is not a list of items.
    """
    return _ITEMS_ADAPTER.validate_json(path.read_bytes())


async def run_clustering(
    items_path: Path,
    threshold: float | None,
    output_path: Path | None = None,
) -> bool:
    """Cluster items and report the result.

    Args:
        items_path: Path to the items JSON file.
        threshold: Merge threshold; the configured default when None.
        output_path: Optional path to save the clusters as JSON.

    Returns:
        True if clustering ran, False if the input was unusable.
    """
    setup_logging(level="INFO")

    logger.info(f"Loading items from {items_path}")
    try:
        items = load_items(items_path)
    except (OSError, PydanticValidationError) as e:
        logger.error(f"Cannot load items: {e}")
        return False

    engine = ClusteringEngine()
    try:
        clusters = await engine.cluster_async(items, threshold)
    except NoEmbeddingsFoundError as e:
        print(f"No clusters: {e.message}")
        clusters = []
    except ClusteringError as e:
        logger.error(f"Clustering failed: {e.message}", extra={"error_code": e.code.value})
        return False

    tau = engine.default_threshold if threshold is None else threshold

    print("\n" + "=" * 60)
    print("CLUSTERING SUMMARY")
    print("=" * 60)
    print(f"Items: {len(items)}")
    print(f"Threshold: {tau:.3f}")
    print(f"Clusters: {len(clusters)}")
    for index, cluster in enumerate(clusters, start=1):
        ids = ", ".join(item.id for item in cluster.items)
        print(f"  #{index} size={cluster.member_count} coherence={cluster.coherence:.4f}: {ids}")
    print("=" * 60)

    if output_path:
        output_data = {
            "threshold": tau,
            "item_count": len(items),
            "clusters": [
                {
                    "id": str(cluster.id),
                    "item_ids": [item.id for item in cluster.items],
                    "coherence": cluster.coherence,
                    "centroid": cluster.centroid,
                }
                for cluster in clusters
            ],
        }
        output_path.write_text(json.dumps(output_data, indent=2))
        logger.info(f"Clusters saved to {output_path}")

    return True


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Cluster vectorized items by cosine similarity",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--items",
        type=Path,
        required=True,
        help="Path to items JSON file",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Merge threshold in [-1, 1]; configured default when omitted",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Path to save clusters JSON",
    )

    args = parser.parse_args()

    ok = asyncio.run(
        run_clustering(
            items_path=args.items,
            threshold=args.threshold,
            output_path=args.output,
        )
    )

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
