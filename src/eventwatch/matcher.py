"""Match freshly formed clusters to events detected in earlier batches."""

from __future__ import annotations

import logging

from eventwatch.cluster import cosine_similarity
from eventwatch.models import Cluster, EventCentroid

logger = logging.getLogger(__name__)


def match_clusters_to_events(
    clusters: list[Cluster],
    existing: list[EventCentroid],
    threshold: float,
) -> dict[str, int]:
    """Map cluster id → id of the most similar existing event at or above *threshold*.

    Clusters are matched independently, so two clusters may claim the same event.
    Unmatched clusters are absent from the result.
    """
    matches: dict[str, int] = {}
    for cluster in clusters:
        best_id: int | None = None
        best_sim = float("-inf")
        for event in existing:
            sim = cosine_similarity(cluster.centroid, event.centroid)
            if sim >= threshold and sim > best_sim:
                best_id, best_sim = event.event_id, sim
        if best_id is not None:
            matches[cluster.id] = best_id
            logger.debug("Cluster %s matches event %d (%.3f)", cluster.id, best_id, best_sim)

    logger.info("Matched %d/%d clusters to existing events", len(matches), len(clusters))
    return matches
