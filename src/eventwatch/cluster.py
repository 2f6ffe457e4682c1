"""Group embedded posts into candidate events by cosine similarity.

Single-pass leader clustering: the most engaged unassigned post seeds a
cluster, every unassigned post at least ``similarity_threshold`` away from
the seed joins it, and clusters smaller than ``min_cluster_size`` are
dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from eventwatch.models import Cluster, ClusterConfig, Post

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero magnitude."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    # Identical vectors are exactly 1.0 regardless of rounding in the dot product.
    if np.array_equal(va, vb):
        return 1.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


def compute_centroid(embeddings: Sequence[Sequence[float]]) -> list[float]:
    """Component-wise mean of *embeddings*, scaled to unit length.

    A zero-magnitude mean is returned as-is (all zeros) instead of being
    divided by zero.
    """
    if not embeddings:
        return []
    mean = np.mean(np.asarray(embeddings, dtype=float), axis=0)
    magnitude = float(np.linalg.norm(mean))
    if magnitude == 0.0:
        logger.warning("Cluster centroid has zero magnitude; leaving it un-normalized")
        return mean.tolist()
    return (mean / magnitude).tolist()


def cluster_posts(posts: list[Post], config: ClusterConfig) -> list[Cluster]:
    """Run one leader-clustering pass over *posts*."""
    if not posts:
        return []

    # Stable sort: equal engagement keeps arrival order.
    order = sorted(range(len(posts)), key=lambda i: posts[i].engagement, reverse=True)
    vectors = [np.asarray(p.embedding, dtype=float) for p in posts]

    assigned: set[int] = set()
    clusters: list[Cluster] = []

    for seed_idx in order:
        if seed_idx in assigned:
            continue
        if len(clusters) >= config.max_clusters:
            break

        members = [seed_idx]
        similarities = [1.0]
        assigned.add(seed_idx)

        for idx in order:
            if idx in assigned:
                continue
            sim = cosine_similarity(vectors[seed_idx], vectors[idx])
            if sim >= config.similarity_threshold:
                members.append(idx)
                similarities.append(sim)
                assigned.add(idx)

        if len(members) >= config.min_cluster_size:
            clusters.append(
                Cluster(
                    id=f"cluster-{len(clusters)}",
                    posts=[posts[i] for i in members],
                    similarities=similarities,
                    centroid=compute_centroid([posts[i].embedding for i in members]),
                )
            )
        else:
            # Too small: release the followers, but the seed stays consumed.
            for idx in members[1:]:
                assigned.discard(idx)

    logger.info("Clustered %d posts into %d candidate events", len(posts), len(clusters))
    return clusters
