"""Create-or-update persistence of detected events with version history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from eventwatch.errors import DataIntegrityError
from eventwatch.models import Cluster, Event, EventHistory, EventSummary, GeocodedLocation
from eventwatch.providers import EventStore

logger = logging.getLogger(__name__)


@dataclass
class SaveOutcome:
    event_id: int
    created: bool
    version: int
    skipped_links: list[str] = field(default_factory=list)


def save_cluster_event(
    store: EventStore,
    cluster: Cluster,
    summary: EventSummary,
    location: GeocodedLocation | None,
    matched_event_id: int | None,
    *,
    batch_id: int | None,
    retention_days: int,
    now: datetime,
) -> SaveOutcome:
    """Persist one cluster as a new event or as the next version of a matched one.

    Raises ``DataIntegrityError`` when the matched event has vanished or was
    bumped by someone else in the meantime; nothing is written in that case.
    """
    if matched_event_id is not None:
        return _update_event(store, cluster, summary, matched_event_id, now=now)
    return _create_event(
        store, cluster, summary, location, batch_id=batch_id, retention_days=retention_days, now=now
    )


def _post_range(cluster: Cluster) -> tuple[datetime, datetime]:
    stamps = [p.posted_at for p in cluster.posts]
    return min(stamps), max(stamps)


def _update_event(
    store: EventStore,
    cluster: Cluster,
    summary: EventSummary,
    event_id: int,
    *,
    now: datetime,
) -> SaveOutcome:
    current = store.get_event(event_id)
    if current is None:
        raise DataIntegrityError(f"Matched event {event_id} no longer exists")

    _, latest = _post_range(cluster)
    if current.latest_post_at is not None:
        latest = max(latest, current.latest_post_at)
    updated = current.model_copy(
        update={
            "version": current.version + 1,
            "title": summary.title,
            "summary": summary.summary,
            "event_type": summary.event_type,
            "confidence_score": summary.confidence,
            "post_count": current.post_count + cluster.size,
            "centroid": cluster.centroid,
            "latest_post_at": latest,
        }
    )
    store.update_event(updated, expected_version=current.version)
    store.insert_history(
        EventHistory(
            event_id=event_id,
            version=current.version,
            title=current.title,
            summary=current.summary,
            post_count=current.post_count,
            changed_at=now,
            change_type="updated",
        )
    )
    logger.info("Updated event %d to version %d (+%d posts)", event_id, updated.version, cluster.size)

    skipped = _link_posts(store, event_id, cluster)
    return SaveOutcome(event_id=event_id, created=False, version=updated.version, skipped_links=skipped)


def _create_event(
    store: EventStore,
    cluster: Cluster,
    summary: EventSummary,
    location: GeocodedLocation | None,
    *,
    batch_id: int | None,
    retention_days: int,
    now: datetime,
) -> SaveOutcome:
    earliest, latest = _post_range(cluster)
    event = Event(
        version=1,
        title=summary.title,
        summary=summary.summary,
        event_type=summary.event_type,
        confidence_score=summary.confidence,
        post_count=cluster.size,
        centroid=cluster.centroid,
        has_location=location is not None,
        earliest_post_at=earliest,
        latest_post_at=latest,
        batch_id=batch_id,
        created_at=now,
        expires_at=now + timedelta(days=retention_days),
    )
    if location is not None:
        event = event.model_copy(
            update={
                "location_name": location.location_name,
                "country": location.country,
                "latitude": location.latitude,
                "longitude": location.longitude,
                "h3_res4": location.h3_cells.get(4),
                "h3_res6": location.h3_cells.get(6),
                "h3_res8": location.h3_cells.get(8),
            }
        )

    event_id = store.insert_event(event)
    store.insert_history(
        EventHistory(
            event_id=event_id,
            version=1,
            title=summary.title,
            summary=summary.summary,
            post_count=cluster.size,
            changed_at=now,
            change_type="created",
        )
    )
    logger.info("Created event %d '%s' from %d posts", event_id, summary.title, cluster.size)

    skipped = _link_posts(store, event_id, cluster)
    return SaveOutcome(event_id=event_id, created=True, version=1, skipped_links=skipped)


def _link_posts(store: EventStore, event_id: int, cluster: Cluster) -> list[str]:
    """Upsert one link per member; members without a stored post row are skipped."""
    skipped: list[str] = []
    for post, similarity in zip(cluster.posts, cluster.similarities, strict=True):
        row_id = store.post_row_id(post.provider_post_id)
        if row_id is None:
            message = f"Post {post.provider_post_id} not stored; cannot link to event {event_id}"
            logger.warning(message)
            skipped.append(message)
            continue
        store.upsert_event_post(event_id, row_id, similarity)
    return skipped
