"""Tests for create-or-update event persistence."""

from datetime import UTC, datetime, timedelta

import pytest

from eventwatch.errors import DataIntegrityError
from eventwatch.models import Cluster, EventSummary, GeocodedLocation, Post
from eventwatch.versioning import save_cluster_event

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _post(post_id: str, minutes: int) -> Post:
    return Post(
        provider_post_id=post_id,
        author_id="u1",
        content=f"post {post_id}",
        posted_at=NOW - timedelta(minutes=minutes),
        embedding=[1.0, 0.0],
    )


def _cluster(store, ids_and_ages: list[tuple[str, int]], centroid: list[float], persist: bool = True) -> Cluster:
    posts = [_post(pid, age) for pid, age in ids_and_ages]
    if persist:
        for p in posts:
            store.upsert_post(p)
    return Cluster(
        id="cluster-0",
        posts=posts,
        similarities=[1.0] + [0.9] * (len(posts) - 1),
        centroid=centroid,
    )


def _summary(title: str = "Quake in Lima") -> EventSummary:
    return EventSummary(title=title, summary=f"{title}.", event_type="humanitarian", confidence=0.8)


_LIMA = GeocodedLocation(
    location_name="Lima, Peru",
    country="Peru",
    latitude=-12.05,
    longitude=-77.04,
    h3_cells={4: "r4", 6: "r6", 8: "r8"},
)


class TestCreate:
    def test_new_event_is_version_one(self, store) -> None:
        cluster = _cluster(store, [("1", 30), ("2", 20), ("3", 10)], [1.0, 0.0])
        outcome = save_cluster_event(
            store, cluster, _summary(), _LIMA, None, batch_id=None, retention_days=7, now=NOW
        )
        assert outcome.created
        event = store.get_event(outcome.event_id)
        assert event.version == 1
        assert event.post_count == 3
        assert event.expires_at == event.created_at + timedelta(days=7)
        assert event.earliest_post_at == NOW - timedelta(minutes=30)
        assert event.latest_post_at == NOW - timedelta(minutes=10)
        assert event.has_location
        assert (event.country, event.h3_res4, event.h3_res6, event.h3_res8) == ("Peru", "r4", "r6", "r8")

        history = store.history(outcome.event_id)
        assert [(h.version, h.change_type, h.post_count) for h in history] == [(1, "created", 3)]
        assert len(store.event_links(outcome.event_id)) == 3

    def test_without_location(self, store) -> None:
        cluster = _cluster(store, [("1", 5)], [1.0, 0.0])
        outcome = save_cluster_event(
            store, cluster, _summary(), None, None, batch_id=None, retention_days=1, now=NOW
        )
        event = store.get_event(outcome.event_id)
        assert not event.has_location
        assert event.latitude is None


class TestUpdate:
    def _seed(self, store) -> int:
        cluster = _cluster(store, [("1", 60), ("2", 50), ("3", 40)], [1.0, 0.0])
        return save_cluster_event(
            store, cluster, _summary("First"), None, None, batch_id=None, retention_days=7, now=NOW
        ).event_id

    def test_update_bumps_version_and_snapshots(self, store) -> None:
        event_id = self._seed(store)
        before = store.get_event(event_id)

        cluster = _cluster(store, [("4", 5), ("5", 1)], [0.0, 1.0])
        outcome = save_cluster_event(
            store, cluster, _summary("Second"), None, event_id,
            batch_id=None, retention_days=7, now=NOW + timedelta(hours=1),
        )

        after = store.get_event(event_id)
        assert not outcome.created
        assert after.version == before.version + 1
        assert after.title == "Second"
        assert after.post_count == 5
        assert after.centroid == [0.0, 1.0]
        assert after.latest_post_at == NOW - timedelta(minutes=1)
        assert after.earliest_post_at == before.earliest_post_at
        assert after.expires_at == before.expires_at

        history = store.history(event_id)
        assert len(history) == after.version
        snapshot = history[-1]
        assert snapshot.change_type == "updated"
        assert (snapshot.version, snapshot.title, snapshot.post_count) == (1, "First", 3)
        assert len(store.event_links(event_id)) == 5

    def test_relinking_same_posts_is_idempotent(self, store) -> None:
        event_id = self._seed(store)
        cluster = _cluster(store, [("1", 60), ("2", 50), ("3", 40)], [1.0, 0.0])
        save_cluster_event(store, cluster, _summary(), None, event_id, batch_id=None, retention_days=7, now=NOW)
        assert len(store.event_links(event_id)) == 3
        assert store.get_event(event_id).post_count == 6

    def test_missing_event_raises(self, store) -> None:
        cluster = _cluster(store, [("1", 5)], [1.0, 0.0])
        with pytest.raises(DataIntegrityError):
            save_cluster_event(store, cluster, _summary(), None, 999, batch_id=None, retention_days=7, now=NOW)
        assert store.history(999) == []

    def test_stale_version_writes_nothing(self, store, monkeypatch) -> None:
        event_id = self._seed(store)

        def stale(event, *, expected_version):
            raise DataIntegrityError(f"Event {event.id} no longer at version {expected_version}")

        monkeypatch.setattr(store, "update_event", stale)
        cluster = _cluster(store, [("4", 5)], [0.0, 1.0])
        with pytest.raises(DataIntegrityError):
            save_cluster_event(store, cluster, _summary("Second"), None, event_id, batch_id=None, retention_days=7, now=NOW)

        event = store.get_event(event_id)
        assert event.version == 1
        assert [(h.version, h.change_type) for h in store.history(event_id)] == [(1, "created")]
        assert len(store.event_links(event_id)) == 3

    def test_two_clusters_updating_same_event_accumulate(self, store) -> None:
        event_id = self._seed(store)
        first = _cluster(store, [("4", 5), ("5", 4)], [0.0, 1.0])
        second = _cluster(store, [("6", 3), ("7", 2), ("8", 1)], [0.6, 0.8])

        save_cluster_event(store, first, _summary("A"), None, event_id, batch_id=None, retention_days=7, now=NOW)
        outcome = save_cluster_event(
            store, second, _summary("B"), None, event_id, batch_id=None, retention_days=7, now=NOW
        )

        event = store.get_event(event_id)
        assert outcome.version == 3
        assert event.version == 3
        assert event.post_count == 3 + 2 + 3
        assert event.title == "B"
        assert event.centroid == [0.6, 0.8]
        history = store.history(event_id)
        assert [(h.version, h.change_type, h.title) for h in history] == [
            (1, "created", "First"),
            (1, "updated", "First"),
            (2, "updated", "A"),
        ]
        assert len(store.event_links(event_id)) == 8


class TestLinks:
    def test_unstored_post_is_skipped(self, store) -> None:
        cluster = _cluster(store, [("1", 5), ("2", 4)], [1.0, 0.0])
        stray = _post("ghost", 3)
        cluster = cluster.model_copy(
            update={"posts": [*cluster.posts, stray], "similarities": [*cluster.similarities, 0.8]}
        )
        outcome = save_cluster_event(
            store, cluster, _summary(), None, None, batch_id=None, retention_days=7, now=NOW
        )
        assert len(outcome.skipped_links) == 1
        assert "ghost" in outcome.skipped_links[0]
        assert len(store.event_links(outcome.event_id)) == 2
        assert store.get_event(outcome.event_id).post_count == 3
