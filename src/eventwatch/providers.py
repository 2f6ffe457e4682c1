"""Collaborator interfaces the pipeline is written against.

The concrete adapters live in ``x_client``, ``llm``, ``geocode`` and
``store``; tests substitute in-memory doubles.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from eventwatch.models import (
    AuthorProfile,
    Batch,
    Event,
    EventCentroid,
    EventHistory,
    EventSummary,
    GeocodedLocation,
    MonitorConfig,
    Post,
    SearchResult,
)


class SocialSearchProvider(Protocol):
    def search_posts(
        self,
        query: str,
        max_results: int,
        since_id: str | None = None,
        *,
        full_archive: bool = False,
    ) -> SearchResult: ...

    def get_users(self, user_ids: list[str]) -> dict[str, AuthorProfile]: ...


class LanguageModelProvider(Protocol):
    def embed(self, text: str) -> list[float]: ...

    def score_content(self, text: str) -> float: ...

    def summarize_cluster(self, texts: list[str]) -> EventSummary: ...


class GeocodingProvider(Protocol):
    def geocode(self, place: str) -> GeocodedLocation | None: ...


class EventStore(Protocol):
    # monitor + batches
    def get_active_monitor(self) -> MonitorConfig | None: ...

    def create_batch(self, started_at: datetime) -> Batch: ...

    def update_batch(self, batch: Batch) -> None: ...

    # posts
    def upsert_post(self, post: Post, *, quality_passed: bool = True) -> int: ...

    def latest_post_id(self) -> str | None: ...

    def post_row_id(self, provider_post_id: str) -> int | None: ...

    # events
    def event_centroids(self) -> list[EventCentroid]: ...

    def get_event(self, event_id: int) -> Event | None: ...

    def insert_event(self, event: Event) -> int: ...

    def update_event(self, event: Event, *, expected_version: int) -> None: ...

    def insert_history(self, entry: EventHistory) -> int: ...

    def upsert_event_post(self, event_id: int, post_id: int, similarity: float) -> None: ...
