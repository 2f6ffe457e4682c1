"""Shared test doubles for the pipeline collaborators."""

from __future__ import annotations

from pathlib import Path

import pytest

from eventwatch.errors import ExternalServiceError
from eventwatch.models import AuthorProfile, EventSummary, GeocodedLocation, RawPost, SearchResult
from eventwatch.store import SQLiteEventStore


class FakeSearch:
    def __init__(self) -> None:
        self.posts: list[RawPost] = []
        self.users: dict[str, AuthorProfile] = {}
        self.fail_with: Exception | None = None
        self.calls: list[dict] = []

    def search_posts(self, query, max_results, since_id=None, *, full_archive=False):
        self.calls.append(
            {"query": query, "max_results": max_results, "since_id": since_id, "full_archive": full_archive}
        )
        if self.fail_with is not None:
            raise self.fail_with
        return SearchResult(posts=list(self.posts), result_count=len(self.posts))

    def get_users(self, user_ids):
        return {uid: self.users[uid] for uid in user_ids if uid in self.users}


class FakeLLM:
    """Embeds by looking the text up in ``vectors``; summaries echo the first post."""

    def __init__(self) -> None:
        self.vectors: dict[str, list[float]] = {}
        self.content_score = 1.0
        self.locations: dict[str, str | None] = {}
        self.fail_summary_for: set[str] = set()
        self.score_calls = 0

    def embed(self, text: str) -> list[float]:
        if text not in self.vectors:
            raise ExternalServiceError(f"no vector for {text!r}")
        return self.vectors[text]

    def score_content(self, text: str) -> float:
        self.score_calls += 1
        return self.content_score

    def summarize_cluster(self, texts: list[str]) -> EventSummary:
        if any(t in self.fail_summary_for for t in texts):
            raise ExternalServiceError("summarizer unavailable")
        return EventSummary(
            title=f"About {texts[0]}",
            summary=" / ".join(texts),
            event_type="other",
            confidence=0.9,
            location=self.locations.get(texts[0]),
        )


class FakeGeocoder:
    def __init__(self) -> None:
        self.fail_for: set[str] = set()
        self.queries: list[str] = []

    def geocode(self, place: str) -> GeocodedLocation | None:
        self.queries.append(place)
        if place in self.fail_for:
            raise ExternalServiceError("geocoder down")
        return GeocodedLocation(
            location_name=place,
            country="Testland",
            latitude=48.85,
            longitude=2.35,
            h3_cells={4: "cell4", 6: "cell6", 8: "cell8"},
        )


@pytest.fixture
def store(tmp_path: Path) -> SQLiteEventStore:
    return SQLiteEventStore(db_path=tmp_path / "events.sqlite3")


@pytest.fixture
def fake_search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_geocoder() -> FakeGeocoder:
    return FakeGeocoder()
