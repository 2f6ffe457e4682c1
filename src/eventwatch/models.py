"""Domain models used across the pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

BatchStatus = Literal["processing", "completed", "failed"]
ChangeType = Literal["created", "updated"]

H3_RESOLUTIONS: tuple[int, ...] = (4, 6, 8)


# ── Configuration ──────────────────────────────────────────────────────────


class QualityConfig(BaseModel):
    min_engagement: int = Field(default=5, ge=0)
    min_followers: int = Field(default=100, ge=0)
    min_account_age_days: int = Field(default=30, ge=0)
    require_verified: bool = False
    enable_content_scoring: bool = True
    min_content_score: float = Field(default=0.3, ge=0.0, le=1.0)


class ClusterConfig(BaseModel):
    min_cluster_size: int = Field(default=3, ge=1)
    similarity_threshold: float = Field(default=0.75, le=1.0)
    max_clusters: int = Field(default=50, ge=0)
    event_match_threshold: float = Field(default=0.85, le=1.0)


class BatchConfig(BaseModel):
    max_posts_per_batch: int = Field(default=100, ge=1)
    retention_days: int = Field(default=7, ge=0)


class MonitorConfig(BaseModel):
    id: int | None = None
    name: str = "default"
    query: str
    is_active: bool = True
    use_full_archive: bool = False


# ── Provider payloads ──────────────────────────────────────────────────────


class AuthorProfile(BaseModel):
    id: str
    username: str = ""
    followers_count: int = 0
    verified: bool = False
    created_at: datetime | None = None


class RawPost(BaseModel):
    """A post exactly as the search provider handed it to us."""

    id: str
    text: str
    author_id: str
    author_username: str | None = None
    created_at: datetime
    likes: int = 0
    shares: int = 0
    replies: int = 0
    media_urls: list[str] = Field(default_factory=list)

    @property
    def engagement(self) -> int:
        return self.likes + self.shares + self.replies


class SearchResult(BaseModel):
    posts: list[RawPost] = Field(default_factory=list)
    next_token: str | None = None
    result_count: int = 0


class EventSummary(BaseModel):
    title: str
    summary: str
    event_type: str = "other"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    location: str | None = None


class GeocodedLocation(BaseModel):
    location_name: str
    country: str | None = None
    latitude: float
    longitude: float
    h3_cells: dict[int, str] = Field(default_factory=dict)


# ── Pipeline records ───────────────────────────────────────────────────────


class Post(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_post_id: str
    author_id: str
    author_username: str | None = None
    author_followers: int | None = None
    author_verified: bool = False
    account_created_at: datetime | None = None
    content: str
    media_urls: list[str] = Field(default_factory=list)
    likes: int = 0
    shares: int = 0
    replies: int = 0
    posted_at: datetime
    embedding: list[float] = Field(default_factory=list)
    quality_score: float = 0.0
    batch_id: int | None = None

    @property
    def engagement(self) -> int:
        return self.likes + self.shares + self.replies


class QualityBreakdown(BaseModel):
    engagement: float = 0.0
    account: float = 0.0
    content: float = 0.0


class QualityResult(BaseModel):
    score: float
    passed: bool
    breakdown: QualityBreakdown = Field(default_factory=QualityBreakdown)


class Cluster(BaseModel):
    id: str
    posts: list[Post] = Field(default_factory=list)
    similarities: list[float] = Field(default_factory=list)  # parallel to posts
    centroid: list[float] = Field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.posts)


class EventCentroid(BaseModel):
    event_id: int
    centroid: list[float]


class Event(BaseModel):
    id: int | None = None
    version: int = 1
    title: str
    summary: str
    event_type: str | None = None
    confidence_score: float | None = None
    post_count: int = 0
    centroid: list[float] | None = None
    has_location: bool = False
    location_name: str | None = None
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    h3_res4: str | None = None
    h3_res6: str | None = None
    h3_res8: str | None = None
    earliest_post_at: datetime | None = None
    latest_post_at: datetime | None = None
    batch_id: int | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None


class EventHistory(BaseModel):
    id: int | None = None
    event_id: int
    version: int
    title: str | None = None
    summary: str | None = None
    post_count: int | None = None
    changed_at: datetime
    change_type: ChangeType


class EventPostLink(BaseModel):
    event_id: int
    post_id: int
    similarity_score: float | None = None


class Batch(BaseModel):
    id: int | None = None
    status: BatchStatus = "processing"
    posts_ingested: int = 0
    posts_passed_quality: int = 0
    clusters_created: int = 0
    started_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None
    errors: list[str] = Field(default_factory=list)
