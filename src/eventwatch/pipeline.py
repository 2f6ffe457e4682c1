"""Pipeline orchestration: ingest → filter+embed → cluster → match → summarise → geocode → persist."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from eventwatch import config
from eventwatch.cluster import cluster_posts
from eventwatch.errors import ConfigurationError, DataIntegrityError, ExternalServiceError, ParseError
from eventwatch.geocode import MapboxGeocoder
from eventwatch.llm import GrokClient
from eventwatch.matcher import match_clusters_to_events
from eventwatch.models import (
    AuthorProfile,
    Batch,
    BatchConfig,
    Cluster,
    ClusterConfig,
    EventSummary,
    GeocodedLocation,
    Post,
    QualityConfig,
    RawPost,
)
from eventwatch.providers import EventStore, GeocodingProvider, LanguageModelProvider, SocialSearchProvider
from eventwatch.quality import filter_posts_by_quality
from eventwatch.store import SQLiteEventStore
from eventwatch.versioning import save_cluster_event
from eventwatch.x_client import XClient

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PipelineState(BaseModel):
    """Everything one batch knows; each stage's result is merged into it."""

    batch_id: int
    monitor_query: str
    use_full_archive: bool = False
    raw_posts: list[RawPost] = Field(default_factory=list)
    authors: dict[str, AuthorProfile] = Field(default_factory=dict)
    posts_passed_quality: int = 0
    posts: list[Post] = Field(default_factory=list)
    clusters: list[Cluster] = Field(default_factory=list)
    event_matches: dict[str, int] = Field(default_factory=dict)
    summaries: dict[str, EventSummary] = Field(default_factory=dict)
    geocoded_locations: dict[str, GeocodedLocation | None] = Field(default_factory=dict)
    saved_events: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)


@dataclass
class PipelineContext:
    """Collaborators and settings shared by every stage."""

    search: SocialSearchProvider
    llm: LanguageModelProvider
    geocoder: GeocodingProvider
    store: EventStore
    quality: QualityConfig = field(default_factory=QualityConfig)
    clustering: ClusterConfig = field(default_factory=ClusterConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    now: Callable[[], datetime] = _utcnow


Stage = Callable[[PipelineState, PipelineContext], dict[str, Any]]


# ── Stages ─────────────────────────────────────────────────────────────────


def ingest_stage(state: PipelineState, ctx: PipelineContext) -> dict[str, Any]:
    """Fetch new posts past the stored cursor plus their authors."""
    since_id = ctx.store.latest_post_id()
    try:
        response = ctx.search.search_posts(
            state.monitor_query,
            ctx.batch.max_posts_per_batch,
            since_id,
            full_archive=state.use_full_archive,
        )
        if not response.posts:
            logger.info("No new posts found")
            return {"raw_posts": []}
        author_ids = list(dict.fromkeys(p.author_id for p in response.posts))
        authors = ctx.search.get_users(author_ids)
    except ExternalServiceError as exc:
        logger.error("Error loading posts: %s", exc)
        return {"raw_posts": [], "errors": [f"Load posts error: {exc}"]}

    logger.info("Found %d posts from %d authors", len(response.posts), len(authors))
    return {"raw_posts": response.posts, "authors": authors}


def filter_embed_stage(state: PipelineState, ctx: PipelineContext) -> dict[str, Any]:
    """Drop low-quality posts, embed the rest and store them."""
    if not state.raw_posts:
        return {"posts": []}

    admitted = filter_posts_by_quality(
        state.raw_posts, state.authors, ctx.quality, ctx.llm, now=ctx.now()
    )
    posts: list[Post] = []
    errors: list[str] = []
    for raw, quality in admitted:
        try:
            embedding = ctx.llm.embed(raw.text)
        except ExternalServiceError as exc:
            logger.error("Error embedding post %s: %s", raw.id, exc)
            errors.append(f"Embed error for post {raw.id}: {exc}")
            continue

        author = state.authors.get(raw.author_id)
        post = Post(
            provider_post_id=raw.id,
            author_id=raw.author_id,
            author_username=author.username if author else raw.author_username,
            author_followers=author.followers_count if author else None,
            author_verified=author.verified if author else False,
            account_created_at=author.created_at if author else None,
            content=raw.text,
            media_urls=raw.media_urls,
            likes=raw.likes,
            shares=raw.shares,
            replies=raw.replies,
            posted_at=raw.created_at,
            embedding=embedding,
            quality_score=quality.score,
            batch_id=state.batch_id,
        )
        ctx.store.upsert_post(post, quality_passed=True)
        posts.append(post)

    logger.info("Stored %d embedded posts", len(posts))
    return {"posts": posts, "posts_passed_quality": len(admitted), "errors": errors}


def cluster_stage(state: PipelineState, ctx: PipelineContext) -> dict[str, Any]:
    if not state.posts:
        return {"clusters": []}
    return {"clusters": cluster_posts(state.posts, ctx.clustering)}


def match_stage(state: PipelineState, ctx: PipelineContext) -> dict[str, Any]:
    if not state.clusters:
        return {"event_matches": {}}
    existing = ctx.store.event_centroids()
    matches = match_clusters_to_events(state.clusters, existing, ctx.clustering.event_match_threshold)
    return {"event_matches": matches}


def summarize_stage(state: PipelineState, ctx: PipelineContext) -> dict[str, Any]:
    summaries: dict[str, EventSummary] = {}
    errors: list[str] = []
    for cluster in state.clusters:
        try:
            summaries[cluster.id] = ctx.llm.summarize_cluster([p.content for p in cluster.posts])
        except (ExternalServiceError, ParseError) as exc:
            logger.error("Error summarizing cluster %s: %s", cluster.id, exc)
            errors.append(f"Summarize error for {cluster.id}: {exc}")
    return {"summaries": summaries, "errors": errors}


def geocode_stage(state: PipelineState, ctx: PipelineContext) -> dict[str, Any]:
    """Resolve summary locations; a cluster whose lookup fails gets no entry."""
    locations: dict[str, GeocodedLocation | None] = {}
    errors: list[str] = []
    for cluster_id, summary in state.summaries.items():
        if not summary.location:
            locations[cluster_id] = None
            continue
        try:
            locations[cluster_id] = ctx.geocoder.geocode(summary.location)
        except ExternalServiceError as exc:
            logger.error("Error geocoding '%s' for %s: %s", summary.location, cluster_id, exc)
            errors.append(f"Geocode error for {cluster_id}: {exc}")
    return {"geocoded_locations": locations, "errors": errors}


def persist_stage(state: PipelineState, ctx: PipelineContext) -> dict[str, Any]:
    saved: dict[str, int] = {}
    errors: list[str] = []
    now = ctx.now()
    for cluster in state.clusters:
        summary = state.summaries.get(cluster.id)
        if summary is None or cluster.id not in state.geocoded_locations:
            logger.info("Skipping %s: enrichment incomplete", cluster.id)
            continue
        try:
            outcome = save_cluster_event(
                ctx.store,
                cluster,
                summary,
                state.geocoded_locations[cluster.id],
                state.event_matches.get(cluster.id),
                batch_id=state.batch_id,
                retention_days=ctx.batch.retention_days,
                now=now,
            )
        except DataIntegrityError as exc:
            logger.error("Could not save %s: %s", cluster.id, exc)
            errors.append(f"Save error for {cluster.id}: {exc}")
            continue
        saved[cluster.id] = outcome.event_id
        errors.extend(outcome.skipped_links)

    logger.info("Saved %d events", len(saved))
    return {"saved_events": saved, "errors": errors}


STAGES: list[tuple[str, Stage]] = [
    ("ingest", ingest_stage),
    ("filter_embed", filter_embed_stage),
    ("cluster", cluster_stage),
    ("match", match_stage),
    ("summarize", summarize_stage),
    ("geocode", geocode_stage),
    ("persist", persist_stage),
]


def merge_state(state: PipelineState, update: dict[str, Any]) -> None:
    """Apply a stage result in place; ``errors`` accumulate, other keys replace."""
    for key, value in update.items():
        if key == "errors":
            state.errors.extend(value)
        else:
            setattr(state, key, value)


def execute_stages(state: PipelineState, ctx: PipelineContext) -> PipelineState:
    for name, stage in STAGES:
        logger.info("── stage: %s", name)
        merge_state(state, stage(state, ctx))
    return state


# ── Orchestrator ───────────────────────────────────────────────────────────


def _counters(state: PipelineState) -> dict[str, Any]:
    return {
        "posts_ingested": len(state.raw_posts),
        "posts_passed_quality": state.posts_passed_quality,
        "clusters_created": len(state.clusters),
        "errors": list(state.errors),
    }


def run_batch(ctx: PipelineContext) -> Batch:
    """Run one batch for the active monitor and return the finalized batch record.

    Unrecovered exceptions mark the batch ``failed`` and are re-raised.
    Callers must not run two batches at once against the same store.
    """
    monitor = ctx.store.get_active_monitor()
    if monitor is None:
        raise ConfigurationError("No active monitor configuration found")

    batch = ctx.store.create_batch(ctx.now())
    logger.info("=== batch %s start [monitor=%s] ===", batch.id, monitor.name)
    state = PipelineState(
        batch_id=batch.id,
        monitor_query=monitor.query,
        use_full_archive=monitor.use_full_archive,
    )

    try:
        execute_stages(state, ctx)
    except Exception as exc:
        logger.exception("Batch %s failed", batch.id)
        failed = batch.model_copy(
            update={
                **_counters(state),
                "status": "failed",
                "error_message": str(exc),
                "completed_at": ctx.now(),
            }
        )
        ctx.store.update_batch(failed)
        raise

    completed = batch.model_copy(
        update={
            **_counters(state),
            "status": "completed",
            "completed_at": ctx.now(),
        }
    )
    ctx.store.update_batch(completed)

    logger.info(
        "=== batch %s done: %d ingested, %d passed, %d clusters, %d events saved ===",
        batch.id,
        completed.posts_ingested,
        completed.posts_passed_quality,
        completed.clusters_created,
        len(state.saved_events),
    )
    if state.errors:
        logger.warning("%d non-fatal errors during processing: %s", len(state.errors), state.errors)
    return completed


def build_context() -> PipelineContext:
    """Wire the production providers from ``eventwatch.config``."""
    return PipelineContext(
        search=XClient(bearer_token=config.X_BEARER_TOKEN),
        llm=GrokClient(
            api_key=config.GROK_API_KEY,
            base_url=config.GROK_BASE_URL,
            chat_model=config.GROK_CHAT_MODEL,
            embedding_model=config.GROK_EMBEDDING_MODEL,
        ),
        geocoder=MapboxGeocoder(access_token=config.MAPBOX_GEOCODING_TOKEN),
        store=SQLiteEventStore(db_path=config.DB_PATH),
        quality=config.quality_config(),
        clustering=config.cluster_config(),
        batch=config.batch_config(),
    )
