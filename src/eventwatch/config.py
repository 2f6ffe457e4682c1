"""Centralised configuration loaded from environment variables and dotenv."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from eventwatch.models import BatchConfig, ClusterConfig, QualityConfig

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DB_PATH: Path = Path(os.getenv("EVENTWATCH_DB_PATH", str(PROJECT_ROOT / "var" / "eventwatch.sqlite3")))

# ── X API ──────────────────────────────────────────────────────────────────
X_BEARER_TOKEN: str = os.getenv("X_BEARER_TOKEN", "")

# ── Grok (OpenAI-compatible) ───────────────────────────────────────────────
GROK_API_KEY: str = os.getenv("GROK_API_KEY", "")
GROK_BASE_URL: str = os.getenv("GROK_BASE_URL", "https://api.x.ai/v1")
GROK_CHAT_MODEL: str = os.getenv("GROK_CHAT_MODEL", "grok-2")
GROK_EMBEDDING_MODEL: str = os.getenv("GROK_EMBEDDING_MODEL", "grok-embedding")

# ── Mapbox ─────────────────────────────────────────────────────────────────
MAPBOX_GEOCODING_TOKEN: str = os.getenv("MAPBOX_GEOCODING_TOKEN", "")

# ── Quality filter ─────────────────────────────────────────────────────────
MIN_ENGAGEMENT: int = int(os.getenv("EVENTWATCH_MIN_ENGAGEMENT", "5"))
MIN_FOLLOWERS: int = int(os.getenv("EVENTWATCH_MIN_FOLLOWERS", "100"))
MIN_ACCOUNT_AGE_DAYS: int = int(os.getenv("EVENTWATCH_MIN_ACCOUNT_AGE_DAYS", "30"))
REQUIRE_VERIFIED: bool = _flag("EVENTWATCH_REQUIRE_VERIFIED", "false")
ENABLE_CONTENT_SCORING: bool = _flag("EVENTWATCH_ENABLE_CONTENT_SCORING", "true")
MIN_CONTENT_SCORE: float = float(os.getenv("EVENTWATCH_MIN_CONTENT_SCORE", "0.3"))

# ── Clustering ─────────────────────────────────────────────────────────────
MIN_CLUSTER_SIZE: int = int(os.getenv("EVENTWATCH_MIN_CLUSTER_SIZE", "3"))
SIMILARITY_THRESHOLD: float = float(os.getenv("EVENTWATCH_SIMILARITY_THRESHOLD", "0.75"))
MAX_CLUSTERS: int = int(os.getenv("EVENTWATCH_MAX_CLUSTERS", "50"))
EVENT_MATCH_THRESHOLD: float = float(os.getenv("EVENTWATCH_EVENT_MATCH_THRESHOLD", "0.85"))

# ── Batch ──────────────────────────────────────────────────────────────────
# Recent Search returns at most 100 posts per page.
MAX_POSTS_PER_BATCH: int = int(os.getenv("EVENTWATCH_MAX_POSTS_PER_BATCH", "100"))
RETENTION_DAYS: int = int(os.getenv("EVENTWATCH_RETENTION_DAYS", "7"))


def quality_config() -> QualityConfig:
    return QualityConfig(
        min_engagement=MIN_ENGAGEMENT,
        min_followers=MIN_FOLLOWERS,
        min_account_age_days=MIN_ACCOUNT_AGE_DAYS,
        require_verified=REQUIRE_VERIFIED,
        enable_content_scoring=ENABLE_CONTENT_SCORING,
        min_content_score=MIN_CONTENT_SCORE,
    )


def cluster_config() -> ClusterConfig:
    return ClusterConfig(
        min_cluster_size=MIN_CLUSTER_SIZE,
        similarity_threshold=SIMILARITY_THRESHOLD,
        max_clusters=MAX_CLUSTERS,
        event_match_threshold=EVENT_MATCH_THRESHOLD,
    )


def batch_config() -> BatchConfig:
    return BatchConfig(
        max_posts_per_batch=MAX_POSTS_PER_BATCH,
        retention_days=RETENTION_DAYS,
    )
