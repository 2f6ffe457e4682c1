"""X API v2 search and user-lookup client (read-only)."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any

import requests

from eventwatch.errors import ExternalServiceError
from eventwatch.models import AuthorProfile, RawPost, SearchResult
from eventwatch.rate_limiter import RateLimiter, full_archive_limiter, recent_search_limiter

logger = logging.getLogger(__name__)

_API_BASE = "https://api.twitter.com/2"
_RECENT_SEARCH_URL = f"{_API_BASE}/tweets/search/recent"
_FULL_ARCHIVE_URL = f"{_API_BASE}/tweets/search/all"
_USERS_URL = f"{_API_BASE}/users"

# Fields we always request.
_TWEET_FIELDS = "id,text,author_id,created_at,public_metrics,attachments"
_USER_FIELDS = "id,username,public_metrics,verified,created_at"
_EXPANSIONS = "author_id,attachments.media_keys"
_MEDIA_FIELDS = "url,preview_image_url,type"

# The users endpoint accepts at most 100 ids per request.
_USER_CHUNK = 100


class XClient:
    """Thin wrapper around the X v2 search and users endpoints."""

    def __init__(
        self,
        bearer_token: str,
        *,
        recent_limiter: RateLimiter = recent_search_limiter,
        archive_limiter: RateLimiter = full_archive_limiter,
        session: requests.Session | None = None,
    ) -> None:
        if not bearer_token:
            raise ValueError("X_BEARER_TOKEN is required but was empty.")
        self._recent_limiter = recent_limiter
        self._archive_limiter = archive_limiter
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {bearer_token}"})

    # ── public ──────────────────────────────────────────────────────────
    def search_posts(
        self,
        query: str,
        max_results: int,
        since_id: str | None = None,
        *,
        full_archive: bool = False,
    ) -> SearchResult:
        """Run one search page against recent search or the full archive."""
        params: dict[str, Any] = {
            "query": query,
            "max_results": min(max(max_results, 10), 100),
            "tweet.fields": _TWEET_FIELDS,
            "user.fields": _USER_FIELDS,
            "expansions": _EXPANSIONS,
            "media.fields": _MEDIA_FIELDS,
        }
        if since_id:
            params["since_id"] = since_id

        if full_archive:
            self._archive_limiter.acquire()
            data = self._get(_FULL_ARCHIVE_URL, params)
        else:
            self._recent_limiter.acquire()
            data = self._get(_RECENT_SEARCH_URL, params)

        result = _parse_search(data)
        logger.info("Fetched %d posts for query: %s", len(result.posts), query)
        return result

    def get_users(self, user_ids: list[str]) -> dict[str, AuthorProfile]:
        """Look up author profiles; chunks that fail are logged and skipped."""
        users: dict[str, AuthorProfile] = {}
        for start in range(0, len(user_ids), _USER_CHUNK):
            chunk = user_ids[start : start + _USER_CHUNK]
            self._recent_limiter.acquire()
            try:
                data = self._get(
                    _USERS_URL,
                    {"ids": ",".join(chunk), "user.fields": _USER_FIELDS},
                )
            except ExternalServiceError as exc:
                logger.error("Failed to fetch %d users: %s", len(chunk), exc)
                continue
            for raw in data.get("data", []) or []:
                profile = _parse_user(raw)
                users[profile.id] = profile
        return users

    # ── private ─────────────────────────────────────────────────────────
    def _get(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = self._session.get(url, params=params, timeout=30)
            if resp.status_code == 429:
                retry_after = int(resp.headers.get("Retry-After", "60"))
                logger.warning("Rate-limited; sleeping %ds", retry_after)
                time.sleep(retry_after)
                resp = self._session.get(url, params=params, timeout=30)
        except requests.RequestException as exc:
            raise ExternalServiceError(f"X API request failed: {exc}") from exc

        if resp.status_code != 200:
            raise ExternalServiceError(
                f"X API returned {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()  # type: ignore[no-any-return]
        except ValueError as exc:
            raise ExternalServiceError(f"X API returned invalid JSON: {exc}") from exc


def _parse_user(raw: dict[str, Any]) -> AuthorProfile:
    metrics = raw.get("public_metrics", {}) or {}
    created = raw.get("created_at")
    return AuthorProfile(
        id=str(raw["id"]),
        username=raw.get("username", ""),
        followers_count=metrics.get("followers_count", 0),
        verified=bool(raw.get("verified", False)),
        created_at=datetime.fromisoformat(created.replace("Z", "+00:00")) if created else None,
    )


def _parse_search(data: dict[str, Any]) -> SearchResult:
    tweets_raw: list[dict[str, Any]] = data.get("data", []) or []
    includes = data.get("includes", {}) or {}

    # Build lookup maps from expansions
    author_map: dict[str, str] = {
        str(u["id"]): u.get("username", "") for u in includes.get("users", [])
    }
    media_map: dict[str, dict[str, Any]] = {
        m["media_key"]: m for m in includes.get("media", []) if "media_key" in m
    }

    posts: list[RawPost] = []
    for raw in tweets_raw:
        try:
            pm = raw.get("public_metrics", {}) or {}
            media_urls: list[str] = []
            for key in (raw.get("attachments", {}) or {}).get("media_keys", []):
                media = media_map.get(key, {})
                url = media.get("url") or media.get("preview_image_url")
                if url:
                    media_urls.append(url)

            author_id = str(raw["author_id"])
            posts.append(
                RawPost(
                    id=str(raw["id"]),
                    text=raw.get("text", ""),
                    author_id=author_id,
                    author_username=author_map.get(author_id),
                    created_at=raw["created_at"],
                    likes=pm.get("like_count", 0),
                    shares=pm.get("retweet_count", 0),
                    replies=pm.get("reply_count", 0),
                    media_urls=media_urls,
                )
            )
        except (KeyError, ValueError) as exc:
            raise ExternalServiceError(f"Malformed post in X API response: {exc}") from exc

    meta = data.get("meta", {}) or {}
    return SearchResult(
        posts=posts,
        next_token=meta.get("next_token"),
        result_count=meta.get("result_count", len(posts)),
    )
