"""Quality scoring for ingested posts."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from eventwatch.errors import ExternalServiceError
from eventwatch.models import AuthorProfile, QualityBreakdown, QualityConfig, QualityResult, RawPost
from eventwatch.providers import LanguageModelProvider

logger = logging.getLogger(__name__)

# ── Component weights ──────────────────────────────────────────────────────
_W_ENGAGEMENT = 0.3
_W_FOLLOWERS = 0.15
_W_ACCOUNT_AGE = 0.10
_W_VERIFIED = 0.05
_W_CONTENT = 0.4
# Used when content scoring is disabled or the model call fails.
_DEFAULT_CONTENT = 0.2


def _ratio(value: float, minimum: float) -> float:
    """``min(value / minimum, 1)``; a zero minimum is always satisfied."""
    if minimum <= 0:
        return 1.0
    return min(value / minimum, 1.0)


def account_age_days(created_at: datetime | None, now: datetime) -> int:
    if created_at is None:
        return 0
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    return max((now - created_at).days, 0)


def score_post(
    post: RawPost,
    author: AuthorProfile | None,
    config: QualityConfig,
    llm: LanguageModelProvider,
    now: datetime | None = None,
) -> QualityResult:
    """Compute the engagement + account + content quality score for one post."""
    now = now or datetime.now(UTC)

    engagement = _ratio(post.engagement, config.min_engagement) * _W_ENGAGEMENT

    account = 0.0
    if author is not None:
        account += _ratio(author.followers_count, config.min_followers) * _W_FOLLOWERS
        account += (
            _ratio(account_age_days(author.created_at, now), config.min_account_age_days)
            * _W_ACCOUNT_AGE
        )
        if author.verified:
            account += _W_VERIFIED

    if config.enable_content_scoring:
        try:
            content = llm.score_content(post.text) * _W_CONTENT
        except ExternalServiceError as exc:
            logger.warning("Content scoring failed for post %s: %s", post.id, exc)
            content = _DEFAULT_CONTENT
    else:
        content = _DEFAULT_CONTENT

    total = engagement + account + content
    passed = total >= config.min_content_score
    if config.require_verified and not (author and author.verified):
        passed = False

    return QualityResult(
        score=total,
        passed=passed,
        breakdown=QualityBreakdown(engagement=engagement, account=account, content=content),
    )


def filter_posts_by_quality(
    posts: list[RawPost],
    users: dict[str, AuthorProfile],
    config: QualityConfig,
    llm: LanguageModelProvider,
    now: datetime | None = None,
) -> list[tuple[RawPost, QualityResult]]:
    """Score posts one at a time and keep the ones that pass, in arrival order."""
    admitted: list[tuple[RawPost, QualityResult]] = []
    for post in posts:
        result = score_post(post, users.get(post.author_id), config, llm, now=now)
        if result.passed:
            admitted.append((post, result))
    logger.info(
        "Quality filter: %d total → %d passed (dropped %d)",
        len(posts),
        len(admitted),
        len(posts) - len(admitted),
    )
    return admitted
