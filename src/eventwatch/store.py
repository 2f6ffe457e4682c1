"""SQLite-backed store for posts, events, their history and batch records."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from eventwatch.errors import DataIntegrityError
from eventwatch.models import (
    Batch,
    Event,
    EventCentroid,
    EventHistory,
    EventPostLink,
    MonitorConfig,
    Post,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS monitor_config (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    name             TEXT NOT NULL,
    x_query          TEXT NOT NULL,
    use_full_archive INTEGER NOT NULL DEFAULT 0,
    is_active        INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS batches (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    status               TEXT NOT NULL,
    posts_ingested       INTEGER NOT NULL DEFAULT 0,
    posts_passed_quality INTEGER NOT NULL DEFAULT 0,
    clusters_created     INTEGER NOT NULL DEFAULT 0,
    started_at           TEXT NOT NULL,
    completed_at         TEXT,
    error_message        TEXT,
    errors               TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS posts (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    x_post_id          TEXT NOT NULL UNIQUE,
    author_id          TEXT NOT NULL,
    author_username    TEXT,
    author_followers   INTEGER,
    author_verified    INTEGER,
    account_created_at TEXT,
    content            TEXT NOT NULL,
    media_urls         TEXT NOT NULL DEFAULT '[]',
    likes              INTEGER NOT NULL DEFAULT 0,
    retweets           INTEGER NOT NULL DEFAULT 0,
    replies            INTEGER NOT NULL DEFAULT 0,
    posted_at          TEXT NOT NULL,
    embedding          TEXT,
    quality_score      REAL,
    quality_passed     INTEGER,
    batch_id           INTEGER REFERENCES batches(id),
    ingested_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS events (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    version            INTEGER NOT NULL DEFAULT 1,
    title              TEXT NOT NULL,
    summary            TEXT NOT NULL,
    event_type         TEXT,
    confidence_score   REAL,
    post_count         INTEGER NOT NULL DEFAULT 0,
    centroid_embedding TEXT,
    has_location       INTEGER NOT NULL DEFAULT 0,
    location_name      TEXT,
    country            TEXT,
    latitude           REAL,
    longitude          REAL,
    h3_index_res4      TEXT,
    h3_index_res6      TEXT,
    h3_index_res8      TEXT,
    earliest_post_at   TEXT,
    latest_post_at     TEXT,
    batch_id           INTEGER REFERENCES batches(id),
    created_at         TEXT NOT NULL,
    expires_at         TEXT
);

CREATE TABLE IF NOT EXISTS event_history (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id    INTEGER NOT NULL REFERENCES events(id),
    version     INTEGER NOT NULL,
    title       TEXT,
    summary     TEXT,
    post_count  INTEGER,
    changed_at  TEXT NOT NULL,
    change_type TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS event_posts (
    event_id         INTEGER NOT NULL REFERENCES events(id),
    post_id          INTEGER NOT NULL REFERENCES posts(id),
    similarity_score REAL,
    PRIMARY KEY (event_id, post_id)
);
"""

_EVENT_COLUMNS = (
    "version, title, summary, event_type, confidence_score, post_count, centroid_embedding, "
    "has_location, location_name, country, latitude, longitude, h3_index_res4, h3_index_res6, "
    "h3_index_res8, earliest_post_at, latest_post_at, batch_id, created_at, expires_at"
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteEventStore:
    """Event detection persistence backed by a single SQLite file."""

    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._init_db()

    # ── monitor config ──────────────────────────────────────────────────

    def get_active_monitor(self) -> MonitorConfig | None:
        with self._session() as con:
            row = con.execute(
                "SELECT * FROM monitor_config WHERE is_active = 1 ORDER BY id DESC LIMIT 1"
            ).fetchone()
        if row is None:
            return None
        return MonitorConfig(
            id=row["id"],
            name=row["name"],
            query=row["x_query"],
            is_active=True,
            use_full_archive=bool(row["use_full_archive"]),
        )

    def save_monitor(self, monitor: MonitorConfig, now: datetime) -> int:
        """Insert *monitor*; when it is active every other configuration is deactivated."""
        with self._session() as con:
            if monitor.is_active:
                con.execute("UPDATE monitor_config SET is_active = 0")
            cur = con.execute(
                """
                INSERT INTO monitor_config (name, x_query, use_full_archive, is_active, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (monitor.name, monitor.query, int(monitor.use_full_archive), int(monitor.is_active), now.isoformat()),
            )
            return int(cur.lastrowid)

    # ── batches ─────────────────────────────────────────────────────────

    def create_batch(self, started_at: datetime) -> Batch:
        with self._session() as con:
            cur = con.execute(
                "INSERT INTO batches (status, started_at) VALUES ('processing', ?)",
                (started_at.isoformat(),),
            )
            batch_id = int(cur.lastrowid)
        return Batch(id=batch_id, status="processing", started_at=started_at)

    def update_batch(self, batch: Batch) -> None:
        with self._session() as con:
            con.execute(
                """
                UPDATE batches
                   SET status = ?, posts_ingested = ?, posts_passed_quality = ?,
                       clusters_created = ?, completed_at = ?, error_message = ?, errors = ?
                 WHERE id = ?
                """,
                (
                    batch.status,
                    batch.posts_ingested,
                    batch.posts_passed_quality,
                    batch.clusters_created,
                    _iso(batch.completed_at),
                    batch.error_message,
                    json.dumps(batch.errors),
                    batch.id,
                ),
            )

    def get_batch(self, batch_id: int) -> Batch | None:
        with self._session() as con:
            row = con.execute("SELECT * FROM batches WHERE id = ?", (batch_id,)).fetchone()
        if row is None:
            return None
        return Batch(
            id=row["id"],
            status=row["status"],
            posts_ingested=row["posts_ingested"],
            posts_passed_quality=row["posts_passed_quality"],
            clusters_created=row["clusters_created"],
            started_at=_dt(row["started_at"]),
            completed_at=_dt(row["completed_at"]),
            error_message=row["error_message"],
            errors=json.loads(row["errors"]),
        )

    # ── posts ───────────────────────────────────────────────────────────

    def upsert_post(self, post: Post, *, quality_passed: bool = True) -> int:
        """Insert or refresh a post keyed by its provider id; return the row id."""
        with self._session() as con:
            con.execute(
                """
                INSERT INTO posts
                    (x_post_id, author_id, author_username, author_followers, author_verified,
                     account_created_at, content, media_urls, likes, retweets, replies, posted_at,
                     embedding, quality_score, quality_passed, batch_id, ingested_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, datetime('now'))
                ON CONFLICT(x_post_id) DO UPDATE SET
                    likes = excluded.likes,
                    retweets = excluded.retweets,
                    replies = excluded.replies,
                    author_followers = excluded.author_followers,
                    embedding = excluded.embedding,
                    quality_score = excluded.quality_score,
                    quality_passed = excluded.quality_passed,
                    batch_id = excluded.batch_id
                """,
                (
                    post.provider_post_id,
                    post.author_id,
                    post.author_username,
                    post.author_followers,
                    int(post.author_verified),
                    _iso(post.account_created_at),
                    post.content,
                    json.dumps(post.media_urls),
                    post.likes,
                    post.shares,
                    post.replies,
                    post.posted_at.isoformat(),
                    json.dumps(post.embedding),
                    post.quality_score,
                    int(quality_passed),
                    post.batch_id,
                ),
            )
            row = con.execute(
                "SELECT id FROM posts WHERE x_post_id = ?", (post.provider_post_id,)
            ).fetchone()
        return int(row["id"])

    def latest_post_id(self) -> str | None:
        """Highest provider post id ingested so far (the search cursor)."""
        with self._session() as con:
            # Provider ids are decimal strings; order numerically without overflow.
            row = con.execute(
                "SELECT x_post_id FROM posts ORDER BY LENGTH(x_post_id) DESC, x_post_id DESC LIMIT 1"
            ).fetchone()
        return row["x_post_id"] if row else None

    def post_row_id(self, provider_post_id: str) -> int | None:
        with self._session() as con:
            row = con.execute(
                "SELECT id FROM posts WHERE x_post_id = ?", (provider_post_id,)
            ).fetchone()
        return int(row["id"]) if row else None

    # ── events ──────────────────────────────────────────────────────────

    def event_centroids(self) -> list[EventCentroid]:
        with self._session() as con:
            rows = con.execute(
                "SELECT id, centroid_embedding FROM events WHERE centroid_embedding IS NOT NULL"
            ).fetchall()
        return [EventCentroid(event_id=r["id"], centroid=json.loads(r["centroid_embedding"])) for r in rows]

    def get_event(self, event_id: int) -> Event | None:
        with self._session() as con:
            row = con.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        return self._row_to_event(row) if row else None

    def insert_event(self, event: Event) -> int:
        with self._session() as con:
            cur = con.execute(
                f"INSERT INTO events ({_EVENT_COLUMNS}) VALUES ({', '.join('?' * 20)})",
                self._event_values(event),
            )
            return int(cur.lastrowid)

    def update_event(self, event: Event, *, expected_version: int) -> None:
        """Overwrite the event row if it is still at *expected_version*."""
        assignments = ", ".join(f"{col.strip()} = ?" for col in _EVENT_COLUMNS.split(","))
        with self._session() as con:
            cur = con.execute(
                f"UPDATE events SET {assignments} WHERE id = ? AND version = ?",
                (*self._event_values(event), event.id, expected_version),
            )
            if cur.rowcount == 0:
                raise DataIntegrityError(
                    f"Event {event.id} is missing or no longer at version {expected_version}"
                )

    def insert_history(self, entry: EventHistory) -> int:
        with self._session() as con:
            cur = con.execute(
                """
                INSERT INTO event_history
                    (event_id, version, title, summary, post_count, changed_at, change_type)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.event_id,
                    entry.version,
                    entry.title,
                    entry.summary,
                    entry.post_count,
                    entry.changed_at.isoformat(),
                    entry.change_type,
                ),
            )
            return int(cur.lastrowid)

    def history(self, event_id: int) -> list[EventHistory]:
        with self._session() as con:
            rows = con.execute(
                "SELECT * FROM event_history WHERE event_id = ? ORDER BY id", (event_id,)
            ).fetchall()
        return [
            EventHistory(
                id=r["id"],
                event_id=r["event_id"],
                version=r["version"],
                title=r["title"],
                summary=r["summary"],
                post_count=r["post_count"],
                changed_at=_dt(r["changed_at"]),
                change_type=r["change_type"],
            )
            for r in rows
        ]

    def upsert_event_post(self, event_id: int, post_id: int, similarity: float) -> None:
        with self._session() as con:
            con.execute(
                """
                INSERT INTO event_posts (event_id, post_id, similarity_score) VALUES (?, ?, ?)
                ON CONFLICT(event_id, post_id) DO UPDATE SET similarity_score = excluded.similarity_score
                """,
                (event_id, post_id, similarity),
            )

    def event_links(self, event_id: int) -> list[EventPostLink]:
        with self._session() as con:
            rows = con.execute(
                "SELECT * FROM event_posts WHERE event_id = ? ORDER BY post_id", (event_id,)
            ).fetchall()
        return [
            EventPostLink(event_id=r["event_id"], post_id=r["post_id"], similarity_score=r["similarity_score"])
            for r in rows
        ]

    def purge_expired(self, now: datetime) -> int:
        """Delete events past their expiry together with their history and links."""
        with self._session() as con:
            ids = [
                r["id"]
                for r in con.execute(
                    "SELECT id FROM events WHERE expires_at IS NOT NULL AND expires_at <= ?",
                    (now.isoformat(),),
                ).fetchall()
            ]
            if not ids:
                return 0
            marks = ", ".join("?" * len(ids))
            con.execute(f"DELETE FROM event_posts WHERE event_id IN ({marks})", ids)
            con.execute(f"DELETE FROM event_history WHERE event_id IN ({marks})", ids)
            con.execute(f"DELETE FROM events WHERE id IN ({marks})", ids)
        logger.info("Purged %d expired events", len(ids))
        return len(ids)

    # ── private ─────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self._db_path))
        con.row_factory = sqlite3.Row
        return con

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
            con.commit()
        except Exception:
            con.rollback()
            raise
        finally:
            con.close()

    def _init_db(self) -> None:
        with closing(self._connect()) as con:
            con.executescript(_SCHEMA)

    @staticmethod
    def _event_values(event: Event) -> tuple[Any, ...]:
        return (
            event.version,
            event.title,
            event.summary,
            event.event_type,
            event.confidence_score,
            event.post_count,
            json.dumps(event.centroid) if event.centroid is not None else None,
            int(event.has_location),
            event.location_name,
            event.country,
            event.latitude,
            event.longitude,
            event.h3_res4,
            event.h3_res6,
            event.h3_res8,
            _iso(event.earliest_post_at),
            _iso(event.latest_post_at),
            event.batch_id,
            _iso(event.created_at),
            _iso(event.expires_at),
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        centroid = row["centroid_embedding"]
        return Event(
            id=row["id"],
            version=row["version"],
            title=row["title"],
            summary=row["summary"],
            event_type=row["event_type"],
            confidence_score=row["confidence_score"],
            post_count=row["post_count"],
            centroid=json.loads(centroid) if centroid else None,
            has_location=bool(row["has_location"]),
            location_name=row["location_name"],
            country=row["country"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            h3_res4=row["h3_index_res4"],
            h3_res6=row["h3_index_res6"],
            h3_res8=row["h3_index_res8"],
            earliest_post_at=_dt(row["earliest_post_at"]),
            latest_post_at=_dt(row["latest_post_at"]),
            batch_id=row["batch_id"],
            created_at=_dt(row["created_at"]),
            expires_at=_dt(row["expires_at"]),
        )
