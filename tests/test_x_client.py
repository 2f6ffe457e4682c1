"""Tests for the X API client using a mocked HTTP session."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from eventwatch.errors import ExternalServiceError
from eventwatch.x_client import XClient

_SEARCH_PAYLOAD = {
    "data": [
        {
            "id": "101",
            "text": "Shelling reported in the north",
            "author_id": "u1",
            "created_at": "2026-03-01T10:00:00.000Z",
            "public_metrics": {"like_count": 4, "retweet_count": 2, "reply_count": 1},
            "attachments": {"media_keys": ["m1", "m2"]},
        },
        {
            "id": "102",
            "text": "Second post",
            "author_id": "u2",
            "created_at": "2026-03-01T11:00:00.000Z",
        },
    ],
    "includes": {
        "users": [{"id": "u1", "username": "reporter"}],
        "media": [
            {"media_key": "m1", "url": "https://img.example/1.jpg"},
            {"media_key": "m2", "preview_image_url": "https://img.example/2.jpg"},
        ],
    },
    "meta": {"result_count": 2, "next_token": "abc"},
}


def _resp(status: int = 200, payload: dict | None = None, headers: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = payload or {}
    resp.text = str(payload)
    return resp


class CountingLimiter:
    def __init__(self) -> None:
        self.calls = 0

    def acquire(self) -> None:
        self.calls += 1


def _client(session: MagicMock, recent=None, archive=None) -> XClient:
    return XClient(
        "token",
        session=session,
        recent_limiter=recent or CountingLimiter(),
        archive_limiter=archive or CountingLimiter(),
    )


class TestSearchPosts:
    def test_requires_token(self) -> None:
        with pytest.raises(ValueError):
            XClient("")

    def test_parses_posts_media_and_authors(self) -> None:
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _resp(payload=_SEARCH_PAYLOAD)
        recent = CountingLimiter()

        result = _client(session, recent=recent).search_posts("shelling", 50, since_id="99")

        assert recent.calls == 1
        assert session.headers["Authorization"] == "Bearer token"
        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert url.endswith("/tweets/search/recent")
        assert params["since_id"] == "99"
        assert params["max_results"] == 50

        assert result.next_token == "abc"
        first, second = result.posts
        assert first.author_username == "reporter"
        assert (first.likes, first.shares, first.replies) == (4, 2, 1)
        assert first.engagement == 7
        assert first.media_urls == ["https://img.example/1.jpg", "https://img.example/2.jpg"]
        assert second.author_username is None
        assert second.engagement == 0

    def test_full_archive_uses_its_own_limiter(self) -> None:
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _resp(payload={"data": []})
        recent, archive = CountingLimiter(), CountingLimiter()

        result = _client(session, recent, archive).search_posts("q", 500, full_archive=True)

        assert result.posts == []
        assert (recent.calls, archive.calls) == (0, 1)
        assert session.get.call_args.args[0].endswith("/tweets/search/all")
        assert session.get.call_args.kwargs["params"]["max_results"] == 100

    def test_http_error_raises(self) -> None:
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _resp(status=503, payload={"title": "Service Unavailable"})
        with pytest.raises(ExternalServiceError) as exc_info:
            _client(session).search_posts("q", 10)
        assert exc_info.value.status_code == 503

    def test_network_error_raises(self) -> None:
        session = MagicMock()
        session.headers = {}
        session.get.side_effect = requests.ConnectionError("boom")
        with pytest.raises(ExternalServiceError):
            _client(session).search_posts("q", 10)

    @patch("eventwatch.x_client.time.sleep", autospec=True)
    def test_retries_once_after_429(self, mock_sleep: MagicMock) -> None:
        session = MagicMock()
        session.headers = {}
        session.get.side_effect = [
            _resp(status=429, headers={"Retry-After": "3"}),
            _resp(payload={"data": []}),
        ]
        _client(session).search_posts("q", 10)
        mock_sleep.assert_called_once_with(3)
        assert session.get.call_count == 2


class TestGetUsers:
    def test_chunks_and_parses(self) -> None:
        session = MagicMock()
        session.headers = {}
        session.get.side_effect = [
            _resp(
                payload={
                    "data": [
                        {
                            "id": "u1",
                            "username": "reporter",
                            "verified": True,
                            "created_at": "2020-01-01T00:00:00.000Z",
                            "public_metrics": {"followers_count": 1200},
                        }
                    ]
                }
            ),
            _resp(status=500),
        ]
        recent = CountingLimiter()
        ids = [f"u{i}" for i in range(1, 151)]

        users = _client(session, recent=recent).get_users(ids)

        assert recent.calls == 2
        assert session.get.call_count == 2
        assert list(users) == ["u1"]
        profile = users["u1"]
        assert profile.followers_count == 1200
        assert profile.verified
        assert profile.created_at.year == 2020
