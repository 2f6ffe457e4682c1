"""Unit tests for monitor file loading and query building."""

from pathlib import Path

import pytest

from eventwatch.errors import ConfigurationError
from eventwatch.monitor import MAX_QUERY_LENGTH, build_query, load_monitor_file


class TestBuildQuery:
    def test_keywords_accounts_and_filters(self) -> None:
        query = build_query(keywords=["quake", "tsunami warning"], accounts=["@USGS", "AP"], filters="lang:en")
        assert query == '(quake OR "tsunami warning") (from:USGS OR from:AP) lang:en'

    def test_keywords_only(self) -> None:
        assert build_query(keywords=["flood"], accounts=[]) == "(flood)"


class TestLoadMonitorFile:
    def test_builds_query(self, tmp_path: Path) -> None:
        path = tmp_path / "crises.yml"
        path.write_text("keywords: [quake, wildfire]\nfilters: '-is:retweet'\nuse_full_archive: true\n")
        monitor = load_monitor_file(path)
        assert monitor.name == "crises"
        assert monitor.query == "(quake OR wildfire) -is:retweet"
        assert monitor.use_full_archive
        assert monitor.is_active

    def test_explicit_query_wins(self, tmp_path: Path) -> None:
        path = tmp_path / "m.yml"
        path.write_text("name: raw\nquery: 'earthquake has:media'\nkeywords: [ignored]\n")
        monitor = load_monitor_file(path)
        assert (monitor.name, monitor.query) == ("raw", "earthquake has:media")

    def test_long_query_is_truncated(self, tmp_path: Path) -> None:
        keywords = "\n".join(f"  - keyword{i:03d}" for i in range(100))
        path = tmp_path / "long.yml"
        path.write_text(f"keywords:\n{keywords}\n")
        monitor = load_monitor_file(path)
        assert len(monitor.query) <= MAX_QUERY_LENGTH
        assert monitor.query.startswith("(keyword000 OR keyword001")

    def test_empty_monitor_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("name: nothing\n")
        with pytest.raises(ConfigurationError):
            load_monitor_file(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            load_monitor_file(tmp_path / "absent.yml")
