"""Load monitor definitions from YAML and build X query strings."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from eventwatch.errors import ConfigurationError
from eventwatch.models import MonitorConfig

logger = logging.getLogger(__name__)

# X Recent Search rejects queries longer than 512 characters on Basic tier.
MAX_QUERY_LENGTH = 512


def _quote(term: str) -> str:
    return f'"{term}"' if " " in term else term


def _kw_clause(keywords: list[str]) -> str:
    return " OR ".join(_quote(kw) for kw in keywords)


def _acct_clause(accounts: list[str]) -> str:
    # Allow handles written as @name; X queries use from:name.
    return " OR ".join(f"from:{a.lstrip('@')}" for a in accounts)


def build_query(*, keywords: list[str], accounts: list[str], filters: str = "") -> str:
    parts: list[str] = []
    if keywords:
        parts.append(f"({_kw_clause(keywords)})")
    if accounts:
        parts.append(f"({_acct_clause(accounts)})")
    return f"{' '.join(parts)} {filters}".strip()


def load_monitor_file(path: Path) -> MonitorConfig:
    """Parse a monitor YAML file into an active ``MonitorConfig``.

    Recognised keys: ``name``, ``query`` (used verbatim), or ``keywords`` /
    ``accounts`` / ``filters`` to build one; ``use_full_archive``.
    """
    if not path.exists():
        raise ConfigurationError(f"Monitor file not found: {path}")
    with open(path) as fh:
        cfg: dict[str, Any] = yaml.safe_load(fh) or {}

    name = str(cfg.get("name") or path.stem)
    query: str = (cfg.get("query") or "").strip()

    if not query:
        keywords = [str(k).strip() for k in cfg.get("keywords", []) or [] if str(k).strip()]
        accounts = [str(a).strip() for a in cfg.get("accounts", []) or [] if str(a).strip()]
        filters = str(cfg.get("filters", "") or "")
        if not (keywords or accounts):
            raise ConfigurationError(f"Monitor '{name}' defines no query, keywords or accounts")

        query = build_query(keywords=keywords, accounts=accounts, filters=filters)
        if len(query) > MAX_QUERY_LENGTH:
            logger.warning(
                "Query for '%s' is %d chars (limit %d); truncating.",
                name,
                len(query),
                MAX_QUERY_LENGTH,
            )
            # Drop keywords first, then accounts, always keeping at least one of each.
            while len(query) > MAX_QUERY_LENGTH:
                if len(keywords) > 1:
                    keywords.pop()
                elif len(accounts) > 1:
                    accounts.pop()
                else:
                    break
                query = build_query(keywords=keywords, accounts=accounts, filters=filters)

    if len(query) > MAX_QUERY_LENGTH:
        raise ConfigurationError(
            f"Query for '{name}' could not be reduced under {MAX_QUERY_LENGTH} chars"
        )

    logger.debug("Monitor [%s]: %s", name, query)
    return MonitorConfig(
        name=name,
        query=query,
        is_active=True,
        use_full_archive=bool(cfg.get("use_full_archive", False)),
    )
