"""Grok-backed language model provider: embeddings, content scoring, cluster summaries."""

from __future__ import annotations

import json
import logging
import math
from typing import Any

import openai
from openai import OpenAI
from pydantic import ValidationError

from eventwatch.errors import ExternalServiceError, ParseError
from eventwatch.models import EventSummary

logger = logging.getLogger(__name__)

# ── Prompts ────────────────────────────────────────────────────────────────
_SCORE_PROMPT = (
    "You are evaluating social media content quality for news event detection.\n"
    "Rate this content on a scale of 0 to 1 based on:\n"
    "- Informational value (is it reporting something newsworthy?)\n"
    "- Credibility (does it seem factual vs opinion/spam?)\n"
    "- Clarity (is the message clear and understandable?)\n\n"
    'Content: "{text}"\n\n'
    "Respond with ONLY a number between 0 and 1, nothing else."
)

_SUMMARY_PROMPT = (
    "Analyze the following collection of social media posts about a potential news event.\n"
    "Generate a structured summary with:\n\n"
    "1. TITLE: A concise headline (max 100 chars)\n"
    "2. SUMMARY: 2-3 sentence description of the event\n"
    "3. EVENT_TYPE: One of [conflict, humanitarian, political, military, protest, other]\n"
    "4. CONFIDENCE: Your confidence score (0-1) that this represents a real, coherent event\n"
    "5. LOCATION: If a specific location is mentioned, extract it. "
    'Format: "City, Country" or "Region, Country"\n'
    "   - Return null if no location is discernible\n\n"
    "Posts:\n{posts}\n\n"
    "Respond in JSON format with this exact structure:\n"
    '{{"title": "string", "summary": "string", "eventType": "string", '
    '"confidence": number, "location": "string or null"}}'
)

# Neutral score when the model answers with something that is not a number.
_UNPARSEABLE_SCORE = 0.5


class GrokClient:
    """Talks to Grok through its OpenAI-compatible API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.x.ai/v1",
        chat_model: str = "grok-2",
        embedding_model: str = "grok-embedding",
        client: Any = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise ValueError("GROK_API_KEY is required but was empty.")
            client = OpenAI(api_key=api_key, base_url=base_url)
        self._client = client
        self._chat_model = chat_model
        self._embedding_model = embedding_model

    # ── public ──────────────────────────────────────────────────────────

    def embed(self, text: str) -> list[float]:
        """Return the embedding vector for a single text."""
        try:
            resp = self._client.embeddings.create(model=self._embedding_model, input=text)
        except openai.OpenAIError as exc:
            raise ExternalServiceError(f"Grok embedding request failed: {exc}") from exc
        if not resp.data:
            raise ExternalServiceError("Grok embedding response contained no vectors")
        return list(resp.data[0].embedding)

    def score_content(self, text: str) -> float:
        """Ask the model how newsworthy and credible a post is, clamped to [0, 1]."""
        raw = self._chat(_SCORE_PROMPT.format(text=text[:500]), max_tokens=10)
        try:
            value = float(raw.strip())
        except ValueError:
            logger.debug("Unparseable content score %r; using %.1f", raw, _UNPARSEABLE_SCORE)
            return _UNPARSEABLE_SCORE
        if math.isnan(value):
            return _UNPARSEABLE_SCORE
        return min(1.0, max(0.0, value))

    def summarize_cluster(self, texts: list[str]) -> EventSummary:
        """Turn a cluster's post texts into a structured event summary."""
        block = "\n\n".join(f"[{i}] {t}" for i, t in enumerate(texts, start=1))
        raw = self._chat(_SUMMARY_PROMPT.format(posts=block), json_mode=True)
        return parse_summary(raw)

    # ── private ─────────────────────────────────────────────────────────

    def _chat(self, prompt: str, *, max_tokens: int = 1024, json_mode: bool = False) -> str:
        kwargs: dict[str, Any] = {
            "model": self._chat_model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            resp = self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise ExternalServiceError(f"Grok chat request failed: {exc}") from exc
        if not resp.choices:
            raise ExternalServiceError("Grok chat response contained no choices")
        return resp.choices[0].message.content or ""


def parse_summary(raw: str) -> EventSummary:
    """Validate the model's JSON answer into an ``EventSummary``."""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Failed to parse Grok response: {raw[:300]}") from exc
    if not isinstance(payload, dict):
        raise ParseError(f"Expected a JSON object from Grok, got: {raw[:300]}")

    location = payload.get("location")
    if isinstance(location, str) and location.strip().lower() in {"", "none", "null"}:
        location = None

    try:
        return EventSummary(
            title=payload["title"],
            summary=payload["summary"],
            event_type=payload.get("eventType") or "other",
            confidence=min(1.0, max(0.0, float(payload.get("confidence", 0.0)))),
            location=location,
        )
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
        raise ParseError(f"Grok summary is missing required fields: {exc}") from exc
