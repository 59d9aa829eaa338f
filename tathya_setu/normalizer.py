"""
Validation, repair and defaulting of raw model output.

Every model response passes through here before any channel sees it. Nothing
in this module raises on malformed model output: unparsable JSON becomes an
empty object and every missing or invalid field gets a fixed fallback.
"""

import logging
import math
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional
from urllib.parse import quote_plus, urlparse

from langchain_core.utils.json import parse_json_markdown
from pydantic import BaseModel, ValidationError

from . import config
from .errors import MalformedResponseError
from .models import (
    AnalysisOutcome,
    AnalysisResult,
    CitedSource,
    ExistingFactCheck,
    GroundingChunk,
    GroundingSource,
    ModelResponse,
    NewsItem,
    Verdict,
)

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Could not complete the analysis."
FALLBACK_DETAILED_ANALYSIS = "No detailed analysis was returned for this content."
FALLBACK_KEY_POINT = "No key findings could be extracted."
FALLBACK_SOURCE_TITLE = "Web Source"

# Matched against the host name only, so "dropbox.com" is not mistaken for "x.com".
SOCIAL_MEDIA_DENYLIST = [
    re.compile(r"(^|\.)reddit\.com$", re.IGNORECASE),
    re.compile(r"(^|\.)twitter\.com$", re.IGNORECASE),
    re.compile(r"(^|\.)x\.com$", re.IGNORECASE),
    re.compile(r"(^|\.)facebook\.com$", re.IGNORECASE),
    re.compile(r"(^|\.)instagram\.com$", re.IGNORECASE),
    re.compile(r"(^|\.)tiktok\.com$", re.IGNORECASE),
    re.compile(r"(^|\.)pinterest\.com$", re.IGNORECASE),
]


class SourcePolicy(BaseModel):
    """How grounding sources are filtered for one channel."""
    apply_denylist: bool = False
    limit: Optional[int] = None


WEB_POLICY = SourcePolicy()
BOT_POLICY = SourcePolicy(apply_denylist=True, limit=config.BOT_SOURCE_LIMIT)


# --- Parsing ---

def _load_json(raw_text: Optional[str]) -> Any:
    if raw_text is None or not raw_text.strip():
        raise MalformedResponseError("model returned no text")
    try:
        return parse_json_markdown(raw_text)
    except (ValueError, RecursionError) as e:
        raise MalformedResponseError(f"model returned invalid JSON: {e}") from e


def parse_model_json(raw_text: Optional[str], fallback: Any = None) -> Any:
    """
    Strip Markdown code fences and parse the model's JSON.

    On failure the error is logged and `fallback` (an empty dict by default)
    is returned instead.
    """
    if fallback is None:
        fallback = {}
    try:
        parsed = _load_json(raw_text)
    except MalformedResponseError as e:
        logger.warning(f"Substituting empty payload for unparsable model output: {e}")
        return fallback
    if parsed is None:
        logger.warning("Model output parsed to nothing; substituting empty payload")
        return fallback
    return parsed


# --- Field coercion ---

def _clean_str(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def normalize_verdict(value: Any) -> Verdict:
    text = _clean_str(value).upper()
    try:
        return Verdict(text)
    except ValueError:
        if text:
            logger.warning(f"Unknown verdict '{value}' replaced with UNVERIFIED")
        return Verdict.UNVERIFIED


def normalize_confidence(value: Any) -> int:
    """Round half-up to an integer in [0, 100]; anything non-numeric is 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        number = value
    else:
        text = _clean_str(value).rstrip("%").strip()
        try:
            number = float(text)
        except ValueError:
            return 0
    if isinstance(number, float) and math.isnan(number):
        return 0
    if isinstance(number, float) and math.isinf(number):
        return 100 if number > 0 else 0
    try:
        rounded = int(Decimal(str(number)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0
    return max(0, min(100, rounded))


def normalize_key_points(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    points = []
    if isinstance(value, list):
        for item in value:
            if isinstance(item, (dict, list)):
                continue
            text = _clean_str(item)
            if text:
                points.append(text)
    return points or [FALLBACK_KEY_POINT]


def _normalize_fact_checks(value: Any) -> Optional[List[ExistingFactCheck]]:
    if not isinstance(value, list):
        return None
    checks = []
    for item in value:
        if not isinstance(item, dict):
            continue
        check = ExistingFactCheck(
            claim=_clean_str(item.get("claim")),
            claimant=_clean_str(item.get("claimant")),
            fact_checker_name=_clean_str(item.get("factCheckerName")),
            rating=_clean_str(item.get("rating")),
            date=_clean_str(item.get("date")),
            url=_clean_str(item.get("url")),
        )
        if any(check.model_dump().values()):
            checks.append(check)
    return checks or None


def _normalize_cited_sources(value: Any) -> Optional[List[CitedSource]]:
    if not isinstance(value, list):
        return None
    sources = []
    seen = set()
    for item in value:
        if not isinstance(item, dict):
            continue
        url = _clean_str(item.get("url"))
        if not url or url in seen:
            continue
        seen.add(url)
        sources.append(CitedSource(title=_clean_str(item.get("title")), url=url))
    return sources or None


def normalize_analysis(payload: Any) -> AnalysisResult:
    """Build an AnalysisResult from a parsed payload, substituting a fallback for each bad field."""
    if not isinstance(payload, dict):
        payload = {}
    summary = _clean_str(payload.get("summary")) or FALLBACK_SUMMARY
    detailed = _clean_str(payload.get("detailedAnalysis")) or FALLBACK_DETAILED_ANALYSIS
    return AnalysisResult(
        verdict=normalize_verdict(payload.get("verdict")),
        confidence=normalize_confidence(payload.get("confidence")),
        summary=summary,
        detailed_analysis=detailed,
        key_points=normalize_key_points(payload.get("keyPoints")),
        existing_fact_checks=_normalize_fact_checks(payload.get("existingFactChecks")),
        cited_sources=_normalize_cited_sources(payload.get("citedSources")),
    )


# --- Grounding sources ---

def is_denylisted(uri: str) -> bool:
    host = (urlparse(uri).hostname or "").lower()
    if not host:
        return False
    return any(pattern.search(host) for pattern in SOCIAL_MEDIA_DENYLIST)


def extract_grounding_sources(
    chunks: Iterable[GroundingChunk],
    policy: SourcePolicy = WEB_POLICY,
) -> List[GroundingSource]:
    """Keep web chunks with a URI, filter per policy, dedupe by URI (first wins), then cap."""
    sources = []
    seen = set()
    for chunk in chunks or []:
        web = chunk.web
        uri = (web.uri or "").strip() if web else ""
        if not uri:
            continue
        if policy.apply_denylist and is_denylisted(uri):
            logger.debug(f"Dropping denylisted source {uri}")
            continue
        if uri in seen:
            continue
        seen.add(uri)
        sources.append(GroundingSource(title=(web.title or "").strip() or FALLBACK_SOURCE_TITLE, uri=uri))
    if policy.limit is not None:
        sources = sources[:policy.limit]
    return sources


# --- Task-level normalization ---

def normalize_analysis_response(response: ModelResponse, policy: SourcePolicy = WEB_POLICY) -> AnalysisOutcome:
    payload = parse_model_json(response.raw_text)
    result = normalize_analysis(payload)
    sources = extract_grounding_sources(response.grounding_chunks, policy)
    logger.info(f"Normalized analysis: verdict={result.verdict.value}, confidence={result.confidence}, "
                f"sources={len(sources)}")
    return AnalysisOutcome(result=result, sources=sources)


def _translated_fact_checks(value: Any, original: List[ExistingFactCheck]) -> List[ExistingFactCheck]:
    # Entries are matched by position; only claim and rating are translated.
    if not isinstance(value, list):
        return original
    checks = []
    for i, check in enumerate(original):
        item = value[i] if i < len(value) and isinstance(value[i], dict) else {}
        update = {}
        for field in ("claim", "rating"):
            text = _clean_str(item.get(field))
            if text:
                update[field] = text
        checks.append(check.model_copy(update=update))
    return checks


def normalize_translation(response: ModelResponse, original: AnalysisResult) -> AnalysisResult:
    """
    Overlay the translated text fields on the original result.

    Only summary, detailedAnalysis, keyPoints and fact-check claim/rating are
    taken from the model, and only when it supplied usable values. Verdict,
    confidence and cited sources always stay those of the original.
    """
    payload = parse_model_json(response.raw_text)
    if not isinstance(payload, dict) or not payload:
        logger.warning("Translation output unusable; keeping the original result")
        return original

    update = {}
    summary = _clean_str(payload.get("summary"))
    if summary:
        update["summary"] = summary
    detailed = _clean_str(payload.get("detailedAnalysis"))
    if detailed:
        update["detailed_analysis"] = detailed
    key_points = normalize_key_points(payload.get("keyPoints"))
    if key_points != [FALLBACK_KEY_POINT]:
        update["key_points"] = key_points
    if original.existing_fact_checks:
        update["existing_fact_checks"] = _translated_fact_checks(
            payload.get("existingFactChecks"), original.existing_fact_checks)

    missing = {"summary", "detailed_analysis", "key_points"} - set(update)
    if missing:
        logger.warning(f"Translation omitted {', '.join(sorted(missing))}; keeping the original text")
    return original.model_copy(update=update)


def google_news_url(title: str) -> str:
    return f"https://news.google.com/search?q={quote_plus(title)}"


def normalize_news(response: ModelResponse, count: int = config.DEFAULT_NEWS_COUNT) -> List[NewsItem]:
    payload = parse_model_json(response.raw_text, fallback=[])
    if isinstance(payload, dict):
        payload = payload.get("items") or payload.get("news") or []
    if not isinstance(payload, list):
        return []
    items = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        title = _clean_str(entry.get("title"))
        if not title:
            continue
        url = _clean_str(entry.get("url"))
        if "news.google.com" not in url:
            url = google_news_url(title)
        try:
            items.append(NewsItem(
                title=title,
                snippet=_clean_str(entry.get("snippet")),
                source=_clean_str(entry.get("source")),
                url=url,
                published_time=_clean_str(entry.get("publishedTime")),
            ))
        except ValidationError as e:
            logger.warning(f"Skipping malformed news item: {e}")
    return items[:count]

