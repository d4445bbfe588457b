"""Post-hoc relevance boosting and domain classification for citations."""

import logging
from datetime import datetime, timezone

from .citation import CitationCandidate

logger = logging.getLogger(__name__)

# Content length bonuses (characters)
LONG_CONTENT_CHARS = 1000
MEDIUM_CONTENT_CHARS = 500

# Citations retrieved within this many days get a freshness bonus
RECENT_DAYS = 30

# (substrings, boost) checked in order; first match wins
_AUTHORITY_TIERS: tuple[tuple[tuple[str, ...], float], ...] = (
    (("wikipedia", ".edu", ".gov", ".org"), 0.15),
    (("github", "stackoverflow", "medium", "arxiv"), 0.10),
    (("reuters", "bbc", "nature", "science"), 0.08),
)

_DOMAIN_CATEGORIES: tuple[tuple[tuple[str, ...], str], ...] = (
    ((".edu",), "educational"),
    ((".gov",), "government"),
    ((".org",), "organization"),
    (("wikipedia",), "encyclopedia"),
    (("github",), "code_repository"),
    (("stackoverflow",), "q_and_a"),
    (("medium", "blog"), "blog"),
    (("news", "reuters", "bbc"), "news"),
    (("arxiv", "research"), "research"),
)


def domain_authority_boost(domain: str) -> float:
    """Relevance boost for well-known authoritative domains."""
    domain_lower = (domain or "").lower()
    for markers, boost in _AUTHORITY_TIERS:
        if any(m in domain_lower for m in markers):
            return boost
    return 0.0


def classify_domain(domain: str) -> str:
    """Coarse category for a domain (educational, news, blog, ...)."""
    domain_lower = (domain or "").lower()
    for markers, category in _DOMAIN_CATEGORIES:
        if any(m in domain_lower for m in markers):
            return category
    return "general"


def _term_match_ratio(terms: list[str], text: str) -> float:
    if not terms:
        return 0.0
    return sum(1 for t in terms if t in text) / len(terms)


def relevance_enhancement(candidate: CitationCandidate, query: str, now: datetime | None = None) -> float:
    """
    Compute the additive relevance boost for a candidate against a query.

    Components:
    - exact query in title: +0.2, otherwise title term-match ratio * 0.1
    - content term-match ratio * 0.1
    - domain authority boost (up to 0.15)
    - content length: +0.05 above 1000 chars, +0.02 above 500
    - retrieved within the last 30 days: +0.03
    """
    query_lower = query.lower().strip()
    terms = query_lower.split()
    title_lower = (candidate.title or "").lower()
    content_lower = candidate.content.lower()

    enhancement = 0.0
    if query_lower and query_lower in title_lower:
        enhancement += 0.2
    else:
        enhancement += _term_match_ratio(terms, title_lower) * 0.1

    enhancement += _term_match_ratio(terms, content_lower) * 0.1
    enhancement += domain_authority_boost(candidate.domain)

    content_length = len(candidate.content)
    if content_length > LONG_CONTENT_CHARS:
        enhancement += 0.05
    elif content_length > MEDIUM_CONTENT_CHARS:
        enhancement += 0.02

    now = now or datetime.now(timezone.utc)
    retrieved = candidate.retrieved_at
    if retrieved.tzinfo is None:
        retrieved = retrieved.replace(tzinfo=timezone.utc)
    if (now - retrieved).days < RECENT_DAYS:
        enhancement += 0.03

    return enhancement


def enhance_relevance(
    candidates: list[CitationCandidate],
    query: str,
    now: datetime | None = None,
) -> list[CitationCandidate]:
    """Boost each candidate's relevance in place and return the same list."""
    for candidate in candidates:
        before = candidate.relevance_score
        after = candidate.boost(relevance_enhancement(candidate, query, now=now))
        logger.debug("Boosted %s: %.2f -> %.2f", candidate.url, before, after)
    return candidates
