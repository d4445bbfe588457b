"""Citation candidate type shared by fetchers, the fetch loop and the optimizer."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

# Relevance at or above this counts as "high quality"
HIGH_RELEVANCE_THRESHOLD = 0.7

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def extract_domain(url: str | None) -> str:
    """Extract a normalized domain from a URL.

    Strips the scheme and a leading ``www.``, lowercases, and keeps the
    host part only. Returns "unknown" for empty input.
    """
    if not url or not url.strip():
        return "unknown"
    host = _SCHEME_RE.sub("", url.strip())
    host = host.split("/", 1)[0].split("?", 1)[0].split("#", 1)[0]
    if host.lower().startswith("www."):
        host = host[4:]
    return host.lower() or "unknown"


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, float(score)))


def _count_words(text: str) -> int:
    return len(text.split()) if text else 0


@dataclass(eq=False)
class CitationCandidate:
    """One external reference returned by a citation fetcher.

    ``url`` is the identity key inside a fetch session. ``relevance_score``
    is always kept within 0.0-1.0; use ``boost()`` for post-hoc
    adjustments so the clamp is re-applied.

    Equality is identity-based: two candidates with the same URL are
    deduplicated by the fetch loop, not by ``==``.
    """
    url: str
    title: str
    snippet: str = ""
    content: str = ""
    relevance_score: float = 0.0
    domain: str = ""
    source: str = ""
    retrieved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    word_count: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.content = self.content or ""
        self.snippet = self.snippet or ""
        self.relevance_score = _clamp(self.relevance_score)
        if not self.domain:
            self.domain = extract_domain(self.url)
        self.word_count = _count_words(self.content)

    def is_valid(self) -> bool:
        """True when the candidate has a non-blank URL and title."""
        return bool(self.url and self.url.strip() and self.title and self.title.strip())

    def has_content(self) -> bool:
        return bool(self.content.strip())

    def is_high_relevance(self) -> bool:
        return self.relevance_score >= HIGH_RELEVANCE_THRESHOLD

    def boost(self, amount: float) -> float:
        """Adjust relevance by ``amount`` (may be negative) and return the new score."""
        self.relevance_score = _clamp(self.relevance_score + amount)
        return self.relevance_score

    def set_content(self, content: str) -> None:
        self.content = content or ""
        self.word_count = _count_words(self.content)

    def to_dict(self) -> dict:
        """Serializable view for presentation layers."""
        return {
            "url": self.url,
            "title": self.title,
            "snippet": self.snippet,
            "domain": self.domain,
            "relevance_score": round(self.relevance_score, 4),
            "word_count": self.word_count,
            "source": self.source,
            "retrieved_at": self.retrieved_at.isoformat(),
        }
