"""Adaptive multi-round citation fetching with a quality-driven stop condition."""

import asyncio
import inspect
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from .citation import CitationCandidate
from .config import FetchThresholds
from .optimizer import optimize_citations
from .quality import QualityAssessment, assess_quality, should_continue_fetching
from .strategy import FetchingStrategy
from .variations import generate_query_variations

logger = logging.getLogger(__name__)

# Queries dispatched per round (first round: original + FIRST_ROUND_EXTRA)
QUERIES_PER_ROUND = 3
FIRST_ROUND_EXTRA = 2


@runtime_checkable
class CitationFetcher(Protocol):
    """Anything that can turn a search query into citation candidates.

    ``search`` may be a plain or an ``async`` method. It may be slow or
    raise; the fetch loop treats failures as zero results. It must be
    safe to call concurrently with different queries.
    """

    def search(self, query: str) -> list[CitationCandidate]:
        ...


@dataclass
class FetchOutcome:
    """Result of an adaptive fetch run."""
    pool: list[CitationCandidate]
    rounds: int
    assessment: QualityAssessment
    round_queries: list[list[str]] = field(default_factory=list)
    failed_queries: int = 0


def select_batch_queries(
    variations: list[str],
    round_number: int,
    rng: random.Random,
) -> list[str]:
    """
    Pick the queries for one round.

    Round 1 always includes the original query (element zero) plus up to
    two other variations at random. Later rounds draw up to three from
    the whole pool; repeats across rounds are fine because results are
    deduplicated by URL.
    """
    if not variations:
        return []
    if round_number == 1:
        remaining = variations[1:]
        extra = rng.sample(remaining, min(FIRST_ROUND_EXTRA, len(remaining)))
        return [variations[0], *extra]
    return rng.sample(variations, min(QUERIES_PER_ROUND, len(variations)))


class AdaptiveFetchLoop:
    """
    Runs bounded rounds of concurrent fetches until the pool is good enough.

    Usage:
        loop = AdaptiveFetchLoop(fetcher)
        outcome = await loop.run("python asyncio", strategy)
        citations = await loop.fetch_citations("python asyncio", strategy)
    """

    def __init__(
        self,
        fetcher: CitationFetcher,
        thresholds: FetchThresholds | None = None,
        rng: random.Random | None = None,
    ):
        if fetcher is None:
            raise ValueError("Citation fetcher cannot be None")
        self.fetcher = fetcher
        self.thresholds = thresholds or FetchThresholds()
        self.rng = rng or random.Random()

    async def _call_fetcher(self, query: str) -> list[CitationCandidate]:
        search = self.fetcher.search
        if inspect.iscoroutinefunction(search):
            return await search(query)
        return await asyncio.to_thread(search, query)

    async def _fetch_one(
        self,
        query: str,
        semaphore: asyncio.Semaphore,
    ) -> list[CitationCandidate] | None:
        """Fetch a single query. Returns None on failure or timeout."""
        async with semaphore:
            try:
                results = await asyncio.wait_for(
                    self._call_fetcher(query), timeout=self.thresholds.fetch_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Citation fetch timed out after %.0fs for query: %s",
                    self.thresholds.fetch_timeout, query,
                )
                return None
            except Exception as e:
                # Any provider failure counts as zero results for this query
                logger.warning("Failed to fetch citations for query: %s - %s", query, e)
                return None
        return list(results or [])

    async def run(self, query: str, strategy: FetchingStrategy) -> FetchOutcome:
        """
        Fetch citations round by round until quality or the batch limit stops us.

        Args:
            query: The original search query
            strategy: Target size, batch limit and quality flags

        Returns:
            FetchOutcome with the deduplicated pool (possibly smaller than target)

        Raises:
            ValueError: If the query is blank
            TypeError: If strategy is not a FetchingStrategy
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")
        if not isinstance(strategy, FetchingStrategy):
            raise TypeError(f"strategy must be a FetchingStrategy, got {type(strategy).__name__}")

        start = time.monotonic()
        variations = generate_query_variations(
            query, strategy, limit=self.thresholds.max_variations,
        )
        logger.info(
            "Generated %d query variations for comprehensive search (%s)",
            len(variations), strategy,
        )

        pool: list[CitationCandidate] = []
        seen_urls: set[str] = set()
        round_queries: list[list[str]] = []
        failed = 0
        assessment = QualityAssessment.empty()
        semaphore = asyncio.Semaphore(self.thresholds.max_concurrent_fetches)

        round_number = 0
        keep_going = True
        while keep_going and round_number < strategy.max_batches:
            round_number += 1
            batch = select_batch_queries(variations, round_number, self.rng)
            round_queries.append(batch)
            logger.info(
                "Executing citation batch %d/%d (%d queries)",
                round_number, strategy.max_batches, len(batch),
            )

            # Fan out, then merge on this coroutine once every call has finished
            results = await asyncio.gather(*(self._fetch_one(q, semaphore) for q in batch))

            added = 0
            for batch_results in results:
                if batch_results is None:
                    failed += 1
                    continue
                for candidate in batch_results:
                    if candidate is None or not candidate.is_valid():
                        continue
                    if candidate.url in seen_urls:
                        continue
                    seen_urls.add(candidate.url)
                    pool.append(candidate)
                    added += 1

            assessment = assess_quality(pool, strategy)
            keep_going = should_continue_fetching(
                assessment, strategy, round_number, self.thresholds,
            )
            logger.info(
                "Batch %d completed - new: %d, total citations: %d, quality score: %.2f, continue: %s",
                round_number, added, len(pool), assessment.overall_quality, keep_going,
            )

        logger.debug("Adaptive fetch finished in %.1fs", time.monotonic() - start)
        return FetchOutcome(
            pool=pool,
            rounds=round_number,
            assessment=assessment,
            round_queries=round_queries,
            failed_queries=failed,
        )

    async def fetch_citations(
        self,
        query: str,
        strategy: FetchingStrategy,
    ) -> list[CitationCandidate]:
        """Run the adaptive loop and return the optimized, bounded citation list."""
        outcome = await self.run(query, strategy)
        final = optimize_citations(outcome.pool, strategy, rng=self.rng)
        logger.info(
            "Citation fetch completed - gathered %d total sources, selected %d optimal citations",
            len(outcome.pool), len(final),
        )
        return final
