"""
Source Trust Scorer - Reputation of content domains from user feedback.

The score is the lower bound of the Wilson score interval for the share of
upvotes. Sources with few votes are pulled toward zero, so a domain needs
consistent positive feedback before it is suggested as a preferred source.
"""

from __future__ import annotations

import math

import structlog

from almanac.errors import InvalidFeedbackError
from almanac.research.models import Source, SourceFeedback, normalize_domain
from almanac.store.sources import SourceStore

logger = structlog.get_logger()

WILSON_Z = 1.96  # 95% confidence
NEUTRAL_SCORE = 0.5
PAGE_SIZE = 50
VALID_RATINGS = (1, -1)


def wilson_lower_bound(upvotes: int, downvotes: int, z: float = WILSON_Z) -> float | None:
    """
    Lower bound of the Wilson score interval, clamped to [0, 1].

    Returns None when there are no votes.
    """
    n = upvotes + downvotes
    if n <= 0:
        return None
    p = upvotes / n
    z2 = z * z
    denominator = 1 + z2 / n
    centre = p + z2 / (2 * n)
    margin = z * math.sqrt((p * (1 - p) + z2 / (4 * n)) / n)
    score = (centre - margin) / denominator
    return min(1.0, max(0.0, score))


class TrustScorer:
    """Feedback intake and score maintenance over a SourceStore."""

    def __init__(self, store: SourceStore) -> None:
        self.store = store

    def submit_feedback(
        self,
        domain: str,
        rating: int,
        item_id: str | None = None,
        category: str | None = None,
    ) -> SourceFeedback:
        """Record one vote and recompute the source's score."""
        if isinstance(rating, bool) or rating not in VALID_RATINGS:
            raise InvalidFeedbackError(f"Rating must be 1 or -1, got {rating!r}")
        rating = int(rating)
        normalized = normalize_domain(domain or "")
        if not normalized:
            raise InvalidFeedbackError("Source domain is required")

        feedback = self.store.record_feedback(
            normalized, rating, item_id=item_id, category=category
        )
        score = self.recompute_score(normalized)
        logger.info("Source feedback recorded", domain=normalized, rating=rating, trust_score=score)
        return feedback

    def recompute_score(self, domain: str) -> float | None:
        """
        Recompute and store the score of one source.

        Returns the stored score, or None when the source does not exist.
        A source without votes keeps its current score.
        """
        source = self.store.get(normalize_domain(domain))
        if source is None:
            return None
        score = wilson_lower_bound(source.upvotes, source.downvotes)
        if score is None:
            return source.trust_score
        self.store.set_trust_score(source.domain, score)
        return score

    def recompute_all(self) -> int:
        """Recompute every source with votes. Idempotent; returns the number updated."""
        scores: dict[str, float] = {}
        for source in self.store.all():
            score = wilson_lower_bound(source.upvotes, source.downvotes)
            if score is not None:
                scores[source.domain] = score
        self.store.set_trust_scores(scores)
        logger.info("Recalculated source trust scores", updated=len(scores))
        return len(scores)

    def top_sources(self, category: str | None = None, limit: int = PAGE_SIZE) -> list[Source]:
        """Sources ordered by trust, highest first."""
        return self.store.ranked(category=category, limit=limit)

    def high_trust_domains(self, min_score: float = 0.6, limit: int = 5) -> list[str]:
        """Domains trusted enough to be suggested as preferred sources."""
        return self.store.domains_above(min_score, limit)
