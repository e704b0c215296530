"""
Pricing - Estimated cost of a research job from its usage counters.
"""

from __future__ import annotations

from dataclasses import dataclass

from almanac.config import PricingConfig


@dataclass(frozen=True)
class Usage:
    """Usage counters reported for one provider response."""

    input_tokens: int = 0
    output_tokens: int = 0
    web_search_calls: int = 0


@dataclass(frozen=True)
class RateTable:
    """Linear rate table, all values in cents."""

    input_cents_per_million: float = 110.0
    output_cents_per_million: float = 440.0
    web_search_cents: float = 1.0

    @classmethod
    def from_config(cls, config: PricingConfig) -> RateTable:
        return cls(
            input_cents_per_million=config.input_cents_per_million,
            output_cents_per_million=config.output_cents_per_million,
            web_search_cents=config.web_search_cents,
        )

    def estimate_cents(self, usage: Usage) -> float:
        """Cost in cents; linear in every counter and zero for zero usage."""
        input_cost = usage.input_tokens / 1_000_000 * self.input_cents_per_million
        output_cost = usage.output_tokens / 1_000_000 * self.output_cents_per_million
        search_cost = usage.web_search_calls * self.web_search_cents
        return input_cost + output_cost + search_cost


DEFAULT_RATES = RateTable()


def estimate_cost_cents(usage: Usage, rates: RateTable = DEFAULT_RATES) -> float:
    """Estimate the cost of a job using the given (or default) rates."""
    return rates.estimate_cents(usage)
