"""
Request construction for deep-research jobs.

Builds the provider request for a config: the instruction text (today's
date, topics, category framing, recency window, item cap, source hints and
the JSON output schema) plus the tool and background settings.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from almanac.research.models import Category, ResearchConfig, normalize_domain

CATEGORY_FRAMING: dict[Category, str] = {
    Category.PAPERS: "research papers and technical articles",
    Category.NEWS: "tech news stories and announcements",
    Category.MARKETS: "market news and financial updates",
    Category.POLITICS: "policy, regulation and political developments",
}

OUTPUT_SCHEMA = """{
  "summary": "A brief 2-3 sentence overview of the key findings",
  "items": [
    {
      "title": "Article/Paper Title",
      "source": "Source name (publication, website, author)",
      "url": "Full URL to the content",
      "summary": "2-3 sentence summary of this item",
      "relevanceScore": 8.5,
      "publishedAt": "YYYY-MM-DD",
      "tags": ["tag1", "tag2"]
    }
  ]
}"""

WEB_SEARCH_TOOL = "web_search_preview"


@dataclass
class ResearchRequest:
    """Everything the provider needs to start one job."""

    model: str
    prompt: str
    tools: list[str] = field(default_factory=lambda: [WEB_SEARCH_TOOL])
    background: bool = True

    def to_payload(self) -> dict[str, Any]:
        """Request body for the Responses API."""
        return {
            "model": self.model,
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": self.prompt}],
                }
            ],
            "tools": [{"type": tool} for tool in self.tools],
            "background": self.background,
        }


def merge_preferred_sources(
    config: ResearchConfig, trusted_domains: Iterable[str] = ()
) -> list[str]:
    """Config's preferred sources followed by trusted domains, minus blocked ones."""
    blocked = set(config.blocked_sources)
    merged: list[str] = []
    for domain in [*config.preferred_sources, *(normalize_domain(d) for d in trusted_domains)]:
        if domain and domain not in blocked and domain not in merged:
            merged.append(domain)
    return merged


def build_prompt(
    config: ResearchConfig,
    today: date,
    recency_days: int = 7,
    max_items: int = 5,
    preferred_sources: list[str] | None = None,
) -> str:
    """Instruction text sent to the provider."""
    today_str = today.isoformat()
    framing = CATEGORY_FRAMING.get(config.category, CATEGORY_FRAMING[Category.NEWS])
    preferred = config.preferred_sources if preferred_sources is None else preferred_sources

    lines = [
        f"TODAY'S DATE: {today_str}",
        "",
        f"You are a research analyst. Find the TOP {framing} "
        f"published in the last {recency_days} days.",
        "",
    ]
    if config.prompt.strip():
        lines += [config.prompt.strip(), ""]
    if config.topics:
        lines += [f"Topics to focus on: {', '.join(config.topics)}", ""]

    lines += [
        "IMPORTANT REQUIREMENTS:",
        f"- Only include content published within the last {recency_days} days (as of {today_str})",
        f"- Return up to {max_items} items maximum (focus on quality over quantity)",
        "- Provide real, verifiable URLs",
        "- Sort by relevance and recency (most relevant/recent first)",
    ]
    if preferred:
        lines.append(f"- Prioritize these sources when relevant: {', '.join(preferred)}")
    if config.blocked_sources:
        lines.append(f"- Do not use these sources: {', '.join(config.blocked_sources)}")

    lines += [
        "",
        "Return your findings as JSON in this exact format:",
        OUTPUT_SCHEMA,
        "",
        "Rules:",
        "- relevanceScore must be between 1-10",
        "- publishedAt must be in YYYY-MM-DD format",
        "- tags should be lowercase",
        "- Only return valid JSON",
    ]
    return "\n".join(lines)


def build_request(
    config: ResearchConfig,
    model: str,
    today: date,
    recency_days: int = 7,
    max_items: int = 5,
    trusted_domains: Iterable[str] = (),
    background: bool = True,
) -> ResearchRequest:
    """Build the provider request for a config."""
    preferred = merge_preferred_sources(config, trusted_domains)
    prompt = build_prompt(
        config,
        today=today,
        recency_days=recency_days,
        max_items=max_items,
        preferred_sources=preferred,
    )
    return ResearchRequest(model=model, prompt=prompt, background=background)
