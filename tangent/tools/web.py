"""Web search tool via an instant-answer API."""

from typing import Any

import httpx

from ..core.config import Settings, get_settings
from ..core.tools import ToolLoader, ToolParam, ToolRegistry, ToolSpec


class WebSearch:
    """Query an instant-answer endpoint (DuckDuckGo-compatible JSON)."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = client or httpx.AsyncClient(timeout=10.0)

    async def search(self, args: dict[str, Any]) -> dict[str, Any]:
        """Search the web and return the abstract plus related results."""
        max_results = args.get("max_results") or 5
        response = await self.client.get(
            self.settings.web_search_endpoint,
            params={
                "q": args["query"],
                "format": "json",
                "no_html": 1,
                "skip_disambig": 1,
            },
        )
        response.raise_for_status()
        data = response.json()

        results = []
        for topic in _flatten_topics(data.get("RelatedTopics", [])):
            if topic.get("Text") and topic.get("FirstURL"):
                results.append({"title": topic["Text"], "url": topic["FirstURL"]})
            if len(results) >= max_results:
                break

        return {
            "query": args["query"],
            "abstract": data.get("AbstractText") or None,
            "source": data.get("AbstractSource") or None,
            "url": data.get("AbstractURL") or None,
            "answer": data.get("Answer") or None,
            "results": results,
        }


def _flatten_topics(topics: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Related topics may be grouped one level deep under "Topics"."""
    flat: list[dict[str, Any]] = []
    for topic in topics:
        if "Topics" in topic:
            flat.extend(topic["Topics"])
        else:
            flat.append(topic)
    return flat


def make_loader(
    settings: Settings | None = None, client: httpx.AsyncClient | None = None
) -> ToolLoader:
    """Build a loader that registers web_search with the given HTTP client."""

    async def load_web(registry: ToolRegistry) -> None:
        web = WebSearch(settings=settings, client=client)
        registry.register(
            "web_search",
            ToolSpec(
                description="Search the web for current information",
                executor=web.search,
                params=(
                    ToolParam("query", "string", "What to search for"),
                    ToolParam("max_results", "integer", "Maximum results to return", required=False),
                ),
            ),
        )

    return load_web
