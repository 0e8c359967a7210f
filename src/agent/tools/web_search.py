"""
agent.tools.web_search - Keyword web search over DuckDuckGo's HTML endpoint.

No API key required. The HTTP call is synchronous (requests) and runs in
the default thread pool so it never blocks the event loop. Network errors
propagate so the tool handler can retry them.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re

import requests
from pydantic import BaseModel, Field

from agent.tools.base import BaseTool

logger = logging.getLogger(__name__)

SEARCH_URL = "https://html.duckduckgo.com/html/"
USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120 Safari/537.36"
)
MAX_RESULTS_CAP = 10

_RESULT_LINK_RE = re.compile(
    r"""<a[^>]+class="result__a"[^>]+href="(?P<href>[^"]+)"[^>]*>(?P<title>.*?)</a>""",
    re.IGNORECASE | re.DOTALL,
)
_SNIPPET_RE = re.compile(
    r"""<a[^>]+class="result__snippet"[^>]*>(?P<snippet>.*?)</a>""",
    re.IGNORECASE | re.DOTALL,
)
_TAG_RE = re.compile(r"<[^>]+>")


class WebSearchInput(BaseModel):
    """Input schema for the web_search tool."""

    query: str = Field(description="The search query")
    max_results: int = Field(default=5, ge=1, le=MAX_RESULTS_CAP, description="How many results to return")


def _strip_tags(s: str) -> str:
    s = _TAG_RE.sub("", s or "")
    s = html.unescape(s)
    return re.sub(r"\s+", " ", s).strip()


def parse_results(html_text: str, max_results: int) -> list[dict[str, str]]:
    """Extract {title, url, snippet} dicts from a DuckDuckGo HTML page."""
    links = list(_RESULT_LINK_RE.finditer(html_text or ""))
    snippets = list(_SNIPPET_RE.finditer(html_text or ""))

    results: list[dict[str, str]] = []
    for i, match in enumerate(links[:max_results]):
        title = _strip_tags(match.group("title"))
        url = _strip_tags(match.group("href"))
        snippet = _strip_tags(snippets[i].group("snippet")) if i < len(snippets) else ""
        if not title and not url:
            continue
        results.append({"title": title, "url": url, "snippet": snippet})
    return results


class WebSearchTool(BaseTool):
    """Search the web and return the top results."""

    name = "web_search"
    description = (
        "Search the web for up-to-date information. "
        "Returns a list of results with title, url and snippet."
    )

    def __init__(self, timeout: float = 8.0, url: str = SEARCH_URL):
        self._timeout = timeout
        self._url = url

    def get_schema(self) -> type[BaseModel]:
        return WebSearchInput

    async def execute(self, query: str, max_results: int = 5, **kwargs) -> dict:
        q = re.sub(r"\s+", " ", query or "").strip()
        if not q:
            raise ValueError("query must not be empty")

        loop = asyncio.get_event_loop()
        page = await loop.run_in_executor(None, self._fetch, q)
        results = parse_results(page, min(max_results, MAX_RESULTS_CAP))
        logger.info("web_search returned %d result(s) for %r", len(results), q[:80])
        return {"query": q, "results": results}

    def _fetch(self, query: str) -> str:
        """Synchronous HTTP call (runs in thread pool)."""
        response = requests.get(
            self._url,
            params={"q": query},
            headers={"User-Agent": USER_AGENT},
            timeout=self._timeout,
        )
        response.raise_for_status()
        return response.text
