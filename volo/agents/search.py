"""Web search through Brave or Tavily, routed per query."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Literal, Optional

import httpx

from ..config import SearchConfig
from ..contracts import WorkflowType
from ..errors import VoloError

logger = logging.getLogger(__name__)

Provider = Literal["brave", "tavily"]
SearchDepth = Literal["basic", "advanced"]

BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"
TAVILY_URL = "https://api.tavily.com/search"

TAVILY_PATTERN = re.compile(
    r"\b(email|who is|profile|contact info|about|background|biography)\b", re.I
)
BRAVE_PATTERN = re.compile(
    r"\b(top|best|list of|influencers|trending|popular|directory)\b", re.I
)


@dataclass
class SearchHit:
    title: str
    url: str
    snippet: str


@dataclass
class SearchResponse:
    provider: Provider
    query: str
    results: list[SearchHit] = field(default_factory=list)
    answer: Optional[str] = None


@dataclass
class ProviderChoice:
    provider: Provider
    depth: SearchDepth = "basic"
    include_answer: bool = False
    reason: str = ""


class NoSearchProviderError(VoloError):
    pass


def choose_provider(
    query: str,
    workflow_type: Optional[WorkflowType | str] = None,
    preferred: Optional[Provider] = None,
    has_brave: bool = True,
    has_tavily: bool = True,
) -> ProviderChoice:
    """Pick a provider by key availability, then preference, workflow type and query wording."""
    if not has_brave and not has_tavily:
        raise NoSearchProviderError(
            "No search API key configured (BRAVE_SEARCH_API_KEY or TAVILY_API_KEY)"
        )
    if not has_tavily:
        return ProviderChoice("brave", reason="only Brave is configured")
    if not has_brave:
        return ProviderChoice("tavily", reason="only Tavily is configured")
    if preferred:
        return ProviderChoice(preferred, reason="explicit preference")

    wf = WorkflowType(workflow_type) if workflow_type else None
    if wf == WorkflowType.ENRICH:
        return ProviderChoice("tavily", "advanced", True, "enrichment needs deep profile search")
    if wf == WorkflowType.PRUNE:
        return ProviderChoice("tavily", "basic", reason="prune checks current status")
    if wf in (WorkflowType.SEARCH, WorkflowType.AGENT):
        if TAVILY_PATTERN.search(query):
            return ProviderChoice("tavily", "basic", reason="person lookup query")
        return ProviderChoice("brave", reason="discovery query")

    if TAVILY_PATTERN.search(query):
        return ProviderChoice("tavily", "basic", reason="person lookup query")
    if BRAVE_PATTERN.search(query):
        return ProviderChoice("brave", reason="list-style query")
    return ProviderChoice("brave", reason="default")


class SearchClient:
    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ) -> None:
        self.config = config or SearchConfig()
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def choose(
        self,
        query: str,
        workflow_type: Optional[WorkflowType | str] = None,
        preferred: Optional[Provider] = None,
    ) -> ProviderChoice:
        return choose_provider(
            query,
            workflow_type,
            preferred,
            has_brave=bool(self.config.brave_api_key),
            has_tavily=bool(self.config.tavily_api_key),
        )

    async def search(
        self,
        query: str,
        count: int = 5,
        workflow_type: Optional[WorkflowType | str] = None,
        preferred: Optional[Provider] = None,
    ) -> SearchResponse:
        """Run the query, failing over to the other provider when one is configured.

        The last HTTP or network error propagates when every provider fails.
        """
        choice = self.choose(query, workflow_type, preferred)
        logger.info(f"Searching {choice.provider} ({choice.reason}): {query!r}")
        try:
            return await self._run(query, count, choice)
        except httpx.HTTPError as exc:
            fallback = self._fallback(choice)
            if fallback is None:
                raise
            logger.warning(
                f"{choice.provider} search failed ({exc!r}), failing over to {fallback.provider}"
            )
            return await self._run(query, count, fallback)

    def _fallback(self, choice: ProviderChoice) -> Optional[ProviderChoice]:
        if choice.provider == "brave" and self.config.tavily_api_key:
            return ProviderChoice("tavily", "basic", choice.include_answer, "failover from brave")
        if choice.provider == "tavily" and self.config.brave_api_key:
            return ProviderChoice("brave", reason="failover from tavily")
        return None

    async def _run(self, query: str, count: int, choice: ProviderChoice) -> SearchResponse:
        if choice.provider == "tavily":
            return await self._tavily(query, count, choice)
        return await self._brave(query, count)

    async def _brave(self, query: str, count: int) -> SearchResponse:
        response = await self._client.get(
            BRAVE_URL,
            params={"q": query, "count": min(count, 20)},
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": self.config.brave_api_key or "",
            },
        )
        response.raise_for_status()
        data = response.json()
        hits = [
            SearchHit(
                title=item.get("title", ""),
                url=item.get("url", ""),
                snippet=item.get("description", ""),
            )
            for item in data.get("web", {}).get("results", [])
        ]
        return SearchResponse("brave", query, hits)

    async def _tavily(self, query: str, count: int, choice: ProviderChoice) -> SearchResponse:
        response = await self._client.post(
            TAVILY_URL,
            json={
                "api_key": self.config.tavily_api_key,
                "query": query,
                "search_depth": choice.depth,
                "max_results": min(count, 20),
                "include_answer": choice.include_answer,
            },
        )
        response.raise_for_status()
        data = response.json()
        hits = [
            SearchHit(
                title=item.get("title", ""),
                url=item.get("url", ""),
                snippet=item.get("content", ""),
            )
            for item in data.get("results", [])
        ]
        return SearchResponse("tavily", query, hits, answer=data.get("answer"))
