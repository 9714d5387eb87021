# autopm/clients/researcher.py
"""
Web research for the idea stage via the DuckDuckGo instant-answer API.
No key required; results are the abstract plus the first related topics.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Protocol

import httpx
from pydantic import BaseModel

from autopm.config import settings

log = logging.getLogger(__name__)


class SearchHit(BaseModel):
    text: str
    url: Optional[str] = None

    def reference(self) -> str:
        return self.url or self.text


class Researcher(Protocol):
    async def search(self, query: str) -> List[SearchHit]: ...


def _topics(related: List[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    # Disambiguation pages nest topics one level down under "Topics"
    for topic in related:
        if "Topics" in topic:
            yield from topic["Topics"]
        else:
            yield topic


class DuckDuckGoResearcher:
    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        max_results: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.RESEARCH_API_URL).rstrip("/")
        self.max_results = max_results or settings.RESEARCH_MAX_RESULTS
        self._transport = transport

    async def search(self, query: str) -> List[SearchHit]:
        params = {"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"}
        async with httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_S, transport=self._transport) as client:
            r = await client.get(f"{self.base_url}/", params=params)
            if r.is_error:
                raise httpx.HTTPStatusError(f"{r.status_code}: {r.text}", request=r.request, response=r)
            data = r.json()

        hits: List[SearchHit] = []
        if data.get("AbstractText"):
            hits.append(SearchHit(text=data["AbstractText"], url=data.get("AbstractURL") or None))
        for topic in _topics(data.get("RelatedTopics") or []):
            if len(hits) >= self.max_results:
                break
            if topic.get("Text"):
                hits.append(SearchHit(text=topic["Text"], url=topic.get("FirstURL") or None))
        log.info("research.searched", extra={"query_chars": len(query), "hits": len(hits)})
        return hits
