"""
Client for the sports data API (events with odds, searched with natural language).

``POST {base_url}/api/v1/query`` with ``{"query": ..., "top_k": 20, "min_score": 0.5,
"max_odds_per_event": 7}`` returns ``{"query": ..., "results": [...], "total_results": n}``.
"""

import logging
from typing import (
    List,
    Optional,
    Union,
)

import httpx
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

logger = logging.getLogger(__name__)

QUERY_PATH = "/api/v1/query"


class SportsDataError(RuntimeError):
    """Raised on transport errors, non-2xx responses or malformed payloads."""


class Odd(BaseModel):
    """One selectable price on a market."""

    selection_id: Optional[int] = None
    selection_name: str
    market_id: Optional[int] = None
    market_name: str = ""
    market_type_name: str = ""
    price: float


class SportsEvent(BaseModel):
    """An event returned by the sports data API."""

    event_id: Union[int, str]
    event_name: str
    sport_name: str = ""
    champ_name: str = ""
    category_name: str = ""
    status: str = ""
    is_live: bool = False
    start_date: str = ""
    score: float = 0.0
    odds: List[Odd] = Field(default_factory=list)


class QueryResponse(BaseModel):
    """Envelope of a query response."""

    query: str = ""
    results: List[SportsEvent] = Field(default_factory=list)
    total_results: int = 0


class SportsDataClient:
    """Async client; reuses one connection pool across requests."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        top_k: int = 20,
        min_score: float = 0.5,
        max_odds_per_event: int = 7,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._top_k = top_k
        self._min_score = min_score
        self._max_odds = max_odds_per_event
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    async def query(self, text: str, trace_id: Optional[str] = None) -> List[SportsEvent]:
        """Return events matching *text*, best match first (possibly empty)."""
        payload = {
            "query": text,
            "top_k": self._top_k,
            "min_score": self._min_score,
            "max_odds_per_event": self._max_odds,
        }
        headers = {"X-Trace-ID": trace_id} if trace_id else {}

        try:
            resp = await self._client.post(
                self._base_url + QUERY_PATH, json=payload, headers=headers, timeout=self._timeout
            )
            resp.raise_for_status()
            body = QueryResponse.model_validate(resp.json())
        except httpx.HTTPStatusError as exc:
            logger.error("Sports API HTTP %d for query '%s'", exc.response.status_code, text)
            raise SportsDataError(f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Sports API request error for query '%s': %s", text, exc)
            raise SportsDataError(str(exc) or type(exc).__name__) from exc
        except (ValueError, ValidationError) as exc:
            logger.error("Malformed sports API payload for query '%s': %s", text, exc)
            raise SportsDataError("malformed response payload") from exc

        logger.debug("Sports API returned %d event(s) for '%s'", len(body.results), text)
        return body.results

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
