"""Tests for the sports data client and the event tools built on it."""

import asyncio
import json

import httpx
import pytest
from conftest import (
    StubSportsClient,
    sample_event,
)

from doradobet_agent.sports.client import (
    SportsDataClient,
    SportsDataError,
)
from doradobet_agent.tools import ToolDeps
from doradobet_agent.tools.sports_tools import (
    event_url,
    live_events_tool,
    upcoming_events_tool,
)

BASE = "https://sports.example.test"


def _client(handler) -> SportsDataClient:
    return SportsDataClient(BASE, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_query_posts_payload_and_parses_results() -> None:
    """The query endpoint receives the search parameters and trace header."""

    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        seen["trace"] = request.headers.get("X-Trace-ID")
        return httpx.Response(
            200,
            json={
                "query": "nba",
                "results": [sample_event(event_id=1, is_live=True).model_dump(), sample_event(event_id=2).model_dump()],
                "total_results": 2,
            },
        )

    events = asyncio.run(_client(handler).query("nba", trace_id="42"))

    assert seen["url"] == BASE + "/api/v1/query"
    assert seen["body"] == {"query": "nba", "top_k": 20, "min_score": 0.5, "max_odds_per_event": 7}
    assert seen["trace"] == "42"
    assert [e.event_id for e in events] == [1, 2]
    assert events[0].is_live is True


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500, text="boom"),
        lambda request: httpx.Response(200, text="not json"),
        lambda request: httpx.Response(200, json={"results": [{"event_name": "sin id"}]}),
    ],
)
def test_query_errors_raise_sports_data_error(handler) -> None:
    """HTTP errors and malformed payloads become SportsDataError."""

    with pytest.raises(SportsDataError):
        asyncio.run(_client(handler).query("nba"))


def test_transport_error_raises_sports_data_error() -> None:
    """Connection failures become SportsDataError."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(SportsDataError):
        asyncio.run(_client(handler).query("nba"))


def test_event_url() -> None:
    """Event links are built from the sport name and id."""

    assert event_url("https://x.test/sport/", sample_event()) == "https://x.test/sport/futbol/1234"


def test_upcoming_tool_formats_events(make_context, profiles) -> None:
    """Results are rendered with the top three odds and the event link."""

    sports = StubSportsClient(events=[sample_event()])
    deps = ToolDeps(ctx=make_context(), profiles=profiles, sports=sports, event_url_base="https://x.test/sport")

    text = asyncio.run(upcoming_events_tool({"query": "fútbol hoy"}, deps))

    assert sports.queries == [{"text": "fútbol hoy próximos programados", "trace_id": "42"}]
    assert "▶ Millonarios vs Santa Fe" in text
    assert "URL: https://x.test/sport/futbol/1234" in text
    assert "Santa Fe (1x2): 3.40" in text
    assert "Más de 2.5" not in text


def test_live_tool_marks_live_and_handles_empty(make_context, profiles) -> None:
    """Live queries get the live suffix; no results yield a notice."""

    sports = StubSportsClient(events=[sample_event(is_live=True)])
    deps = ToolDeps(ctx=make_context(), profiles=profiles, sports=sports)
    assert "[EN VIVO 🔴]" in asyncio.run(live_events_tool({"query": "nba"}, deps))
    assert sports.queries[0]["text"] == "nba en vivo live"

    empty = ToolDeps(ctx=make_context(), profiles=profiles, sports=StubSportsClient())
    assert asyncio.run(live_events_tool({"query": "nba"}, empty)).startswith("No hay eventos disponibles")


def test_tool_reports_sports_errors(make_context, profiles) -> None:
    """API failures are returned as advice to fall back to web search."""

    deps = ToolDeps(ctx=make_context(), profiles=profiles, sports=StubSportsClient(error="HTTP 503"))
    text = asyncio.run(upcoming_events_tool({"query": "tenis"}, deps))
    assert text.startswith("Error consultando eventos deportivos: HTTP 503")
    assert "web_search" in text
