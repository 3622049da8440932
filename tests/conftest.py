"""
Shared fakes for the test-suite.

Nothing here talks to the network: the model client is scripted, the sports API is stubbed and
stores are in-memory (or SQLite under ``tmp_path``).
"""

from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
)

import pytest

from doradobet_agent.agent.model_client import BaseModelClient
from doradobet_agent.agent.tool_executor import ToolDispatcher
from doradobet_agent.api.models import WebhookRequest
from doradobet_agent.core.schema import (
    ModelTurn,
    SessionContext,
    TextSegment,
    ToolInvocation,
)
from doradobet_agent.memory.audit_log import (
    AuditEntry,
    AuditRecorder,
    AuditSink,
)
from doradobet_agent.memory.profile_store import InMemoryProfileStore
from doradobet_agent.sports.client import (
    SportsDataError,
    SportsEvent,
)


# ---------------------------------------------------------------------------
# Model turns
# ---------------------------------------------------------------------------
def text_turn(text: str, stop_reason: str = "end_turn") -> ModelTurn:
    return ModelTurn(stop_reason=stop_reason, segments=[TextSegment(text=text)])


def tool_turn(*calls: ToolInvocation, preamble: str = "") -> ModelTurn:
    segments: List[Any] = [TextSegment(text=preamble)] if preamble else []
    segments.extend(calls)
    return ModelTurn(stop_reason="tool_use", segments=segments)


def invocation(name: str, call_id: str = "toolu_1", **tool_input: Any) -> ToolInvocation:
    return ToolInvocation(id=call_id, name=name, input=tool_input)


class ScriptedModelClient(BaseModelClient):
    """Returns pre-baked turns in order; the last one repeats when *repeat_last* is set."""

    def __init__(self, turns: List[ModelTurn], repeat_last: bool = False, error: Optional[Exception] = None):
        self.turns = list(turns)
        self.repeat_last = repeat_last
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def create_turn(self, system: str, messages: List[Dict[str, Any]]) -> ModelTurn:
        self.calls.append({"system": system, "messages": [dict(m) for m in messages]})
        if self.error is not None:
            raise self.error
        if len(self.turns) > 1 or not self.repeat_last:
            return self.turns.pop(0)
        return self.turns[0]

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
class RecordingAuditSink(AuditSink):
    """Keeps every written entry in memory."""

    def __init__(self, fail: bool = False) -> None:
        self.entries: List[AuditEntry] = []
        self.fail = fail

    async def write(self, entry: AuditEntry) -> None:
        if self.fail:
            raise RuntimeError("audit sink down")
        self.entries.append(entry)


class StubSportsClient:
    """Stands in for :class:`SportsDataClient`; records queries."""

    def __init__(self, events: Optional[List[SportsEvent]] = None, error: Optional[str] = None) -> None:
        self.events = events or []
        self.error = error
        self.queries: List[Dict[str, Any]] = []

    async def query(self, text: str, trace_id: Optional[str] = None) -> List[SportsEvent]:
        self.queries.append({"text": text, "trace_id": trace_id})
        if self.error:
            raise SportsDataError(self.error)
        return list(self.events)

    async def aclose(self) -> None:
        return None


def sample_event(**overrides: Any) -> SportsEvent:
    data: Dict[str, Any] = {
        "event_id": 1234,
        "event_name": "Millonarios vs Santa Fe",
        "sport_name": "Futbol",
        "champ_name": "Liga BetPlay",
        "category_name": "Colombia",
        "status": "NotStarted",
        "is_live": False,
        "start_date": "2026-10-19T20:00:00Z",
        "odds": [
            {"selection_name": "Millonarios", "market_name": "1x2", "price": 2.1},
            {"selection_name": "Empate", "market_name": "1x2", "price": 3.05},
            {"selection_name": "Santa Fe", "market_name": "1x2", "price": 3.4},
            {"selection_name": "Más de 2.5", "market_name": "Total", "price": 1.9},
        ],
    }
    data.update(overrides)
    return SportsEvent.model_validate(data)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def profiles() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def sports() -> StubSportsClient:
    return StubSportsClient(events=[sample_event()])


@pytest.fixture
def dispatcher(profiles, sports, audit_sink) -> ToolDispatcher:
    return ToolDispatcher(profiles, sports, AuditRecorder(audit_sink), event_url_base="https://example.test/sport")


@pytest.fixture
def make_request() -> Callable[..., WebhookRequest]:
    def _make(**overrides: Any) -> WebhookRequest:
        payload: Dict[str, Any] = {
            "message": "Hola",
            "userId": "42",
            "sessionId": "sess-1",
            "clientId": "web",
            "correlationId": "corr-1",
        }
        payload.update(overrides)
        return WebhookRequest.model_validate(payload)

    return _make


@pytest.fixture
def make_context() -> Callable[..., SessionContext]:
    def _make(**overrides: Any) -> SessionContext:
        data: Dict[str, Any] = {
            "user_id": "42",
            "session_id": "sess-1",
            "client_id": "web",
            "correlation_id": "corr-1",
            "message": "Hola",
            "has_profile": True,
            "local_date": "lunes, 19 de octubre de 2026",
            "local_time": "09:05 a. m.",
        }
        data.update(overrides)
        return SessionContext(**data)

    return _make
