"""
Schema definitions for context <-> turn loop <-> model <-> tool messages.

These data models serve as the contract between the request pipeline, the model client, the turn
loop and individual tools.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.
"""

from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Tuple,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

Role = Literal["user", "assistant"]


# ---------------------------------------------------------------------------
# Session context & mode
# ---------------------------------------------------------------------------
class HistoryTurn(BaseModel):
    """One prior message of the conversation, as sent by the upstream caller."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class SessionContext(BaseModel):
    """Everything downstream components know about the current request.  Never mutated."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    session_id: str
    client_id: str
    correlation_id: str
    message: str = ""
    history: Tuple[HistoryTurn, ...] = ()
    first_message: bool = False
    is_first_message_of_day: bool = False
    has_profile: bool = False
    agent_name: str = "Paul"
    local_date: str = Field("", description="Human readable local date, e.g. 'lunes, 19 de octubre de 2026'")
    local_time: str = Field("", description="Local wall-clock time, e.g. '09:05 a. m.'")


class Mode(str, Enum):
    """Behavioral instruction layer active for one request."""

    ONBOARDING = "onboarding"
    PROACTIVE = "proactive"
    REACTIVE = "reactive"


class ModeDecision(BaseModel):
    """The selected mode plus a human-readable justification."""

    model_config = ConfigDict(frozen=True)

    mode: Mode
    reason: str


# ---------------------------------------------------------------------------
# Model output segments
# ---------------------------------------------------------------------------
class TextSegment(BaseModel):
    """Plain text emitted by the model."""

    kind: Literal["text"] = "text"
    text: str

    def to_block(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


class ToolInvocation(BaseModel):
    """A call the model wants us to execute locally."""

    kind: Literal["tool_use"] = "tool_use"
    id: str = Field(..., description="Opaque correlation token echoed back with the result")
    name: str = Field(..., description="Registered tool name")
    input: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments")

    def to_block(self) -> Dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


class ProviderSegment(BaseModel):
    """A block the provider resolves itself (e.g. web search). Replayed verbatim, never dispatched."""

    kind: Literal["provider"] = "provider"
    block_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    def to_block(self) -> Dict[str, Any]:
        return dict(self.payload)


Segment = Annotated[Union[TextSegment, ToolInvocation, ProviderSegment], Field(discriminator="kind")]


class StopReason(str, Enum):
    """Why the model stopped producing output for a turn."""

    END_TURN = "end_turn"
    PAUSE_TURN = "pause_turn"
    TOOL_USE = "tool_use"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "StopReason":
        try:
            return cls(raw)
        except ValueError:
            return cls.OTHER


class ModelTurn(BaseModel):
    """One model response: its stop reason and ordered output segments."""

    stop_reason: Optional[str] = None
    segments: List[Segment] = Field(default_factory=list)

    @property
    def stop(self) -> StopReason:
        return StopReason.parse(self.stop_reason)

    @property
    def text(self) -> str:
        """Concatenated text segments, in emission order."""
        return "".join(s.text for s in self.segments if isinstance(s, TextSegment) and s.text)

    @property
    def tool_invocations(self) -> List[ToolInvocation]:
        return [s for s in self.segments if isinstance(s, ToolInvocation)]

    def to_content_blocks(self) -> List[Dict[str, Any]]:
        return [s.to_block() for s in self.segments]


class ToolResult(BaseModel):
    """Text produced by one tool invocation."""

    tool_use_id: str
    content: str

    def to_block(self) -> Dict[str, Any]:
        return {"type": "tool_result", "tool_use_id": self.tool_use_id, "content": self.content}


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------
class TranscriptTurn(BaseModel):
    """A single message in the provider conversation."""

    role: Role
    content: Union[str, List[Dict[str, Any]]]


class Transcript(BaseModel):
    """Append-only conversation owned by the turn loop for one request."""

    turns: List[TranscriptTurn] = Field(default_factory=list)

    def add_user_text(self, text: str) -> None:
        self.turns.append(TranscriptTurn(role="user", content=text))

    def add_model_turn(self, turn: ModelTurn) -> None:
        self.turns.append(TranscriptTurn(role="assistant", content=turn.to_content_blocks()))

    def add_tool_results(self, results: List[ToolResult]) -> None:
        self.turns.append(TranscriptTurn(role="user", content=[r.to_block() for r in results]))

    def to_messages(self) -> List[Dict[str, Any]]:
        return [turn.model_dump() for turn in self.turns]

    def __len__(self) -> int:
        return len(self.turns)


# ---------------------------------------------------------------------------
# Loop outcome
# ---------------------------------------------------------------------------
class LoopState(str, Enum):
    """States of the turn loop."""

    REQUESTING = "requesting"
    TOOL_PENDING = "tool_pending"
    DONE = "done"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LoopResult(BaseModel):
    """What the turn loop hands back to the request pipeline."""

    state: LoopState
    output: str = ""
    tool_calls_count: int = 0
    turns: int = 0
    duration_ms: int = 0
    transcript: Transcript = Field(default_factory=Transcript)
