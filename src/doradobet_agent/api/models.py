"""
Pydantic models for the doradobet-agent HTTP API.
This module defines the request and response schemas used by the webhook and admin endpoints.
The canonical chat response itself lives in :mod:`doradobet_agent.core.response`.
"""

from typing import (
    Any,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class HistoryEntry(BaseModel):
    """One prior conversation message sent by the caller."""

    role: str
    content: str


class WebhookRequest(BaseModel):
    """Incoming message from the upstream chat server."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field("", description="User message; empty for proactive triggers")
    user_id: str = Field(..., alias="userId", min_length=1)
    session_id: str = Field(..., alias="sessionId", min_length=1)
    client_id: str = Field(..., alias="clientId", min_length=1)
    correlation_id: str = Field(..., alias="correlationId", min_length=1)
    context: List[HistoryEntry] = Field(default_factory=list, description="Recent history, oldest first")
    first_message: bool = Field(False, alias="firstMessage")
    agent_name: Optional[str] = Field(None, alias="agentName")


class ErrorResponse(BaseModel):
    """Error payload for rejected requests."""

    error: str
    details: Optional[List[Any]] = None


class HealthResponse(BaseModel):
    """Liveness / readiness payload."""

    status: str
    db: str
    uptime: float


class AckResponse(BaseModel):
    """Generic acknowledgement."""

    ok: bool = True


class ResetUserResponse(AckResponse):
    """Result of deleting a stored profile."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    deleted: bool


class ClearCacheResponse(AckResponse):
    """Result of clearing the prompt cache."""

    cleared: int
