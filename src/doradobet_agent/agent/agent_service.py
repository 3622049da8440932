"""
Request pipeline: dedup -> profile lookup -> context -> mode -> prompt -> turn loop -> normalizer.

:meth:`AgentService.handle` always returns an :class:`AgentOutcome` with a canonical response;
internal failures degrade to a text apology.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import (
    Optional,
    Union,
)

from pydantic import BaseModel

from doradobet_agent.agent.agent_loop import (
    CancelCheck,
    TurnLoop,
)
from doradobet_agent.agent.context_builder import build_context
from doradobet_agent.agent.mode_selector import select_mode
from doradobet_agent.agent.output_normalizer import normalize_output
from doradobet_agent.agent.prompt_composer import PromptComposer
from doradobet_agent.api.models import WebhookRequest
from doradobet_agent.config import settings
from doradobet_agent.core.response import (
    REQUEST_FAILED_MESSAGE,
    JsonResponse,
    TextResponse,
    text_response,
)
from doradobet_agent.core.schema import (
    LoopState,
    Mode,
)
from doradobet_agent.memory.dedup_cache import DedupCache
from doradobet_agent.memory.profile_store import ProfileStore

logger = logging.getLogger(__name__)


class AgentOutcome(BaseModel):
    """Canonical response plus the bookkeeping the transport logs."""

    response: Union[TextResponse, JsonResponse]
    duplicate: bool = False
    mode: Optional[Mode] = None
    loop_state: Optional[LoopState] = None
    tool_calls_count: int = 0
    turns: int = 0
    duration_ms: int = 0


class AgentService:
    """Runs one webhook request end to end."""

    def __init__(
        self,
        profiles: ProfileStore,
        dedup: DedupCache,
        composer: PromptComposer,
        loop: TurnLoop,
        slow_request_ms: int | None = None,
        tz_name: str | None = None,
        cutoff_hour: int | None = None,
    ) -> None:
        self.profiles = profiles
        self.dedup = dedup
        self.composer = composer
        self.loop = loop
        self.tz_name = tz_name
        self.cutoff_hour = cutoff_hour
        self.slow_request_ms = settings.SLOW_REQUEST_MS if slow_request_ms is None else slow_request_ms

    async def _is_duplicate(self, correlation_id: str) -> bool:
        try:
            return await self.dedup.check_and_mark(correlation_id)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Dedup check failed, allowing request: %s", exc)
            return False

    async def handle(
        self,
        request: WebhookRequest,
        cancelled: Optional[CancelCheck] = None,
        now: Optional[datetime] = None,
    ) -> AgentOutcome:
        start = time.monotonic()
        logger.info(
            "-> userId=%s | correlationId=%s | firstMsg=%s | msg=%r",
            request.user_id,
            request.correlation_id,
            request.first_message,
            request.message[:60],
        )

        if await self._is_duplicate(request.correlation_id):
            logger.info("Duplicate request: %s", request.correlation_id)
            return AgentOutcome(response=text_response(""), duplicate=True)

        outcome: AgentOutcome
        try:
            has_profile = await self.profiles.exists(request.user_id)
            ctx = build_context(
                request, has_profile, now=now, tz_name=self.tz_name, cutoff_hour=self.cutoff_hour
            )

            decision = select_mode(ctx)
            logger.info("Mode: %s (%s)", decision.mode.value, decision.reason)

            system_prompt = self.composer.compose(ctx, decision)
            result = await self.loop.run(ctx, system_prompt, cancelled=cancelled)

            outcome = AgentOutcome(
                response=normalize_output(result.output),
                mode=decision.mode,
                loop_state=result.state,
                tool_calls_count=result.tool_calls_count,
                turns=result.turns,
            )
        except Exception:  # pylint: disable=broad-except
            logger.exception("Error handling request for userId=%s", request.user_id)
            outcome = AgentOutcome(response=text_response(REQUEST_FAILED_MESSAGE))

        outcome.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "<- userId=%s | mode=%s | state=%s | tools=%d | %dms",
            request.user_id,
            outcome.mode.value if outcome.mode else "-",
            outcome.loop_state.value if outcome.loop_state else "-",
            outcome.tool_calls_count,
            outcome.duration_ms,
        )
        if outcome.duration_ms > self.slow_request_ms:
            logger.warning("Slow request: %dms for userId=%s", outcome.duration_ms, request.user_id)
        return outcome
