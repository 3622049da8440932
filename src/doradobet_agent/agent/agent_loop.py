"""
Turn loop: the bounded exchange between the model and local tools for one request.

States::

    REQUESTING --end_turn--> DONE
    REQUESTING --pause_turn--> REQUESTING        (transcript resent unchanged)
    REQUESTING --tool_use--> TOOL_PENDING --results appended--> REQUESTING
    REQUESTING --other stop reason / model error--> FAILED
    REQUESTING --budget spent--> EXHAUSTED
    any       --cancelled predicate true--> CANCELLED

Only DONE carries output.  The loop never raises for model or tool problems; the caller turns an
empty output into the apology response.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import (
    Any,
    Awaitable,
    Callable,
    List,
    Optional,
    Tuple,
)

from doradobet_agent.agent.model_client import BaseModelClient
from doradobet_agent.agent.tool_executor import ToolDispatcher
from doradobet_agent.common import preview
from doradobet_agent.config import settings
from doradobet_agent.core.schema import (
    LoopResult,
    LoopState,
    ModelTurn,
    SessionContext,
    StopReason,
    ToolResult,
    Transcript,
)

logger = logging.getLogger(__name__)

PROACTIVE_PLACEHOLDER = "(modo proactivo: sin mensaje del usuario)"

CancelCheck = Callable[[], Awaitable[bool]]


# ---------------------------------------------------------------------------
# Turn Loop
# ---------------------------------------------------------------------------
class TurnLoop:
    """Drive model turns and tool dispatch until completion, failure or budget exhaustion."""

    def __init__(
        self,
        model: BaseModelClient,
        dispatcher: ToolDispatcher,
        max_turns: int | None = None,
        poll_interval: float = 0.05,
    ) -> None:
        self.model = model
        self.dispatcher = dispatcher
        self.max_turns = settings.MAX_TURNS if max_turns is None else max_turns
        self.poll_interval = poll_interval

    @staticmethod
    async def _is_cancelled(cancelled: Optional[CancelCheck]) -> bool:
        if cancelled is None:
            return False
        try:
            return bool(await cancelled())
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Cancellation check failed, continuing: %s", exc)
            return False

    async def _watch(self, cancelled: CancelCheck) -> None:
        """Return once *cancelled* reports true.  A failing check stops watching for good."""
        while True:
            try:
                if await cancelled():
                    return
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Cancellation check failed, no longer watching: %s", exc)
                await asyncio.Event().wait()
            await asyncio.sleep(self.poll_interval)

    async def _race(self, work: Awaitable[Any], cancelled: Optional[CancelCheck]) -> Tuple[bool, Any]:
        """
        Await *work* unless the request is cancelled first.

        Returns ``(True, None)`` when cancellation won; the in-flight call is cancelled and awaited
        before returning.  Exceptions raised by *work* propagate.
        """
        if cancelled is None:
            return False, await work

        task = asyncio.ensure_future(work)
        watcher = asyncio.ensure_future(self._watch(cancelled))
        try:
            await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
            if not task.done():
                task.cancel()
            await asyncio.gather(task, watcher, return_exceptions=True)

        if task.cancelled():
            return True, None
        return False, task.result()

    async def _dispatch_turn(
        self, turn: ModelTurn, ctx: SessionContext, cancelled: Optional[CancelCheck]
    ) -> Optional[List[ToolResult]]:
        """Run every local invocation of *turn* in emission order.  *None* means cancelled."""
        results: List[ToolResult] = []
        for invocation in turn.tool_invocations:
            if await self._is_cancelled(cancelled):
                return None
            logger.info("Tool call: %s", invocation.name)
            was_cancelled, result = await self._race(self.dispatcher.dispatch(invocation, ctx), cancelled)
            if was_cancelled:
                logger.info("Tool %s abandoned: request cancelled", invocation.name)
                return None
            results.append(result)
        return results

    async def run(
        self,
        ctx: SessionContext,
        system_prompt: str,
        cancelled: Optional[CancelCheck] = None,
    ) -> LoopResult:
        """
        Run the loop for one request.

        Parameters
        ----------
        ctx:
            Session context of the request (read-only).
        system_prompt:
            Fully composed instructions.
        cancelled:
            Optional async predicate polled before each model call and each tool dispatch, and
            every *poll_interval* seconds while one is in flight.  When it returns *True* the
            in-flight call is cancelled and the loop stops without issuing further calls.
        """
        start = time.monotonic()
        transcript = Transcript()
        transcript.add_user_text(ctx.message.strip() or PROACTIVE_PLACEHOLDER)

        state = LoopState.REQUESTING
        output = ""
        tool_calls = 0
        turns = 0

        while state is LoopState.REQUESTING:
            if turns >= self.max_turns:
                logger.warning("Turn budget of %d spent without completion", self.max_turns)
                state = LoopState.EXHAUSTED
                break
            if await self._is_cancelled(cancelled):
                state = LoopState.CANCELLED
                break

            turns += 1
            logger.info("Turn %d/%d", turns, self.max_turns)

            try:
                was_cancelled, turn = await self._race(
                    self.model.create_turn(system_prompt, transcript.to_messages()), cancelled
                )
            except Exception as exc:  # pylint: disable=broad-except
                logger.error("Model call failed on turn %d: %s", turns, exc)
                state = LoopState.FAILED
                break
            if was_cancelled:
                state = LoopState.CANCELLED
                break

            # Every model turn is kept, whatever happens next.
            transcript.add_model_turn(turn)
            stop = turn.stop

            if stop is StopReason.END_TURN:
                output = turn.text
                state = LoopState.DONE
                logger.info("Completed in turn %d. Output length: %d", turns, len(output))
                logger.debug("Raw output: %s", preview(output))

            elif stop is StopReason.PAUSE_TURN:
                # The provider paused a long-running server tool; resend as-is to resume.
                logger.info("pause_turn, continuing")

            elif stop is StopReason.TOOL_USE:
                state = LoopState.TOOL_PENDING
                results = await self._dispatch_turn(turn, ctx, cancelled)
                if results is None:
                    state = LoopState.CANCELLED
                    break
                tool_calls += len(results)
                if results:
                    transcript.add_tool_results(results)
                state = LoopState.REQUESTING

            else:
                logger.warning("Unexpected stop_reason: %s", turn.stop_reason)
                state = LoopState.FAILED

        if state is LoopState.CANCELLED:
            logger.info("Request cancelled after %d turn(s)", turns)

        return LoopResult(
            state=state,
            output=output if state is LoopState.DONE else "",
            tool_calls_count=tool_calls,
            turns=turns,
            duration_ms=int((time.monotonic() - start) * 1000),
            transcript=transcript,
        )
