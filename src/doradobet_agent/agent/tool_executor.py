"""Dispatches tool calls registered in ``doradobet_agent.tools``, wraps errors and audits every call."""

import json
import logging
import time
from typing import (
    Any,
    Dict,
)

from doradobet_agent.core.schema import (
    SessionContext,
    ToolInvocation,
    ToolResult,
)
from doradobet_agent.memory.audit_log import (
    AuditEntry,
    AuditRecorder,
)
from doradobet_agent.memory.profile_store import ProfileStore
from doradobet_agent.sports.client import SportsDataClient
from doradobet_agent.tools import (
    TOOL_REGISTRY,
    ToolDeps,
)

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


class ToolNotFoundError(ToolExecutionError):
    """Raised when no tool is registered under the requested name."""


async def execute_tool(name: str, tool_input: Dict[str, Any] | None, deps: ToolDeps) -> str:
    """
    Look up *name* in the registry and await its handler with *tool_input*.

    Parameters
    ----------
    name:
        The registered tool name.
    tool_input:
        Arguments as produced by the model.  If *None*, an empty dict is assumed.
    deps:
        Request context and collaborators for the handler.

    Returns
    -------
    str
        The handler's text result (non-string results are JSON-encoded).

    Raises
    ------
    ToolNotFoundError
        If the tool is missing.
    ToolExecutionError
        If the handler raises.
    """

    if tool_input is None:
        tool_input = {}

    spec = TOOL_REGISTRY.get(name)
    if spec is None:
        raise ToolNotFoundError(f"Tool '{name}' is not registered.")

    try:
        logger.debug("Executing tool '%s' with input=%s", name, tool_input)
        result = await spec["handler"](tool_input, deps)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", name)
        raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc

    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


class ToolDispatcher:
    """
    Resolve a :class:`ToolInvocation` to its handler and always produce a :class:`ToolResult`.

    Unknown tools and handler failures become text the model can react to; nothing is raised.
    Two audit records are emitted per call: one before dispatch and one after, with duration.
    """

    def __init__(
        self,
        profiles: ProfileStore,
        sports: SportsDataClient,
        audit: AuditRecorder,
        event_url_base: str = "https://vsft.virtualsoft.tech/sport",
    ) -> None:
        self._profiles = profiles
        self._sports = sports
        self._audit = audit
        self._event_url_base = event_url_base

    def _record(self, ctx: SessionContext, tool_name: str, tool_input: Dict[str, Any], duration_ms: int | None = None) -> None:
        try:
            self._audit.record(
                AuditEntry(
                    user_id=ctx.user_id,
                    session_id=ctx.session_id,
                    tool_name=tool_name,
                    tool_input=tool_input,
                    duration_ms=duration_ms,
                )
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Could not schedule audit record for '%s': %s", tool_name, exc)

    async def dispatch(self, invocation: ToolInvocation, ctx: SessionContext) -> ToolResult:
        start = time.monotonic()
        self._record(ctx, invocation.name, invocation.input)

        deps = ToolDeps(
            ctx=ctx,
            profiles=self._profiles,
            sports=self._sports,
            event_url_base=self._event_url_base,
        )
        try:
            content = await execute_tool(invocation.name, invocation.input, deps)
        except ToolNotFoundError:
            logger.warning("Model requested unknown tool '%s'", invocation.name)
            content = f'Tool "{invocation.name}" is not implemented.'
        except ToolExecutionError as exc:
            content = (
                f"La herramienta {invocation.name} falló: {exc.__cause__ or exc}. "
                "Intenta con web_search como alternativa."
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        self._record(ctx, f"{invocation.name}:complete", {"result_length": len(content)}, duration_ms)
        logger.info("Tool '%s' finished in %dms (%d chars)", invocation.name, duration_ms, len(content))

        return ToolResult(tool_use_id=invocation.id, content=content)
