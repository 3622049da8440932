"""
Model client interface for doradobet-agent.

This module is the only place that *directly* calls an LLM.  Everything else (turn loop, tools,
normalizer) works with :class:`~doradobet_agent.core.schema.ModelTurn` values and stays
provider-agnostic.

The provider's loosely typed content blocks are converted into a closed set of segments:
``text``, ``tool_use`` (dispatched locally) and ``provider`` (resolved by the provider itself, such
as web search calls and their results).

Additional providers can be added by subclassing :class:`BaseModelClient` and registering via
:func:`register_model_client`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Type,
)

from doradobet_agent.config import settings
from doradobet_agent.core.schema import (
    ModelTurn,
    ProviderSegment,
    Segment,
    TextSegment,
    ToolInvocation,
)
from doradobet_agent.tools import get_tool_definitions

logger = logging.getLogger(__name__)


class ModelClientError(RuntimeError):
    """Raised when the provider call fails."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_MODEL_CLIENT_REGISTRY: dict[str, Type["BaseModelClient"]] = {}


def register_model_client(name: str) -> Callable:
    """Decorator to register a model client class under *name*."""

    def wrapper(cls: Type["BaseModelClient"]) -> Type["BaseModelClient"]:
        _MODEL_CLIENT_REGISTRY[name] = cls
        return cls

    return wrapper


def load_model_client(name: str | None = None, **kwargs: Any) -> "BaseModelClient":
    """
    Factory that returns an instantiated model client.

    Fallback order:
    1. *name* arg
    2. ``settings.MODEL_PROVIDER`` env option
    3. default: ``"anthropic"``
    """

    target = name or getattr(settings, "MODEL_PROVIDER", "anthropic")
    cls = _MODEL_CLIENT_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Model client '{target}' is not registered.")
    return cls(**kwargs)


def block_to_segment(block: Mapping[str, Any]) -> Segment:
    """Map one provider content block onto the closed segment set."""
    block_type = block.get("type")
    if block_type == "text":
        return TextSegment(text=block.get("text") or "")
    if block_type == "tool_use":
        return ToolInvocation(id=block["id"], name=block["name"], input=dict(block.get("input") or {}))
    return ProviderSegment(block_type=str(block_type), payload=dict(block))


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseModelClient(ABC):
    """Abstract client that turns (system prompt, transcript) -> one model turn."""

    @abstractmethod
    async def create_turn(self, system: str, messages: List[Dict[str, Any]]) -> ModelTurn:
        """Request one model turn.  Raises :class:`ModelClientError` on provider failure."""

    async def aclose(self) -> None:
        """Release network resources."""
        return None


# ---------------------------------------------------------------------------
# Concrete clients
# ---------------------------------------------------------------------------
@register_model_client("anthropic")
class AnthropicModelClient(BaseModelClient):
    """Anthropic Messages API client with local tools plus the server-side web search tool."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        web_search_max_uses: int | None = None,
        client: Any = None,
    ) -> None:
        import anthropic  # pylint: disable=import-outside-toplevel

        self._anthropic = anthropic
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key or settings.ANTHROPIC_API_KEY)
        self.model = model or settings.CLAUDE_MODEL
        self.max_tokens = max_tokens or settings.MAX_OUTPUT_TOKENS
        self.web_search_max_uses = web_search_max_uses or settings.WEB_SEARCH_MAX_USES

    def tool_definitions(self) -> List[Dict[str, Any]]:
        # Web search is executed by the provider; no local handler exists for it.
        web_search = {"type": "web_search_20250305", "name": "web_search", "max_uses": self.web_search_max_uses}
        return [web_search, *get_tool_definitions()]

    async def create_turn(self, system: str, messages: List[Dict[str, Any]]) -> ModelTurn:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=messages,
                tools=self.tool_definitions(),
            )
        except self._anthropic.APIError as exc:
            logger.error("Anthropic request error: %s", str(exc))
            raise ModelClientError(f"Error calling Anthropic: {exc}") from exc

        blocks = [block.model_dump(mode="json", exclude_none=True) for block in response.content]
        logger.debug(
            "Anthropic turn: stop_reason=%s blocks=%s", response.stop_reason, [b.get("type") for b in blocks]
        )
        return ModelTurn(stop_reason=response.stop_reason, segments=[block_to_segment(b) for b in blocks])

    async def aclose(self) -> None:
        await self._client.close()
