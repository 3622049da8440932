"""
Prompt composer.

Builds the system prompt by stacking layers, in this order:

1. ``persona.md``            - agent identity and tone
2. ``ways/output_format.md`` - the canonical response contract (required)
3. ``ways/memory.md``        - when and how to use the profile tool
4. ``ways/tools.md``         - sports data vs. web search
5. ``modes/<mode>.md``       - the single active mode
6. runtime context           - date, ids, profile flags
7. conversation history      - last N turns

Layer files are read once and kept in a :class:`PromptCache` for the life of the process.
"""

import logging
import threading
from pathlib import Path
from typing import Dict

from doradobet_agent.config import settings
from doradobet_agent.core.schema import (
    ModeDecision,
    SessionContext,
)

logger = logging.getLogger(__name__)

PERSONA_LAYER = "persona.md"
OUTPUT_FORMAT_LAYER = "ways/output_format.md"
MEMORY_LAYER = "ways/memory.md"
TOOLS_LAYER = "ways/tools.md"

_SEPARATOR = "\n\n---\n\n"


class PromptConfigurationError(RuntimeError):
    """Raised when a required prompt layer cannot be loaded."""


class PromptCache:
    """
    Process-lifetime cache of prompt files, keyed by path relative to *root*.

    Missing files are cached as empty strings so the filesystem is not hit again until
    :meth:`clear` is called.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._lock = threading.Lock()
        self._entries: Dict[str, str] = {}

    @property
    def root(self) -> Path:
        return self._root

    def load(self, relative_path: str) -> str:
        """Return the file content, or ``""`` when it does not exist."""
        with self._lock:
            cached = self._entries.get(relative_path)
        if cached is not None:
            return cached

        try:
            content = (self._root / relative_path).read_text(encoding="utf-8")
        except OSError:
            logger.warning("Missing prompt file: %s", relative_path)
            content = ""

        with self._lock:
            self._entries[relative_path] = content
        return content

    def clear(self) -> int:
        """Drop every cached entry; returns how many were removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Prompt cache cleared (%d entries)", count)
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PromptComposer:
    """Assemble the layered system prompt for one request."""

    def __init__(self, cache: PromptCache, history_turns: int | None = None) -> None:
        self.cache = cache
        self.history_turns = settings.HISTORY_TURNS if history_turns is None else history_turns

    def _required(self, relative_path: str) -> str:
        content = self.cache.load(relative_path)
        if not content.strip():
            logger.error("Required prompt layer '%s' is missing or empty", relative_path)
            raise PromptConfigurationError(
                f"Required prompt layer '{relative_path}' not found under {self.cache.root}"
            )
        return content

    def check(self) -> None:
        """Fail fast when a required layer is missing.  Called at startup."""
        self._required(OUTPUT_FORMAT_LAYER)

    def compose(self, ctx: SessionContext, decision: ModeDecision) -> str:
        """Return the full system prompt for *ctx* under *decision*."""
        parts = [self.cache.load(PERSONA_LAYER)]

        parts.append(_SEPARATOR + self._required(OUTPUT_FORMAT_LAYER))

        for layer in (MEMORY_LAYER, TOOLS_LAYER):
            content = self.cache.load(layer)
            if content:
                parts.append(_SEPARATOR + content)

        mode_content = self.cache.load(f"modes/{decision.mode.value}.md")
        if mode_content:
            parts.append(f"{_SEPARATOR}## MODO ACTIVO: {decision.mode.value.upper()}\n\n{mode_content}")

        parts.append(_SEPARATOR + self._runtime_block(ctx))

        history = self._history_block(ctx)
        if history:
            parts.append(_SEPARATOR + history)

        return "".join(parts)

    @staticmethod
    def _runtime_block(ctx: SessionContext) -> str:
        profile = "Sí" if ctx.has_profile else "No (modo onboarding)"
        first_of_day = "Sí" if ctx.is_first_message_of_day else "No"
        return "\n".join(
            [
                "## CONTEXTO DE SESIÓN",
                "",
                f"- **Fecha y hora (Bogotá)**: {ctx.local_date}, {ctx.local_time}",
                f"- **userId**: `{ctx.user_id}`",
                f"- **sessionId**: `{ctx.session_id}`",
                f"- **Memory path del usuario**: `/memories/user-{ctx.user_id}`",
                f"- **Tiene perfil guardado**: {profile}",
                f"- **Primer mensaje del día**: {first_of_day}",
            ]
        )

    def _history_block(self, ctx: SessionContext) -> str:
        if not ctx.history or self.history_turns <= 0:
            return ""
        recent = ctx.history[-self.history_turns :]
        lines = [
            f"**{'Usuario' if turn.role == 'user' else ctx.agent_name}**: {turn.content}"
            for turn in recent
        ]
        return "## HISTORIAL DE CONVERSACIÓN\n\n" + "\n\n".join(lines)
