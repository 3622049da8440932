"""
The ``memory`` tool: lets the model read and edit the user's profile document.

The model addresses the document as ``/memories/user-{userId}``; commands are ``view``, ``create``,
``str_replace``, ``find`` and ``delete``.  Every outcome, including failures, is reported back as
text so the model can recover conversationally.
"""

import logging
import re
from typing import (
    Any,
    Dict,
    Optional,
)

from doradobet_agent.memory.profile_store import (
    EditOutcome,
    ProfileStoreError,
)
from doradobet_agent.tools import (
    ToolDeps,
    register_tool,
)

logger = logging.getLogger(__name__)

COMMANDS = ("view", "create", "str_replace", "find", "delete")

_PATH_RE = re.compile(r"/memories/(.+)")
_USER_PREFIX = "user-"

INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "command": {
            "type": "string",
            "enum": list(COMMANDS),
            "description": (
                "view=leer, create=crear/sobreescribir, str_replace=editar campo específico, "
                "find=buscar texto, delete=eliminar"
            ),
        },
        "path": {
            "type": "string",
            "description": "Ruta del archivo. SIEMPRE usar /memories/user-{userId} con el userId del CONTEXTO DE SESIÓN.",
        },
        "file_text": {"type": "string", "description": "Contenido completo del archivo. Requerido solo para: create"},
        "old_str": {"type": "string", "description": "Texto exacto a reemplazar. Requerido solo para: str_replace"},
        "new_str": {"type": "string", "description": "Texto nuevo. Requerido solo para: str_replace"},
        "pattern": {"type": "string", "description": "Texto a buscar. Requerido solo para: find"},
    },
    "required": ["command", "path"],
}


class MemoryCommandError(ValueError):
    """Bad path or missing argument in a memory command."""


def user_id_from_path(path: str, session_user_id: Optional[str] = None) -> str:
    """
    ``/memories/user-42`` -> ``42`` (``/memories/42`` is accepted too).

    A remainder equal to *session_user_id* is taken as-is, so ids that themselves start with
    ``user-`` keep their prefix.
    """
    match = _PATH_RE.fullmatch(path.strip()) if path else None
    if match is None:
        raise MemoryCommandError(f'Invalid memory path: "{path}". Expected: /memories/user-{{userId}}')
    rest = match.group(1)
    if session_user_id is not None and rest == session_user_id:
        return rest
    if rest.startswith(_USER_PREFIX) and len(rest) > len(_USER_PREFIX):
        return rest[len(_USER_PREFIX):]
    return rest


def format_with_line_numbers(path: str, content: str) -> str:
    numbered = "\n".join(f"{i:>6}    {line}" for i, line in enumerate(content.split("\n"), start=1))
    return f"Here's the content of {path} with line numbers:\n{numbered}"


def _require(tool_input: Dict[str, Any], key: str, command: str) -> str:
    value = tool_input.get(key)
    if not isinstance(value, str):
        raise MemoryCommandError(f"Missing required parameter '{key}' for {command}")
    return value


async def _run_command(command: str, path: str, user_id: str, tool_input: Dict[str, Any], deps: ToolDeps) -> str:
    store = deps.profiles

    if command == "view":
        content = await store.view(user_id)
        if content is None:
            return f"The path {path} does not exist. To store information about this user, use the create command."
        return format_with_line_numbers(path, content)

    if command == "create":
        await store.create(user_id, _require(tool_input, "file_text", command))
        return f"File created successfully at: {path}"

    if command == "str_replace":
        old = _require(tool_input, "old_str", command)
        new = _require(tool_input, "new_str", command)
        if not old:
            raise MemoryCommandError("old_str must not be empty")
        outcome = await store.edit_by_replace(user_id, old, new)
        if outcome is EditOutcome.NOT_FOUND:
            return f"The path {path} does not exist. Use create to initialize it first."
        if outcome is EditOutcome.NO_MATCH:
            return (
                f"No replacement was performed: old_str did not appear verbatim in {path}.\n"
                "Make sure the string matches exactly (including whitespace and line breaks)."
            )
        return "The memory file has been edited successfully."

    if command == "find":
        pattern = _require(tool_input, "pattern", command)
        matches = await store.find(user_id, pattern)
        if matches is None:
            return f"The path {path} does not exist."
        if not matches:
            return f'No matches found for "{pattern}" in {path}'
        lines = "\n".join(f"{num:>4}: {line}" for num, line in matches)
        return f'Matches for "{pattern}" in {path}:\n{lines}'

    # delete
    await store.delete(user_id)
    return f"File deleted successfully: {path}"


@register_tool(
    "memory",
    "Accede y modifica el archivo de memoria del usuario. Guarda y recupera preferencias deportivas, "
    "nombre, equipos favoritos y otros datos persistentes del usuario entre sesiones.",
    INPUT_SCHEMA,
)
async def memory_tool(tool_input: Dict[str, Any], deps: ToolDeps) -> str:
    """Dispatch one memory command onto the profile store."""
    command = tool_input.get("command")
    path = str(tool_input.get("path") or "")

    if command not in COMMANDS:
        return f'Unknown memory command: "{command}". Valid commands: {", ".join(COMMANDS)}'

    try:
        user_id = user_id_from_path(path, deps.ctx.user_id)
        if user_id != deps.ctx.user_id:
            logger.warning(
                "Memory %s on foreign path %s refused (session user %s)", command, path, deps.ctx.user_id
            )
            return (
                f"Access denied: {path} does not belong to the current user. "
                f"Use /memories/user-{deps.ctx.user_id}."
            )
        return await _run_command(command, path, user_id, tool_input, deps)
    except (MemoryCommandError, ProfileStoreError) as exc:
        logger.error("Memory %s on %s failed: %s", command, path, exc)
        return f"Memory operation failed: {exc}"
