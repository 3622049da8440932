"""
Reduce raw model output to a canonical response.

The model is told to answer with a single canonical JSON object, but in practice it sometimes wraps
it in markdown fences, prepends a sentence, or returns nothing at all.  :func:`normalize_output`
applies the following steps in order and the first one that succeeds wins:

1. empty / whitespace-only input -> fixed apology text;
2. strip code fences and parse the whole string as a canonical response;
3. find the first ``{"type"`` opener in the raw text, scan to its matching brace and parse that;
4. strip the leftover structured blob and wrap the remaining prose as a text response.

Parsing is lenient: null fields take their defaults and non-object event entries are dropped.  An
object that still fails validation keeps its ``data.message`` as a text response.

Nothing in this module raises.
"""

import json
import logging
import re
from typing import (
    List,
    Optional,
    Union,
)

from pydantic import ValidationError

from doradobet_agent.common import preview
from doradobet_agent.core.response import (
    EMPTY_OUTPUT_MESSAGE,
    JsonResponse,
    TextResponse,
    canonical_adapter,
    text_response,
)

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")
_OPENER = re.compile(r'\{\s*"type"')
_DISCRIMINANT = re.compile(r'"type"\s*:\s*"(?:text|json)"')

_KINDS = ("text", "json")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` marker and a trailing ``` marker."""
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def parse_canonical(text: str) -> Optional[Union[TextResponse, JsonResponse]]:
    """Parse *text* as a canonical response, or return *None*."""
    try:
        obj = json.loads(text)
    except ValueError:
        return None

    if not isinstance(obj, dict):
        return None
    if obj.get("type") not in _KINDS or not isinstance(obj.get("data"), dict):
        return None

    try:
        return canonical_adapter.validate_python(obj)
    except ValidationError as exc:
        logger.info("Canonical-looking object failed validation, keeping its message: %s", exc)

    message = obj["data"].get("message")
    if isinstance(message, str) and message.strip():
        return text_response(message)
    return None


def find_object_end(text: str, start: int) -> Optional[int]:
    """
    Given ``text[start] == '{'``, return the index just past its matching ``}``.

    Braces inside JSON string literals are ignored.  Returns *None* when the object never closes.
    """
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _enclosing_open_brace(text: str, pos: int) -> Optional[int]:
    """
    Index of the unmatched ``{`` that encloses *pos*.

    Scans forward from the start; quotes only open strings inside an object, since the prose
    around it is not JSON.
    """
    opened: List[int] = []
    in_string = False
    escaped = False

    for i in range(pos):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"' and opened:
            in_string = True
        elif ch == "{":
            opened.append(i)
        elif ch == "}" and opened:
            opened.pop()
    return opened[-1] if opened else None


def extract_embedded_response(raw: str) -> Optional[Union[TextResponse, JsonResponse]]:
    """Salvage the first canonical object embedded in surrounding prose."""
    match = _OPENER.search(raw)
    if match is None:
        return None

    end = find_object_end(raw, match.start())
    if end is None:
        return None
    return parse_canonical(raw[match.start() : end])


def strip_leftover_blob(raw: str) -> str:
    """Remove the first object carrying a ``"type": "text"|"json"`` discriminant from *raw*."""
    match = _DISCRIMINANT.search(raw)
    if match is None:
        return raw

    start = _enclosing_open_brace(raw, match.start())
    if start is None:
        return raw

    end = find_object_end(raw, start)
    if end is None:
        end = len(raw)  # truncated object, drop the tail
    return raw[:start] + raw[end:]


def normalize_output(raw: Optional[str]) -> Union[TextResponse, JsonResponse]:
    """Turn raw model text into exactly one canonical response."""
    if not raw or not raw.strip():
        return text_response(EMPTY_OUTPUT_MESSAGE)

    direct = parse_canonical(strip_code_fences(raw.strip()))
    if direct is not None:
        return direct

    extracted = extract_embedded_response(raw)
    if extracted is not None:
        logger.info("Extracted canonical JSON from mixed text response")
        return extracted

    logger.debug("Falling back to plain text for output: %s", preview(raw))
    remainder = strip_leftover_blob(raw).strip()
    return text_response(remainder or raw.strip())
