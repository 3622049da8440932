"""Terminal client that talks to the local webhook the way the upstream chat server does."""

from __future__ import annotations

import logging
import uuid
from typing import (
    Any,
    Dict,
    List,
    Tuple,
    cast,
)

import httpx

from doradobet_agent.api.app import API_KEY_HEADER
from doradobet_agent.common import (
    AnsiColors,
    colored_print,
)
from doradobet_agent.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def _error_reply(message: str) -> Dict[str, Any]:
    colored_print(message, AnsiColors.RED)
    return {"type": "text", "data": {"message": message}}


def call_api(endpoint: str, data: Dict[str, Any], max_retries: int = 5) -> Dict[str, Any]:
    """POST *data* to the local API with retries; errors come back as a text response."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"
    headers = {API_KEY_HEADER: settings.WEBHOOK_API_KEY or ""}

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=120.0) as client:
                response = client.post(api_url, json=data, headers=headers)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError as e:
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                import time  # pylint: disable=import-outside-toplevel

                time.sleep(retry_delay)
                continue
            logger.error("API connection error: %s", str(e))
            return _error_reply(f"Error connecting to API: {e}")
        except httpx.HTTPStatusError as e:
            logger.error("API returned %d: %s", e.response.status_code, e.response.text)
            return _error_reply(f"API error {e.response.status_code}: {e.response.text}")
        except httpx.HTTPError as e:
            logger.error("API request error: %s", str(e))
            return _error_reply(f"Error connecting to API: {e}")

    return _error_reply(f"Failed to connect to API after {max_retries} attempts")


def render_response(response: Dict[str, Any]) -> str:
    """Plain-text rendering of a canonical response."""
    data = response.get("data") or {}
    lines = [str(data.get("message") or "")]

    for key, title in (("liveEvents", "🔴 En vivo"), ("upcomingEvents", "📅 Próximos")):
        events = data.get(key) or []
        if events:
            lines.append(f"\n{title}:")
            for event in events:
                lines.append(f"  - {event.get('name')} | {event.get('startDate', '')} | {event.get('url', '')}")

    if data.get("status"):
        lines.append(f"\n[{data['status']}]")
    return "\n".join(lines)


def run_cli(user_id: str = "cli-user") -> None:
    """Run the CLI client that communicates with the API."""
    session_id = str(uuid.uuid4())
    history: List[Dict[str, str]] = []
    first = True

    colored_print("\n⚽ DoradoBet shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    colored_print(f"userId={user_id} sessionId={session_id}", AnsiColors.GREY)
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break
        if user_msg.lower() in {"exit", "quit"}:
            break

        payload = {
            "message": user_msg,
            "userId": user_id,
            "sessionId": session_id,
            "clientId": "cli",
            "correlationId": str(uuid.uuid4()),
            "context": history[-20:],
            "firstMessage": first,
        }
        response = call_api("/webhook", payload)
        first = False

        reply = render_response(response)
        colored_print(reply, AnsiColors.YELLOW)

        if user_msg:
            history.append({"role": "user", "content": user_msg})
        history.append({"role": "assistant", "content": reply})


if __name__ == "__main__":
    run_cli()
