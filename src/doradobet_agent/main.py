"""
doradobet-agent entry point.

This file handles startup concerns (arg-parsing, logging) and launches the appropriate interface
(API server, or API plus the developer CLI).
"""

import argparse
import logging
import sys

from doradobet_agent.api.app import run_api
from doradobet_agent.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Per-request HTTP lines from the clients are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for doradobet-agent.

    Starts the API server, or (``--mode cli``) the API in a background thread plus an interactive
    terminal client talking to it.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the DoradoBet conversational agent")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="api",
        help="Launch the REST API only, or the API plus an interactive CLI (default: api)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--user-id",
        default="cli-user",
        help="userId sent by the CLI client (default: %(default)s)",
    )
    args = parser.parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting doradobet-agent [%s mode]", args.mode)
    logger.debug("Settings: %s", settings.model_dump(exclude={"ANTHROPIC_API_KEY", "WEBHOOK_API_KEY"}))

    if args.mode == "api":
        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    # Lazy import to avoid CLI dependencies if not needed
    import threading  # pylint: disable=import-outside-toplevel

    from doradobet_agent.client.cli import run_cli  # pylint: disable=import-outside-toplevel

    api_thread = threading.Thread(
        target=run_api,
        kwargs={
            "host": "127.0.0.1",
            "port": settings.API_PORT,
            "reload": False,  # Reload doesn't work well with threading
            "log_level": "warning",
        },
        daemon=True,
    )
    api_thread.start()

    run_cli(user_id=args.user_id)


if __name__ == "__main__":
    main()
