"""Enrich an inbound webhook request with session-local facts (local time, first-message-of-day)."""

from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from doradobet_agent.api.models import WebhookRequest
from doradobet_agent.config import settings
from doradobet_agent.core.schema import (
    HistoryTurn,
    SessionContext,
)

logger = logging.getLogger(__name__)

_WEEKDAYS = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")
_MONTHS = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)


def format_local_date(moment: datetime) -> str:
    """``lunes, 19 de octubre de 2026``"""
    weekday = _WEEKDAYS[moment.weekday()]
    month = _MONTHS[moment.month - 1]
    return f"{weekday}, {moment.day} de {month} de {moment.year}"


def format_local_time(moment: datetime) -> str:
    """``09:05 a. m.``"""
    hour = moment.hour % 12 or 12
    suffix = "a. m." if moment.hour < 12 else "p. m."
    return f"{hour:02d}:{moment.minute:02d} {suffix}"


def build_context(
    request: WebhookRequest,
    has_profile: bool,
    *,
    now: datetime | None = None,
    tz_name: str | None = None,
    cutoff_hour: int | None = None,
) -> SessionContext:
    """
    Build the immutable :class:`SessionContext` for one request.

    Parameters
    ----------
    request:
        The validated webhook payload.
    has_profile:
        Whether the profile store already holds a profile for ``request.user_id``.
    now:
        Reference instant; defaults to the current time.  Naive values are taken to be UTC.
    tz_name, cutoff_hour:
        Override ``settings.TIMEZONE`` / ``settings.PROACTIVE_CUTOFF_HOUR``.
    """
    zone = ZoneInfo(tz_name or settings.TIMEZONE)
    cutoff = settings.PROACTIVE_CUTOFF_HOUR if cutoff_hour is None else cutoff_hour

    if now is None:
        local = datetime.now(zone)
    elif now.tzinfo is None:
        local = now.replace(tzinfo=ZoneInfo("UTC")).astimezone(zone)
    else:
        local = now.astimezone(zone)

    # A first message only counts as the daily briefing trigger in the morning.
    is_first_of_day = request.first_message and local.hour < cutoff

    history = tuple(
        HistoryTurn(role="assistant" if entry.role == "assistant" else "user", content=entry.content)
        for entry in request.context
    )

    return SessionContext(
        user_id=request.user_id,
        session_id=request.session_id,
        client_id=request.client_id,
        correlation_id=request.correlation_id,
        message=request.message or "",
        history=history,
        first_message=request.first_message,
        is_first_message_of_day=is_first_of_day,
        has_profile=has_profile,
        agent_name=request.agent_name or settings.DEFAULT_AGENT_NAME,
        local_date=format_local_date(local),
        local_time=format_local_time(local),
    )
