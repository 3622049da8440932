"""Live and upcoming sports event tools, backed by :class:`~doradobet_agent.sports.client.SportsDataClient`."""

import logging
from typing import (
    Any,
    Dict,
    List,
)

from doradobet_agent.sports.client import (
    SportsDataError,
    SportsEvent,
)
from doradobet_agent.tools import (
    ToolDeps,
    register_tool,
)

logger = logging.getLogger(__name__)

LIVE_SUFFIX = "en vivo live"
UPCOMING_SUFFIX = "próximos programados"
TOP_ODDS = 3


def _query_schema(example: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": (
                    "Consulta en lenguaje natural. Incluye deporte, fecha y/o equipos si los conoces "
                    f"del perfil del usuario. Ejemplo: {example}"
                ),
            },
        },
        "required": ["query"],
    }


def event_url(base: str, event: SportsEvent) -> str:
    return f"{base.rstrip('/')}/{event.sport_name.lower()}/{event.event_id}"


def format_events(events: List[SportsEvent], query: str, url_base: str) -> str:
    """Render events as the compact text block the model reads."""
    lines = [f'Se encontraron {len(events)} evento(s) para "{query}":\n']

    for event in events:
        live_tag = " [EN VIVO 🔴]" if event.is_live else ""
        lines.append(f"▶ {event.event_name}{live_tag}")
        lines.append(f"   Deporte: {event.sport_name} | Competición: {event.champ_name} ({event.category_name})")
        lines.append(f"   Fecha: {event.start_date} | Estado: {event.status}")
        lines.append(f"   EventID: {event.event_id} | URL: {event_url(url_base, event)}")
        if event.odds:
            lines.append("   Cuotas principales:")
            for odd in event.odds[:TOP_ODDS]:
                lines.append(f"     - {odd.selection_name} ({odd.market_name}): {odd.price:.2f}")
        lines.append("")

    return "\n".join(lines)


async def search_events(query: str, deps: ToolDeps) -> str:
    """Query the sports API; every failure becomes an advisory string."""
    try:
        events = await deps.sports.query(query, trace_id=deps.ctx.user_id)
    except SportsDataError as exc:
        logger.error("Sports query failed for user %s: %s", deps.ctx.user_id, exc)
        return f"Error consultando eventos deportivos: {exc}. Usa web_search como alternativa."

    if not events:
        return f'No hay eventos disponibles para: "{query}".'
    return format_events(events, query, deps.event_url_base)


def _query_text(tool_input: Dict[str, Any]) -> str:
    return str(tool_input.get("query") or "").strip()


@register_tool(
    "buscar_eventos_en_vivo",
    "Busca eventos deportivos que están ocurriendo EN ESTE MOMENTO. Retorna partidos en vivo con sus "
    'cuotas actuales. Usa este tool cuando el usuario pregunte por "en vivo", "ahora", "live" o quiera '
    "ver partidos que están jugándose.",
    _query_schema('"partidos NBA en vivo ahora", "fútbol europeo en vivo"'),
)
async def live_events_tool(tool_input: Dict[str, Any], deps: ToolDeps) -> str:
    """Live events with current odds."""
    return await search_events(f"{_query_text(tool_input)} {LIVE_SUFFIX}".strip(), deps)


@register_tool(
    "buscar_eventos_programados",
    "Busca eventos deportivos programados (hoy, mañana, esta semana). Retorna próximos partidos con "
    'sus cuotas. Usa este tool cuando el usuario pregunte por "hoy", "mañana", "próximos", fechas '
    "específicas o quiera planear apuestas futuras.",
    _query_schema('"próximos partidos NBA mañana", "fútbol hoy Premier League"'),
)
async def upcoming_events_tool(tool_input: Dict[str, Any], deps: ToolDeps) -> str:
    """Scheduled events with odds."""
    return await search_events(f"{_query_text(tool_input)} {UPCOMING_SUFFIX}".strip(), deps)
