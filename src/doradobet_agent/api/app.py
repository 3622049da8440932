"""
HTTP backend for doradobet-agent.

It exposes the following endpoints:
- **POST /webhook**                 - one chat turn from the upstream chat server; returns the
                                      canonical response.
- **GET /health**                   - readiness check (database connectivity + uptime).
- **DELETE /api/reset-user**        - delete a stored profile (demo reset).
- **POST /api/prompts/clear-cache** - drop cached prompt layers so edits are picked up.

Every endpoint except ``/health`` requires the ``x-odds-api-key`` header.
"""

import asyncio
import logging
import secrets
import time
from contextlib import asynccontextmanager
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    List,
    Optional,
)

from fastapi import (
    Depends,
    FastAPI,
    Query,
    Request,
)
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from doradobet_agent.agent.agent_loop import TurnLoop
from doradobet_agent.agent.agent_service import AgentService
from doradobet_agent.agent.model_client import load_model_client
from doradobet_agent.agent.prompt_composer import (
    PromptCache,
    PromptComposer,
)
from doradobet_agent.agent.tool_executor import ToolDispatcher
from doradobet_agent.api.models import (
    ClearCacheResponse,
    ErrorResponse,
    HealthResponse,
    ResetUserResponse,
    WebhookRequest,
)
from doradobet_agent.common import (
    AnsiColors,
    colored_print,
)
from doradobet_agent.config import (
    Settings,
    settings,
)
from doradobet_agent.core.response import to_wire
from doradobet_agent.memory.audit_log import (
    AuditRecorder,
    AuditSink,
    JsonlAuditSink,
    SqlAuditSink,
)
from doradobet_agent.memory.database import Database
from doradobet_agent.memory.dedup_cache import (
    DedupCache,
    InMemoryDedupCache,
    RedisDedupCache,
)
from doradobet_agent.memory.profile_store import (
    ProfileStore,
    SqlProfileStore,
)
from doradobet_agent.sports.client import SportsDataClient

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-odds-api-key"


class UnauthorizedError(Exception):
    """Raised when the API key header is missing or wrong."""


# ---------------------------------------------------------------------------
# Service container
# ---------------------------------------------------------------------------
@dataclass
class AgentServices:
    """Everything the routes need, built once per process."""

    agent: AgentService
    profiles: ProfileStore
    prompt_cache: PromptCache
    api_key: str
    db: Optional[Database] = None
    audit: Optional[AuditRecorder] = None
    closers: List[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def db_healthy(self) -> bool:
        if self.db is None:
            return True
        return await asyncio.to_thread(self.db.health_check)

    async def aclose(self) -> None:
        """Drain pending audit writes, then close network clients and the pool."""
        if self.audit is not None:
            await self.audit.drain()
        for closer in self.closers:
            try:
                await closer()
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Error during shutdown: %s", exc)
        if self.db is not None:
            self.db.dispose()


def build_services(cfg: Settings) -> AgentServices:
    """Wire the production collaborators from *cfg*."""
    if not cfg.WEBHOOK_API_KEY:
        raise RuntimeError("WEBHOOK_API_KEY must be set")

    db = Database(cfg.DATABASE_URL, pool_size=cfg.DB_POOL_SIZE)
    db.init_schema()
    profiles = SqlProfileStore(db)

    dedup: DedupCache
    if cfg.REDIS_URL:
        dedup = RedisDedupCache.from_url(cfg.REDIS_URL, ttl_seconds=cfg.DEDUP_TTL_SECONDS)
    else:
        logger.info("REDIS_URL not set; using in-process dedup cache")
        dedup = InMemoryDedupCache(ttl_seconds=cfg.DEDUP_TTL_SECONDS)

    sink: AuditSink
    if cfg.AUDIT_SINK.lower() == "jsonl":
        jsonl_sink = JsonlAuditSink(cfg.AUDIT_LOG_PATH)
        jsonl_sink.init()
        sink = jsonl_sink
    else:
        sink = SqlAuditSink(db)
    audit = AuditRecorder(sink)

    sports = SportsDataClient(cfg.SPORTS_API_URL, timeout=cfg.SPORTS_API_TIMEOUT)
    model = load_model_client(
        cfg.MODEL_PROVIDER,
        api_key=cfg.ANTHROPIC_API_KEY,
        model=cfg.CLAUDE_MODEL,
        max_tokens=cfg.MAX_OUTPUT_TOKENS,
        web_search_max_uses=cfg.WEB_SEARCH_MAX_USES,
    )

    prompt_cache = PromptCache(cfg.PROMPTS_DIR)
    composer = PromptComposer(prompt_cache, history_turns=cfg.HISTORY_TURNS)
    composer.check()

    dispatcher = ToolDispatcher(profiles, sports, audit, event_url_base=cfg.EVENT_URL_BASE)
    loop = TurnLoop(model, dispatcher, max_turns=cfg.MAX_TURNS)
    agent = AgentService(
        profiles,
        dedup,
        composer,
        loop,
        slow_request_ms=cfg.SLOW_REQUEST_MS,
        tz_name=cfg.TIMEZONE,
        cutoff_hour=cfg.PROACTIVE_CUTOFF_HOUR,
    )

    return AgentServices(
        agent=agent,
        profiles=profiles,
        prompt_cache=prompt_cache,
        api_key=cfg.WEBHOOK_API_KEY,
        db=db,
        audit=audit,
        closers=[model.aclose, sports.aclose, dedup.close],
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(services: Optional[AgentServices] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Parameters
    ----------
    services:
        Pre-built collaborators (tests inject fakes here).  When *None*, they are built from
        *app_settings* during startup.
    app_settings:
        Configuration to build services from; defaults to the module-level ``settings``.
    """
    cfg = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.services is None:
            app.state.services = build_services(cfg)
        app.state.started_at = time.monotonic()
        logger.info("doradobet-agent ready")
        try:
            yield
        finally:
            await app.state.services.aclose()
            logger.info("doradobet-agent stopped")

    app = FastAPI(
        title="DoradoBet Agent API",
        version="0.1.0",
        description="Conversational sports betting assistant backend",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Error handlers
    # -----------------------------------------------------------------------
    @app.exception_handler(RequestValidationError)
    async def invalid_payload(_: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("Invalid payload: %s", exc.errors())
        body = ErrorResponse(error="Invalid payload", details=jsonable_encoder(exc.errors()))
        return JSONResponse(status_code=400, content=body.model_dump())

    @app.exception_handler(UnauthorizedError)
    async def unauthorized(_: Request, __: UnauthorizedError) -> JSONResponse:
        return JSONResponse(status_code=401, content=ErrorResponse(error="Unauthorized").model_dump(exclude_none=True))

    # -----------------------------------------------------------------------
    # Dependencies
    # -----------------------------------------------------------------------
    def get_services(request: Request) -> AgentServices:
        return request.app.state.services

    def require_api_key(request: Request) -> None:
        expected = get_services(request).api_key
        provided = request.headers.get(API_KEY_HEADER) or ""
        if not expected or not secrets.compare_digest(provided, expected):
            logger.warning("Rejected request to %s: bad or missing API key", request.url.path)
            raise UnauthorizedError()

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    @app.post("/webhook", summary="Process one chat turn", dependencies=[Depends(require_api_key)])
    async def webhook(req: WebhookRequest, request: Request) -> JSONResponse:
        """Run the agent and return the canonical response."""
        services = get_services(request)
        outcome = await services.agent.handle(req, cancelled=request.is_disconnected)
        return JSONResponse(content=to_wire(outcome.response))

    @app.get("/health", response_model=HealthResponse, summary="Health check")
    async def health(request: Request) -> JSONResponse:
        """Report database connectivity and uptime."""
        healthy = await get_services(request).db_healthy()
        body = HealthResponse(
            status="ok" if healthy else "degraded",
            db="connected" if healthy else "error",
            uptime=round(time.monotonic() - request.app.state.started_at, 3),
        )
        return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())

    @app.delete(
        "/api/reset-user",
        response_model=ResetUserResponse,
        summary="Delete a stored profile",
        dependencies=[Depends(require_api_key)],
    )
    async def reset_user(request: Request, user_id: str = Query(..., alias="userId", min_length=1)) -> Any:
        """Delete the profile of *userId* so the next message starts onboarding again."""
        deleted = await get_services(request).profiles.delete(user_id)
        logger.info("Profile reset for userId=%s (deleted=%s)", user_id, deleted)
        return ResetUserResponse(user_id=user_id, deleted=deleted)

    @app.post(
        "/api/prompts/clear-cache",
        response_model=ClearCacheResponse,
        summary="Clear the prompt cache",
        dependencies=[Depends(require_api_key)],
    )
    async def clear_prompt_cache(request: Request) -> Any:
        """Drop cached prompt layers; the next request re-reads them from disk."""
        return ClearCacheResponse(cleared=get_services(request).prompt_cache.clear())

    return app


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int | None = None, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting the application.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server (port defaults to ``settings.API_PORT``).
    reload:
        If *True*, enable auto-reload.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if port is None:
        port = settings.API_PORT
    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info("Starting doradobet-agent API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level)

    colored_print(f"⚽ doradobet-agent API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "doradobet_agent.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m doradobet_agent.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
