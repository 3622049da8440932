"""
Tool-call audit trail.

Every tool dispatch produces two :class:`AuditEntry` records (before and after).  They are handed
to an :class:`AuditRecorder`, which writes them in background tasks so the turn loop never waits
on, or fails because of, the audit sink.
"""

import asyncio
import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from datetime import (
    datetime,
    timezone,
)
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Set,
)

from pydantic import (
    BaseModel,
    Field,
)

from doradobet_agent.memory.database import (
    Database,
    ToolAuditRecord,
)

logger = logging.getLogger(__name__)


class AuditEntry(BaseModel):
    """One audit record."""

    user_id: str
    session_id: str
    tool_name: str
    tool_input: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: Optional[int] = None
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink(ABC):
    """Destination for audit entries."""

    @abstractmethod
    async def write(self, entry: AuditEntry) -> None: ...


class JsonlAuditSink(AuditSink):
    """Flat-file audit trail (JSON lines format)."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def init(self) -> None:
        """Ensure the log file exists."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if not self._path.exists():
            self._path.touch()  # Create an empty file if it doesn't exist

    def _append(self, line: str) -> None:
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def write(self, entry: AuditEntry) -> None:
        await asyncio.to_thread(self._append, entry.model_dump_json())


class SqlAuditSink(AuditSink):
    """Audit rows in ``doradobet_tool_audit``."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def _insert(self, entry: AuditEntry) -> None:
        with self._db.session() as session:
            session.add(
                ToolAuditRecord(
                    user_id=entry.user_id,
                    session_id=entry.session_id,
                    tool_name=entry.tool_name,
                    tool_input=json.loads(json.dumps(entry.tool_input, default=str)),
                    duration_ms=entry.duration_ms,
                    created_at=entry.recorded_at,
                )
            )

    async def write(self, entry: AuditEntry) -> None:
        await asyncio.to_thread(self._insert, entry)


class AuditRecorder:
    """Fire-and-forget front for an :class:`AuditSink`."""

    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink
        self._pending: Set[asyncio.Task] = set()

    def record(self, entry: AuditEntry) -> None:
        """Schedule *entry* for writing and return immediately."""
        try:
            task = asyncio.get_running_loop().create_task(self._write(entry))
        except RuntimeError:
            logger.warning("No running event loop; dropping audit entry for '%s'", entry.tool_name)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, entry: AuditEntry) -> None:
        try:
            await self._sink.write(entry)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Failed to record tool call '%s': %s", entry.tool_name, exc)

    async def drain(self) -> None:
        """Wait for all scheduled writes (used at shutdown and in tests)."""
        pending: List[asyncio.Task] = list(self._pending)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
