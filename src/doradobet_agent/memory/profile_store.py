"""
Profile store: one free-text profile document per user.

The document is what the model sees as the file ``/memories/user-{userId}``.  Two back-ends are
provided:

* :class:`SqlProfileStore` - production, backed by :class:`~doradobet_agent.memory.database.Database`.
* :class:`InMemoryProfileStore` - tests and local runs without a database.
"""

import asyncio
import logging
from abc import (
    ABC,
    abstractmethod,
)
from enum import Enum
from typing import (
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from sqlalchemy import (
    delete,
    select,
)
from sqlalchemy.exc import SQLAlchemyError

from doradobet_agent.memory.database import (
    Database,
    ProfileRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

LineMatch = Tuple[int, str]


class ProfileStoreError(RuntimeError):
    """Raised when the backing store cannot be reached or fails."""


class EditOutcome(str, Enum):
    """Result of :meth:`ProfileStore.edit_by_replace`."""

    EDITED = "edited"
    NOT_FOUND = "not_found"
    NO_MATCH = "no_match"


def find_lines(content: str, pattern: str) -> List[LineMatch]:
    """Case-insensitive substring search; returns ``(line_number, line)`` pairs, 1-based."""
    needle = pattern.lower()
    return [
        (number, line)
        for number, line in enumerate(content.split("\n"), start=1)
        if needle in line.lower()
    ]


class ProfileStore(ABC):
    """Key-value profile persistence keyed by user id."""

    @abstractmethod
    async def view(self, user_id: str) -> Optional[str]:
        """Return the profile text, or *None* when the user has none."""

    @abstractmethod
    async def create(self, user_id: str, content: str) -> None:
        """Create or overwrite the profile."""

    @abstractmethod
    async def edit_by_replace(self, user_id: str, old: str, new: str) -> EditOutcome:
        """Replace the first verbatim occurrence of *old* with *new*."""

    @abstractmethod
    async def find(self, user_id: str, pattern: str) -> Optional[List[LineMatch]]:
        """Matching lines, or *None* when the user has no profile."""

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """Delete the profile; returns whether one existed."""

    @abstractmethod
    async def exists(self, user_id: str) -> bool:
        """Whether the user has a stored profile."""


# ---------------------------------------------------------------------------
# In-memory back-end
# ---------------------------------------------------------------------------
class InMemoryProfileStore(ProfileStore):
    """Dictionary-backed store."""

    def __init__(self, profiles: Optional[Dict[str, str]] = None) -> None:
        self._profiles: Dict[str, str] = dict(profiles or {})

    async def view(self, user_id: str) -> Optional[str]:
        return self._profiles.get(user_id)

    async def create(self, user_id: str, content: str) -> None:
        self._profiles[user_id] = content

    async def edit_by_replace(self, user_id: str, old: str, new: str) -> EditOutcome:
        content = self._profiles.get(user_id)
        if content is None:
            return EditOutcome.NOT_FOUND
        if old not in content:
            return EditOutcome.NO_MATCH
        self._profiles[user_id] = content.replace(old, new, 1)
        return EditOutcome.EDITED

    async def find(self, user_id: str, pattern: str) -> Optional[List[LineMatch]]:
        content = self._profiles.get(user_id)
        if content is None:
            return None
        return find_lines(content, pattern)

    async def delete(self, user_id: str) -> bool:
        return self._profiles.pop(user_id, None) is not None

    async def exists(self, user_id: str) -> bool:
        return user_id in self._profiles


# ---------------------------------------------------------------------------
# SQL back-end
# ---------------------------------------------------------------------------
class SqlProfileStore(ProfileStore):
    """SQLAlchemy-backed store.  Blocking DB work runs in a worker thread."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def _run(self, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except SQLAlchemyError as exc:
            logger.error("Profile store error: %s", exc)
            raise ProfileStoreError(str(exc)) from exc

    async def view(self, user_id: str) -> Optional[str]:
        def _view() -> Optional[str]:
            with self._db.session() as session:
                record = session.get(ProfileRecord, user_id)
                return None if record is None else record.content

        return await self._run(_view)

    async def create(self, user_id: str, content: str) -> None:
        def _create() -> None:
            with self._db.session() as session:
                record = session.get(ProfileRecord, user_id)
                if record is None:
                    session.add(ProfileRecord(user_id=user_id, content=content))
                else:
                    record.content = content

        await self._run(_create)

    async def edit_by_replace(self, user_id: str, old: str, new: str) -> EditOutcome:
        def _edit() -> EditOutcome:
            with self._db.session() as session:
                record = session.get(ProfileRecord, user_id)
                if record is None:
                    return EditOutcome.NOT_FOUND
                if old not in record.content:
                    return EditOutcome.NO_MATCH
                record.content = record.content.replace(old, new, 1)
                return EditOutcome.EDITED

        return await self._run(_edit)

    async def find(self, user_id: str, pattern: str) -> Optional[List[LineMatch]]:
        content = await self.view(user_id)
        if content is None:
            return None
        return find_lines(content, pattern)

    async def delete(self, user_id: str) -> bool:
        def _delete() -> bool:
            with self._db.session() as session:
                result = session.execute(delete(ProfileRecord).where(ProfileRecord.user_id == user_id))
                return bool(result.rowcount)

        return await self._run(_delete)

    async def exists(self, user_id: str) -> bool:
        def _exists() -> bool:
            with self._db.session() as session:
                stmt = select(ProfileRecord.user_id).where(ProfileRecord.user_id == user_id)
                return session.execute(stmt).first() is not None

        return await self._run(_exists)
