"""
SQLAlchemy wiring: engine with a bounded connection pool, session factory and table models.

Tables:
  doradobet_memories    one profile document per user (the ``memory`` tool's "file")
  doradobet_tool_audit  one row per audit record emitted by the tool dispatcher
"""

import logging
from contextlib import contextmanager
from typing import (
    Any,
    Dict,
    Iterator,
)

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    func,
    text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import (
    Session,
    declarative_base,
    sessionmaker,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


class ProfileRecord(Base):
    """Stored profile document for a user."""

    __tablename__ = "doradobet_memories"

    user_id = Column(String(255), primary_key=True)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class ToolAuditRecord(Base):
    """One tool-call audit entry."""

    __tablename__ = "doradobet_tool_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    session_id = Column(String(255), nullable=False)
    tool_name = Column(String(255), nullable=False)
    tool_input = Column(JSON, nullable=False, default=dict)
    duration_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Database:
    """Owns the engine (and therefore the pool) for the process."""

    def __init__(self, url: str, pool_size: int = 10) -> None:
        kwargs: Dict[str, Any] = {"pool_pre_ping": True}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs.update(pool_size=pool_size, max_overflow=0, pool_timeout=5, pool_recycle=1800)

        self.url = url
        self.engine = create_engine(url, **kwargs)
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        logger.info("Database engine created (%s)", self.engine.url.render_as_string(hide_password=True))

    def init_schema(self) -> None:
        """Create missing tables.  Safe to call on every startup."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional session scope: commit on success, rollback on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        try:
            with self.engine.connect() as conn:
                return conn.execute(text("SELECT 1")).scalar() == 1
        except SQLAlchemyError as exc:
            logger.warning("Database health check failed: %s", exc)
            return False

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database pool closed")
