"""
Durable store interface and implementations.

WHAT: Row-oriented persistence for participants, rooms, sessions and messages
WHY: Negotiation history outlives the process; tests swap in an in-memory fake
HOW: Abstract base class; SQLAlchemy async ORM and dict-backed implementations

Rows are plain dicts keyed by column name. Every failure is raised as
PersistenceError so callers handle one exception type regardless of backend.
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from .database import build_engine, build_session_factory, close_db, init_db, ping_database, session_scope
from .models import MessageRow, ParticipantRow, RoomRow, SessionRow
from ..utils.exceptions import PersistenceError
from ..utils.logger import get_logger

logger = get_logger(__name__)

ENTITY_KINDS = ("participant", "room", "session")
ROOM_SCOPED_KINDS = ("participant", "session")

Row = dict[str, Any]


class DurableStore(ABC):
    """Abstract durable store used by the hybrid cache."""

    @abstractmethod
    async def create(self, kind: str, row: Row) -> Row:
        """
        Insert a new row.

        Args:
            kind: "participant", "room" or "session"
            row: Column values, including the id

        Returns:
            The stored row
        """
        pass

    @abstractmethod
    async def get(self, kind: str, entity_id: str) -> Optional[Row]:
        """Load one row by id; None if absent."""
        pass

    @abstractmethod
    async def update(self, kind: str, entity_id: str, values: Row) -> Row:
        """
        Merge column values into an existing row.

        Raises:
            PersistenceError: row missing or write failed
        """
        pass

    @abstractmethod
    async def list_by_room(self, kind: str, room_id: str) -> list[Row]:
        """All participant or session rows of a room."""
        pass

    @abstractmethod
    async def insert_message(self, row: Row) -> Row:
        """Append one chat message row."""
        pass

    @abstractmethod
    async def list_messages(self, session_id: str) -> list[Row]:
        """Full message log of a session in arrival order."""
        pass

    @abstractmethod
    async def ping(self) -> dict:
        """Availability check: {"available": bool, "backend": str, "error": Optional[str]}."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Called at shutdown."""
        pass


def _check_kind(kind: str, allowed: tuple[str, ...] = ENTITY_KINDS):
    if kind not in allowed:
        raise ValueError(f"Unknown entity kind for this operation: {kind}")


class SqlStore(DurableStore):
    """
    SQLAlchemy-backed store.

    WHAT: Rows in participants/rooms/sessions/messages tables
    WHY: Durable, queryable record for analytics
    HOW: One short-lived AsyncSession per call via session_scope()
    """

    ROW_MODELS = {
        "participant": ParticipantRow,
        "room": RoomRow,
        "session": SessionRow,
    }

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._factory = build_session_factory(engine)

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> "SqlStore":
        return cls(build_engine(url, echo=echo))

    async def initialize(self):
        """Create tables if they do not exist."""
        try:
            await init_db(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError("initialize", "schema", str(self.engine.url), e) from e

    @staticmethod
    def _as_row(obj) -> Row:
        return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}

    async def create(self, kind: str, row: Row) -> Row:
        _check_kind(kind)
        model = self.ROW_MODELS[kind]
        try:
            async with session_scope(self._factory) as db:
                db.add(model(**row))
        except SQLAlchemyError as e:
            raise PersistenceError("create", kind, row.get("id"), e) from e
        return dict(row)

    async def get(self, kind: str, entity_id: str) -> Optional[Row]:
        _check_kind(kind)
        model = self.ROW_MODELS[kind]
        try:
            async with session_scope(self._factory) as db:
                obj = await db.get(model, entity_id)
                return self._as_row(obj) if obj is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError("get", kind, entity_id, e) from e

    async def update(self, kind: str, entity_id: str, values: Row) -> Row:
        _check_kind(kind)
        model = self.ROW_MODELS[kind]
        try:
            async with session_scope(self._factory) as db:
                obj = await db.get(model, entity_id)
                if obj is None:
                    raise PersistenceError("update", kind, entity_id, LookupError("row not found"))
                for column, value in values.items():
                    setattr(obj, column, value)
                await db.flush()
                return self._as_row(obj)
        except SQLAlchemyError as e:
            raise PersistenceError("update", kind, entity_id, e) from e

    async def list_by_room(self, kind: str, room_id: str) -> list[Row]:
        _check_kind(kind, ROOM_SCOPED_KINDS)
        model = self.ROW_MODELS[kind]
        try:
            async with session_scope(self._factory) as db:
                result = await db.execute(select(model).where(model.room_id == room_id))
                return [self._as_row(obj) for obj in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError("list", kind, room_id, e) from e

    async def insert_message(self, row: Row) -> Row:
        try:
            async with session_scope(self._factory) as db:
                db.add(MessageRow(**row))
        except SQLAlchemyError as e:
            raise PersistenceError("create", "message", row.get("id"), e) from e
        return dict(row)

    async def list_messages(self, session_id: str) -> list[Row]:
        try:
            async with session_scope(self._factory) as db:
                result = await db.execute(
                    select(MessageRow)
                    .where(MessageRow.session_id == session_id)
                    .order_by(MessageRow.sequence)
                )
                return [self._as_row(obj) for obj in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError("list", "message", session_id, e) from e

    async def ping(self) -> dict:
        status = await ping_database(self.engine)
        return {"available": status["available"], "backend": status["url"], "error": status["error"]}

    async def close(self) -> None:
        await close_db(self.engine)


class InMemoryStore(DurableStore):
    """
    Dict-backed store.

    Rows are deep-copied in and out so callers never share mutable state
    with the store, matching what a real database round-trip gives them.
    """

    def __init__(self):
        self.tables: dict[str, dict[str, Row]] = {kind: {} for kind in ENTITY_KINDS}
        self.messages: dict[str, list[Row]] = {}
        self.closed = False

    async def create(self, kind: str, row: Row) -> Row:
        _check_kind(kind)
        entity_id = row.get("id")
        if entity_id in self.tables[kind]:
            raise PersistenceError("create", kind, entity_id, ValueError("duplicate id"))
        self.tables[kind][entity_id] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def get(self, kind: str, entity_id: str) -> Optional[Row]:
        _check_kind(kind)
        row = self.tables[kind].get(entity_id)
        return copy.deepcopy(row) if row is not None else None

    async def update(self, kind: str, entity_id: str, values: Row) -> Row:
        _check_kind(kind)
        row = self.tables[kind].get(entity_id)
        if row is None:
            raise PersistenceError("update", kind, entity_id, LookupError("row not found"))
        row.update(copy.deepcopy(values))
        return copy.deepcopy(row)

    async def list_by_room(self, kind: str, room_id: str) -> list[Row]:
        _check_kind(kind, ROOM_SCOPED_KINDS)
        return [copy.deepcopy(row) for row in self.tables[kind].values() if row.get("room_id") == room_id]

    async def insert_message(self, row: Row) -> Row:
        log = self.messages.setdefault(row["session_id"], [])
        if any(existing["id"] == row["id"] for existing in log):
            raise PersistenceError("create", "message", row["id"], ValueError("duplicate id"))
        log.append(copy.deepcopy(row))
        return copy.deepcopy(row)

    async def list_messages(self, session_id: str) -> list[Row]:
        rows = sorted(self.messages.get(session_id, []), key=lambda r: r["sequence"])
        return [copy.deepcopy(row) for row in rows]

    async def ping(self) -> dict:
        return {"available": not self.closed, "backend": "memory", "error": "store closed" if self.closed else None}

    async def close(self) -> None:
        self.closed = True
