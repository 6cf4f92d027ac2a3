"""
Hybrid persistence cache.

WHAT: In-memory working set of participants, rooms and sessions mirrored to a durable store
WHY: The live negotiation reads memory; the durable record is kept without blocking it
HOW: Write-through on every mutation, lazy rehydration on read-miss, explicit write results

Failure policy:
- Store unreachable at start -> memory-only mode (durable=False, writes skipped).
- A failed write is logged and returned as WriteResult(ok=False); the in-memory
  state is never rolled back.
- create_* inserts into the cache before its write suspends, so concurrent
  handlers see the entity at once.
- update_* mutates the cached object first (visible immediately), then writes.
"""

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

from pydantic import BaseModel

from .store import DurableStore
from ..models.negotiation import (
    ChatMessage,
    NegotiationSession,
    Participant,
    Product,
    Room,
)
from ..utils.exceptions import PersistenceError
from ..utils.logger import get_logger
from ..utils.text import utcnow

logger = get_logger(__name__)


def encode_value(value: Any) -> Any:
    """Convert a domain value into a JSON/column friendly value."""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return sorted(encode_value(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class FieldMap:
    """
    Deterministic translation between cache field names and store column names.

    Fields not listed in renames keep their name. Unknown names raise ValueError
    in both directions so nothing is dropped silently.
    """
    kind: str
    fields: tuple[str, ...]
    renames: dict[str, str] = field(default_factory=dict)

    def column_for(self, field_name: str) -> str:
        if field_name not in self.fields:
            raise ValueError(f"Unknown {self.kind} field: {field_name}")
        return self.renames.get(field_name, field_name)

    def field_for(self, column: str) -> str:
        for field_name in self.fields:
            if self.renames.get(field_name, field_name) == column:
                return field_name
        raise ValueError(f"Unknown {self.kind} column: {column}")

    def to_columns(self, values: dict[str, Any]) -> dict[str, Any]:
        return {self.column_for(name): encode_value(value) for name, value in values.items()}

    def to_fields(self, row: dict[str, Any]) -> dict[str, Any]:
        return {self.field_for(column): value for column, value in row.items()}

    def snapshot(self, entity: BaseModel) -> dict[str, Any]:
        """All mapped fields of an entity as a column row."""
        return self.to_columns({name: getattr(entity, name) for name in self.fields})


PARTICIPANT_FIELDS = FieldMap(
    kind="participant",
    fields=(
        "id", "display_name", "room_id", "session_id", "role", "role_history",
        "previous_partners", "connected", "is_moderator", "created_at",
    ),
    renames={"display_name": "name", "session_id": "pair_id", "connected": "is_connected"},
)

ROOM_FIELDS = FieldMap(
    kind="room",
    fields=("id", "name", "description", "products", "current_round", "status", "member_ids", "created_at"),
)

# messages live in their own table
SESSION_FIELDS = FieldMap(
    kind="session",
    fields=(
        "id", "room_id", "round_number", "seller_id", "buyer_id", "product", "status",
        "latest_offers", "pending_confirmations", "deal", "started_at", "ended_at",
    ),
    renames={"deal": "final_deal"},
)

MESSAGE_FIELDS = FieldMap(
    kind="message",
    fields=(
        "id", "session_id", "sequence", "author_id", "author_name", "role", "text",
        "offer", "confidence", "tag", "candidates", "created_at",
    ),
    renames={
        "text": "body",
        "offer": "extracted_offer",
        "confidence": "offer_confidence",
        "tag": "context_tag",
        "candidates": "extraction",
        "created_at": "timestamp",
    },
)


@dataclass
class WriteResult:
    """Observable outcome of one durable write."""
    operation: str
    entity: str
    entity_id: Optional[str]
    ok: bool = True
    skipped: bool = False  # memory-only mode
    error: Optional[str] = None

    @property
    def warning(self) -> Optional[str]:
        if self.ok:
            return None
        return f"Could not persist {self.operation} of {self.entity} {self.entity_id}: {self.error}"


class HybridCache:
    """
    Authoritative in-memory state with write-through to a DurableStore.

    Usage:
        cache = HybridCache(SqlStore.from_url(url))
        await cache.start()
        participant, result = await cache.create_participant("Ada", "electronics")
    """

    def __init__(self, store: Optional[DurableStore] = None):
        self.store = store
        self.durable = store is not None
        self.durability_error: Optional[str] = None if store is not None else "no durable store configured"
        self.participants: dict[str, Participant] = {}
        self.rooms: dict[str, Room] = {}
        self.sessions: dict[str, NegotiationSession] = {}

    async def start(self):
        """Ping the store; fall back to memory-only operation if it is unreachable."""
        if self.store is None:
            logger.warning("No durable store configured; running in memory-only mode")
            return

        status = await self.store.ping()
        if not status["available"]:
            self.disable_durability(status["error"])
            return

        logger.info(f"Durable store available ({status['backend']})")

    def disable_durability(self, reason: Optional[str]):
        """Switch to memory-only mode: writes are skipped, misses are not rehydrated."""
        self.durable = False
        self.durability_error = reason
        logger.warning(f"Durable store unavailable ({reason}); running in memory-only mode")

    async def close(self):
        if self.store is not None:
            await self.store.close()

    def clear(self):
        """Drop the working set (process restart as far as the cache is concerned)."""
        self.participants.clear()
        self.rooms.clear()
        self.sessions.clear()

    async def _write(
        self,
        operation: str,
        entity: str,
        entity_id: Optional[str],
        call: Callable[[], Awaitable[Any]]
    ) -> WriteResult:
        if not self.durable:
            return WriteResult(operation, entity, entity_id, ok=True, skipped=True)
        try:
            await call()
        except PersistenceError as e:
            logger.error(f"Durable {operation} failed for {entity} {entity_id}: {e.cause}")
            return WriteResult(operation, entity, entity_id, ok=False, error=str(e.cause))
        return WriteResult(operation, entity, entity_id)

    async def _load(self, kind: str, entity_id: str) -> Optional[dict[str, Any]]:
        if not self.durable:
            return None
        try:
            return await self.store.get(kind, entity_id)
        except PersistenceError as e:
            logger.error(f"Durable read failed for {kind} {entity_id}: {e.cause}")
            return None

    async def _update(self, field_map: FieldMap, entity: BaseModel, changes: dict[str, Any], assign: bool) -> WriteResult:
        if assign:
            for name, value in changes.items():
                field_map.column_for(name)
                setattr(entity, name, value)
        columns = field_map.to_columns({name: getattr(entity, name) for name in changes})
        return await self._write(
            "update", field_map.kind, entity.id,
            lambda: self.store.update(field_map.kind, entity.id, columns)
        )

    # Participants

    async def create_participant(
        self,
        display_name: str,
        room_id: Optional[str],
        participant_id: Optional[str] = None,
        is_moderator: bool = False
    ) -> tuple[Participant, WriteResult]:
        participant = Participant(
            id=participant_id or str(uuid.uuid4()),
            display_name=display_name,
            room_id=room_id,
            is_moderator=is_moderator,
            created_at=utcnow(),
        )
        self.participants[participant.id] = participant
        row = PARTICIPANT_FIELDS.snapshot(participant)
        result = await self._write("create", "participant", participant.id, lambda: self.store.create("participant", row))
        return participant, result

    async def get_participant(self, participant_id: str) -> Optional[Participant]:
        participant = self.participants.get(participant_id)
        if participant is not None:
            return participant

        row = await self._load("participant", participant_id)
        if row is None:
            return None
        participant = Participant.model_validate(PARTICIPANT_FIELDS.to_fields(row))
        logger.debug(f"Rehydrated participant {participant_id} from durable store")
        # Another handler may have loaded it while this one was suspended
        return self.participants.setdefault(participant.id, participant)

    async def update_participant(self, participant: Participant, **changes) -> WriteResult:
        """Assign changes on the cached participant, then write them through."""
        return await self._update(PARTICIPANT_FIELDS, participant, changes, assign=True)

    async def persist_participant(self, participant: Participant, *fields: str) -> WriteResult:
        """Write through fields already mutated in place (e.g. by the role ledger)."""
        return await self._update(PARTICIPANT_FIELDS, participant, dict.fromkeys(fields), assign=False)

    def participants_in_room(self, room_id: str) -> list[Participant]:
        return [p for p in self.participants.values() if p.room_id == room_id]

    # Rooms

    async def create_room(
        self,
        room_id: str,
        name: str,
        description: str = "",
        products: Iterable[Product] = ()
    ) -> tuple[Room, WriteResult]:
        room = Room(id=room_id, name=name, description=description, products=list(products), created_at=utcnow())
        self.rooms[room.id] = room
        row = ROOM_FIELDS.snapshot(room)
        result = await self._write("create", "room", room.id, lambda: self.store.create("room", row))
        return room, result

    async def get_room(self, room_id: str) -> Optional[Room]:
        """Cached room, or rehydrate it together with its participants and sessions."""
        room = self.rooms.get(room_id)
        if room is not None:
            return room

        row = await self._load("room", room_id)
        if row is None:
            return None
        room = Room.model_validate(ROOM_FIELDS.to_fields(row))
        cached = self.rooms.setdefault(room.id, room)
        if cached is not room:
            return cached
        await self._hydrate_room_contents(room_id)
        logger.info(f"Rehydrated room {room_id} from durable store")
        return room

    async def _hydrate_room_contents(self, room_id: str):
        try:
            participant_rows = await self.store.list_by_room("participant", room_id)
            session_rows = await self.store.list_by_room("session", room_id)
        except PersistenceError as e:
            logger.error(f"Durable read failed for room {room_id} contents: {e.cause}")
            return
        for row in participant_rows:
            if row["id"] not in self.participants:
                participant = Participant.model_validate(PARTICIPANT_FIELDS.to_fields(row))
                self.participants[participant.id] = participant
        for row in session_rows:
            await self.get_session(row["id"])

    async def update_room(self, room: Room, **changes) -> WriteResult:
        return await self._update(ROOM_FIELDS, room, changes, assign=True)

    async def persist_room(self, room: Room, *fields: str) -> WriteResult:
        return await self._update(ROOM_FIELDS, room, dict.fromkeys(fields), assign=False)

    # Sessions

    async def create_session(self, session: NegotiationSession) -> WriteResult:
        """Cache a freshly formed session, then write it through."""
        results = await self.create_sessions([session])
        return results[0]

    async def create_sessions(self, sessions: list[NegotiationSession]) -> list[WriteResult]:
        """
        Cache a batch of sessions, then write each through.

        Every session is visible in memory before the first write suspends,
        so a matchmaking pass is observed as a whole by concurrent handlers.
        """
        rows = []
        for session in sessions:
            self.sessions[session.id] = session
            rows.append((session.id, SESSION_FIELDS.snapshot(session)))

        results = []
        for session_id, row in rows:
            result = await self._write(
                "create", "session", session_id, lambda row=row: self.store.create("session", row)
            )
            results.append(result)
        return results

    async def get_session(self, session_id: str) -> Optional[NegotiationSession]:
        """
        Cached session, or rebuild it from the store.

        Rehydration also loads both participants and the full message log.
        """
        session = self.sessions.get(session_id)
        if session is not None:
            return session

        row = await self._load("session", session_id)
        if row is None:
            return None

        fields = SESSION_FIELDS.to_fields(row)
        await self.get_participant(fields["seller_id"])
        await self.get_participant(fields["buyer_id"])
        try:
            message_rows = await self.store.list_messages(session_id)
        except PersistenceError as e:
            logger.error(f"Durable read failed for messages of session {session_id}: {e.cause}")
            message_rows = []
        fields["messages"] = [
            ChatMessage.model_validate(MESSAGE_FIELDS.to_fields(m)) for m in message_rows
        ]

        session = NegotiationSession.model_validate(fields)
        logger.debug(f"Rehydrated session {session_id} with {len(session.messages)} messages")
        return self.sessions.setdefault(session.id, session)

    async def update_session(self, session: NegotiationSession, **changes) -> WriteResult:
        return await self._update(SESSION_FIELDS, session, changes, assign=True)

    async def persist_session(self, session: NegotiationSession, *fields: str) -> WriteResult:
        """Write through fields the state machine mutated in place."""
        return await self._update(SESSION_FIELDS, session, dict.fromkeys(fields), assign=False)

    def sessions_in_room(self, room_id: str, round_number: Optional[int] = None) -> list[NegotiationSession]:
        return [
            s for s in self.sessions.values()
            if s.room_id == room_id and (round_number is None or s.round_number == round_number)
        ]

    # Messages

    async def append_message(self, message: ChatMessage) -> WriteResult:
        """Append-only write of a message already added to its session's log."""
        row = MESSAGE_FIELDS.snapshot(message)
        return await self._write("create", "message", message.id, lambda: self.store.insert_message(row))
