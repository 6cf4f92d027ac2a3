"""
Session manager for live negotiation rooms.

WHAT: Single entry point that turns typed transport events into state changes
WHY: Coordinate matchmaking, the session state machine, the cache and notifications
HOW: One handler per event kind; every mutation is written through the HybridCache

Handlers run to completion between store calls on one event loop, so no lock
guards the in-memory state. Validation errors raise BusinessException before
any mutation; persistence failures come back as warnings on the EventResult.
"""

import hmac
import random
from typing import Any, Optional

from .cache import HybridCache, WriteResult
from .catalog import RoomCatalog
from .config import settings
from ..models.events import (
    ChatMessageEvent,
    Disconnect,
    Event,
    EventResult,
    JoinRoom,
    Notification,
    Notifier,
    ProposeConfirmation,
    RoomReset,
    RoundEnd,
    RoundStart,
    parse_event,
)
from ..models.negotiation import (
    ChatMessage,
    NegotiationSession,
    Participant,
    Role,
    Room,
    RoomStatus,
)
from ..services import negotiation
from ..services.matchmaking import make_pairs
from ..services.negotiation import ConfirmationStatus
from ..services.offer_extractor import ExtractorConfig
from ..services.round_results import compile_round_results, room_overview
from ..utils.exceptions import (
    ParticipantNotFoundException,
    ParticipantNotInSessionException,
    RoomNotFoundException,
    SessionNotFoundException,
    UnauthorizedModeratorException,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _message_payload(message: ChatMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "session_id": message.session_id,
        "sequence": message.sequence,
        "author_id": message.author_id,
        "author_name": message.author_name,
        "role": message.role.value,
        "text": message.text,
        "offer": message.offer,
        "confidence": message.confidence,
        "tag": message.tag,
        "created_at": message.created_at.isoformat(),
    }


class SessionManager:
    """
    Orchestrate rooms, pairings and negotiations.

    WHAT: Event handlers for join, chat, confirmation, moderator commands and disconnects
    WHY: Transport layers stay thin; they parse payloads and forward events here
    HOW: Mutate cached entities, persist changed fields, notify affected participants
    """

    def __init__(
        self,
        cache: HybridCache,
        notifier: Notifier,
        catalog: Optional[RoomCatalog] = None,
        rng: Optional[random.Random] = None,
        extractor_config: Optional[ExtractorConfig] = None,
        moderator_key: Optional[str] = None,
        auto_pair: Optional[bool] = None
    ):
        self.cache = cache
        self.notifier = notifier
        self.catalog = catalog or RoomCatalog.from_settings()
        self.rng = rng or random.Random(settings.PAIRING_SEED)
        self.extractor_config = extractor_config or ExtractorConfig.from_settings()
        self.moderator_key = moderator_key if moderator_key is not None else settings.MODERATOR_KEY
        self.auto_pair = settings.AUTO_PAIR_LATE_JOINERS if auto_pair is None else auto_pair

        self._handlers = {
            JoinRoom: self._join_room,
            ChatMessageEvent: self._chat_message,
            ProposeConfirmation: self._propose_confirmation,
            RoundStart: self._round_start,
            RoundEnd: self._round_end,
            RoomReset: self._room_reset,
            Disconnect: self._disconnect,
        }

    async def handle(self, event: Event) -> EventResult:
        """
        Apply one event.

        Returns:
            EventResult with handler data and persistence warnings

        Raises:
            BusinessException: validation failure, nothing was mutated
        """
        writes: list[WriteResult] = []
        data = await self._handlers[type(event)](event, writes)
        warnings = [w.warning for w in writes if not w.ok]
        return EventResult(ok=True, data=data, warnings=warnings)

    async def handle_payload(self, payload: Any) -> EventResult:
        """Validate a raw payload at the boundary, then apply it."""
        return await self.handle(parse_event(payload))

    def durability(self) -> dict[str, Any]:
        return {
            "durable": self.cache.durable,
            "memory_only": not self.cache.durable,
            "error": None if self.cache.durable else self.cache.durability_error,
        }

    async def overview(self, room_id: str, credential: str) -> dict[str, Any]:
        """Moderator snapshot of a room."""
        self._authorize(credential, "overview")
        room = await self._require_room(room_id)
        return room_overview(room, self.cache.participants, self.cache.sessions_in_room(room.id))

    async def overview_all(self, credential: str) -> list[dict[str, Any]]:
        """Moderator snapshot of every live room, ordered by room id."""
        self._authorize(credential, "overview_all")
        return [
            room_overview(room, self.cache.participants, self.cache.sessions_in_room(room.id))
            for _, room in sorted(self.cache.rooms.items())
        ]

    # Lookups and guards

    def _authorize(self, credential: Optional[str], action: str):
        if not credential or not hmac.compare_digest(credential.encode(), self.moderator_key.encode()):
            logger.warning(f"Rejected moderator action {action}")
            raise UnauthorizedModeratorException(action)

    async def _require_participant(self, participant_id: str) -> Participant:
        participant = await self.cache.get_participant(participant_id)
        if participant is None:
            raise ParticipantNotFoundException(participant_id)
        return participant

    async def _require_session(self, participant: Participant) -> NegotiationSession:
        if participant.session_id is None:
            raise ParticipantNotInSessionException(participant.id)
        session = await self.cache.get_session(participant.session_id)
        if session is None:
            raise SessionNotFoundException(participant.session_id)
        return session

    async def _require_room(self, room_id: str) -> Room:
        room = await self.cache.get_room(room_id)
        if room is None:
            raise RoomNotFoundException(room_id)
        return room

    async def _ensure_room(self, room_id: str, writes: list[WriteResult]) -> Room:
        """Rooms are created from the catalog on first reference."""
        room = await self.cache.get_room(room_id)
        if room is not None:
            return room
        # Created by a concurrent handler while the lookup was suspended
        room = self.cache.rooms.get(room_id)
        if room is not None:
            return room
        template = self.catalog.template_for(room_id)
        room, result = await self.cache.create_room(
            room_id, template.name, template.description, template.products
        )
        writes.append(result)
        logger.info(f"Created room {room_id} with {len(room.products)} products")
        return room

    # Notifications

    async def _notify(self, target_id: str, kind: str, **payload):
        await self.notifier.notify(target_id, Notification(type=kind, payload=payload))

    async def _broadcast(self, room: Room, kind: str, **payload):
        for participant_id in sorted(room.member_ids):
            await self._notify(participant_id, kind, **payload)

    async def _send_pairing(self, session: NegotiationSession, participant: Participant):
        role = session.role_of(participant.id)
        partner = self.cache.participants.get(session.partner_of(participant.id))
        product = None
        if session.product is not None:
            info = session.product.seller_info if role is Role.SELLER else session.product.buyer_info
            product = {"name": session.product.name, "info": info}
        await self._notify(
            participant.id,
            "paired",
            session_id=session.id,
            round_number=session.round_number,
            role=role.value,
            partner={
                "id": session.partner_of(participant.id),
                "display_name": partner.display_name if partner else None,
            },
            product=product,
            state=session.state_for(participant.id).value,
            latest_offers=session.latest_offers.model_dump(),
        )

    # Pairing

    async def _pair_waiting(self, room: Room, writes: list[WriteResult]) -> list[NegotiationSession]:
        """
        Match every waiting member of an active room and start their sessions.

        Pairs are claimed (sessions formed and cached, session_id set) before
        the first store call, so no concurrent handler can see a member of
        this pass as waiting.
        """
        pool = [
            p for p in self.cache.participants_in_room(room.id)
            if p.is_waiting and p.id in room.member_ids
        ]
        if len(pool) < 2:
            return []

        result = make_pairs(pool, self.rng)
        product = room.product_for_round(room.current_round)

        formed = []
        for pairing in result.pairs:
            session = negotiation.form_session(room.id, room.current_round, pairing.seller, pairing.buyer, product)
            for participant in pairing.participants:
                participant.session_id = session.id
            formed.append((pairing, session))

        writes.extend(await self.cache.create_sessions([session for _, session in formed]))

        sessions = []
        for pairing, session in formed:
            for participant in pairing.participants:
                writes.append(await self.cache.persist_participant(
                    participant, "session_id", "role", "role_history", "previous_partners"
                ))

            if not session.is_open:
                # Abandoned by a disconnect while the pass was being written
                writes.append(await self.cache.persist_session(session, "status", "ended_at"))
                continue

            for participant in pairing.participants:
                await self._send_pairing(session, participant)
            negotiation.begin(session)
            writes.append(await self.cache.persist_session(session, "status"))

            logger.info(
                f"Room {room.id} round {room.current_round}: session {session.id} "
                f"seller={pairing.seller.id} buyer={pairing.buyer.id}"
            )
            sessions.append(session)

        for participant in result.unpaired:
            await self._notify(participant.id, "waiting", room_id=room.id, round_number=room.current_round)

        return sessions

    async def _leave_room(self, participant_id: str, room_id: str, writes: list[WriteResult]):
        """Drop a participant who moved to another room from the old member set."""
        room = await self.cache.get_room(room_id)
        if room is None or participant_id not in room.member_ids:
            return
        room.member_ids.discard(participant_id)
        writes.append(await self.cache.persist_room(room, "member_ids"))
        logger.info(f"Participant {participant_id} left room {room_id}")

    async def _detach(self, participant_id: str, writes: list[WriteResult]):
        participant = await self.cache.get_participant(participant_id)
        if participant is None or participant.session_id is None:
            return
        writes.append(await self.cache.update_participant(participant, session_id=None, role=None))

    async def _close_sessions(
        self,
        sessions: list[NegotiationSession],
        writes: list[WriteResult]
    ) -> int:
        """Abandon every open session and release all of their participants."""
        abandoned = 0
        for session in sessions:
            if negotiation.abandon(session):
                abandoned += 1
                writes.append(await self.cache.persist_session(session, "status", "ended_at"))
            for participant_id in session.participant_ids:
                await self._detach(participant_id, writes)
        return abandoned

    # Event handlers

    async def _join_room(self, event: JoinRoom, writes: list[WriteResult]) -> dict[str, Any]:
        is_moderator = False
        if event.credential:
            self._authorize(event.credential, "join_room")
            is_moderator = True

        room = await self._ensure_room(event.room_id, writes)

        participant = None
        if event.participant_id:
            participant = await self.cache.get_participant(event.participant_id)

        if participant is None:
            participant, result = await self.cache.create_participant(
                event.display_name, room.id, participant_id=event.participant_id, is_moderator=is_moderator
            )
            writes.append(result)
            logger.info(f"Registered participant {participant.id} in room {room.id}")
        else:
            previous_room_id = participant.room_id
            changes = {"connected": True}
            if participant.session_id is None:
                changes["room_id"] = room.id
            if is_moderator:
                changes["is_moderator"] = True
            writes.append(await self.cache.update_participant(participant, **changes))
            logger.info(f"Participant {participant.id} reconnected")

            if participant.room_id != previous_room_id and previous_room_id is not None:
                await self._leave_room(participant.id, previous_room_id, writes)

        if participant.id not in room.member_ids:
            room.member_ids.add(participant.id)
            writes.append(await self.cache.persist_room(room, "member_ids"))

        await self._notify(
            participant.id,
            "joined",
            participant_id=participant.id,
            display_name=participant.display_name,
            room={"id": room.id, "name": room.name, "description": room.description},
            round_number=room.current_round,
            room_status=room.status.value,
            is_moderator=participant.is_moderator,
        )

        session = None
        if participant.session_id is not None:
            session = await self.cache.get_session(participant.session_id)
            if session is not None:
                await self._send_pairing(session, participant)
        elif not participant.is_moderator:
            await self._notify(participant.id, "waiting", room_id=room.id, round_number=room.current_round)
            if self.auto_pair and room.status is RoomStatus.ACTIVE:
                await self._pair_waiting(room, writes)

        return {
            "participant_id": participant.id,
            "room_id": room.id,
            "session_id": participant.session_id,
            "is_moderator": participant.is_moderator,
        }

    async def _chat_message(self, event: ChatMessageEvent, writes: list[WriteResult]) -> dict[str, Any]:
        participant = await self._require_participant(event.participant_id)
        session = await self._require_session(participant)

        message = negotiation.record_chat(session, participant, event.text, self.extractor_config)
        writes.append(await self.cache.append_message(message))
        if message.offer is not None:
            writes.append(await self.cache.persist_session(session, "latest_offers"))

        payload = _message_payload(message)
        for participant_id in session.participant_ids:
            await self._notify(participant_id, "chat", message=payload)

        return {"message": payload, "latest_offers": session.latest_offers.model_dump()}

    async def _propose_confirmation(self, event: ProposeConfirmation, writes: list[WriteResult]) -> dict[str, Any]:
        participant = await self._require_participant(event.participant_id)
        session = await self._require_session(participant)

        outcome = negotiation.propose_confirmation(session, participant.id, event.price)
        writes.append(await self.cache.persist_session(
            session, "status", "pending_confirmations", "deal", "ended_at"
        ))

        if outcome.status is ConfirmationStatus.SETTLED:
            deal = outcome.deal.model_dump(mode="json")
            for participant_id in session.participant_ids:
                await self._notify(participant_id, "deal_settled", session_id=session.id, deal=deal)
        elif outcome.status is ConfirmationStatus.MISMATCH:
            prices = {outcome.participant_id: outcome.price, outcome.counterpart_id: outcome.counterpart_price}
            for participant_id in session.participant_ids:
                await self._notify(participant_id, "confirmation_mismatch", session_id=session.id, prices=prices)
        else:
            await self._notify(
                outcome.counterpart_id,
                "confirmation_pending",
                session_id=session.id,
                from_participant=participant.id,
                price=outcome.price,
            )

        return {
            "status": outcome.status.value,
            "session_id": session.id,
            "state": session.state_for(participant.id).value,
            "deal": session.deal.model_dump(mode="json") if session.deal else None,
        }

    async def _round_start(self, event: RoundStart, writes: list[WriteResult]) -> dict[str, Any]:
        self._authorize(event.credential, "round_start")
        room = await self._ensure_room(event.room_id, writes)

        # Leftovers from a round that was never ended
        await self._close_sessions(self.cache.sessions_in_room(room.id, room.current_round), writes)

        room.current_round += 1
        room.status = RoomStatus.ACTIVE
        writes.append(await self.cache.persist_room(room, "current_round", "status"))

        product = room.product_for_round(room.current_round)
        logger.info(f"Room {room.id} round {room.current_round} started ({product.name if product else 'no product'})")
        await self._broadcast(
            room,
            "round_started",
            room_id=room.id,
            round_number=room.current_round,
            product=product.name if product else None,
        )

        sessions = await self._pair_waiting(room, writes)
        waiting = [p.id for p in self.cache.participants_in_room(room.id) if p.is_waiting and p.id in room.member_ids]
        return {
            "room_id": room.id,
            "round_number": room.current_round,
            "sessions": [s.id for s in sessions],
            "waiting": waiting,
        }

    async def _round_end(self, event: RoundEnd, writes: list[WriteResult]) -> dict[str, Any]:
        self._authorize(event.credential, "round_end")
        room = await self._require_room(event.room_id)

        sessions = self.cache.sessions_in_room(room.id, room.current_round)
        abandoned = await self._close_sessions(sessions, writes)
        results = compile_round_results(room, sessions)

        room.status = RoomStatus.WAITING
        writes.append(await self.cache.persist_room(room, "status"))

        logger.info(
            f"Room {room.id} round {room.current_round} ended: "
            f"{results['stats']['deal_rate']}% deals, {abandoned} abandoned"
        )
        await self._broadcast(room, "round_ended", results=results)
        return results

    async def _room_reset(self, event: RoomReset, writes: list[WriteResult]) -> dict[str, Any]:
        self._authorize(event.credential, "room_reset")
        room = await self._require_room(event.room_id)

        abandoned = await self._close_sessions(self.cache.sessions_in_room(room.id), writes)
        room.current_round = 0
        room.status = RoomStatus.WAITING
        writes.append(await self.cache.persist_room(room, "current_round", "status"))

        logger.info(f"Room {room.id} reset ({abandoned} sessions abandoned)")
        await self._broadcast(room, "room_reset", room_id=room.id)
        return {"room_id": room.id, "abandoned": abandoned}

    async def _disconnect(self, event: Disconnect, writes: list[WriteResult]) -> dict[str, Any]:
        participant = await self._require_participant(event.participant_id)
        writes.append(await self.cache.update_participant(participant, connected=False))
        logger.info(f"Participant {participant.id} disconnected")

        released = None
        if participant.session_id is not None:
            session = await self.cache.get_session(participant.session_id)
            if session is not None and session.is_open:
                negotiation.abandon(session)
                writes.append(await self.cache.persist_session(session, "status", "ended_at"))
                released = session.partner_of(participant.id)
                for participant_id in session.participant_ids:
                    await self._detach(participant_id, writes)
                await self._notify(released, "session_abandoned", session_id=session.id, reason="partner_disconnected")

                room = await self.cache.get_room(session.room_id)
                if room is not None:
                    await self._notify(released, "waiting", room_id=room.id, round_number=room.current_round)
                    if self.auto_pair and room.status is RoomStatus.ACTIVE:
                        await self._pair_waiting(room, writes)

        return {"participant_id": participant.id, "released_partner": released}
