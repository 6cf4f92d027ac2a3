"""
Negotiation session state machine.

WHAT: Lifecycle of one pair: Formed -> Negotiating -> DealPending -> Settled, or Abandoned
WHY: Agreement is an explicit two-sided confirmation, not inferred from mutation order
HOW: Functions over a NegotiationSession; persistence and notification stay with the caller

Confirmation rules:
- Each participant holds at most one pending price; re-proposing replaces it.
- Settlement requires exact numeric equality with the counterpart's pending price.
- A settled session is terminal: its Deal is written once and never modified.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..models.negotiation import (
    ChatMessage,
    Deal,
    NegotiationSession,
    Participant,
    Product,
    Role,
    SessionStatus,
)
from ..utils.exceptions import ParticipantNotInSessionException, SessionClosedException
from ..utils.logger import get_logger
from ..utils.text import elapsed_seconds, format_duration, utcnow
from .offer_extractor import ExtractorConfig, extract_offer

logger = get_logger(__name__)


class ConfirmationStatus(str, enum.Enum):
    """What a single confirmation did to the session."""
    PENDING = "pending"  # waiting for the counterpart
    MISMATCH = "mismatch"  # counterpart holds a different price
    SETTLED = "settled"


@dataclass
class ConfirmationOutcome:
    """Result of propose_confirmation, used by the caller to notify both sides."""
    status: ConfirmationStatus
    participant_id: str
    counterpart_id: str
    price: float
    counterpart_price: Optional[float] = None
    deal: Optional[Deal] = None


def form_session(
    room_id: str,
    round_number: int,
    seller: Participant,
    buyer: Participant,
    product: Optional[Product],
    started_at: Optional[datetime] = None,
    session_id: Optional[str] = None
) -> NegotiationSession:
    """Create a session in the Formed state for a freshly matched pair."""
    return NegotiationSession(
        id=session_id or str(uuid.uuid4()),
        room_id=room_id,
        round_number=round_number,
        seller_id=seller.id,
        buyer_id=buyer.id,
        product=product,
        started_at=started_at or utcnow(),
    )


def begin(session: NegotiationSession) -> bool:
    """
    Formed -> Negotiating, once both participants have been told about the pairing.

    Returns:
        True if the transition happened
    """
    if session.status is not SessionStatus.FORMED:
        return False
    session.status = SessionStatus.NEGOTIATING
    return True


def _require_member(session: NegotiationSession, participant_id: str) -> Role:
    try:
        return session.role_of(participant_id)
    except KeyError:
        raise ParticipantNotInSessionException(participant_id)


def record_chat(
    session: NegotiationSession,
    author: Participant,
    text: str,
    config: Optional[ExtractorConfig] = None,
    now: Optional[datetime] = None
) -> ChatMessage:
    """
    Run the offer extractor on a chat message and append it to the log.

    Chat never changes the session state. A non-null offer replaces the
    author's role in the latest-offer snapshot while the session is open.

    Raises:
        ParticipantNotInSessionException: author is not one of the pair
        SessionClosedException: session was abandoned
    """
    role = _require_member(session, author.id)
    if session.status is SessionStatus.ABANDONED:
        raise SessionClosedException(session.id, session.status.value)

    extraction = extract_offer(text, role, config)
    message = ChatMessage(
        id=str(uuid.uuid4()),
        session_id=session.id,
        sequence=len(session.messages),
        author_id=author.id,
        author_name=author.display_name,
        role=role,
        text=text,
        offer=extraction.offer,
        confidence=extraction.confidence,
        tag=extraction.tag,
        candidates=extraction.candidates,
        created_at=now or utcnow(),
    )
    session.messages.append(message)

    if extraction.offer is not None and session.is_open:
        session.latest_offers.record(role, extraction.offer)
        logger.debug(f"Session {session.id}: {role.value} offer {extraction.offer} ({extraction.confidence})")

    return message


def propose_confirmation(
    session: NegotiationSession,
    participant_id: str,
    price: float,
    now: Optional[datetime] = None
) -> ConfirmationOutcome:
    """
    Record a participant's pending price and settle on an exact match.

    Args:
        session: Session the participant belongs to
        participant_id: Confirming participant
        price: Proposed final price
        now: Confirmation time (defaults to current UTC time)

    Returns:
        ConfirmationOutcome (pending, mismatch or settled)

    Raises:
        ParticipantNotInSessionException: participant is not one of the pair
        SessionClosedException: session is settled or abandoned
    """
    _require_member(session, participant_id)
    if not session.is_open:
        raise SessionClosedException(session.id, session.status.value)

    begin(session)
    session.pending_confirmations[participant_id] = price

    counterpart_id = session.partner_of(participant_id)
    counterpart_price = session.pending_confirmations.get(counterpart_id)

    if counterpart_price is None:
        status = ConfirmationStatus.PENDING
        deal = None
    elif counterpart_price == price:
        status = ConfirmationStatus.SETTLED
        deal = settle(session, price, now)
    else:
        status = ConfirmationStatus.MISMATCH
        deal = None
        logger.info(
            f"Session {session.id}: confirmation mismatch "
            f"({participant_id}={price}, {counterpart_id}={counterpart_price})"
        )

    return ConfirmationOutcome(
        status=status,
        participant_id=participant_id,
        counterpart_id=counterpart_id,
        price=price,
        counterpart_price=counterpart_price,
        deal=deal,
    )


def settle(session: NegotiationSession, price: float, now: Optional[datetime] = None) -> Deal:
    """Write the Deal record and close the session."""
    confirmed_at = now or utcnow()
    duration = elapsed_seconds(session.started_at, confirmed_at)

    deal = Deal(
        price=price,
        started_at=session.started_at,
        confirmed_at=confirmed_at,
        duration_seconds=duration,
        duration_label=format_duration(duration),
        seller_id=session.seller_id,
        buyer_id=session.buyer_id,
    )
    session.deal = deal
    session.status = SessionStatus.SETTLED
    session.ended_at = confirmed_at

    logger.info(f"Session {session.id} settled at {price} after {deal.duration_label}")
    return deal


def abandon(session: NegotiationSession, now: Optional[datetime] = None) -> bool:
    """
    Terminate a non-settled session without a deal.

    Returns:
        True if the session was open and is now abandoned
    """
    if not session.is_open:
        return False
    session.status = SessionStatus.ABANDONED
    session.ended_at = now or utcnow()
    logger.info(f"Session {session.id} abandoned")
    return True
