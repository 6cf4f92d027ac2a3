"""
ORM models for durable persistence.

WHAT: SQLAlchemy rows for participants, rooms, sessions and messages
WHY: Durable record of bargaining history and outcomes for later analysis
HOW: Declarative models with JSON columns for product/offer/deal payloads
"""

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, JSON,
    ForeignKey, Index
)

from .database import Base


class ParticipantRow(Base):
    """
    Participant table - one row per registered participant.

    WHAT: Identity, placement, role history and partner history
    WHY: Role balancing survives restarts and reconnections
    HOW: JSON arrays for role_history and previous_partners
    """
    __tablename__ = "participants"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    room_id = Column(String(100), nullable=True)
    pair_id = Column(String(36), nullable=True)
    role = Column(String(10), nullable=True)  # seller or buyer
    role_history = Column(JSON, nullable=False, default=list)
    previous_partners = Column(JSON, nullable=False, default=list)
    is_connected = Column(Boolean, nullable=False, default=True)
    is_moderator = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_participants_room", "room_id"),
    )

    def __repr__(self):
        return f"<ParticipantRow(id={self.id}, name={self.name}, role={self.role})>"


class RoomRow(Base):
    """
    Room table - display config, round counter and membership.

    WHAT: One row per room referenced by a join or moderator command
    WHY: Round counter indexes into the product list across restarts
    HOW: Products and member ids stored as JSON arrays
    """
    __tablename__ = "rooms"

    id = Column(String(100), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    products = Column(JSON, nullable=False, default=list)
    current_round = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="waiting")  # waiting or active
    member_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<RoomRow(id={self.id}, round={self.current_round}, status={self.status})>"


class SessionRow(Base):
    """
    Session table - one two-party negotiation over one product.

    WHAT: Pair of participants with fixed roles, offer snapshot and deal record
    WHY: Analytics compute duration/price/success from this row alone
    HOW: Foreign keys to rooms and participants, JSON payload columns
    """
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True)
    room_id = Column(String(100), ForeignKey("rooms.id"), nullable=False)
    round_number = Column(Integer, nullable=False)
    seller_id = Column(String(36), ForeignKey("participants.id"), nullable=False)
    buyer_id = Column(String(36), ForeignKey("participants.id"), nullable=False)
    product = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="negotiating")
    latest_offers = Column(JSON, nullable=False, default=dict)
    pending_confirmations = Column(JSON, nullable=False, default=dict)
    final_deal = Column(JSON, nullable=True)  # {price, confirmed_at, duration_seconds, ...}
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_sessions_room", "room_id"),
        Index("idx_sessions_participants", "seller_id", "buyer_id"),
    )

    def __repr__(self):
        return f"<SessionRow(id={self.id}, room={self.room_id}, status={self.status})>"


class MessageRow(Base):
    """
    Message table - append-only chat log with extraction results.

    WHAT: Raw text plus extracted offer, confidence and contextual tag
    WHY: Offer trajectories are reconstructed from this log
    HOW: Foreign key to sessions, candidates kept in a JSON column
    """
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True)
    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=False)
    sequence = Column(Integer, nullable=False)  # arrival order within the session
    author_id = Column(String(36), ForeignKey("participants.id"), nullable=False)
    author_name = Column(String(255), nullable=False)
    role = Column(String(10), nullable=False)
    body = Column(Text, nullable=False)
    extracted_offer = Column(Float, nullable=True)
    offer_confidence = Column(Float, nullable=False, default=0.0)
    context_tag = Column(String(20), nullable=False, default="none")
    extraction = Column(JSON, nullable=True)  # candidate list
    timestamp = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_messages_session_seq", "session_id", "sequence"),
    )

    def __repr__(self):
        return f"<MessageRow(id={self.id}, author={self.author_name}, offer={self.extracted_offer})>"
