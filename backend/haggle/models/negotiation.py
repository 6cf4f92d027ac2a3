"""
Negotiation domain models.

WHAT: Participants, rooms, negotiation sessions, chat messages and deal records
WHY: Consistent typing across matchmaking, the session state machine and the cache
HOW: Pydantic v2 models; mutable entities validate on assignment, deals are frozen
"""

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Role(str, enum.Enum):
    """Negotiation role held by one participant of a session."""
    SELLER = "seller"
    BUYER = "buyer"


class RoomStatus(str, enum.Enum):
    """Room lifecycle values."""
    WAITING = "waiting"
    ACTIVE = "active"


class SessionStatus(str, enum.Enum):
    """Persisted session status values."""
    FORMED = "formed"
    NEGOTIATING = "negotiating"
    SETTLED = "settled"
    ABANDONED = "abandoned"


class NegotiationState(str, enum.Enum):
    """Observable state of a session as seen by one caller."""
    FORMED = "formed"
    NEGOTIATING = "negotiating"
    DEAL_PENDING = "deal_pending"
    SETTLED = "settled"
    ABANDONED = "abandoned"


class Product(BaseModel):
    """Catalog product negotiated in one round."""

    name: str
    seller_info: str = ""
    buyer_info: str = ""


class Participant(BaseModel):
    """A connected (or formerly connected) person in a room."""

    id: str
    display_name: str = Field(min_length=1, max_length=255)
    room_id: Optional[str] = None
    session_id: Optional[str] = None
    role: Optional[Role] = None
    role_history: list[Role] = Field(default_factory=list)
    previous_partners: set[str] = Field(default_factory=set)
    connected: bool = True
    is_moderator: bool = False
    created_at: datetime

    model_config = {"validate_assignment": True}

    @property
    def is_waiting(self) -> bool:
        """Eligible for matchmaking: online, unpaired, not a moderator."""
        return self.connected and self.session_id is None and not self.is_moderator


class Room(BaseModel):
    """Room with its display config, round counter and members."""

    id: str
    name: str
    description: str = ""
    products: list[Product] = Field(default_factory=list)
    current_round: int = Field(default=0, ge=0)
    status: RoomStatus = RoomStatus.WAITING
    member_ids: set[str] = Field(default_factory=set)
    created_at: datetime

    model_config = {"validate_assignment": True}

    def product_for_round(self, round_number: int) -> Optional[Product]:
        """Product list is indexed by round number modulo its length."""
        if not self.products or round_number < 1:
            return None
        return self.products[(round_number - 1) % len(self.products)]


class LatestOffers(BaseModel):
    """Most recent non-null extracted offer per role."""

    seller: Optional[float] = None
    buyer: Optional[float] = None

    model_config = {"validate_assignment": True}

    def record(self, role: Role, value: float):
        if role is Role.SELLER:
            self.seller = value
        else:
            self.buyer = value


class OfferCandidate(BaseModel):
    """A numeric token scored by the offer extractor."""

    value: float
    confidence: float = Field(ge=0.0, le=1.0)
    tag: str  # offer, rejection, model_number, neutral
    position: int = Field(ge=0)
    currency: bool = False


class ExtractionResult(BaseModel):
    """Output of the offer extractor for one chat message."""

    offer: Optional[float] = None
    confidence: float = 0.0
    tag: str = "none"
    candidates: list[OfferCandidate] = Field(default_factory=list)


class ChatMessage(BaseModel):
    """Append-only chat log entry with its extraction result."""

    id: str
    session_id: str
    sequence: int = Field(ge=0)
    author_id: str
    author_name: str
    role: Role
    text: str
    offer: Optional[float] = None
    confidence: float = 0.0
    tag: str = "none"
    candidates: list[OfferCandidate] = Field(default_factory=list)
    created_at: datetime


class Deal(BaseModel):
    """Terminal outcome of a settled session; written once, never modified."""

    price: float
    started_at: datetime
    confirmed_at: datetime
    duration_seconds: int = Field(ge=0)
    duration_label: str
    seller_id: str
    buyer_id: str
    success: bool = True

    model_config = {"frozen": True}


class NegotiationSession(BaseModel):
    """One two-participant negotiation over one product in one round."""

    id: str
    room_id: str
    round_number: int = Field(ge=0)
    seller_id: str
    buyer_id: str
    product: Optional[Product] = None
    status: SessionStatus = SessionStatus.FORMED
    latest_offers: LatestOffers = Field(default_factory=LatestOffers)
    pending_confirmations: dict[str, Optional[float]] = Field(default_factory=dict)
    deal: Optional[Deal] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    messages: list[ChatMessage] = Field(default_factory=list)

    model_config = {"validate_assignment": True}

    @model_validator(mode="after")
    def validate_distinct_participants(self):
        """A session always pairs two different participants."""
        if self.seller_id == self.buyer_id:
            raise ValueError("seller_id and buyer_id must differ")
        return self

    @property
    def participant_ids(self) -> tuple[str, str]:
        return (self.seller_id, self.buyer_id)

    @property
    def is_open(self) -> bool:
        return self.status in (SessionStatus.FORMED, SessionStatus.NEGOTIATING)

    def role_of(self, participant_id: str) -> Role:
        if participant_id == self.seller_id:
            return Role.SELLER
        if participant_id == self.buyer_id:
            return Role.BUYER
        raise KeyError(participant_id)

    def partner_of(self, participant_id: str) -> str:
        return self.buyer_id if self.role_of(participant_id) is Role.SELLER else self.seller_id

    def state_for(self, participant_id: Optional[str] = None) -> NegotiationState:
        """
        Observable state. DealPending is asymmetric: it applies to whoever has
        a pending price; without a participant it applies if anyone has one.
        """
        if self.status is SessionStatus.SETTLED:
            return NegotiationState.SETTLED
        if self.status is SessionStatus.ABANDONED:
            return NegotiationState.ABANDONED
        if self.status is SessionStatus.FORMED:
            return NegotiationState.FORMED
        if participant_id is None:
            pending = any(p is not None for p in self.pending_confirmations.values())
        else:
            pending = self.pending_confirmations.get(participant_id) is not None
        return NegotiationState.DEAL_PENDING if pending else NegotiationState.NEGOTIATING
