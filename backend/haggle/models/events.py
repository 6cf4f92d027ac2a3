"""
Transport-facing event and notification types.

WHAT: Tagged variants for every inbound participant/moderator action and outbound notice
WHY: Payloads are validated at the boundary before they reach core logic
HOW: Pydantic discriminated union on "type", parsed with a TypeAdapter
"""

from typing import Annotated, Any, Literal, Optional, Protocol, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..utils.exceptions import ValidationException


class JoinRoom(BaseModel):
    """Participant enters a room (new registration or reconnection)."""
    type: Literal["join_room"] = "join_room"
    room_id: str = Field(..., min_length=1, max_length=100)
    display_name: str = Field(..., min_length=1, max_length=255)
    participant_id: Optional[str] = Field(default=None, description="Set when reconnecting")
    credential: Optional[str] = Field(default=None, description="Moderator credential, if joining as moderator")


class ChatMessageEvent(BaseModel):
    """Free-text chat inside the participant's session."""
    type: Literal["chat_message"] = "chat_message"
    participant_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1, max_length=2000)


class ProposeConfirmation(BaseModel):
    """Participant confirms the price they are willing to settle at."""
    type: Literal["propose_confirmation"] = "propose_confirmation"
    participant_id: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)


class RoundStart(BaseModel):
    type: Literal["round_start"] = "round_start"
    room_id: str = Field(..., min_length=1)
    credential: str = ""


class RoundEnd(BaseModel):
    type: Literal["round_end"] = "round_end"
    room_id: str = Field(..., min_length=1)
    credential: str = ""


class RoomReset(BaseModel):
    type: Literal["room_reset"] = "room_reset"
    room_id: str = Field(..., min_length=1)
    credential: str = ""


class Disconnect(BaseModel):
    """Transport lost the participant's connection."""
    type: Literal["disconnect"] = "disconnect"
    participant_id: str = Field(..., min_length=1)


Event = Annotated[
    Union[JoinRoom, ChatMessageEvent, ProposeConfirmation, RoundStart, RoundEnd, RoomReset, Disconnect],
    Field(discriminator="type"),
]

ModeratorEvent = Union[RoundStart, RoundEnd, RoomReset]

_event_adapter = TypeAdapter(Event)


def parse_event(payload: Any) -> Event:
    """
    Validate a raw transport payload into a typed event.

    Raises:
        ValidationException: unknown type or missing/invalid fields
    """
    try:
        return _event_adapter.validate_python(payload)
    except ValidationError as e:
        field_errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in e.errors()
        ]
        raise ValidationException("Invalid event payload", field_errors=field_errors) from e


class Notification(BaseModel):
    """Outbound notice addressed to a participant."""
    type: Literal[
        "joined",
        "waiting",
        "paired",
        "chat",
        "confirmation_pending",
        "confirmation_mismatch",
        "deal_settled",
        "session_abandoned",
        "round_started",
        "round_ended",
        "room_reset",
        "error",
    ]
    payload: dict[str, Any] = Field(default_factory=dict)


class Notifier(Protocol):
    """Transport abstraction mapping participants to live connections."""

    async def notify(self, participant_id: str, notification: Notification) -> None:
        ...


class EventResult(BaseModel):
    """Synchronous answer to the event's sender."""
    ok: bool = True
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
