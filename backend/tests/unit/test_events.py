"""
Unit tests for transport event parsing.

WHAT: Test the tagged event union and boundary validation
WHY: Malformed payloads must be rejected before they reach core logic
HOW: Parse raw dicts, assert variant types and field errors
"""

import pytest

from haggle.models.events import (
    ChatMessageEvent,
    EventResult,
    JoinRoom,
    Notification,
    ProposeConfirmation,
    RoomReset,
    RoundStart,
    parse_event,
)
from haggle.utils.exceptions import ValidationException

pytestmark = pytest.mark.unit


def test_parse_join_room():
    event = parse_event({"type": "join_room", "room_id": "electronics", "display_name": "Ada"})

    assert isinstance(event, JoinRoom)
    assert event.participant_id is None
    assert event.credential is None


def test_parse_chat_and_confirmation():
    chat = parse_event({"type": "chat_message", "participant_id": "p1", "text": "How about $300?"})
    confirm = parse_event({"type": "propose_confirmation", "participant_id": "p1", "price": "250"})

    assert isinstance(chat, ChatMessageEvent)
    assert isinstance(confirm, ProposeConfirmation)
    assert confirm.price == 250.0


def test_parse_moderator_events():
    start = parse_event({"type": "round_start", "room_id": "electronics", "credential": "k"})
    reset = parse_event({"type": "room_reset", "room_id": "electronics"})

    assert isinstance(start, RoundStart)
    assert isinstance(reset, RoomReset)
    assert reset.credential == ""


def test_unknown_event_type_rejected():
    with pytest.raises(ValidationException) as exc_info:
        parse_event({"type": "teleport", "participant_id": "p1"})

    assert exc_info.value.code == "VALIDATION_ERROR"


def test_non_positive_price_rejected():
    with pytest.raises(ValidationException) as exc_info:
        parse_event({"type": "propose_confirmation", "participant_id": "p1", "price": 0})

    field_errors = exc_info.value.details["field_errors"]
    assert any("price" in err["loc"] for err in field_errors)


def test_missing_field_rejected():
    with pytest.raises(ValidationException):
        parse_event({"type": "chat_message", "participant_id": "p1"})


def test_non_dict_payload_rejected():
    with pytest.raises(ValidationException):
        parse_event(["join_room"])


def test_notification_kind_is_checked():
    assert Notification(type="paired", payload={"role": "seller"}).payload["role"] == "seller"

    with pytest.raises(ValueError):
        Notification(type="celebrate")


def test_event_result_defaults():
    result = EventResult()

    assert result.ok is True
    assert result.data == {}
    assert result.warnings == []
