"""
Integration tests for the hybrid persistence cache.

WHAT: Test write-through, restart rehydration and failure isolation
WHY: A restarted process must see the last committed state; failures must not roll back memory
HOW: Run the same scenario against InMemoryStore and SqlStore (in-memory SQLite)
"""

import pytest

from haggle.core.cache import HybridCache
from haggle.core.store import InMemoryStore
from haggle.models.negotiation import Product, Role
from haggle.services import ledger, negotiation

pytestmark = pytest.mark.integration


@pytest.fixture(params=["memory", "sql"])
async def durable_cache(request, memory_store, sql_store):
    """Cache over each durable store implementation."""
    store = memory_store if request.param == "memory" else sql_store
    cache = HybridCache(store)
    await cache.start()
    return cache


async def _negotiated_session(cache, extractor_config):
    room, _ = await cache.create_room("electronics", "Electronics", "Gadgets", [Product(name="PlayStation 5")])
    seller, _ = await cache.create_participant("Sam", room.id)
    buyer, _ = await cache.create_participant("Bea", room.id)
    room.member_ids.update({seller.id, buyer.id})
    await cache.persist_room(room, "member_ids")
    await cache.update_room(room, current_round=1)

    for participant, role in ((seller, Role.SELLER), (buyer, Role.BUYER)):
        ledger.record_role(participant, role)
    ledger.record_partnership(seller, buyer)

    session = negotiation.form_session(room.id, 1, seller, buyer, room.product_for_round(1))
    assert (await cache.create_session(session)).ok
    for participant in (seller, buyer):
        participant.session_id = session.id
        await cache.persist_participant(participant, "session_id", "role", "role_history", "previous_partners")
    negotiation.begin(session)
    await cache.persist_session(session, "status")

    for author, text in ((seller, "I can sell it for $500"), (buyer, "How about $400?"), (seller, "Meet at $450")):
        message = negotiation.record_chat(session, author, text, extractor_config)
        await cache.append_message(message)
    await cache.persist_session(session, "latest_offers")

    negotiation.propose_confirmation(session, seller.id, 450.0)
    negotiation.propose_confirmation(session, buyer.id, 450.0)
    await cache.persist_session(session, "status", "pending_confirmations", "deal", "ended_at")
    return room, seller, buyer, session


async def test_restart_rehydrates_identical_state(durable_cache, extractor_config):
    room, seller, buyer, session = await _negotiated_session(durable_cache, extractor_config)
    before = {
        "room": room.model_dump(),
        "seller": seller.model_dump(),
        "buyer": buyer.model_dump(),
        "session": session.model_dump(),
    }

    durable_cache.clear()

    restored_session = await durable_cache.get_session(session.id)
    assert restored_session is not session
    assert restored_session.model_dump() == before["session"]
    assert [m.text for m in restored_session.messages] == [
        "I can sell it for $500", "How about $400?", "Meet at $450",
    ]
    assert restored_session.deal.price == 450.0

    # Composite rehydration brought both participants back too
    assert durable_cache.participants[seller.id].model_dump() == before["seller"]
    assert durable_cache.participants[buyer.id].model_dump() == before["buyer"]

    restored_room = await durable_cache.get_room(room.id)
    assert restored_room.model_dump() == before["room"]


async def test_room_miss_rehydrates_members_and_sessions(durable_cache, extractor_config):
    room, seller, buyer, session = await _negotiated_session(durable_cache, extractor_config)
    durable_cache.clear()

    await durable_cache.get_room(room.id)

    assert set(durable_cache.participants) == {seller.id, buyer.id}
    assert set(durable_cache.sessions) == {session.id}
    assert durable_cache.sessions_in_room(room.id, 1)[0].deal.price == 450.0


async def test_partial_update_reaches_store_columns(durable_cache):
    participant, _ = await durable_cache.create_participant("Ada", "furniture")

    result = await durable_cache.update_participant(participant, display_name="Ada L.", connected=False)

    assert result.ok and not result.skipped
    row = await durable_cache.store.get("participant", participant.id)
    assert row["name"] == "Ada L."
    assert row["is_connected"] is False


async def test_session_update_assigns_and_writes(durable_cache, extractor_config):
    room, seller, buyer, session = await _negotiated_session(durable_cache, extractor_config)
    ended = session.ended_at

    result = await durable_cache.update_session(session, round_number=2)

    assert result.ok
    assert session.round_number == 2
    row = await durable_cache.store.get("session", session.id)
    assert row["round_number"] == 2
    assert row["ended_at"] == ended


async def test_unknown_ids_miss(durable_cache):
    assert await durable_cache.get_participant("nobody") is None
    assert await durable_cache.get_session("nothing") is None
    assert await durable_cache.get_room("nowhere") is None


async def test_update_failure_keeps_memory_state(failing_store):
    cache = HybridCache(failing_store)
    await cache.start()
    participant, created = await cache.create_participant("Ada", "electronics")
    assert created.ok

    failing_store.fail_writes = True
    result = await cache.update_participant(participant, connected=False)

    assert result.ok is False
    assert "store offline" in result.error
    assert "participant" in result.warning
    # Memory moved on, the store did not: divergence is visible, not rolled back
    assert cache.participants[participant.id].connected is False
    row = await failing_store.get("participant", participant.id)
    assert row["is_connected"] is True


async def test_create_failure_still_caches_entity(failing_store):
    cache = HybridCache(failing_store)
    await cache.start()
    failing_store.fail_writes = True

    participant, result = await cache.create_participant("Ada", "electronics")

    assert result.ok is False
    assert await cache.get_participant(participant.id) is participant
    assert await failing_store.get("participant", participant.id) is None


async def test_message_write_failure_is_reported(failing_store, extractor_config):
    cache = HybridCache(failing_store)
    await cache.start()
    room, _ = await cache.create_room("electronics", "Electronics")
    seller, _ = await cache.create_participant("Sam", room.id)
    buyer, _ = await cache.create_participant("Bea", room.id)
    session = negotiation.form_session(room.id, 1, seller, buyer, None)
    await cache.create_session(session)

    failing_store.fail_writes = True
    message = negotiation.record_chat(session, buyer, "I'll pay $90", extractor_config)
    result = await cache.append_message(message)

    assert result.ok is False
    assert session.messages == [message]
    assert await failing_store.list_messages(session.id) == []


async def test_unreachable_store_falls_back_to_memory_only():
    store = InMemoryStore()
    await store.close()
    cache = HybridCache(store)

    await cache.start()

    assert cache.durable is False
    assert cache.durability_error == "store closed"
    participant, result = await cache.create_participant("Ada", "electronics")
    assert result.skipped and result.ok
    assert store.tables["participant"] == {}

    cache.clear()
    assert await cache.get_participant(participant.id) is None


async def test_no_store_is_memory_only():
    cache = HybridCache(None)
    await cache.start()

    room, result = await cache.create_room("vehicles", "Vehicles")

    assert cache.durable is False
    assert result.skipped
    assert await cache.get_room("vehicles") is room
