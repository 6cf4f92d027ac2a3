"""
Round results and moderator overview.

WHAT: Per-round deal summary and a live snapshot of a room
WHY: Moderators see how pairs are doing; participants see how the round went
HOW: Pure functions over cached rooms, participants and sessions
"""

from typing import Any, Iterable, Optional

from ..models.negotiation import NegotiationSession, Participant, Room, SessionStatus


def compile_round_results(room: Room, sessions: Iterable[NegotiationSession]) -> dict[str, Any]:
    """
    Summarize one round.

    Args:
        room: Room whose round just ended
        sessions: Sessions of that round

    Returns:
        Dict with per-session outcomes and price stats. deal_rate is a rounded percent.
    """
    round_sessions = [s for s in sessions if s.round_number == room.current_round]
    session_results = []
    prices = []

    for session in round_sessions:
        deal = session.deal
        success = bool(deal and deal.success)
        session_results.append({
            "session_id": session.id,
            "seller_id": session.seller_id,
            "buyer_id": session.buyer_id,
            "final_price": deal.price if success else None,
            "duration_label": deal.duration_label if success else None,
            "success": success,
        })
        if success:
            prices.append(deal.price)

    product = room.product_for_round(room.current_round)
    return {
        "room_id": room.id,
        "round_number": room.current_round,
        "product": product.model_dump() if product else None,
        "sessions": session_results,
        "stats": {
            "avg_price": sum(prices) / len(prices) if prices else None,
            "min_price": min(prices) if prices else None,
            "max_price": max(prices) if prices else None,
            "deal_rate": round(100 * len(prices) / len(round_sessions)) if round_sessions else 0,
        },
    }


def _participant_summary(participant: Optional[Participant], participant_id: str) -> dict[str, Any]:
    if participant is None:
        return {"id": participant_id, "missing": True}
    return {
        "id": participant.id,
        "display_name": participant.display_name,
        "role": participant.role.value if participant.role else None,
        "connected": participant.connected,
        "rounds_played": len(participant.role_history),
    }


def room_overview(
    room: Room,
    participants: dict[str, Participant],
    sessions: Iterable[NegotiationSession]
) -> dict[str, Any]:
    """Snapshot of a room for the moderator view (current round sessions only)."""
    members = [participants[pid] for pid in sorted(room.member_ids) if pid in participants]
    waiting = [p for p in members if p.is_waiting]

    session_views = []
    for session in sessions:
        if session.round_number != room.current_round:
            continue
        session_views.append({
            "session_id": session.id,
            "status": session.status.value,
            "state": session.state_for().value,
            "product": session.product.model_dump() if session.product else None,
            "participants": [
                _participant_summary(participants.get(session.seller_id), session.seller_id),
                _participant_summary(participants.get(session.buyer_id), session.buyer_id),
            ],
            "latest_offers": session.latest_offers.model_dump(),
            "pending_confirmations": dict(session.pending_confirmations),
            "deal": session.deal.model_dump(mode="json") if session.deal else None,
        })

    return {
        "room_id": room.id,
        "room_name": room.name,
        "round_number": room.current_round,
        "status": room.status.value,
        "members_count": len(members),
        "connected_count": sum(1 for p in members if p.connected),
        "waiting_count": len(waiting),
        "active_sessions": sum(
            1 for s in session_views if s["status"] in (SessionStatus.FORMED.value, SessionStatus.NEGOTIATING.value)
        ),
        "sessions": session_views,
    }
