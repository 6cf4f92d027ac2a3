"""
Identity and role ledger.

WHAT: Role history and partner history queries over participants
WHY: Matchmaking balances roles and prefers novel partners from this record
HOW: Total functions over the participant objects held by the cache
"""

import random
from typing import Optional

from ..models.negotiation import Participant, Role


def record_role(participant: Participant, role: Role):
    """Append a role assignment to the participant's history and make it current."""
    participant.role_history.append(role)
    participant.role = role


def buyer_count(participant: Participant) -> int:
    return sum(1 for r in participant.role_history if r is Role.BUYER)


def seller_count(participant: Participant) -> int:
    return sum(1 for r in participant.role_history if r is Role.SELLER)


def has_partnered_with(a: Participant, b: Participant) -> bool:
    """Symmetric: checks both partner sets."""
    return b.id in a.previous_partners or a.id in b.previous_partners


def record_partnership(a: Participant, b: Participant):
    """Add each to the other's partner set (idempotent)."""
    a.previous_partners.add(b.id)
    b.previous_partners.add(a.id)


def preferred_role(participant: Participant, rng: Optional[random.Random] = None) -> Role:
    """
    The role this participant has held less often.

    First encounter or exact tie: uniformly random from the injected source.
    """
    buyers = buyer_count(participant)
    sellers = seller_count(participant)
    if buyers < sellers:
        return Role.BUYER
    if sellers < buyers:
        return Role.SELLER
    return (rng or random).choice((Role.BUYER, Role.SELLER))
