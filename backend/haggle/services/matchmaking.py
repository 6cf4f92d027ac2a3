"""
Matchmaking engine.

WHAT: Turn a pool of waiting participants into balanced negotiation pairs
WHY: Every participant should play both roles evenly and meet new partners
HOW: Seeded shuffle, novel-partner search with fallback, preference-based roles

Algorithm:
1. Shuffle a copy of the pool with the injected random source.
2. Draw the first remaining participant X; pick the first remaining Y that
   X has never partnered. If none exists, take the first remaining one
   (repeat pairing keeps small pools moving).
3. Each participant prefers the role held less often. Differing preferences
   are honored; equal preferences go to buyer-count: fewer buyer rounds
   becomes buyer, an exact tie makes the earlier-drawn participant buyer.
4. Record roles and partnership in the ledger before returning.

The pool itself is never mutated; an odd participant out is reported back.
"""

import random
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..models.negotiation import Participant, Role
from ..utils.logger import get_logger
from . import ledger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Pairing:
    """Two participants with their assigned roles."""
    seller: Participant
    buyer: Participant
    repeat: bool = False  # True if these two had partnered before

    @property
    def participants(self) -> tuple[Participant, Participant]:
        return (self.seller, self.buyer)


@dataclass
class PairingResult:
    """Outcome of one matchmaking pass."""
    pairs: list[Pairing] = field(default_factory=list)
    unpaired: list[Participant] = field(default_factory=list)

    @property
    def repeat_count(self) -> int:
        return sum(1 for p in self.pairs if p.repeat)


def assign_roles(
    first: Participant,
    second: Participant,
    rng: random.Random
) -> tuple[Participant, Participant]:
    """
    Decide who sells and who buys.

    Args:
        first: Participant drawn first (wins exact ties for buyer)
        second: Participant drawn second
        rng: Random source for first-encounter preferences

    Returns:
        Tuple of (seller, buyer)
    """
    first_pref = ledger.preferred_role(first, rng)
    second_pref = ledger.preferred_role(second, rng)

    if first_pref is not second_pref:
        return (first, second) if first_pref is Role.SELLER else (second, first)

    if ledger.buyer_count(second) < ledger.buyer_count(first):
        return first, second
    return second, first


def make_pairs(pool: Sequence[Participant], rng: Optional[random.Random] = None) -> PairingResult:
    """
    Produce disjoint, role-balanced pairs from a pool of waiting participants.

    Args:
        pool: Eligible participants (waiting, unpaired); treated as read-only input
        rng: Random source; inject a seeded one for reproducible pairings

    Returns:
        PairingResult with floor(N/2) pairs and the leftover participant if N is odd
    """
    rng = rng or random.Random()
    remaining = list(pool)
    rng.shuffle(remaining)

    result = PairingResult()
    while len(remaining) >= 2:
        first = remaining.pop(0)
        partner_index = next(
            (i for i, candidate in enumerate(remaining) if not ledger.has_partnered_with(first, candidate)),
            None
        )
        repeat = partner_index is None
        second = remaining.pop(0 if repeat else partner_index)

        seller, buyer = assign_roles(first, second, rng)
        ledger.record_role(seller, Role.SELLER)
        ledger.record_role(buyer, Role.BUYER)
        ledger.record_partnership(seller, buyer)

        if repeat:
            logger.info(f"No novel partner for {first.id}; repeating pairing with {second.id}")
        result.pairs.append(Pairing(seller=seller, buyer=buyer, repeat=repeat))

    result.unpaired = remaining
    logger.info(
        f"Matchmaking produced {len(result.pairs)} pairs from {len(pool)} participants "
        f"({result.repeat_count} repeat, {len(result.unpaired)} waiting)"
    )
    return result
