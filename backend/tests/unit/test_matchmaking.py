"""
Unit tests for the role ledger and matchmaking engine.

WHAT: Test pair formation, partner novelty and role balancing
WHY: Every participant should play both roles and meet new partners
HOW: Seeded random source, small pools with crafted histories
"""

import random

import pytest

from conftest import make_participant
from haggle.models.negotiation import Role
from haggle.services import ledger
from haggle.services.matchmaking import assign_roles, make_pairs

pytestmark = pytest.mark.unit


def _pool(n):
    return [make_participant(f"p{i}") for i in range(n)]


class TestLedger:
    def test_record_role_updates_history_and_current_role(self):
        p = make_participant("a")
        ledger.record_role(p, Role.SELLER)
        ledger.record_role(p, Role.BUYER)

        assert p.role_history == [Role.SELLER, Role.BUYER]
        assert p.role is Role.BUYER
        assert ledger.buyer_count(p) == 1
        assert ledger.seller_count(p) == 1

    def test_partnership_is_symmetric_and_idempotent(self):
        a, b = make_participant("a"), make_participant("b")
        assert not ledger.has_partnered_with(a, b)

        ledger.record_partnership(a, b)
        ledger.record_partnership(a, b)

        assert ledger.has_partnered_with(a, b)
        assert ledger.has_partnered_with(b, a)
        assert a.previous_partners == {"b"}
        assert b.previous_partners == {"a"}

    def test_preferred_role_is_less_frequent_role(self):
        p = make_participant("a", role_history=[Role.SELLER, Role.SELLER, Role.BUYER])
        assert ledger.preferred_role(p, random.Random(0)) is Role.BUYER

        q = make_participant("b", role_history=[Role.BUYER])
        assert ledger.preferred_role(q, random.Random(0)) is Role.SELLER

    def test_preferred_role_tie_uses_random_source(self):
        picks = {ledger.preferred_role(make_participant("a"), random.Random(seed)) for seed in range(20)}
        assert picks == {Role.BUYER, Role.SELLER}


class TestRoleAssignment:
    def test_different_preferences_are_honored(self, rng):
        wants_buyer = make_participant("a", role_history=[Role.SELLER])
        wants_seller = make_participant("b", role_history=[Role.BUYER])

        seller, buyer = assign_roles(wants_buyer, wants_seller, rng)

        assert seller is wants_seller
        assert buyer is wants_buyer

    def test_same_preference_fewer_buyer_rounds_becomes_buyer(self, rng):
        veteran = make_participant("a", role_history=[Role.SELLER, Role.BUYER, Role.SELLER])
        newcomer = make_participant("b", role_history=[Role.SELLER])

        seller, buyer = assign_roles(veteran, newcomer, rng)

        assert buyer is newcomer
        assert seller is veteran

    def test_exact_tie_earlier_drawn_becomes_buyer(self, rng):
        first = make_participant("a", role_history=[Role.SELLER])
        second = make_participant("b", role_history=[Role.SELLER])

        seller, buyer = assign_roles(first, second, rng)

        assert buyer is first
        assert seller is second


class TestMakePairs:
    def test_even_pool_is_fully_paired(self, rng):
        pool = _pool(6)
        result = make_pairs(pool, rng)

        assert len(result.pairs) == 3
        assert result.unpaired == []
        ids = [p.id for pair in result.pairs for p in pair.participants]
        assert sorted(ids) == sorted(p.id for p in pool)
        for pair in result.pairs:
            assert pair.seller.id != pair.buyer.id
            assert pair.seller.role is Role.SELLER
            assert pair.buyer.role is Role.BUYER

    def test_odd_pool_leaves_one_waiting(self, rng):
        result = make_pairs(_pool(5), rng)

        assert len(result.pairs) == 2
        assert len(result.unpaired) == 1
        assert result.unpaired[0].role_history == []

    @pytest.mark.parametrize("size", [0, 1])
    def test_small_pool_produces_no_pairs(self, rng, size):
        result = make_pairs(_pool(size), rng)

        assert result.pairs == []
        assert len(result.unpaired) == size

    def test_pool_order_is_not_mutated(self, rng):
        pool = _pool(4)
        ids = [p.id for p in pool]

        make_pairs(pool, rng)

        assert [p.id for p in pool] == ids

    def test_ledger_updated_before_return(self, rng):
        result = make_pairs(_pool(2), rng)
        pair = result.pairs[0]

        assert pair.seller.role_history == [Role.SELLER]
        assert pair.buyer.role_history == [Role.BUYER]
        assert ledger.has_partnered_with(pair.seller, pair.buyer)

    def test_novel_partners_until_exhausted(self, rng):
        """Four people meet all three others before any repeat pairing."""
        pool = _pool(4)

        for _ in range(3):
            result = make_pairs(pool, rng)
            assert result.repeat_count == 0

        for p in pool:
            assert p.previous_partners == {q.id for q in pool if q is not p}

        result = make_pairs(pool, rng)
        assert len(result.pairs) == 2
        assert result.repeat_count == 2

    def test_two_person_roles_converge(self, rng):
        pool = _pool(2)

        for _ in range(10):
            make_pairs(pool, rng)
            for p in pool:
                assert abs(ledger.buyer_count(p) - ledger.seller_count(p)) <= 1

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_six_person_pool_over_many_rounds(self, seed):
        """
        With an even pool everyone plays every round, so buyer_count + seller_count
        is the same for all. In each pair the more imbalanced participant then always
        gets the role that evens them out; the other may drift by one. The strict
        |buyers - sellers| <= 1 bound is therefore not guaranteed for large pools.
        """
        rng = random.Random(seed)
        pool = _pool(6)

        for round_number in range(1, 13):
            imbalance = {p.id: ledger.seller_count(p) - ledger.buyer_count(p) for p in pool}

            result = make_pairs(pool, rng)

            assert len(result.pairs) == 3
            assert result.unpaired == []
            for pairing in result.pairs:
                worst = max(abs(imbalance[p.id]) for p in pairing.participants)
                if worst == 0:
                    continue
                evened = [
                    p for p in pairing.participants
                    if abs(imbalance[p.id]) == worst
                    and abs(ledger.seller_count(p) - ledger.buyer_count(p)) < worst
                ]
                assert evened, f"round {round_number}: neither {pairing.seller.id} nor {pairing.buyer.id} was evened"

            for p in pool:
                assert ledger.buyer_count(p) + ledger.seller_count(p) == round_number
            assert sum(ledger.buyer_count(p) for p in pool) == 3 * round_number
            assert sum(ledger.seller_count(p) for p in pool) == 3 * round_number

    def test_same_seed_same_pairs(self):
        first = make_pairs(_pool(8), random.Random(99))
        second = make_pairs(_pool(8), random.Random(99))

        assert [(p.seller.id, p.buyer.id) for p in first.pairs] == [(p.seller.id, p.buyer.id) for p in second.pairs]
