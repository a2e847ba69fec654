"""
Unit tests for the bid ledger state machine.

Tests cover:
1. Offer, bet, claim, finalize and acquire preconditions
2. Leaderboard lockstep with bid records
3. Reward and commission accounting
4. Claim supersession and the acquisition window
5. Atomic rejection (no partial effects)
"""

import copy
import logging

import pytest

from bidledger.core.config import LedgerConfig
from bidledger.core.keys import InMemoryKeyManager, KeyManagerError
from bidledger.core.ledger import (
    BidLedger,
    ERR_ACQUIRE_REJECTED,
    ERR_ALREADY_CLAIMED,
    ERR_ALREADY_OFFERED,
    ERR_BET_FORFEIT_NOT_ENOUGH,
    ERR_BET_ON_ACQUISITION,
    ERR_BID_NOT_FOUND,
    ERR_CLAIM_NOT_ENOUGH,
    ERR_GAINER_SAME_AS_OFFER,
    ERR_INVALID_CREDENTIAL,
    ERR_NOT_ON_ACQUISITION,
    ERR_OFFER_DEPOSIT_NOT_ENOUGH,
    ERR_REWARDS_NOT_ENOUGH,
)
from bidledger.core.market import BidState, LeaderboardError
from bidledger.crypto import generate_keypair


T0 = 1_000


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config():
    return LedgerConfig(
        offer_deposit=450,
        init_bet_price=1000,
        acquisition_time=100,
        min_reward_withdrawal=100,
    )


@pytest.fixture
def keys():
    return InMemoryKeyManager()


@pytest.fixture
def ledger(config, keys):
    """Create an in-memory ledger."""
    return BidLedger(config=config, key_manager=keys)


@pytest.fixture
def offered(ledger):
    """alice.near offered, bob.near takes the profit."""
    ok, error = ledger.offer("alice.near", "bob.near", 450)
    assert ok, error
    return ledger


@pytest.fixture
def finalized(offered):
    """carol.near bet, claimed and finalized alice.near."""
    offered.bet("carol.near", "alice.near", 1000, T0)
    offered.claim("carol.near", "alice.near", 2400, T0)
    ok, error = offered.finalize("alice.near", T0 + 100)
    assert ok, error
    return offered


def snapshot(ledger):
    return (
        copy.deepcopy(ledger.bids),
        copy.deepcopy(ledger.profiles),
        list(ledger.top_bets),
        list(ledger.top_claims),
        ledger.stats(),
    )


# =============================================================================
# Offer
# =============================================================================


class TestOffer:
    """Tests for offering an account."""

    def test_offer_creates_bid(self, offered):
        bid = offered.bids["alice.near"]
        assert bid.bets == ["bob.near"]
        assert bid.participants == {"bob.near"}
        assert bid.claim_status is None
        assert offered.get_state("alice.near") == BidState.OPEN

    def test_offer_updates_beneficiary_profile(self, offered):
        profile = offered.get_profile("bob.near")
        assert profile.num_offers == 1
        assert profile.participation == {"alice.near"}

    def test_offer_inserts_top_bet_and_commission(self, offered):
        assert list(offered.top_bets) == [(1000, "alice.near")]
        assert len(offered.top_claims) == 0
        assert offered.total_commission == 450

    def test_exact_minimum_deposit(self, ledger):
        """Scenario A: the minimum succeeds, one unit below fails."""
        assert ledger.offer("x.near", "y.near", 449) == (False, ERR_OFFER_DEPOSIT_NOT_ENOUGH)
        assert ledger.offer("x.near", "y.near", 450) == (True, "")

    def test_self_offer_rejected(self, ledger):
        assert ledger.offer("x.near", "x.near", 450) == (False, ERR_GAINER_SAME_AS_OFFER)
        assert "x.near" not in ledger.bids

    def test_already_offered(self, offered):
        """A second offer is rejected and leaves the first bid unchanged."""
        before = snapshot(offered)
        assert offered.offer("alice.near", "eve.near", 450) == (False, ERR_ALREADY_OFFERED)
        assert snapshot(offered) == before

    def test_overpayment_is_surplus(self, ledger):
        ledger.offer("x.near", "y.near", 500)
        assert ledger.total_commission == 450
        assert ledger.total_surplus == 50


# =============================================================================
# Bet
# =============================================================================


class TestBet:
    """Tests for betting."""

    def test_unknown_bid(self, ledger):
        assert ledger.bet("carol.near", "nobody.near", 10**6, T0) == (False, ERR_BID_NOT_FOUND)

    def test_insufficient_deposit(self, offered):
        before = snapshot(offered)
        assert offered.bet("carol.near", "alice.near", 999, T0) == (False, ERR_BET_FORFEIT_NOT_ENOUGH)
        assert snapshot(offered) == before

    def test_price_escalation(self, offered):
        """Scenario B: first bet at the initial price, second at initial * 6/5."""
        assert offered.get_bid("alice.near", T0).bet_price == 1000
        assert offered.bet("carol.near", "alice.near", 1000, T0) == (True, "")
        assert list(offered.top_bets) == [(1200, "alice.near")]

        assert offered.bet("dave.near", "alice.near", 1199, T0)[0] is False
        assert offered.bet("dave.near", "alice.near", 1200, T0) == (True, "")
        assert list(offered.top_bets) == [(1440, "alice.near")]
        assert offered.get_state("alice.near", T0) == BidState.BETTING

    def test_bettor_profile(self, offered):
        offered.bet("carol.near", "alice.near", 1000, T0)
        offered.bet("dave.near", "alice.near", 1200, T0)
        offered.bet("carol.near", "alice.near", 1440, T0)

        carol = offered.get_profile("carol.near")
        assert carol.num_bets == 2
        assert carol.bets_volume == 1000 + 1440
        assert carol.participation == {"alice.near"}
        assert offered.bids["alice.near"].bets == ["bob.near", "carol.near", "dave.near", "carol.near"]
        assert offered.bids["alice.near"].participants == {"bob.near", "carol.near", "dave.near"}

    def test_reward_distribution(self, offered):
        """Scenario C: commission, then decaying shares, rest to the earliest entry."""
        offered.bet("carol.near", "alice.near", 1000, T0)
        assert offered.get_profile("bob.near").available_rewards == 950

        offered.bet("dave.near", "alice.near", 1200, T0)
        assert offered.get_profile("carol.near").available_rewards == 700
        assert offered.get_profile("bob.near").available_rewards == 950 + 300 + 140
        assert offered.get_profile("dave.near").available_rewards == 0
        assert offered.total_commission == 450 + 50 + 60

    def test_forfeit_added_to_required_deposit(self, config):
        ledger = BidLedger(config=config, forfeit_policy=lambda bid, now: 7)
        ledger.offer("alice.near", "bob.near", 450)

        assert ledger.get_bid("alice.near", T0).required_bet_deposit == 1007
        assert ledger.bet("carol.near", "alice.near", 1000, T0) == (False, ERR_BET_FORFEIT_NOT_ENOUGH)
        assert ledger.bet("carol.near", "alice.near", 1007, T0) == (True, "")
        assert ledger.total_forfeit == 7
        # Forfeit is not part of bets volume
        assert ledger.get_profile("carol.near").bets_volume == 1000


# =============================================================================
# Claim
# =============================================================================


class TestClaim:
    """Tests for claiming."""

    def test_claim_open_bid(self, offered):
        assert offered.claim("carol.near", "alice.near", 1999, T0) == (False, ERR_CLAIM_NOT_ENOUGH)
        assert offered.claim("carol.near", "alice.near", 2000, T0) == (True, "")

        assert offered.bids["alice.near"].claim_status == ("carol.near", T0)
        assert list(offered.top_claims) == [(2000, "alice.near")]
        # Bet competition continues
        assert list(offered.top_bets) == [(1000, "alice.near")]
        assert offered.get_state("alice.near", T0) == BidState.CLAIMED

    def test_claim_profile(self, offered):
        offered.claim("carol.near", "alice.near", 2000, T0)
        carol = offered.get_profile("carol.near")
        assert carol.num_claims == 1
        assert carol.participation == {"alice.near"}
        assert "carol.near" in offered.bids["alice.near"].participants
        assert offered.total_claim_deposits == 2000

    def test_claim_price_follows_bets(self, offered):
        offered.bet("carol.near", "alice.near", 1000, T0)
        assert offered.get_bid("alice.near", T0).claim_price == 2400

    def test_already_claimed(self, offered):
        offered.claim("carol.near", "alice.near", 2000, T0)
        before = snapshot(offered)
        assert offered.claim("dave.near", "alice.near", 10**6, T0) == (False, ERR_ALREADY_CLAIMED)
        assert snapshot(offered) == before

    def test_unknown_bid(self, ledger):
        assert ledger.claim("carol.near", "nobody.near", 10**6, T0) == (False, ERR_BID_NOT_FOUND)

    def test_bet_supersedes_claim(self, offered):
        """A bet clears the claim and its top_claims entry."""
        offered.claim("carol.near", "alice.near", 2000, T0)
        assert offered.bet("dave.near", "alice.near", 1000, T0 + 50) == (True, "")

        assert offered.bids["alice.near"].claim_status is None
        assert len(offered.top_claims) == 0
        assert list(offered.top_bets) == [(1200, "alice.near")]
        assert offered.get_state("alice.near", T0 + 50) == BidState.BETTING

        # A new claim is possible at the new price
        assert offered.claim("carol.near", "alice.near", 2400, T0 + 60) == (True, "")
        assert list(offered.top_claims) == [(2400, "alice.near")]

    def test_bet_rejected_on_acquisition(self, offered):
        offered.claim("carol.near", "alice.near", 2000, T0)
        assert offered.bet("dave.near", "alice.near", 1000, T0 + 100) == (False, ERR_BET_ON_ACQUISITION)
        assert offered.get_state("alice.near", T0 + 100) == BidState.ACQUIRABLE


# =============================================================================
# Finalize
# =============================================================================


class TestFinalize:
    """Tests for finalization."""

    def test_finalize_requires_elapsed_window(self, offered):
        """Scenario D: finalize fails early, succeeds once, then not found."""
        offered.bet("carol.near", "alice.near", 1000, T0)
        offered.claim("carol.near", "alice.near", 2400, T0)

        assert offered.finalize("alice.near", T0 + 99) == (False, ERR_NOT_ON_ACQUISITION)
        assert offered.finalize("alice.near", T0 + 100) == (True, "")
        assert offered.finalize("alice.near", T0 + 101) == (False, ERR_BID_NOT_FOUND)

    def test_finalize_without_claim(self, offered):
        assert offered.finalize("alice.near", T0 + 10**6) == (False, ERR_NOT_ON_ACQUISITION)

    def test_finalize_clears_bid(self, finalized):
        assert "alice.near" not in finalized.bids
        assert len(finalized.top_bets) == 0
        assert len(finalized.top_claims) == 0
        assert finalized.get_bid("alice.near") is None
        assert finalized.get_state("alice.near") == BidState.FINALIZED

    def test_finalize_grants_right_and_clears_participation(self, finalized):
        carol = finalized.get_profile("carol.near")
        assert carol.acquisitions == {"alice.near"}
        assert carol.participation == set()
        assert finalized.get_profile("bob.near").participation == set()

    def test_finalized_bid_is_terminal(self, finalized):
        assert finalized.bet("dave.near", "alice.near", 10**6, T0 + 200) == (False, ERR_BID_NOT_FOUND)
        assert finalized.claim("dave.near", "alice.near", 10**6, T0 + 200) == (False, ERR_BID_NOT_FOUND)

    def test_account_can_be_offered_again(self, finalized):
        assert finalized.offer("alice.near", "eve.near", 450) == (True, "")
        assert finalized.bids["alice.near"].bets == ["eve.near"]

    def test_other_bids_untouched(self, offered):
        offered.offer("zed.near", "bob.near", 450)
        offered.claim("carol.near", "alice.near", 2000, T0)
        offered.finalize("alice.near", T0 + 100)

        assert list(offered.top_bets) == [(1000, "zed.near")]
        assert offered.get_profile("bob.near").participation == {"zed.near"}


# =============================================================================
# Acquire
# =============================================================================


class TestAcquire:
    """Tests for acquiring a finalized account."""

    def test_acquire_without_right(self, offered):
        """Scenario E: no finalize, no acquisition."""
        key = generate_keypair().public_key_hex
        assert offered.acquire("carol.near", "alice.near", key) == (False, ERR_ACQUIRE_REJECTED)

    def test_acquire_consumes_right(self, finalized, keys):
        kp = generate_keypair()
        assert finalized.acquire("carol.near", "alice.near", kp.public_key_hex) == (True, "")

        carol = finalized.get_profile("carol.near")
        assert carol.num_acquisitions == 1
        assert carol.acquisitions == set()
        assert keys.has_key("alice.near", kp.public_key)

        again = finalized.acquire("carol.near", "alice.near", generate_keypair().public_key_hex)
        assert again == (False, ERR_ACQUIRE_REJECTED)

    def test_only_claimant_may_acquire(self, finalized):
        key = generate_keypair().public_key_hex
        assert finalized.acquire("dave.near", "alice.near", key) == (False, ERR_ACQUIRE_REJECTED)

    def test_invalid_credential_keeps_right(self, finalized):
        assert finalized.acquire("carol.near", "alice.near", "0x1234") == (False, ERR_INVALID_CREDENTIAL)
        assert finalized.acquire("carol.near", "alice.near", "not-hex") == (False, ERR_INVALID_CREDENTIAL)
        assert finalized.get_profile("carol.near").acquisitions == {"alice.near"}

    def test_revokes_signer_key(self, finalized, keys):
        old, new = generate_keypair(), generate_keypair()
        keys.add_full_access_key("alice.near", old.public_key)

        finalized.acquire("carol.near", "alice.near", new.public_key_hex, signer_key=old.public_key_hex)

        assert keys.has_key("alice.near", new.public_key)
        assert not keys.has_key("alice.near", old.public_key)

    def test_handover_failure_does_not_roll_back(self, finalized, caplog):
        """A failing key manager is logged; the right stays consumed."""

        class BrokenKeyManager:
            def add_full_access_key(self, account_id, public_key):
                raise KeyManagerError("unavailable")

            def delete_key(self, account_id, public_key):
                raise KeyManagerError("unavailable")

        finalized.key_manager = BrokenKeyManager()
        with caplog.at_level(logging.WARNING, logger="bidledger"):
            ok, error = finalized.acquire("carol.near", "alice.near", generate_keypair().public_key_hex)

        assert (ok, error) == (True, "")
        assert finalized.get_profile("carol.near").num_acquisitions == 1
        assert finalized.get_profile("carol.near").acquisitions == set()
        assert "handover" in caplog.text

    def test_missing_signer_key_revocation_is_best_effort(self, finalized, keys):
        stranger = generate_keypair().public_key_hex
        ok, _ = finalized.acquire(
            "carol.near", "alice.near", generate_keypair().public_key_hex, signer_key=stranger
        )
        assert ok
        assert len(keys.list_keys("alice.near")) == 1


# =============================================================================
# Rewards Withdrawal
# =============================================================================


class TestWithdrawRewards:
    """Tests for withdrawing rewards."""

    def test_nothing_to_withdraw(self, ledger):
        assert ledger.withdraw_rewards("nobody.near") == (0, ERR_REWARDS_NOT_ENOUGH)

    def test_below_minimum(self, config):
        config.min_reward_withdrawal = 10**6
        ledger = BidLedger(config=config)
        ledger.offer("alice.near", "bob.near", 450)
        ledger.bet("carol.near", "alice.near", 1000, T0)

        assert ledger.withdraw_rewards("bob.near") == (0, ERR_REWARDS_NOT_ENOUGH)
        assert ledger.get_profile("bob.near").available_rewards == 950

    def test_balance_must_exceed_minimum(self, config):
        """A balance exactly at the minimum is not withdrawable yet."""
        config.min_reward_withdrawal = 950
        ledger = BidLedger(config=config)
        ledger.offer("alice.near", "bob.near", 450)
        ledger.bet("carol.near", "alice.near", 1000, T0)

        assert ledger.get_profile("bob.near").available_rewards == 950
        assert ledger.withdraw_rewards("bob.near") == (0, ERR_REWARDS_NOT_ENOUGH)

        ledger.bet("dave.near", "alice.near", 1200, T0)
        assert ledger.withdraw_rewards("bob.near") == (950 + 440, "")

    def test_withdraw_all(self, offered):
        offered.bet("carol.near", "alice.near", 1000, T0)
        assert offered.withdraw_rewards("bob.near") == (950, "")
        assert offered.get_profile("bob.near").available_rewards == 0
        assert offered.total_rewards_withdrawn == 950


# =============================================================================
# Invariants
# =============================================================================


class TestInvariants:
    """Whole-ledger properties across operation sequences."""

    def run_market(self, ledger):
        deposits = 0

        def pay(result, amount):
            nonlocal deposits
            if result[0]:
                deposits += amount
            return result

        pay(ledger.offer("alice.near", "bob.near", 450), 450)
        pay(ledger.offer("zed.near", "yan.near", 500), 500)
        for i, bettor in enumerate(["carol.near", "dave.near", "eve.near", "carol.near"]):
            price = ledger.get_bid("alice.near", T0).bet_price
            pay(ledger.bet(bettor, "alice.near", price + i, T0 + i), price + i)
        price = ledger.get_bid("alice.near", T0).claim_price
        pay(ledger.claim("dave.near", "alice.near", price, T0 + 10), price)
        price = ledger.get_bid("zed.near", T0).claim_price
        pay(ledger.claim("carol.near", "zed.near", price, T0 + 10), price)
        price = ledger.get_bid("zed.near", T0).bet_price
        pay(ledger.bet("eve.near", "zed.near", price, T0 + 20), price)
        pay(ledger.bet("eve.near", "alice.near", 10**6, T0 + 200), 10**6)  # rejected
        ledger.finalize("alice.near", T0 + 110)
        ledger.withdraw_rewards("bob.near")
        return deposits

    def test_conservation(self, ledger):
        """Every deposited unit is commission, forfeit, claim deposit, surplus or reward."""
        deposits = self.run_market(ledger)
        stats = ledger.stats()
        accounted = (
            stats["total_commission"]
            + stats["total_forfeit"]
            + stats["total_claim_deposits"]
            + stats["total_surplus"]
            + stats["rewards_outstanding"]
            + stats["total_rewards_withdrawn"]
        )
        assert accounted == deposits

    def test_leaderboards_consistent(self, ledger):
        self.run_market(ledger)
        assert ledger.verify_consistency() == (True, "")
        assert list(ledger.top_bets) == [(1200, "zed.near")]
        assert len(ledger.top_claims) == 0

    def test_missing_leaderboard_entry_is_fatal(self, offered):
        """A bid whose index entry vanished raises and is left untouched."""
        offered.top_bets.remove(1000, "alice.near")
        before = copy.deepcopy(offered.bids)

        with pytest.raises(LeaderboardError):
            offered.bet("carol.near", "alice.near", 1000, T0)

        assert offered.bids == before
        assert offered.get_profile("carol.near") is None
        assert offered.verify_consistency()[0] is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
