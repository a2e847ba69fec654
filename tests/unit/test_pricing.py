"""
Unit tests for bet, claim and forfeit pricing.

Tests cover:
1. Escalation of the bet price
2. Claim price
3. Forfeit policies
4. Acquisition window and derived lifecycle state
"""

import pytest

from bidledger.core.config import LedgerConfig
from bidledger.core.market import (
    Bid,
    BidState,
    NoForfeit,
    bet_price,
    bid_state,
    claim_price,
    forfeit,
    next_bet_price,
    on_acquisition,
)


@pytest.fixture
def config():
    return LedgerConfig(init_bet_price=1000, offer_deposit=450, acquisition_time=100)


def make_bid(num_bets: int = 0, claim=None) -> Bid:
    bets = ["beneficiary"] + [f"bettor{i}" for i in range(num_bets)]
    return Bid(bid_id="offered", bets=bets, participants=set(bets), claim_status=claim)


class TestBetPrice:
    """Tests for the escalating bet price."""

    def test_offered_bid_starts_at_initial_price(self, config):
        """First bet costs the initial price."""
        assert bet_price(make_bid(0), config) == 1000

    def test_second_bet_escalates(self, config):
        """Second bet costs initial * 6/5."""
        assert bet_price(make_bid(1), config) == 1200

    def test_escalation_truncates_each_step(self):
        """Truncation is applied per step, not once at the end."""
        config = LedgerConfig(init_bet_price=7)
        # 7 -> 8 -> 9 -> 10
        assert bet_price(make_bid(3), config) == 10

    def test_strictly_increasing(self, config):
        """Every accepted bet raises the price."""
        prices = [bet_price(make_bid(n), config) for n in range(20)]
        assert all(b > a for a, b in zip(prices, prices[1:]))

    def test_next_bet_price_matches_history(self, config):
        """next_bet_price reproduces the price after one more bet."""
        for n in range(10):
            assert next_bet_price(bet_price(make_bid(n), config)) == bet_price(make_bid(n + 1), config)

    def test_empty_history_uses_initial_price(self, config):
        """A record without entries still prices at the initial price."""
        assert bet_price(Bid(bid_id="x"), config) == 1000


class TestClaimPrice:
    """Tests for claim pricing."""

    def test_claim_is_double_bet_price(self, config):
        for n in range(5):
            bid = make_bid(n)
            assert claim_price(bid, config) == 2 * bet_price(bid, config)


class TestForfeit:
    """Tests for forfeit policies."""

    def test_default_policy_is_zero(self):
        assert forfeit(make_bid(3), now=0, policy=NoForfeit()) == 0

    def test_custom_policy_is_called(self):
        """Policies receive the bid and the current time."""
        seen = []

        def policy(bid, now):
            seen.append((bid.bid_id, now))
            return 42

        assert forfeit(make_bid(), now=5, policy=policy) == 42
        assert seen == [("offered", 5)]

    def test_none_is_treated_as_zero(self):
        assert forfeit(make_bid(), now=0, policy=lambda bid, now: None) == 0

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            forfeit(make_bid(), now=0, policy=lambda bid, now: -1)


class TestAcquisitionWindow:
    """Tests for on_acquisition and bid_state."""

    def test_no_claim_never_on_acquisition(self, config):
        assert not on_acquisition(make_bid(2), now=10**9, acquisition_time=config.acquisition_time)

    def test_window_boundary(self, config):
        """The window elapses exactly at claim time + acquisition_time."""
        bid = make_bid(1, claim=("claimer", 1000))
        assert not on_acquisition(bid, now=1099, acquisition_time=100)
        assert on_acquisition(bid, now=1100, acquisition_time=100)

    def test_states(self, config):
        """Each record maps to exactly one live state."""
        assert bid_state(make_bid(0), 0, 100) == BidState.OPEN
        assert bid_state(make_bid(2), 0, 100) == BidState.BETTING
        assert bid_state(make_bid(2, claim=("c", 0)), 50, 100) == BidState.CLAIMED
        assert bid_state(make_bid(2, claim=("c", 0)), 100, 100) == BidState.ACQUIRABLE

    def test_claimed_open_bid(self):
        """A claim on a never-bet bid is still CLAIMED."""
        assert bid_state(make_bid(0, claim=("c", 0)), 1, 100) == BidState.CLAIMED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
