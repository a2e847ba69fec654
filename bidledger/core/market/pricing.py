"""
Pricing - Bet, claim and forfeit price computation.

All functions are pure: they read the bid record, the configuration and
the current time, and never mutate anything.

Escalation:
----------
    price(0 bets) = init_bet_price
    price(n bets) = price(n - 1) * 6 // 5

Truncation is applied at every step, so price(n) is reproducible from
the bet count alone and always matches the leaderboard entry written
when the previous bet was accepted.
"""

from typing import Protocol

from bidledger.core.config import LedgerConfig
from bidledger.core.market.bid import Bid, BidState

# Escalation ratio per accepted bet
PRICE_MULT_NUM = 6
PRICE_MULT_DEN = 5

# Claim price relative to the current bet price
CLAIM_PRICE_MULT = 2


# =============================================================================
# Escalation
# =============================================================================


def next_bet_price(price: int) -> int:
    """Price required after a bet at `price` is accepted."""
    return price * PRICE_MULT_NUM // PRICE_MULT_DEN


def bet_price(bid: Bid, config: LedgerConfig) -> int:
    """Base price of the next bet on `bid`."""
    price = config.init_bet_price
    for _ in range(bid.num_bets):
        price = next_bet_price(price)
    return price


def claim_price(bid: Bid, config: LedgerConfig) -> int:
    """Deposit required to claim `bid` at its current price."""
    return bet_price(bid, config) * CLAIM_PRICE_MULT


# =============================================================================
# Forfeit
# =============================================================================


class ForfeitPolicy(Protocol):
    """
    Surcharge added to the bet price.

    Implementations return a non-negative amount for a bet placed on
    `bid` at time `now`; 0 means no surcharge applies.
    """

    def __call__(self, bid: Bid, now: int) -> int:
        ...


class NoForfeit:
    """Default policy: bets never carry a surcharge."""

    def __call__(self, bid: Bid, now: int) -> int:
        return 0


def forfeit(bid: Bid, now: int, policy: ForfeitPolicy) -> int:
    """Evaluate `policy` for a bet on `bid` at `now`."""
    amount = policy(bid, now)
    if amount is None:
        return 0
    if amount < 0:
        raise ValueError(f"Forfeit policy returned negative amount {amount}")
    return amount


# =============================================================================
# Acquisition Window
# =============================================================================


def on_acquisition(bid: Bid, now: int, acquisition_time: int) -> bool:
    """True once the pending claim has aged past the acquisition window."""
    if bid.claim_status is None:
        return False
    return now >= bid.claimed_at + acquisition_time


def bid_state(bid: Bid, now: int, acquisition_time: int) -> BidState:
    """Derive the lifecycle state of a live bid."""
    if bid.claim_status is not None:
        if on_acquisition(bid, now, acquisition_time):
            return BidState.ACQUIRABLE
        return BidState.CLAIMED
    if bid.num_bets == 0:
        return BidState.OPEN
    return BidState.BETTING
