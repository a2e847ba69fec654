"""Bid records, pricing and leaderboards"""
from bidledger.core.market.bid import (
    Bid,
    BidId,
    BidState,
    LedgerConsistencyError,
    ProfileId,
)
from bidledger.core.market.profile import Profile
from bidledger.core.market.pricing import (
    ForfeitPolicy,
    NoForfeit,
    bet_price,
    bid_state,
    claim_price,
    forfeit,
    next_bet_price,
    on_acquisition,
)
from bidledger.core.market.leaderboard import Leaderboard, LeaderboardError

__all__ = [
    "Bid",
    "BidId",
    "BidState",
    "LedgerConsistencyError",
    "ProfileId",
    "Profile",
    "ForfeitPolicy",
    "NoForfeit",
    "bet_price",
    "bid_state",
    "claim_price",
    "forfeit",
    "next_bet_price",
    "on_acquisition",
    "Leaderboard",
    "LeaderboardError",
]
