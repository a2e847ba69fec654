"""
Rewards - Commission and reward distribution for the bid ledger.

Manages:
- Commission on offers and bets
- Decaying reward split among prior bettors
- Final settlement when a bid is finalized

Reward decay:
------------
A bet of price P pays commission P // 20 and splits the rest, R, over
the earlier entries of the bid from most recent to earliest. Each step
pays R // 144 * 100 (about 69.4% of what is left) and the earliest
entry (the beneficiary) also collects whatever remains, so rounding never
creates or destroys value:

    commission + sum(shares) + remainder == P
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from bidledger.core.config import LedgerConfig
from bidledger.core.market.bid import Bid, BidId, ProfileId
from bidledger.core.market.profile import Profile
from bidledger.utils.logger import get_logger

logger = get_logger("rewards")


# =============================================================================
# Distribution Records
# =============================================================================


@dataclass
class RewardShare:
    """One payout to one profile."""
    profile_id: ProfileId
    amount: int


@dataclass
class BetDistribution:
    """Breakdown of a single bet price."""
    price: int
    commission: int
    shares: List[RewardShare] = field(default_factory=list)
    remainder: int = 0
    remainder_to: Optional[ProfileId] = None

    @property
    def total(self) -> int:
        return self.commission + sum(s.amount for s in self.shares) + self.remainder

    def credits(self) -> Dict[ProfileId, int]:
        """Total amount owed to each profile."""
        owed: Dict[ProfileId, int] = {}
        for share in self.shares:
            owed[share.profile_id] = owed.get(share.profile_id, 0) + share.amount
        if self.remainder_to is not None:
            owed[self.remainder_to] = owed.get(self.remainder_to, 0) + self.remainder
        return owed


# =============================================================================
# Distributor
# =============================================================================


class RewardDistributor:
    """
    Computes how offer deposits and bet prices are split.

    Pure: the ledger applies the resulting credits and commission in the
    same commit as the rest of the operation.
    """

    def __init__(self, config: Optional[LedgerConfig] = None):
        self.config = config or LedgerConfig()

    def split_bet(self, price: int, prior_bets: Sequence[ProfileId]) -> BetDistribution:
        """
        Split a bet price without touching any state.

        Args:
            price: Bet price paid
            prior_bets: Bid entries before this bet, oldest first

        Returns:
            BetDistribution whose total equals `price`
        """
        if not prior_bets:
            raise ValueError("A bet needs at least the beneficiary entry")

        commission = price // self.config.inv_commission
        paid = price - commission
        shares = []
        for profile_id in reversed(prior_bets):
            share = paid // self.config.inv_reward_decay_mult_100 * 100
            shares.append(RewardShare(profile_id, share))
            paid -= share

        logger.debug(f"Bet {price}: commission={commission}, shares={len(shares)}, remainder={paid}")
        return BetDistribution(
            price=price,
            commission=commission,
            shares=shares,
            remainder=paid,
            remainder_to=prior_bets[0],
        )

    def split_offer(self, deposit: int) -> int:
        """Commission taken on an offer: the whole fixed offer deposit."""
        return deposit


# =============================================================================
# Final Settlement
# =============================================================================


class FinalSettlement(Protocol):
    """
    Settlement run when a bid is finalized.

    Receives the finalized bid and the loaded profiles of all its
    participants, and mutates those profiles in place.
    """

    def settle_final_rewards(self, bid_id: BidId, bid: Bid, profiles: Dict[ProfileId, Profile]) -> None:
        ...


class ParticipationSettlement:
    """Drops the finalized bid from every participant's stakes."""

    def settle_final_rewards(self, bid_id: BidId, bid: Bid, profiles: Dict[ProfileId, Profile]) -> None:
        for profile in profiles.values():
            profile.participation.discard(bid_id)
