"""
Bid Ledger - Auction state machine for the account marketplace.

Conceptual Background:
---------------------
An account owner *offers* their account, naming a beneficiary who earns
from every later bet. Participants *bet* on the account, each bet
raising the price by 20% and paying commission plus decaying rewards to
everyone who bet before. Anyone may *claim* the account at twice the
current bet price; if no bet supersedes the claim within the acquisition
window, the claim is *finalized* and the claimant may *acquire* the
account, installing their own key.

Operation Processing:
--------------------
Every operation runs in three phases:
1. Validate preconditions against current state (no mutation)
2. Build updated copies of the touched records and a ChangeSet
3. Commit the ChangeSet to storage, then install it in memory

A rejected operation therefore leaves no trace, and storage never holds
a bid without its matching profiles, leaderboard entries and totals.
"""

import copy
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from bidledger.core.config import LedgerConfig
from bidledger.core.keys import KeyManager, hand_over
from bidledger.core.market.bid import Bid, BidId, BidState, LedgerConsistencyError, ProfileId
from bidledger.core.market.leaderboard import Leaderboard, LeaderboardError
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
from bidledger.core.market.profile import Profile
from bidledger.core.rewards import FinalSettlement, ParticipationSettlement, RewardDistributor
from bidledger.core.storage.storage_manager import ChangeSet, StorageManager
from bidledger.crypto import parse_public_key
from bidledger.utils.logger import get_logger

logger = get_logger("ledger")


# =============================================================================
# Errors
# =============================================================================

ERR_OFFER_DEPOSIT_NOT_ENOUGH = "Attached deposit must be no less than OFFER_DEPOSIT"
ERR_GAINER_SAME_AS_OFFER = "Offered account cannot take profit"
ERR_ALREADY_OFFERED = "Bid is already offered"
ERR_BET_FORFEIT_NOT_ENOUGH = "Attached deposit must be no less than bet price plus forfeit"
ERR_CLAIM_NOT_ENOUGH = "Attached deposit must be no less than claim price"
ERR_ALREADY_CLAIMED = "Bid is already claimed"
ERR_BID_NOT_FOUND = "Bid is not found"
ERR_BET_ON_ACQUISITION = "Bid is on acquisition"
ERR_NOT_ON_ACQUISITION = "Bid is not on acquisition"
ERR_ACQUIRE_REJECTED = "Do not have permission to acquire"
ERR_INVALID_CREDENTIAL = "Credential is not a valid public key"
ERR_REWARDS_NOT_ENOUGH = "Available rewards must exceed the withdrawal minimum"

TOP_BETS = "top_bets"
TOP_CLAIMS = "top_claims"

# Ledger totals persisted as metadata
TOTAL_KEYS = (
    "total_commission",
    "total_forfeit",
    "total_claim_deposits",
    "total_surplus",
    "total_rewards_withdrawn",
)


# =============================================================================
# Views
# =============================================================================


@dataclass
class BidView:
    """Read-only snapshot of a live bid and its current prices."""
    bid: Bid
    state: BidState
    bet_price: int
    forfeit: int
    claim_price: int
    acquirable_at: Optional[int]

    @property
    def required_bet_deposit(self) -> int:
        return self.bet_price + self.forfeit


# =============================================================================
# Bid Ledger
# =============================================================================


class BidLedger:
    """
    Auction ledger for offered accounts.

    Attributes:
        bids: Live bids by id
        profiles: Participant profiles by id
        top_bets: Live bids ranked by the price of their next bet
        top_claims: Claimed bids ranked by claim price
    """

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        storage_manager: Optional[StorageManager] = None,
        key_manager: Optional[KeyManager] = None,
        forfeit_policy: Optional[ForfeitPolicy] = None,
        settlement: Optional[FinalSettlement] = None,
    ):
        """
        Initialize the ledger.

        Args:
            config: Economic parameters
            storage_manager: Persistence manager. None = in-memory only.
            key_manager: Credential handover for `acquire`. None = skip handover.
            forfeit_policy: Bet surcharge policy. Defaults to no surcharge.
            settlement: Final settlement run on `finalize`
        """
        self.config = config or LedgerConfig()
        self.config.validate()

        self.bids: Dict[BidId, Bid] = {}
        self.profiles: Dict[ProfileId, Profile] = {}
        self.top_bets = Leaderboard(TOP_BETS)
        self.top_claims = Leaderboard(TOP_CLAIMS)

        self.total_commission = 0
        self.total_forfeit = 0
        self.total_claim_deposits = 0
        self.total_surplus = 0
        self.total_rewards_withdrawn = 0

        self.rewards = RewardDistributor(self.config)
        self.forfeit_policy = forfeit_policy or NoForfeit()
        self.settlement = settlement or ParticipationSettlement()
        self.key_manager = key_manager

        self.storage_manager = storage_manager
        if storage_manager:
            self._load_from_storage()

    # =========================================================================
    # State Access
    # =========================================================================

    def get_bid(self, bid_id: BidId, now: Optional[int] = None) -> Optional[BidView]:
        """Get a live bid with its current prices, or None."""
        bid = self.bids.get(bid_id)
        if bid is None:
            return None
        now = _now(now)
        claimed_at = bid.claimed_at
        return BidView(
            bid=copy.deepcopy(bid),
            state=bid_state(bid, now, self.config.acquisition_time),
            bet_price=bet_price(bid, self.config),
            forfeit=forfeit(bid, now, self.forfeit_policy),
            claim_price=claim_price(bid, self.config),
            acquirable_at=claimed_at + self.config.acquisition_time if claimed_at is not None else None,
        )

    def get_profile(self, profile_id: ProfileId) -> Optional[Profile]:
        profile = self.profiles.get(profile_id)
        return copy.deepcopy(profile) if profile else None

    def get_state(self, bid_id: BidId, now: Optional[int] = None) -> BidState:
        """Lifecycle state of a bid. Unknown ids are reported as FINALIZED."""
        bid = self.bids.get(bid_id)
        if bid is None:
            return BidState.FINALIZED
        return bid_state(bid, _now(now), self.config.acquisition_time)

    def get_top_bets(self, limit: int = 10, from_price: Optional[int] = None) -> List[Tuple[int, BidId]]:
        return self.top_bets.top(limit, from_price)

    def get_top_claims(self, limit: int = 10, from_price: Optional[int] = None) -> List[Tuple[int, BidId]]:
        return self.top_claims.top(limit, from_price)

    # =========================================================================
    # Operations
    # =========================================================================

    def offer(self, caller: ProfileId, beneficiary: ProfileId, deposit: int) -> Tuple[bool, str]:
        """
        Offer the caller's account, naming a beneficiary for the rewards.

        Args:
            caller: Offered account, becomes the bid id
            beneficiary: Profile recorded as the first bet entry
            deposit: Attached deposit

        Returns:
            (success, error_message)
        """
        if deposit < self.config.offer_deposit:
            return self._reject("offer", caller, ERR_OFFER_DEPOSIT_NOT_ENOUGH)
        if caller == beneficiary:
            return self._reject("offer", caller, ERR_GAINER_SAME_AS_OFFER)
        if caller in self.bids:
            return self._reject("offer", caller, ERR_ALREADY_OFFERED)

        bid_id = caller
        bid = Bid(bid_id=bid_id)
        bid.participants.add(beneficiary)
        bid.bets.append(beneficiary)

        profile = self._profile_copy(beneficiary)
        profile.num_offers += 1
        profile.participation.add(bid_id)

        changes = ChangeSet()
        changes.put_bid(bid)
        changes.put_profile(profile)
        changes.board_insert(TOP_BETS, self.config.init_bet_price, bid_id)
        commission = self.rewards.split_offer(self.config.offer_deposit)
        changes.set_state("total_commission", self.total_commission + commission)
        changes.set_state("total_surplus", self.total_surplus + deposit - self.config.offer_deposit)
        self._commit(changes)

        logger.info(f"Offer {bid_id}: beneficiary={beneficiary}")
        return True, ""

    def bet(
        self,
        caller: ProfileId,
        bid_id: BidId,
        deposit: int,
        now: Optional[int] = None,
    ) -> Tuple[bool, str]:
        """
        Bet on a bid at its current price.

        Clears any pending claim, pays commission and rewards to the
        earlier entries and raises the price of the next bet by 20%.

        Args:
            caller: Bettor
            bid_id: Bid to bet on
            deposit: Attached deposit, at least bet price plus forfeit
            now: Current timestamp (defaults to wall clock)

        Returns:
            (success, error_message)
        """
        now = _now(now)
        current = self.bids.get(bid_id)
        if current is None:
            return self._reject("bet", caller, ERR_BID_NOT_FOUND)
        if on_acquisition(current, now, self.config.acquisition_time):
            return self._reject("bet", caller, ERR_BET_ON_ACQUISITION)
        price = bet_price(current, self.config)
        surcharge = forfeit(current, now, self.forfeit_policy)
        if deposit < price + surcharge:
            return self._reject("bet", caller, ERR_BET_FORFEIT_NOT_ENOUGH)

        self._require_entry(self.top_bets, price, bid_id)
        if current.claim_status is not None:
            self._require_entry(self.top_claims, claim_price(current, self.config), bid_id)

        changes = ChangeSet()
        bid = copy.deepcopy(current)
        touched: Dict[ProfileId, Profile] = {}

        # Superseded claim
        if bid.claim_status is not None:
            changes.board_remove(TOP_CLAIMS, claim_price(bid, self.config), bid_id)
        bid.claim_status = None
        bid.participants.add(caller)

        bettor = self._profile_copy(caller, touched)
        bettor.num_bets += 1
        bettor.bets_volume += price
        bettor.participation.add(bid_id)

        distribution = self.rewards.split_bet(price, bid.bets)
        for profile_id, amount in distribution.credits().items():
            self._profile_copy(profile_id, touched).available_rewards += amount

        bid.bets.append(caller)
        changes.board_remove(TOP_BETS, price, bid_id)
        changes.board_insert(TOP_BETS, next_bet_price(price), bid_id)
        changes.put_bid(bid)
        for profile in touched.values():
            changes.put_profile(profile)
        changes.set_state("total_commission", self.total_commission + distribution.commission)
        changes.set_state("total_forfeit", self.total_forfeit + surcharge)
        changes.set_state("total_surplus", self.total_surplus + deposit - price - surcharge)
        self._commit(changes)

        logger.info(f"Bet on {bid_id} by {caller}: price={price}, next={next_bet_price(price)}")
        return True, ""

    def claim(
        self,
        caller: ProfileId,
        bid_id: BidId,
        deposit: int,
        now: Optional[int] = None,
    ) -> Tuple[bool, str]:
        """
        Claim a bid at twice its current bet price.

        The bid stays in top_bets: a later bet still supersedes the claim.

        Returns:
            (success, error_message)
        """
        now = _now(now)
        current = self.bids.get(bid_id)
        if current is None:
            return self._reject("claim", caller, ERR_BID_NOT_FOUND)
        if current.claim_status is not None:
            return self._reject("claim", caller, ERR_ALREADY_CLAIMED)
        price = claim_price(current, self.config)
        if deposit < price:
            return self._reject("claim", caller, ERR_CLAIM_NOT_ENOUGH)

        bid = copy.deepcopy(current)
        bid.claim_status = (caller, now)
        bid.participants.add(caller)

        profile = self._profile_copy(caller)
        profile.num_claims += 1
        profile.participation.add(bid_id)

        changes = ChangeSet()
        changes.put_bid(bid)
        changes.put_profile(profile)
        changes.board_insert(TOP_CLAIMS, price, bid_id)
        changes.set_state("total_claim_deposits", self.total_claim_deposits + price)
        changes.set_state("total_surplus", self.total_surplus + deposit - price)
        self._commit(changes)

        logger.info(f"Claim on {bid_id} by {caller}: price={price}")
        return True, ""

    def finalize(self, bid_id: BidId, now: Optional[int] = None) -> Tuple[bool, str]:
        """
        Finalize a claim that survived the acquisition window.

        Grants the claimant the right to acquire, settles participants and
        deletes the bid.

        Returns:
            (success, error_message)

        Raises:
            LedgerConsistencyError: If an acquirable bid has no claimant
        """
        now = _now(now)
        current = self.bids.get(bid_id)
        if current is None:
            return self._reject("finalize", bid_id, ERR_BID_NOT_FOUND)
        if not on_acquisition(current, now, self.config.acquisition_time):
            return self._reject("finalize", bid_id, ERR_NOT_ON_ACQUISITION)
        claimant = current.claimant
        if claimant is None:
            raise LedgerConsistencyError(f"Bid {bid_id} is on acquisition without a claim")

        price = bet_price(current, self.config)
        price_to_claim = claim_price(current, self.config)
        self._require_entry(self.top_bets, price, bid_id)
        self._require_entry(self.top_claims, price_to_claim, bid_id)

        touched: Dict[ProfileId, Profile] = {}
        winner = self._profile_copy(claimant, touched)
        winner.acquisitions.add(bid_id)

        for profile_id in current.participants:
            self._profile_copy(profile_id, touched)
        self.settlement.settle_final_rewards(bid_id, current, touched)

        changes = ChangeSet()
        for profile in touched.values():
            changes.put_profile(profile)
        changes.board_remove(TOP_BETS, price, bid_id)
        changes.board_remove(TOP_CLAIMS, price_to_claim, bid_id)
        changes.delete_bid(bid_id)
        self._commit(changes)

        logger.info(f"Finalized {bid_id}: acquired by {claimant}")
        return True, ""

    def acquire(
        self,
        caller: ProfileId,
        bid_id: BidId,
        credential: str,
        signer_key: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """
        Consume an acquisition right and hand the account over.

        The key handover is best-effort: once the right is consumed, a
        failing key manager is logged and does not undo it.

        Args:
            caller: Profile holding the right
            bid_id: Acquired account
            credential: New full-access public key (hex)
            signer_key: Caller's current key to revoke (hex), if any

        Returns:
            (success, error_message)
        """
        try:
            new_key = parse_public_key(credential)
            old_key = parse_public_key(signer_key) if signer_key else None
        except ValueError as e:
            logger.debug(f"acquire {bid_id}: {e}")
            return self._reject("acquire", caller, ERR_INVALID_CREDENTIAL)

        current = self.profiles.get(caller)
        if current is None or bid_id not in current.acquisitions:
            return self._reject("acquire", caller, ERR_ACQUIRE_REJECTED)

        profile = copy.deepcopy(current)
        profile.acquisitions.remove(bid_id)
        profile.num_acquisitions += 1

        changes = ChangeSet()
        changes.put_profile(profile)
        self._commit(changes)
        logger.info(f"Acquired {bid_id} by {caller}")

        if self.key_manager is not None:
            hand_over(self.key_manager, bid_id, new_key, old_key)
        else:
            logger.debug(f"No key manager configured, skipping handover of {bid_id}")

        return True, ""

    def withdraw_rewards(self, caller: ProfileId) -> Tuple[int, str]:
        """
        Withdraw all available rewards of the caller.

        Returns:
            (amount, error_message) - amount is 0 on failure
        """
        current = self.profiles.get(caller)
        available = current.available_rewards if current else 0
        if available == 0 or available <= self.config.min_reward_withdrawal:
            logger.warning(f"withdraw rejected for {caller}: {ERR_REWARDS_NOT_ENOUGH}")
            return 0, ERR_REWARDS_NOT_ENOUGH

        profile = copy.deepcopy(current)
        profile.available_rewards = 0

        changes = ChangeSet()
        changes.put_profile(profile)
        changes.set_state("total_rewards_withdrawn", self.total_rewards_withdrawn + available)
        self._commit(changes)

        logger.info(f"Withdrew {available} rewards for {caller}")
        return available, ""

    # =========================================================================
    # Internals
    # =========================================================================

    def _reject(self, operation: str, who: str, error: str) -> Tuple[bool, str]:
        logger.warning(f"{operation} rejected for {who}: {error}")
        return False, error

    def _profile_copy(
        self,
        profile_id: ProfileId,
        touched: Optional[Dict[ProfileId, Profile]] = None,
    ) -> Profile:
        """Working copy of a profile, created if missing, shared per operation."""
        if touched is not None and profile_id in touched:
            return touched[profile_id]
        existing = self.profiles.get(profile_id)
        profile = copy.deepcopy(existing) if existing else Profile(profile_id=profile_id)
        if touched is not None:
            touched[profile_id] = profile
        return profile

    @staticmethod
    def _require_entry(board: Leaderboard, price: int, bid_id: BidId) -> None:
        if (price, bid_id) not in board:
            raise LeaderboardError(f"Bid {bid_id} not found in {board.name} at price {price}")

    def _commit(self, changes: ChangeSet) -> None:
        """Persist a change set, then install it in memory."""
        if self.storage_manager:
            self.storage_manager.commit(changes)

        for bid_id, bid in changes.bids_put.items():
            self.bids[bid_id] = bid
        for bid_id in changes.bids_deleted:
            del self.bids[bid_id]
        for profile_id, profile in changes.profiles_put.items():
            self.profiles[profile_id] = profile

        boards = {TOP_BETS: self.top_bets, TOP_CLAIMS: self.top_claims}
        for board, price, bid_id in changes.board_removes:
            boards[board].remove(price, bid_id)
        for board, price, bid_id in changes.board_inserts:
            boards[board].insert(price, bid_id)

        for key, value in changes.state.items():
            setattr(self, key, int(value))

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load_from_storage(self) -> None:
        """Load state from storage manager."""
        self.bids = self.storage_manager.load_bids()
        self.profiles = self.storage_manager.load_profiles()
        self.top_bets = Leaderboard(TOP_BETS, self.storage_manager.load_board(TOP_BETS))
        self.top_claims = Leaderboard(TOP_CLAIMS, self.storage_manager.load_board(TOP_CLAIMS))
        for key in TOTAL_KEYS:
            setattr(self, key, self.storage_manager.get_state_int(key))

        ok, error = self.verify_consistency()
        if not ok:
            raise LedgerConsistencyError(f"Stored ledger is inconsistent: {error}")

        logger.info(
            f"Loaded ledger: {len(self.bids)} bids, {len(self.profiles)} profiles, "
            f"commission={self.total_commission}"
        )

    def close(self) -> None:
        """Close storage."""
        if self.storage_manager:
            self.storage_manager.close()

    # =========================================================================
    # Utility
    # =========================================================================

    def verify_consistency(self) -> Tuple[bool, str]:
        """
        Check that both leaderboards match the bid records exactly.

        Returns:
            (is_consistent, error_message)
        """
        expected_bets = {(bet_price(bid, self.config), bid_id) for bid_id, bid in self.bids.items()}
        expected_claims = {
            (claim_price(bid, self.config), bid_id)
            for bid_id, bid in self.bids.items()
            if bid.claim_status is not None
        }
        if set(self.top_bets) != expected_bets or len(self.top_bets) != len(expected_bets):
            return False, "top_bets does not match bid prices"
        if set(self.top_claims) != expected_claims or len(self.top_claims) != len(expected_claims):
            return False, "top_claims does not match pending claims"
        return True, ""

    def __repr__(self) -> str:
        return f"BidLedger(bids={len(self.bids)}, profiles={len(self.profiles)}, commission={self.total_commission})"

    def stats(self) -> dict:
        """Get ledger statistics."""
        return {
            "bids": len(self.bids),
            "profiles": len(self.profiles),
            "claims": len(self.top_claims),
            "total_commission": self.total_commission,
            "total_forfeit": self.total_forfeit,
            "total_claim_deposits": self.total_claim_deposits,
            "total_surplus": self.total_surplus,
            "total_rewards_withdrawn": self.total_rewards_withdrawn,
            "rewards_outstanding": sum(p.available_rewards for p in self.profiles.values()),
        }


def _now(now: Optional[int]) -> int:
    return int(time.time()) if now is None else now
