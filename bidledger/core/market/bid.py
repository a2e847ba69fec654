"""
Bid - Per-account auction record.

A Bid is created when an account is offered and lives until the claim on
it is finalized. The record keeps:

1. **bets**: append-only history of profile ids. Entry 0 is the
   beneficiary named at offer time; every later entry is a bettor.
2. **participants**: every profile that ever touched the bid.
3. **claim_status**: the pending claim, if any, as (claimant, timestamp).

Lifecycle:
---------
    OPEN ──bet──> BETTING ──claim──> CLAIMED ──window──> ACQUIRABLE ──finalize──> FINALIZED
      │              ^                  │
      │              └───────bet────────┘
      └────────────claim──────────────> CLAIMED

A bet always clears a pending claim. FINALIZED bids are deleted.
"""

import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Set, Tuple


BidId = str
ProfileId = str


class LedgerConsistencyError(RuntimeError):
    """Raised when structurally guaranteed ledger state is missing."""


# =============================================================================
# Enums
# =============================================================================


class BidState(IntEnum):
    """Lifecycle state of a bid."""
    OPEN = 0          # Offered, no bets yet
    BETTING = 1       # At least one bet, no pending claim
    CLAIMED = 2       # Claim pending, window not elapsed
    ACQUIRABLE = 3    # Claim survived the acquisition window
    FINALIZED = 4     # Terminal, record no longer stored


# =============================================================================
# Bid Record
# =============================================================================


@dataclass
class Bid:
    """
    Auction record for one offered account.

    Attributes:
        bid_id: The offered account id
        bets: Beneficiary followed by bettors, in chronological order
        participants: Every profile that touched the bid
        claim_status: (claimant, claim timestamp) or None
    """
    bid_id: BidId
    bets: List[ProfileId] = field(default_factory=list)
    participants: Set[ProfileId] = field(default_factory=set)
    claim_status: Optional[Tuple[ProfileId, int]] = None

    @property
    def num_bets(self) -> int:
        """Number of bets placed after the offer."""
        return max(len(self.bets) - 1, 0)

    @property
    def beneficiary(self) -> Optional[ProfileId]:
        return self.bets[0] if self.bets else None

    @property
    def claimant(self) -> Optional[ProfileId]:
        return self.claim_status[0] if self.claim_status else None

    @property
    def claimed_at(self) -> Optional[int]:
        return self.claim_status[1] if self.claim_status else None

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        return {
            "bid_id": self.bid_id,
            "bets": list(self.bets),
            "participants": sorted(self.participants),
            "claim_status": list(self.claim_status) if self.claim_status else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bid":
        claim = data.get("claim_status")
        return cls(
            bid_id=data["bid_id"],
            bets=list(data.get("bets", [])),
            participants=set(data.get("participants", [])),
            claim_status=(claim[0], int(claim[1])) if claim else None,
        )

    def to_bytes(self) -> bytes:
        """Serialize for storage."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Bid":
        return cls.from_dict(json.loads(data.decode("utf-8")))

    def __repr__(self) -> str:
        return f"Bid({self.bid_id}, bets={self.num_bets}, claimant={self.claimant})"
