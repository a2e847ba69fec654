"""
Profile - Per-participant aggregate record.

Profiles are created lazily on first interaction and never deleted.
"""

import json
from dataclasses import dataclass, field
from typing import Set

from bidledger.core.market.bid import BidId, ProfileId


@dataclass
class Profile:
    """
    Aggregate counters and stakes of one participant.

    Attributes:
        profile_id: Participant id
        num_offers: Offers naming this profile as beneficiary
        num_bets: Bets placed
        num_claims: Claims placed
        num_acquisitions: Accounts acquired
        bets_volume: Total bet price paid
        available_rewards: Rewards credited and not yet withdrawn
        participation: Live bids this profile has a stake in
        acquisitions: Finalized bids this profile may acquire
    """
    profile_id: ProfileId
    num_offers: int = 0
    num_bets: int = 0
    num_claims: int = 0
    num_acquisitions: int = 0
    bets_volume: int = 0
    available_rewards: int = 0
    participation: Set[BidId] = field(default_factory=set)
    acquisitions: Set[BidId] = field(default_factory=set)

    def to_dict(self) -> dict:
        # Balances exceed 64 bits, keep them as strings
        return {
            "profile_id": self.profile_id,
            "num_offers": self.num_offers,
            "num_bets": self.num_bets,
            "num_claims": self.num_claims,
            "num_acquisitions": self.num_acquisitions,
            "bets_volume": str(self.bets_volume),
            "available_rewards": str(self.available_rewards),
            "participation": sorted(self.participation),
            "acquisitions": sorted(self.acquisitions),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Profile":
        return cls(
            profile_id=data["profile_id"],
            num_offers=data.get("num_offers", 0),
            num_bets=data.get("num_bets", 0),
            num_claims=data.get("num_claims", 0),
            num_acquisitions=data.get("num_acquisitions", 0),
            bets_volume=int(data.get("bets_volume", "0")),
            available_rewards=int(data.get("available_rewards", "0")),
            participation=set(data.get("participation", [])),
            acquisitions=set(data.get("acquisitions", [])),
        )

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Profile":
        return cls.from_dict(json.loads(data.decode("utf-8")))
