from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Set, Tuple

from bidledger.core.market.bid import Bid
from bidledger.core.market.profile import Profile
from bidledger.core.storage.sqlite_adapter import SQLiteAdapter
from bidledger.utils.logger import get_logger

logger = get_logger("storage.manager")


@dataclass
class ChangeSet:
    """
    All writes produced by one ledger operation.

    Collected while the operation runs and committed in a single
    transaction, so storage never holds a bid without its matching
    profile and leaderboard state.
    """
    bids_put: Dict[str, Bid] = field(default_factory=dict)
    bids_deleted: Set[str] = field(default_factory=set)
    profiles_put: Dict[str, Profile] = field(default_factory=dict)
    board_removes: List[Tuple[str, int, str]] = field(default_factory=list)
    board_inserts: List[Tuple[str, int, str]] = field(default_factory=list)
    state: Dict[str, str] = field(default_factory=dict)

    def put_bid(self, bid: Bid):
        self.bids_deleted.discard(bid.bid_id)
        self.bids_put[bid.bid_id] = bid

    def delete_bid(self, bid_id: str):
        self.bids_put.pop(bid_id, None)
        self.bids_deleted.add(bid_id)

    def put_profile(self, profile: Profile):
        self.profiles_put[profile.profile_id] = profile

    def board_insert(self, board: str, price: int, bid_id: str):
        self.board_inserts.append((board, price, bid_id))

    def board_remove(self, board: str, price: int, bid_id: str):
        self.board_removes.append((board, price, bid_id))

    def set_state(self, key: str, value: int):
        self.state[key] = str(value)

    def is_empty(self) -> bool:
        return not (
            self.bids_put or self.bids_deleted or self.profiles_put
            or self.board_removes or self.board_inserts or self.state
        )


class StorageManager:
    """
    Manages persistent storage for the ledger.

    Handles:
    - Bid and Profile records
    - Leaderboard entries
    - Ledger totals
    """

    def __init__(self, data_dir: Path, db_name: str = "ledger.db"):
        self.data_dir = data_dir
        self.db_path = data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    # =========================================================================
    # Loading
    # =========================================================================

    def load_bids(self) -> Dict[str, Bid]:
        return {bid_id: Bid.from_bytes(data) for bid_id, data in self.adapter.get_all_bids()}

    def load_profiles(self) -> Dict[str, Profile]:
        return {
            profile_id: Profile.from_bytes(data)
            for profile_id, data in self.adapter.get_all_profiles()
        }

    def load_board(self, board: str) -> List[Tuple[int, str]]:
        return self.adapter.get_board(board)

    def get_state_int(self, key: str, default: int = 0) -> int:
        value = self.adapter.get_state(key)
        return int(value) if value is not None else default

    # =========================================================================
    # Writing
    # =========================================================================

    def commit(self, changes: ChangeSet):
        """Atomically persist a change set."""
        if changes.is_empty():
            return
        self.adapter.persist_changes(
            bids_put={bid_id: bid.to_bytes() for bid_id, bid in changes.bids_put.items()},
            bids_deleted=changes.bids_deleted,
            profiles_put={pid: p.to_bytes() for pid, p in changes.profiles_put.items()},
            board_removes=changes.board_removes,
            board_inserts=changes.board_inserts,
            state=changes.state,
        )

    def close(self):
        self.adapter.close()
