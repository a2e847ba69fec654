"""
Leaderboard - Price-ordered index of live bids.

Entries are (price, bid_id) pairs kept in a sorted list. Ordering is
lexicographic: price ascending, then bid id, so bids with equal prices
always come out in the same order.

The index is a derived view. The Bid record is the source of truth and
every reprice is a remove-old / insert-new pair; a missing old entry
means the index drifted from the records and is fatal.
"""

from bisect import bisect_left, bisect_right, insort
from typing import Iterator, List, Optional, Tuple

from bidledger.core.market.bid import BidId, LedgerConsistencyError
from bidledger.utils.logger import get_logger

logger = get_logger("leaderboard")

Entry = Tuple[int, BidId]


class LeaderboardError(LedgerConsistencyError):
    """Bid not found in leaderboard."""


class Leaderboard:
    """
    Ordered set of (price, bid_id) entries.

    Lookup is O(log n), insert and remove shift the list.
    """

    def __init__(self, name: str, entries: Optional[List[Entry]] = None):
        self.name = name
        self._entries: List[Entry] = sorted(entries or [])

    # =========================================================================
    # Mutation
    # =========================================================================

    def insert(self, price: int, bid_id: BidId) -> bool:
        """
        Insert an entry.

        Returns:
            False if the entry already existed
        """
        entry = (price, bid_id)
        if entry in self:
            return False
        insort(self._entries, entry)
        logger.debug(f"{self.name}: +({price}, {bid_id})")
        return True

    def remove(self, price: int, bid_id: BidId) -> None:
        """
        Remove an entry that must exist.

        Raises:
            LeaderboardError: If the entry is missing
        """
        if not self.discard(price, bid_id):
            raise LeaderboardError(f"Bid {bid_id} not found in {self.name} at price {price}")

    def discard(self, price: int, bid_id: BidId) -> bool:
        """Remove an entry if present. Returns whether it was present."""
        entry = (price, bid_id)
        i = bisect_left(self._entries, entry)
        if i < len(self._entries) and self._entries[i] == entry:
            del self._entries[i]
            logger.debug(f"{self.name}: -({price}, {bid_id})")
            return True
        return False

    # =========================================================================
    # Queries
    # =========================================================================

    def __contains__(self, entry: Entry) -> bool:
        i = bisect_left(self._entries, entry)
        return i < len(self._entries) and self._entries[i] == entry

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._entries)

    def range(self, min_price: Optional[int] = None, max_price: Optional[int] = None) -> List[Entry]:
        """Entries with min_price <= price <= max_price, ascending."""
        lo = 0 if min_price is None else bisect_left(self._entries, (min_price,))
        if max_price is None:
            hi = len(self._entries)
        else:
            # (max_price + 1,) sorts after every (max_price, bid_id)
            hi = bisect_right(self._entries, (max_price + 1,))
        return self._entries[lo:hi]

    def top(self, limit: int = 10, from_price: Optional[int] = None) -> List[Entry]:
        """
        Highest entries first.

        Args:
            limit: Maximum number of entries
            from_price: Only include entries priced at or below this

        Returns:
            Up to `limit` entries in descending order
        """
        if limit <= 0:
            return []
        candidates = self.range(max_price=from_price)
        return list(reversed(candidates[-limit:]))

    def __repr__(self) -> str:
        return f"Leaderboard({self.name}, entries={len(self._entries)})"
