"""
Bid Ledger - Account marketplace auction engine

An auction-style ownership-transfer ledger integrating:
- Escalating bets with commission and decaying rewards
- Claims with an acquisition window
- Price-ordered leaderboards
- SQLite persistence
"""
