"""
Scripts Package.

Operational scripts for the ledger service.

Scripts:
- bootstrap_db: Schema creation, VIP tier seeding, row counts
- rebuild_trading_volume: One-off trading-volume projection
- check_telegram: Send a test notification to the operator chat
"""

# Scripts are meant to be run directly, not imported
