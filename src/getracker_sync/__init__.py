"""GE Tracker Sync - keeps the GE Tracker profit tracker in step with Grand Exchange offers.

This package is responsible for:
- Persisting tracked offers per player (composite key item;state;quantity)
- Talking to the GE Tracker profit-tracker REST API
- Pulling active ledger transactions at startup
- Reconciling offer changes into ledger creates and deletes
"""

__version__ = "0.1.0"
