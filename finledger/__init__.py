"""
Finance Ledger - Source Package

The transaction-ledger and credit-card-billing reconciliation engine
behind a personal/shared finance tracker.

DESIGN PRINCIPLES:
1. An account balance always equals the sum of its completed transactions
2. Fail before the first write, not after the third
3. Every multi-step write records how to undo itself
4. Every ledger operation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Ledger Team"
