"""
MoneyMind - Ledger Engine

The mutation and reconciliation core of a single-owner personal
finance ledger: accounts, categorized transactions, recurring charges
and savings goals.

DESIGN PRINCIPLES:
1. Every operation is (snapshot, input) -> new snapshot
2. Balances only move through apply/revert of a transaction effect
3. Reject early: no half-updated snapshot is ever returned
4. Recurring materialization is idempotent
5. Storage and sync are collaborators, not part of the core
"""

__version__ = "1.0.0"
__author__ = "MoneyMind Team"
