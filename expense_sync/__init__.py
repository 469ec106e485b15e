"""
Expense Sync - Source Package

Client-side synchronization and caching core for a personal expense
tracker backed by a remote document store.

DESIGN PRINCIPLES:
1. Remote data is untrusted until it passes the validator
2. Nothing is applied locally before the store confirms it
3. Late results never overwrite newer state
4. Storage layer is swappable
"""

__version__ = "1.0.0"
