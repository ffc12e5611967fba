"""
billsync - Source Package

Aggregates bills from users' linked utility provider accounts.

DESIGN PRINCIPLES:
1. Cache first, provider second
2. Providers are slow and flaky: rate limit, retry, bound concurrency
3. Cancellation always wins
4. Every step is auditable
5. Storage and providers are swappable
"""

__version__ = "1.0.0"
__author__ = "billsync Team"
