"""
Register of Cash in Bank - Source Package

The quarterly cash ledger of a youth-council administration system:
entries, running balances, sub-account totals, and balances carried
forward from one quarter to the next.

DESIGN PRINCIPLES:
1. Balances are always recomputed, never edited
2. Malformed amounts become zero, arithmetic never fails
3. Each period owns its own data; only the closing balance crosses over
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "RCB Ledger Team"
