"""
Household Ledger - Source Package

A personal finance ledger that records income and expenses, tracks
installment loans and credit-card debt, reserves money for taxes and
recommends how much can be spent and saved each day.

DESIGN PRINCIPLES:
1. The record store is the single source of truth
2. Every figure on screen is derived from the latest snapshot
3. Bad historical data degrades to safe defaults, never crashes
4. Validation happens before any write
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Ledger Team"
