"""
Split Ledger - Source Package

A shared-expense ledger for hostels, flats and trips: members record
who paid for what, the ledger keeps every member's net balance, and a
settle-up plan tells the group who should pay whom.

DESIGN PRINCIPLES:
1. Balances are always derived from expenses and payments, never edited
2. Money is Decimal, rounded to the cent, never float
3. Fail early, fail visibly
4. No silent corrections
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Split Ledger Team"
