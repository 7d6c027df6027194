"""
Extrato - Statement Import Package

Turns bank statements and credit-card invoices (PDF text, CSV exports,
free text or AI-extracted JSON) into de-duplicated, correctly dated and
correctly signed transactions, reconciled against the user's accounts
and credit cards.

PRINCIPLES:
1. Parse locally when a known layout matches, ask the AI otherwise
2. The user approves candidates before anything is written
3. One import is one atomic write
4. A balance changes only together with the transaction that explains it
"""

__version__ = "1.0.0"
