"""
POS Kernel - order ledger core for a point-of-sale terminal.

An in-memory, optimistically reconciled order ledger with:
- Decimal-only money arithmetic
- Tax-inclusive and tax-exclusive VAT pricing
- Threshold-gated source withholding
- Per-order single-flight persistence to the backend of record
"""

__version__ = "0.1.0"
