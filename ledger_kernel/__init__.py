"""
Ledger Kernel

Multi-tenant accounting core with:
- Balanced double-entry journals
- Opening balances against a synthetic equity account
- Trial balance and account ledger reporting
- Accounting period control
- Structured logging and a typed error taxonomy
"""

__version__ = "0.1.0"
