"""Kernel services: flush-only writers over the ledger store."""
