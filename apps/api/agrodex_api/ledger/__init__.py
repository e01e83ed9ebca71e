"""Ledger gateway package."""
