"""Catalog ledger: courses and their ordered modules."""
