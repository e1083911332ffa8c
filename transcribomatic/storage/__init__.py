"""Persistence for users and the usage ledger."""
