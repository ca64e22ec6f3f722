"""Phantom Rewards: reward ledger and progression engine."""
