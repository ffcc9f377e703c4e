"""Subscription ledger, checkout intents and join confirmation."""
