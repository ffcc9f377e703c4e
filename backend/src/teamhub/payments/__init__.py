"""Stripe checkout and webhook reconciliation."""
