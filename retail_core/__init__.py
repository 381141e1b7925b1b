"""Retail transaction core: sales, returns and payment reconciliation."""
