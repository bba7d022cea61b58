"""Service package for router reconciliation."""
