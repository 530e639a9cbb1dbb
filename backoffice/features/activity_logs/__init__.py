"""Audit trail of changes made through the back office."""
