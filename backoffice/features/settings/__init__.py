"""Grouped application settings stored in the database."""
