"""Database services."""
