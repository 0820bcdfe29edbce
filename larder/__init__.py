"""Larder - media ingestion and storage for recipe collections."""

__version__ = "0.4.0"
