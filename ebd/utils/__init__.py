"""Utility helpers (documents, formatting)."""
