"""Database layer for AccessGraph."""
