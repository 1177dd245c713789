"""Database layer for orderflow."""
