"""Durable task storage on SQLite."""
