"""Upstream story sources."""
