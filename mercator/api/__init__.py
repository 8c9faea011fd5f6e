"""Mercator HTTP API."""
