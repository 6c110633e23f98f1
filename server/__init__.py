"""Proxy HTTP server."""
