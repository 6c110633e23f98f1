"""Proxy configuration."""
