"""Shared filesystem, locking, and async helpers."""
