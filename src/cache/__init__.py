# src/cache/__init__.py — v1
"""Cache engine: keys, blob and metadata stores, entries, façade."""
