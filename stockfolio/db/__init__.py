"""Stockfolio storage layer.

A DuckDB file holds a small key-value table; the holdings collection
is serialized as one JSON document under a single key.
"""
