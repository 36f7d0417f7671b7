"""
civic-store test suite.

This package contains:
- unit/: Unit tests (in-memory and SQLite stores, no network)
- integration/: Integration tests (HTTP API, SQLite-backed service container)
"""
