"""
Academy Test Suite
==================

Test Organization
-----------------
- tests/unit/          : Services over the in-memory store (no I/O)
- tests/unit/domain/   : Pure formulas, rules and value objects
- tests/integration/   : SQL store and bootstrap on in-memory SQLite

Run a subset with markers: `pytest -m unit`, `pytest -m "integration"`.
"""
