"""
SQL persistence for Academy: ORM models, repositories and the
`SqlAlchemyProgressStore` implementation of `ProgressStore`.
"""

from __future__ import annotations

from .store import SqlAlchemyProgressStore

__all__ = ["SqlAlchemyProgressStore"]
