# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Test suite for EntityAlchemy.

This package contains tests for all components of EntityAlchemy:
- Unit tests for the registry, naming, dependency graph and executor
- Metadata builder and validator tests over decorated entity classes
- Planner tests asserting operation order and executed statements
- Session tests for the unit of work and lifecycle events
"""

from typing import Any, List

from entityalchemy.constants import StatementKind
from entityalchemy.executor import InMemoryStatementExecutor


class Model:
    """Plain entity base: keyword arguments become attributes."""

    def __init__(self, **kwargs: Any) -> None:
        for name, value in kwargs.items():
            setattr(self, name, value)


def statement_trace(executor: InMemoryStatementExecutor) -> List[tuple]:
    """(kind, table) pairs of every recorded statement, in execution order."""
    return [(statement.kind, statement.table_name) for statement in executor.statements]


def inserted_tables(executor: InMemoryStatementExecutor) -> List[str]:
    return [s.table_name for s in executor.statements if s.kind == StatementKind.INSERT]


__all__ = [
    "Model",
    "statement_trace",
    "inserted_tables",
]
