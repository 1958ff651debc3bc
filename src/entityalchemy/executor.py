# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Statement executor collaborator.

Planners never build SQL: they hand a table name plus column-value maps to a
``StatementExecutor``. ``InMemoryStatementExecutor`` is a reference executor that
keeps rows in dictionaries and records every statement it runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, runtime_checkable

from .constants import GenerationStrategy, StatementKind
from .entity_metadata import EntityMetadata
from .errors import DuplicateRowError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@runtime_checkable
class StatementExecutor(Protocol):
    """Structured write/read intent consumed by database drivers."""

    async def insert_one(self, table_name: str, values: Row) -> Row:
        """Insert one row; returns generated values keyed by column name."""
        ...

    async def update_one(self, table_name: str, conditions: Row, values: Row) -> None: ...

    async def delete_one(self, table_name: str, conditions: Row) -> None: ...

    async def find_one(self, table_name: str, conditions: Row) -> Optional[Row]: ...

    async def find_many(self, table_name: str, conditions: Row) -> List[Row]: ...


@dataclass(frozen=True)
class Statement:
    """One executed write."""

    kind: StatementKind
    table_name: str
    values: Row = field(default_factory=dict)
    conditions: Row = field(default_factory=dict)


def _matches(row: Row, conditions: Row) -> bool:
    return all(row.get(name) == value for name, value in conditions.items())


class InMemoryStatementExecutor:
    """
    Dictionary-backed executor.

    Increment columns get per-table sequences starting at 1; inserting a primary
    key that already exists raises ``DuplicateRowError``.

    :class: InMemoryStatementExecutor
    :synopsis: Reference statement executor used by tests and examples
    """

    def __init__(
        self,
        primary_keys: Optional[Dict[str, Tuple[str, ...]]] = None,
        increment_columns: Optional[Dict[str, Tuple[str, ...]]] = None,
    ) -> None:
        self.primary_keys: Dict[str, Tuple[str, ...]] = dict(primary_keys or {})
        self.increment_columns: Dict[str, Tuple[str, ...]] = dict(increment_columns or {})
        self.tables: Dict[str, List[Row]] = {}
        self.statements: List[Statement] = []
        self._sequences: Dict[Tuple[str, str], int] = {}

    @classmethod
    def from_metadatas(cls, metadatas: Iterable[EntityMetadata]) -> "InMemoryStatementExecutor":
        """Executor aware of the primary keys and increment columns of every table."""
        primary_keys: Dict[str, Tuple[str, ...]] = {}
        increment_columns: Dict[str, Tuple[str, ...]] = {}
        for metadata in metadatas:
            if metadata.is_single_table_child:
                continue
            primary_keys[metadata.table_name] = tuple(c.database_name for c in metadata.own_primary_columns)
            increment_columns[metadata.table_name] = tuple(
                c.database_name
                for c in metadata.own_columns
                if c.generation_strategy == GenerationStrategy.INCREMENT
            )
        return cls(primary_keys, increment_columns)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_one(self, table_name: str, values: Row) -> Row:
        row = dict(values)
        generated: Row = {}

        # @@ STEP 1: Fill increment columns from the table sequence
        for column in self.increment_columns.get(table_name, ()):
            key = (table_name, column)
            current = self._sequences.get(key, 0)
            if row.get(column) is None:
                current += 1
                row[column] = current
                generated[column] = current
            elif isinstance(row[column], int):
                current = max(current, row[column])
            self._sequences[key] = current

        # @@ STEP 2: Reject duplicate primary keys
        rows = self.tables.setdefault(table_name, [])
        primary = self.primary_keys.get(table_name, ())
        if primary:
            key_values = {name: row.get(name) for name in primary}
            if any(_matches(existing, key_values) for existing in rows):
                raise DuplicateRowError(table_name, key_values)

        rows.append(row)
        self.statements.append(Statement(StatementKind.INSERT, table_name, dict(row)))
        logger.debug(f"INSERT {table_name} {row}")
        return generated

    async def update_one(self, table_name: str, conditions: Row, values: Row) -> None:
        for row in self.tables.get(table_name, []):
            if _matches(row, conditions):
                row.update(values)
                break
        else:
            logger.debug(f"UPDATE {table_name} matched no row for {conditions}")
        self.statements.append(Statement(StatementKind.UPDATE, table_name, dict(values), dict(conditions)))
        logger.debug(f"UPDATE {table_name} {values} WHERE {conditions}")

    async def delete_one(self, table_name: str, conditions: Row) -> None:
        rows = self.tables.get(table_name, [])
        for position, row in enumerate(rows):
            if _matches(row, conditions):
                del rows[position]
                break
        self.statements.append(Statement(StatementKind.DELETE, table_name, {}, dict(conditions)))
        logger.debug(f"DELETE {table_name} WHERE {conditions}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_one(self, table_name: str, conditions: Row) -> Optional[Row]:
        for row in self.tables.get(table_name, []):
            if _matches(row, conditions):
                return dict(row)
        return None

    async def find_many(self, table_name: str, conditions: Row) -> List[Row]:
        return [dict(row) for row in self.tables.get(table_name, []) if _matches(row, conditions)]

    def rows(self, table_name: str) -> List[Row]:
        """Snapshot of the rows of ``table_name`` in insertion order."""
        return [dict(row) for row in self.tables.get(table_name, [])]

    def statements_for(self, table_name: str) -> List[Statement]:
        return [statement for statement in self.statements if statement.table_name == table_name]

    def clear_statements(self) -> None:
        self.statements.clear()


__all__ = [
    "Row",
    "Statement",
    "StatementExecutor",
    "InMemoryStatementExecutor",
]
