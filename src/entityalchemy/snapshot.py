# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Loader of previously persisted state.

Planners diff in-memory instances against what the statement executor returns
here: the stored row of an entity and the id maps of the entities it is linked
to through each relation.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .entity_metadata import ColumnMetadata, EntityMetadata, RelationMetadata
from .executor import Row, StatementExecutor

logger = logging.getLogger(__name__)


class SnapshotLoader:
    """
    Reads persisted rows and relation reference sets through a statement executor.

    :class: SnapshotLoader
    :synopsis: Persisted-state reader shared by the persistence and removal planners
    """

    def __init__(self, executor: StatementExecutor) -> None:
        self.executor = executor

    async def load_row(self, metadata: EntityMetadata, id_map: Dict[str, Any]) -> Optional[Row]:
        """
        Stored row of ``id_map``, merged over every table of the entity.

        Returns None when any table of the chain holds no row.
        """
        merged: Row = {}
        for table in metadata.table_chain:
            row = await self.executor.find_one(table.table_name, metadata.identity_conditions(id_map, table))
            if row is None:
                return None
            merged.update(row)
        return merged

    async def load_junction_rows(self, relation: RelationMetadata, row: Row) -> List[Row]:
        junction = relation.junction_entity_metadata
        if junction is None:
            return []
        this_columns, _ = relation.junction_column_pairs()
        conditions = {column.database_name: row.get(column.referenced_column.database_name) for column in this_columns}
        if any(value is None for value in conditions.values()):
            return []
        return await self.executor.find_many(junction.table_name, conditions)

    async def load_closure_rows(self, closure: EntityMetadata, row: Row) -> List[Row]:
        """Closure rows naming ``row`` as ancestor or as descendant, each once."""
        columns = closure.junction_columns
        found: List[Row] = []
        for key_columns in (columns.owner_columns, columns.inverse_columns):
            conditions = {c.database_name: row.get(c.referenced_column.database_name) for c in key_columns}
            if any(value is None for value in conditions.values()):
                continue
            for closure_row in await self.executor.find_many(closure.table_name, conditions):
                if closure_row not in found:
                    found.append(closure_row)
        return found

    async def load_relation_ids(self, relation: RelationMetadata, row: Row) -> List[Dict[str, Any]]:
        """Id maps of the entities ``row`` is linked to through ``relation``."""
        target = relation.inverse_entity_metadata

        # @@ STEP 1: This side holds the foreign key
        if relation.is_with_join_columns:
            values = {column.referenced_column: row.get(column.database_name) for column in relation.join_columns}
            id_map = await self._to_id_map(target, values)
            return [id_map] if id_map is not None else []

        # @@ STEP 2: Links stored in a junction table
        if relation.is_many_to_many:
            _, other_columns = relation.junction_column_pairs()
            found = []
            for junction_row in await self.load_junction_rows(relation, row):
                values = {column.referenced_column: junction_row.get(column.database_name) for column in other_columns}
                id_map = await self._to_id_map(target, values)
                if id_map is not None:
                    found.append(id_map)
            return found

        # @@ STEP 3: The other side holds the foreign key
        inverse = relation.inverse_relation
        if inverse is None or not inverse.join_columns:
            return []
        conditions = {
            column.database_name: row.get(column.referenced_column.database_name) for column in inverse.join_columns
        }
        if any(value is None for value in conditions.values()):
            return []
        discriminator = target.discriminator_column
        if target.is_single_table_child and discriminator is not None:
            conditions[discriminator.database_name] = target.discriminator_value

        holder = inverse.entity_metadata
        rows = await self.executor.find_many(holder.table_name, conditions)
        return [id_map for id_map in (target.id_map_from_row(found) for found in rows) if id_map is not None]

    async def _to_id_map(
        self, target: EntityMetadata, values: Dict[ColumnMetadata, Any]
    ) -> Optional[Dict[str, Any]]:
        """Id map of ``target`` from values of referenced columns, querying when they are not the key."""
        if not values or any(value is None for value in values.values()):
            return None
        primary = target.primary_columns
        if len(values) == len(primary) and all(column in values for column in primary):
            return {column.property_name: values[column] for column in primary}

        table_name = next(iter(values)).entity_metadata.table_name
        referenced_row = await self.executor.find_one(
            table_name, {column.database_name: value for column, value in values.items()}
        )
        if referenced_row is None:
            logger.debug(f"No {target.name} row holds referenced values {values}")
            return None
        return target.id_map_from_row(referenced_row)


__all__ = ["SnapshotLoader"]
