# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Removal planner.

Removals come from two places: an explicit remove of one instance, and the
related rows a save drops from a relation whose cascade policy removes them.
Both walk the persisted state through the snapshot loader, recurse into
cascade-remove relations, and queue every row at most once.

:module: removal
:synopsis: Cascade removal and inverse-side nulling plans
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .constants import CascadeAction, JunctionOperationKind, RemoveOperationState
from .dependency_graph import build_adjacency, stable_topological_order
from .entity_metadata import NOT_LOADED, EntityMetadata, EntityMetadataGraph, RelationMetadata
from .errors import MissingForeignKeyError, MissingIdentifierError
from .executor import Row
from .persistence import InverseSideUpdateOperation, JunctionOperation
from .snapshot import SnapshotLoader

logger = logging.getLogger(__name__)

RemoveKey = Tuple[str, Tuple[Tuple[str, Any], ...]]


def _remove_key(metadata: EntityMetadata, entity_id: Dict[str, Any]) -> RemoveKey:
    return metadata.table_chain[0].table_name, tuple(sorted(entity_id.items()))


@dataclass(eq=False)
class RemoveOperation:
    """
    One row (and its parent-table rows) marked for deletion.

    :class: RemoveOperation
    :synopsis: Pending -> Queued -> Executed, or Skipped when already queued
    """

    metadata: EntityMetadata
    entity_id: Dict[str, Any]
    instance: Any = None
    state: RemoveOperationState = RemoveOperationState.PENDING
    index: int = 0

    @property
    def key(self) -> RemoveKey:
        return _remove_key(self.metadata, self.entity_id)

    def __repr__(self) -> str:
        return f"<RemoveOperation({self.metadata.name} {self.entity_id} {self.state})>"


@dataclass
class RemovalPlan:
    """Deletes in execution order plus the updates and unlinks that precede them."""

    remove_operations: List[RemoveOperation] = field(default_factory=list)
    inverse_side_updates: List[InverseSideUpdateOperation] = field(default_factory=list)
    junction_removes: List[JunctionOperation] = field(default_factory=list)
    skipped: List[RemoveOperation] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.remove_operations or self.inverse_side_updates or self.junction_removes)


class _RemovalState:
    def __init__(self) -> None:
        self.operations: Dict[RemoveKey, RemoveOperation] = {}
        self.order: List[RemoveOperation] = []
        self.skipped: List[RemoveOperation] = []
        self.references: List[Tuple[RemoveKey, RemoveKey]] = []
        self.inverse_side_updates: List[InverseSideUpdateOperation] = []
        self.junction_removes: Dict[Tuple[str, Any], JunctionOperation] = {}


class RemovalPlanner:
    """
    Plans cascade removals against the persisted state.

    :class: RemovalPlanner
    :synopsis: Symmetric counterpart of the persistence planner for deletions
    """

    def __init__(self, graph: EntityMetadataGraph, loader: SnapshotLoader) -> None:
        self.graph = graph
        self.loader = loader

    async def plan_remove(self, metadata: EntityMetadata, instance: Any) -> RemovalPlan:
        """Plan the removal of ``instance`` and everything it cascades to."""
        entity_id = metadata.get_entity_id_map(instance)
        if entity_id is None:
            raise MissingIdentifierError(metadata.name, "remove")
        state = _RemovalState()
        await self._register_remove(state, metadata, entity_id, instance)
        return self._finalize(state)

    async def compute_removed_relations(self, metadata: EntityMetadata, instance: Any) -> RemovalPlan:
        """
        Removals implied by saving ``instance``.

        Each loaded relation's persisted reference set is diffed against the
        in-memory one. Dropped rows are removed when the relation cascades
        removes; otherwise rows holding a foreign key to ``instance`` get it
        nulled and every other link is left to the persistence planner.
        """
        state = _RemovalState()
        entity_id = metadata.get_entity_id_map(instance)
        row = await self.loader.load_row(metadata, entity_id) if entity_id is not None else None
        if row is None:
            return RemovalPlan()

        for relation in metadata.relations:
            if not relation.applies_to(instance):
                continue
            items = relation.get_related_instances(instance)
            if items is NOT_LOADED:
                continue

            target = relation.inverse_entity_metadata
            current = [target.get_entity_id_map(item) for item in items if item is not None]
            persisted = await self.loader.load_relation_ids(relation, row)
            for target_id in persisted:
                if target_id in current:
                    continue
                if relation.is_cascade_remove:
                    await self._register_remove(state, target, target_id)
                elif relation.is_one_to_many or relation.is_one_to_one_not_owner:
                    self._null_inverse_side(state, metadata, relation, row, target, target_id, detach=True)

        return self._finalize(state)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def _register_remove(
        self,
        state: _RemovalState,
        metadata: EntityMetadata,
        entity_id: Dict[str, Any],
        instance: Any = None,
    ) -> None:
        operation = RemoveOperation(metadata=metadata, entity_id=dict(entity_id), instance=instance)

        # @@ STEP 1: Deduplicate by (table, id)
        if operation.key in state.operations:
            operation.state = RemoveOperationState.SKIPPED
            state.skipped.append(operation)
            return
        operation.index = len(state.order)
        state.operations[operation.key] = operation
        state.order.append(operation)

        # @@ STEP 2: Only persisted rows are removed
        row = await self.loader.load_row(metadata, entity_id)
        if row is None:
            logger.debug(f"Nothing to remove for {metadata.name} {entity_id}: no persisted row")
            operation.state = RemoveOperationState.SKIPPED
            state.skipped.append(operation)
            return
        operation.state = RemoveOperationState.QUEUED

        # @@ STEP 3: Walk the persisted links of the row
        for relation in metadata.relations:
            if instance is not None and not relation.applies_to(instance):
                continue

            if relation.is_many_to_many:
                self._unlink_junction(state, relation, await self.loader.load_junction_rows(relation, row))

            target = relation.inverse_entity_metadata
            for target_id in await self.loader.load_relation_ids(relation, row):
                target_key = _remove_key(target, target_id)
                # || S.1: The row holding a foreign key is deleted first
                if relation.is_with_join_columns:
                    state.references.append((operation.key, target_key))
                elif not relation.is_many_to_many:
                    state.references.append((target_key, operation.key))

                if relation.is_cascade_remove:
                    related = self._find_loaded(relation, instance, target, target_id)
                    await self._register_remove(state, target, target_id, related)
                elif not relation.is_with_join_columns and not relation.is_many_to_many:
                    self._null_inverse_side(state, metadata, relation, row, target, target_id, detach=False)

        # @@ STEP 4: Tree nodes leave their closure rows behind
        closure = metadata.closure_junction_entity_metadata
        if closure is not None:
            key_columns = closure.junction_columns.owner_columns + closure.junction_columns.inverse_columns
            for closure_row in await self.loader.load_closure_rows(closure, row):
                link = JunctionOperation(
                    kind=JunctionOperationKind.REMOVE,
                    junction_metadata=closure,
                    conditions={column.database_name: closure_row.get(column.database_name) for column in key_columns},
                )
                state.junction_removes.setdefault(link.key, link)

    def _null_inverse_side(
        self,
        state: _RemovalState,
        metadata: EntityMetadata,
        relation: RelationMetadata,
        row: Row,
        target: EntityMetadata,
        target_id: Dict[str, Any],
        detach: bool,
    ) -> None:
        """Queue NULL for the foreign key ``target_id`` holds to ``row``."""
        holder_relation = relation.inverse_relation
        if holder_relation is None or not holder_relation.join_columns:
            return
        if not detach and holder_relation.on_delete in (CascadeAction.CASCADE, CascadeAction.SET_NULL):
            # The database rewrites or deletes the holder together with the row
            return
        if not holder_relation.nullable:
            raise MissingForeignKeyError(target.name, holder_relation.property_name)

        expected = {
            column.database_name: row.get(column.referenced_column.database_name)
            for column in holder_relation.join_columns
        }
        state.inverse_side_updates.append(
            InverseSideUpdateOperation(
                relation=holder_relation,
                holder_metadata=target,
                holder_instance=None,
                holder_id=dict(target_id),
                expected=expected,
            )
        )

    @staticmethod
    def _unlink_junction(state: _RemovalState, relation: RelationMetadata, rows: List[Row]) -> None:
        junction = relation.junction_entity_metadata
        if junction is None:
            return
        this_columns, other_columns = relation.junction_column_pairs()
        for junction_row in rows:
            link = JunctionOperation(
                kind=JunctionOperationKind.REMOVE,
                junction_metadata=junction,
                relation=relation,
                conditions={
                    column.database_name: junction_row.get(column.database_name)
                    for column in this_columns + other_columns
                },
            )
            state.junction_removes.setdefault(link.key, link)

    @staticmethod
    def _find_loaded(
        relation: RelationMetadata, instance: Any, target: EntityMetadata, target_id: Dict[str, Any]
    ) -> Any:
        """In-memory related instance with ``target_id``, if ``instance`` holds one."""
        if instance is None:
            return None
        items = relation.get_related_instances(instance)
        if items is NOT_LOADED:
            return None
        for item in items:
            if item is not None and target.get_entity_id_map(item) == target_id:
                return item
        return None

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def _finalize(self, state: _RemovalState) -> RemovalPlan:
        queued = [op for op in state.order if op.state == RemoveOperationState.QUEUED]
        queued_keys = {op.key for op in queued}

        # @@ STEP 1: Rows being deleted need no foreign key update
        updates: List[InverseSideUpdateOperation] = []
        seen = set()
        for update in state.inverse_side_updates:
            holder_key = _remove_key(update.holder_metadata, update.holder_id)
            if holder_key in queued_keys or update.key in seen:
                continue
            seen.add(update.key)
            updates.append(update)

        # @@ STEP 2: Referencing rows first, later discoveries first among peers
        priority = list(reversed(queued))
        position = {op.key: index for index, op in enumerate(priority)}
        edges = [
            (position[before], position[after])
            for before, after in state.references
            if before in position and after in position
        ]
        ordered, residue = stable_topological_order(build_adjacency(len(priority), edges))
        if residue:
            logger.warning(
                f"Circular references between removed rows: {[priority[i].metadata.name for i in residue]}"
            )

        plan = RemovalPlan(
            remove_operations=[priority[i] for i in ordered + residue],
            inverse_side_updates=updates,
            junction_removes=list(state.junction_removes.values()),
            skipped=state.skipped,
        )
        logger.debug(
            f"Planned {len(plan.remove_operations)} removals, {len(plan.inverse_side_updates)} "
            f"inverse updates and {len(plan.junction_removes)} junction removes"
        )
        return plan


__all__ = ["RemoveOperation", "RemovalPlan", "RemovalPlanner"]
