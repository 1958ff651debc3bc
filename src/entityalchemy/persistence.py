# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Persistence planner (cascade orchestrator) and plan executor.

Planning walks the instance graph from a root (transform), records one persist
operation per written instance together with dependency edges between them,
and orders the operations with a stable topological sort over discovery order
(order). Foreign keys whose value is only known once a peer row is written are
backfilled by callbacks or folded into the dependent write; links that cannot
be written in order are turned into foreign key updates after the direct
writes. Junction links are diffed against the persisted state.

:module: persistence
:synopsis: Ordered insert/update plans for one save invocation
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional, Sequence, Set, Tuple

from .broadcaster import Broadcaster
from .constants import (
    CascadeConstants,
    DependencyKind,
    EventKind,
    GenerationStrategy,
    JunctionOperationKind,
    PersistOperationKind,
    RemoveOperationState,
)
from .dependency_graph import build_adjacency, find_cycle, stable_topological_order
from .entity_metadata import NOT_LOADED, ColumnMetadata, EntityMetadata, EntityMetadataGraph, RelationMetadata
from .errors import (
    AmbiguousPersistError,
    CannotAttachTreeChildError,
    CascadesNotAllowedError,
    CircularPersistError,
    MissingForeignKeyError,
)
from .executor import Row, StatementExecutor
from .snapshot import SnapshotLoader

if TYPE_CHECKING:
    from .removal import RemovalPlan

logger = logging.getLogger(__name__)

_SKIPPED = object()


# -----------------------------------------------------------------------------
# Operations
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class PersistOperation:
    """
    One pending write for one entity instance.

    ``db_object`` holds the column values (by property name) computed when the
    operation executes; ``extra_values`` holds foreign key values folded in by
    peers before that.

    :class: PersistOperation
    :synopsis: Planner-internal insert/update of one instance
    """

    metadata: EntityMetadata
    instance: Any
    deepness: int
    kind: PersistOperationKind
    index: int = 0
    database_row: Optional[Row] = None
    db_object: Dict[str, Any] = field(default_factory=dict)
    extra_values: Dict[ColumnMetadata, Any] = field(default_factory=dict)
    deferred_relations: Set[int] = field(default_factory=set)
    after_execution: List[Callable[["PersistOperation"], None]] = field(default_factory=list)
    inverse_side_updates: List["InverseSideUpdateOperation"] = field(default_factory=list)
    updated_columns: List[ColumnMetadata] = field(default_factory=list)
    executed: bool = False

    @property
    def is_insert(self) -> bool:
        return self.kind == PersistOperationKind.INSERT

    @property
    def is_update(self) -> bool:
        return self.kind == PersistOperationKind.UPDATE

    def column_value(self, column: ColumnMetadata) -> Any:
        """Value to write for ``column``, honouring folded and deferred foreign keys."""
        if column in self.extra_values:
            return self.extra_values[column]
        if column.relation_metadata is not None and id(column.relation_metadata) in self.deferred_relations:
            return None
        return column.get_entity_value(self.instance)

    def backfill(self, relation: RelationMetadata, source: Any) -> None:
        """Copy the referenced values of ``source`` into this operation's join columns."""
        for column in relation.join_columns:
            self.extra_values[column] = column.referenced_column.get_entity_value(source)

    def __repr__(self) -> str:
        return f"<PersistOperation({self.kind} {self.metadata.name} deepness={self.deepness})>"


@dataclass(eq=False)
class InverseSideUpdateOperation:
    """
    Foreign key write on the row holding ``relation``'s join columns.

    The holder's join columns are set to the referenced values of ``source``, or
    to NULL when ``source`` is None. When the holder still has a pending write
    the values are folded into it; otherwise an update is issued after the
    direct writes. ``expected`` narrows that update to rows still holding
    the given values.
    """

    relation: RelationMetadata
    holder_metadata: EntityMetadata
    holder_instance: Any
    source_instance: Any = None
    holder_operation: Optional[PersistOperation] = None
    source_operation: Optional[PersistOperation] = None
    holder_id: Optional[Dict[str, Any]] = None
    expected: Row = field(default_factory=dict)
    folded: bool = False
    executed: bool = False

    def column_values(self) -> Dict[ColumnMetadata, Any]:
        if self.source_instance is None:
            return {column: None for column in self.relation.join_columns}
        return {
            column: column.referenced_column.get_entity_value(self.source_instance)
            for column in self.relation.join_columns
        }

    def values(self) -> Row:
        return {column.database_name: value for column, value in self.column_values().items()}

    def resolve(self) -> bool:
        """Fold into the holder's pending write; False when an update is still needed."""
        if self.holder_operation is not None and not self.holder_operation.executed:
            self.holder_operation.extra_values.update(self.column_values())
            self.folded = True
        return self.folded

    def get_holder_id(self) -> Optional[Dict[str, Any]]:
        if self.holder_id is not None:
            return self.holder_id
        return self.holder_metadata.get_entity_id_map(self.holder_instance)

    @property
    def key(self) -> Tuple[str, Any, str]:
        holder_id = self.get_holder_id()
        frozen = tuple(sorted(holder_id.items())) if holder_id else id(self.holder_instance)
        return self.relation.entity_metadata.table_name, frozen, self.relation.property_name

    def __repr__(self) -> str:
        source = "NULL" if self.source_instance is None else type(self.source_instance).__name__
        return f"<InverseSideUpdateOperation({self.holder_metadata.name}.{self.relation.property_name} = {source})>"


@dataclass(eq=False)
class JunctionOperation:
    """Insert or delete of one junction row linking an owner and an inverse instance."""

    kind: JunctionOperationKind
    junction_metadata: EntityMetadata
    owner_instance: Any = None
    inverse_instance: Any = None
    relation: Optional[RelationMetadata] = None
    conditions: Row = field(default_factory=dict)

    def build_values(self) -> Row:
        if self.conditions:
            return dict(self.conditions)
        columns = self.junction_metadata.junction_columns
        values: Row = {}
        for column in columns.owner_columns:
            values[column.database_name] = column.referenced_column.get_entity_value(self.owner_instance)
        for column in columns.inverse_columns:
            values[column.database_name] = column.referenced_column.get_entity_value(self.inverse_instance)
        return values

    @property
    def key(self) -> Tuple[str, Any]:
        if self.conditions:
            return self.junction_metadata.table_name, tuple(sorted(self.conditions.items()))
        return self.junction_metadata.table_name, (id(self.owner_instance), id(self.inverse_instance))


@dataclass(eq=False)
class _Edge:
    before: PersistOperation
    after: PersistOperation
    kind: DependencyKind
    relation: RelationMetadata
    nullable: bool
    sequence: int
    update: Optional[InverseSideUpdateOperation] = None


@dataclass
class PersistPlan:
    """
    Ordered writes of one save invocation.

    :class: PersistPlan
    :synopsis: Result of PersistencePlanner.plan
    """

    root: PersistOperation
    operations: List[PersistOperation] = field(default_factory=list)
    inverse_side_updates: List[InverseSideUpdateOperation] = field(default_factory=list)
    junction_inserts: List[JunctionOperation] = field(default_factory=list)
    junction_removes: List[JunctionOperation] = field(default_factory=list)

    def group_by_deepness(self) -> Dict[int, List[PersistOperation]]:
        """Operations bucketed by deepness, deepest bucket first, plan order kept inside buckets."""
        buckets: Dict[int, List[PersistOperation]] = {}
        for operation in sorted(self.operations, key=lambda op: -op.deepness):
            buckets.setdefault(operation.deepness, []).append(operation)
        for bucket in buckets.values():
            bucket.sort(key=self.operations.index)
        return buckets


# -----------------------------------------------------------------------------
# Planner
# -----------------------------------------------------------------------------

class _PlanState:
    def __init__(self) -> None:
        self.operations: List[PersistOperation] = []
        self.visited: Dict[int, PersistOperation] = {}
        self.edges: List[_Edge] = []
        self.inverse_side_updates: List[InverseSideUpdateOperation] = []
        self.junction_inserts: Dict[Tuple[str, Any], JunctionOperation] = {}
        self.junction_removes: Dict[Tuple[str, Any], JunctionOperation] = {}
        self.existing_links: Set[Tuple[str, Any]] = set()

    def add_edge(
        self,
        before: PersistOperation,
        after: PersistOperation,
        kind: DependencyKind,
        relation: RelationMetadata,
        update: Optional[InverseSideUpdateOperation] = None,
    ) -> None:
        nullable = relation.nullable and all(column.nullable for column in relation.join_columns)
        self.edges.append(_Edge(before, after, kind, relation, nullable, len(self.edges), update))


class PersistencePlanner:
    """
    Builds dependency-ordered persist plans.

    Related instances are written only when the relation's cascade policy allows
    it; otherwise they are reference-only links identified by their primary key.

    :class: PersistencePlanner
    :synopsis: Cascade orchestrator of one save invocation
    """

    def __init__(self, graph: EntityMetadataGraph, loader: SnapshotLoader, strict_cascades: bool = False) -> None:
        self.graph = graph
        self.loader = loader
        self.strict_cascades = strict_cascades

    async def plan(self, metadata: EntityMetadata, instance: Any) -> PersistPlan:
        state = _PlanState()

        # @@ STEP 1: Transform the instance graph into operations and edges
        root = await self._register(state, metadata, instance, 0)
        queue: Deque[PersistOperation] = deque([root])
        while queue:
            operation = queue.popleft()
            for relation in operation.metadata.relations:
                if relation.applies_to(operation.instance):
                    await self._walk_relation(state, operation, relation, queue)

        # @@ STEP 2: Every new row must have a source for its required foreign keys
        self._check_required_keys(state)

        # @@ STEP 3: Order operations, breaking nullable cycles
        ordered = self._order(state)

        # @@ STEP 4: Backfill callbacks for the surviving owning edges
        for edge in state.edges:
            if edge.kind == DependencyKind.OWNING:
                edge.before.after_execution.append(
                    lambda source, dependent=edge.after, relation=edge.relation: dependent.backfill(
                        relation, source.instance
                    )
                )

        plan = PersistPlan(
            root=root,
            operations=ordered,
            inverse_side_updates=state.inverse_side_updates,
            junction_inserts=[
                link for key, link in state.junction_inserts.items() if key not in state.existing_links
            ],
            junction_removes=list(state.junction_removes.values()),
        )
        logger.debug(
            f"Planned {len(plan.operations)} writes, {len(plan.inverse_side_updates)} inverse updates, "
            f"{len(plan.junction_inserts)} junction inserts and {len(plan.junction_removes)} junction removes "
            f"for {metadata.name}"
        )
        return plan

    # ------------------------------------------------------------------
    # Transform
    # ------------------------------------------------------------------

    async def _register(
        self, state: _PlanState, metadata: EntityMetadata, instance: Any, deepness: int
    ) -> PersistOperation:
        id_map = metadata.get_entity_id_map(instance)
        row = await self.loader.load_row(metadata, id_map) if id_map is not None else None
        operation = PersistOperation(
            metadata=metadata,
            instance=instance,
            deepness=deepness,
            kind=PersistOperationKind.UPDATE if row is not None else PersistOperationKind.INSERT,
            index=len(state.operations),
            database_row=row,
        )
        state.operations.append(operation)
        state.visited[id(instance)] = operation
        return operation

    async def _walk_relation(
        self,
        state: _PlanState,
        operation: PersistOperation,
        relation: RelationMetadata,
        queue: Deque[PersistOperation],
    ) -> None:
        items = relation.get_related_instances(operation.instance)
        if items is NOT_LOADED:
            return

        if relation.is_many_to_many and operation.is_update:
            await self._diff_junction(state, operation, relation, items)

        persisted_ids: Optional[List[Dict[str, Any]]] = None
        for item in items:
            if item is None:
                continue
            item_metadata = self.graph.find_metadata_for_instance(item)
            item_operation = await self._visit(state, operation, relation, item, item_metadata, queue)
            if item_operation is _SKIPPED:
                continue

            if relation.is_with_join_columns:
                self._link_owning(state, operation, relation, item, item_operation)
            elif relation.is_many_to_many:
                self._link_junction(state, operation, relation, item)
            else:
                if persisted_ids is None and operation.is_update:
                    persisted_ids = await self.loader.load_relation_ids(relation, operation.database_row)
                self._link_inverse(state, operation, relation, item, item_metadata, item_operation, persisted_ids)

    async def _visit(
        self,
        state: _PlanState,
        operation: PersistOperation,
        relation: RelationMetadata,
        item: Any,
        item_metadata: EntityMetadata,
        queue: Deque[PersistOperation],
    ) -> Any:
        """Operation of a related instance, None when reference-only, ``_SKIPPED`` when unlinkable."""
        existing = state.visited.get(id(item))
        if existing is not None:
            return existing

        if item_metadata.has_id(item):
            # || S.1: Known rows are written only with cascade update
            if not relation.is_cascade_update:
                return None
        elif not relation.is_cascade_insert:
            # || S.2: New rows without cascade insert cannot be written at all
            if relation.is_cascade_update:
                raise AmbiguousPersistError(operation.metadata.name, relation.property_name)
            if self.strict_cascades:
                raise CascadesNotAllowedError(
                    operation.metadata.name, relation.property_name, item_metadata.name, CascadeConstants.INSERT
                )
            if relation.is_with_join_columns and not relation.nullable:
                raise MissingForeignKeyError(operation.metadata.name, relation.property_name)
            logger.warning(
                f"Skipping new {item_metadata.name} held by {operation.metadata.name}.{relation.property_name}: "
                f"relation does not cascade inserts"
            )
            return _SKIPPED

        item_operation = await self._register(state, item_metadata, item, operation.deepness + 1)
        queue.append(item_operation)
        return item_operation

    def _link_owning(
        self,
        state: _PlanState,
        operation: PersistOperation,
        relation: RelationMetadata,
        item: Any,
        item_operation: Optional[PersistOperation],
    ) -> None:
        """``operation``'s row holds the foreign key to ``item``."""
        if item_operation is None or not item_operation.is_insert:
            return
        if item_operation is operation:
            # || S.1: A row referencing itself gets its key after the insert
            operation.deferred_relations.add(id(relation))
            state.inverse_side_updates.append(
                InverseSideUpdateOperation(
                    relation=relation,
                    holder_metadata=operation.metadata,
                    holder_instance=operation.instance,
                    source_instance=item,
                    holder_operation=operation,
                    source_operation=operation,
                )
            )
            return
        state.add_edge(item_operation, operation, DependencyKind.OWNING, relation)

    def _link_inverse(
        self,
        state: _PlanState,
        operation: PersistOperation,
        relation: RelationMetadata,
        item: Any,
        item_metadata: EntityMetadata,
        item_operation: Optional[PersistOperation],
        persisted_ids: Optional[List[Dict[str, Any]]],
    ) -> None:
        """``item``'s row holds the foreign key to ``operation``."""
        holder_relation = relation.inverse_relation
        if holder_relation is None or not holder_relation.join_columns:
            return

        # @@ STEP 1: The holder already points back through its own relation
        if item_operation is not None and holder_relation.get_entity_value(item) is operation.instance:
            return

        # @@ STEP 2: Unchanged reference-only links need no write
        if item_operation is None and persisted_ids is not None:
            if item_metadata.get_entity_id_map(item) in persisted_ids:
                return

        update = InverseSideUpdateOperation(
            relation=holder_relation,
            holder_metadata=item_metadata,
            holder_instance=item,
            source_instance=operation.instance,
            holder_operation=item_operation,
            source_operation=operation,
        )
        state.inverse_side_updates.append(update)
        operation.inverse_side_updates.append(update)

        # @@ STEP 3: The holder waits for the source's key when it is generated
        if operation.is_insert and item_operation is not None and item_operation is not operation:
            state.add_edge(operation, item_operation, DependencyKind.INVERSE, holder_relation, update)

    def _link_junction(
        self, state: _PlanState, operation: PersistOperation, relation: RelationMetadata, item: Any
    ) -> None:
        junction = relation.junction_entity_metadata
        if junction is None:
            return
        if relation.is_owning:
            owner, inverse, owning = operation.instance, item, relation
        else:
            owner, inverse, owning = item, operation.instance, relation.inverse_relation
        link = JunctionOperation(
            kind=JunctionOperationKind.INSERT,
            junction_metadata=junction,
            owner_instance=owner,
            inverse_instance=inverse,
            relation=owning,
        )
        state.junction_inserts.setdefault(link.key, link)

    async def _diff_junction(
        self, state: _PlanState, operation: PersistOperation, relation: RelationMetadata, items: Sequence[Any]
    ) -> None:
        """Junction removes for dropped links; existing links are not inserted again."""
        junction = relation.junction_entity_metadata
        if junction is None:
            return
        this_columns, other_columns = relation.junction_column_pairs()
        rows = await self.loader.load_junction_rows(relation, operation.database_row)

        current: Dict[Tuple[Any, ...], Any] = {}
        for item in items:
            if item is None:
                continue
            values = tuple(column.referenced_column.get_entity_value(item) for column in other_columns)
            if all(value is not None and value is not NOT_LOADED for value in values):
                current[values] = item

        for row in rows:
            values = tuple(row.get(column.database_name) for column in other_columns)
            item = current.get(values)
            if item is None:
                link = JunctionOperation(
                    kind=JunctionOperationKind.REMOVE,
                    junction_metadata=junction,
                    conditions={column.database_name: row.get(column.database_name) for column in this_columns + other_columns},
                )
                state.junction_removes.setdefault(link.key, link)
                continue
            owner, inverse = (operation.instance, item) if relation.is_owning else (item, operation.instance)
            state.existing_links.add((junction.table_name, (id(owner), id(inverse))))

    @staticmethod
    def _check_required_keys(state: _PlanState) -> None:
        """
        Raise for a new row whose non-nullable foreign key would be written as NULL.

        A key is resolvable from the related instance, from an explicit join
        column value, or from a peer attaching the row through the inverse side.
        """
        attached = {
            (id(update.holder_operation), id(update.relation))
            for update in state.inverse_side_updates
            if update.holder_operation is not None and update.source_instance is not None
        }
        for operation in state.operations:
            if not operation.is_insert:
                continue
            for relation in operation.metadata.relations:
                if not relation.is_with_join_columns or relation.nullable:
                    continue
                if not relation.applies_to(operation.instance):
                    continue
                related = relation.get_entity_value(operation.instance)
                if related is not None and related is not NOT_LOADED:
                    continue
                if (id(operation), id(relation)) in attached:
                    continue
                values = [operation.column_value(column) for column in relation.join_columns]
                if values and all(value is not None and value is not NOT_LOADED for value in values):
                    continue
                raise MissingForeignKeyError(operation.metadata.name, relation.property_name)

    # ------------------------------------------------------------------
    # Order
    # ------------------------------------------------------------------

    def _order(self, state: _PlanState) -> List[PersistOperation]:
        operations = state.operations
        while True:
            adjacency = build_adjacency(
                len(operations), ((edge.before.index, edge.after.index) for edge in state.edges)
            )
            ordered, residue = stable_topological_order(adjacency)
            if not residue:
                return [operations[index] for index in ordered]

            cycle = find_cycle(adjacency, residue) or residue
            members = list(zip(cycle, cycle[1:] + cycle[:1]))
            candidates = [
                edge
                for edge in state.edges
                if (edge.before.index, edge.after.index) in members and edge.nullable
            ]
            if not candidates:
                path = [operations[index].metadata.name for index in cycle]
                relation = next(
                    (e.relation for e in state.edges if (e.before.index, e.after.index) in members), None
                )
                raise CircularPersistError(path, relation.property_name if relation else None)

            # || S.1: Drop the latest discovered nullable edge
            dropped = max(candidates, key=lambda edge: edge.sequence)
            state.edges.remove(dropped)
            self._defer(state, dropped)

    @staticmethod
    def _defer(state: _PlanState, edge: _Edge) -> None:
        """Turn a dropped edge into a foreign key update after the direct writes."""
        logger.debug(
            f"Deferring foreign key {edge.relation.entity_metadata.name}.{edge.relation.property_name} "
            f"to break a write cycle"
        )
        if edge.kind == DependencyKind.OWNING:
            dependent = edge.after
            dependent.deferred_relations.add(id(edge.relation))
            state.inverse_side_updates.append(
                InverseSideUpdateOperation(
                    relation=edge.relation,
                    holder_metadata=dependent.metadata,
                    holder_instance=dependent.instance,
                    source_instance=edge.before.instance,
                    holder_operation=dependent,
                    source_operation=edge.before,
                )
            )
        # Inverse edges need nothing more: the holder executes first, so the
        # update cannot be folded and runs after the direct writes.


# -----------------------------------------------------------------------------
# Executor
# -----------------------------------------------------------------------------

def _now() -> datetime:
    return datetime.now(timezone.utc)


class PersistPlanExecutor:
    """
    Runs persist and removal plans against a statement executor.

    Order: direct writes (with backfill callbacks and folding after each),
    inverse-side updates, junction removes, junction inserts, then the
    removal plan. Failures propagate unchanged and abandon the rest.

    :class: PersistPlanExecutor
    :synopsis: Sequential executor of planned operations
    """

    def __init__(self, executor: StatementExecutor, broadcaster: Optional[Broadcaster] = None) -> None:
        self.executor = executor
        self.broadcaster = broadcaster or Broadcaster()

    async def execute(self, plan: PersistPlan, removal_plan: Optional["RemovalPlan"] = None) -> None:
        # @@ STEP 1: Direct writes in plan order
        for operation in plan.operations:
            if operation.is_insert:
                await self._insert(operation)
            else:
                await self._update(operation)
            operation.executed = True

            # || S.1: Backfill dependents and fold pending inverse-side keys
            for callback in operation.after_execution:
                callback(operation)
            for update in operation.inverse_side_updates:
                update.resolve()

        # @@ STEP 2: Foreign keys that could not be written with their rows
        for update in plan.inverse_side_updates:
            if not update.folded and not update.executed:
                await self.execute_inverse_side_update(update)

        # @@ STEP 3: Junction links
        unlinked: Set[Tuple[str, Any]] = set()
        await self._remove_links(plan.junction_removes, unlinked)
        for link in plan.junction_inserts:
            values = link.build_values()
            if any(value is None or value is NOT_LOADED for value in values.values()):
                relation = link.relation
                raise MissingForeignKeyError(
                    relation.entity_metadata.name if relation else link.junction_metadata.name,
                    relation.property_name if relation else link.junction_metadata.table_name,
                )
            await self.executor.insert_one(link.junction_metadata.table_name, values)

        # @@ STEP 4: Removals computed for the same save
        if removal_plan is not None:
            await self.execute_removal(removal_plan, unlinked)

    # ------------------------------------------------------------------
    # Inserts and updates
    # ------------------------------------------------------------------

    def _insert_value(self, operation: PersistOperation, column: ColumnMetadata) -> Any:
        value = operation.column_value(column)
        if value is not None and value is not NOT_LOADED:
            return value
        if column.is_create_date or column.is_update_date:
            return _now()
        if column.is_version:
            return 1
        if column.is_discriminator:
            return operation.metadata.discriminator_value
        if column.generation_strategy == GenerationStrategy.UUID:
            return str(uuid.uuid4())
        if column.default is not None and value is NOT_LOADED:
            return column.default() if callable(column.default) else column.default
        return value

    async def _insert(self, operation: PersistOperation) -> None:
        metadata, instance = operation.metadata, operation.instance
        await self.broadcaster.broadcast(EventKind.BEFORE_INSERT, metadata, instance)

        closure = metadata.closure_junction_entity_metadata
        ancestors = await self._load_tree_ancestors(operation, closure) if closure is not None else []

        for table in metadata.table_chain:
            values: Row = {}
            for column in table.own_columns:
                if not column.applies_to(instance):
                    continue
                value = self._insert_value(operation, column)
                if value is NOT_LOADED:
                    continue
                values[column.database_name] = value
                operation.db_object[column.property_name] = value
                if not column.is_virtual and not column.is_discriminator and column.relation_metadata is None:
                    current = column.get_entity_value(instance)
                    if current is NOT_LOADED or current is None:
                        column.set_entity_value(instance, value)

            generated = await self.executor.insert_one(table.table_name, values)
            for database_name, value in generated.items():
                column = table.find_column_with_database_name(database_name)
                if column is not None:
                    column.set_entity_value(instance, value)
                    operation.db_object[column.property_name] = value

        if closure is not None:
            await self._write_closure_rows(operation, closure, ancestors)

        await self.broadcaster.broadcast(
            EventKind.AFTER_INSERT, metadata, instance, entity_id=metadata.get_entity_id_map(instance)
        )

    async def _load_tree_ancestors(self, operation: PersistOperation, closure: EntityMetadata) -> List[Row]:
        """
        Closure rows of a new tree node's parent; also fills its tree level.

        The parent key comes from the node's own parent relation, or from the
        parent that attached it through its children and folded the key in.
        """
        metadata, instance = operation.metadata, operation.instance
        relation = metadata.tree_parent_relation
        keys = {column.referenced_column: operation.column_value(column) for column in relation.join_columns}

        ancestors: List[Row] = []
        if all(value is not None and value is not NOT_LOADED for value in keys.values()):
            conditions: Row = {}
            for column in closure.junction_columns.inverse_columns:
                if column.referenced_column not in keys:
                    raise CannotAttachTreeChildError(metadata.name, relation.property_name)
                conditions[column.database_name] = keys[column.referenced_column]
            ancestors = await self.executor.find_many(closure.table_name, conditions)
        else:
            parent = relation.get_entity_value(instance)
            if parent is not None and parent is not NOT_LOADED:
                raise CannotAttachTreeChildError(metadata.name, relation.property_name)

        level_column = metadata.tree_level_column
        if level_column is not None:
            current = operation.column_value(level_column)
            if current is None or current is NOT_LOADED:
                operation.extra_values[level_column] = len(ancestors)
        return ancestors

    async def _write_closure_rows(self, operation: PersistOperation, closure: EntityMetadata, ancestors: List[Row]) -> None:
        """Self row of the new node, then one row per ancestor of its parent."""
        columns = closure.junction_columns
        level_column = next((column for column in closure.own_columns if column.is_tree_level), None)
        node_id = {
            column.referenced_column: column.referenced_column.get_entity_value(operation.instance)
            for column in columns.inverse_columns
        }
        node = {column.database_name: node_id[column.referenced_column] for column in columns.inverse_columns}

        # || S.1: Distance to the node itself is 0, to each ancestor one more than from the parent
        pairs: List[Tuple[Row, Any]] = [
            ({column.database_name: node_id[column.referenced_column] for column in columns.owner_columns}, 0)
        ]
        for ancestor in ancestors:
            distance = None
            if level_column is not None:
                distance = (ancestor.get(level_column.database_name) or 0) + 1
            pairs.append(
                ({column.database_name: ancestor.get(column.database_name) for column in columns.owner_columns}, distance)
            )

        for ancestor_values, distance in pairs:
            values = {**ancestor_values, **node}
            if level_column is not None:
                values[level_column.database_name] = distance
            await self.executor.insert_one(closure.table_name, values)
        logger.debug(f"Wrote {len(pairs)} closure rows of {operation.metadata.name} into {closure.table_name}")

    async def _update(self, operation: PersistOperation) -> None:
        metadata, instance = operation.metadata, operation.instance
        row = operation.database_row or {}
        await self.broadcaster.broadcast(EventKind.BEFORE_UPDATE, metadata, instance)

        # @@ STEP 1: Diff every table against the persisted row
        changes: Dict[int, Row] = {}
        for position, table in enumerate(metadata.table_chain):
            for column in table.own_columns:
                if (
                    not column.applies_to(instance)
                    or column.primary
                    or column.is_create_date
                    or column.is_update_date
                    or column.is_version
                    or column.is_discriminator
                ):
                    continue
                value = operation.column_value(column)
                if value is NOT_LOADED or row.get(column.database_name) == value:
                    continue
                changes.setdefault(position, {})[column.database_name] = value
                operation.db_object[column.property_name] = value
                operation.updated_columns.append(column)

        if not changes:
            logger.debug(f"No changes to write for {metadata.name} {metadata.get_entity_id_map(instance)}")
            return

        # @@ STEP 2: Maintain update date and version
        for position, table in enumerate(metadata.table_chain):
            for column in table.own_columns:
                if column.is_update_date:
                    value = _now()
                elif column.is_version:
                    value = (row.get(column.database_name) or 0) + 1
                else:
                    continue
                changes.setdefault(position, {})[column.database_name] = value
                column.set_entity_value(instance, value)
                operation.db_object[column.property_name] = value

        # @@ STEP 3: One update per changed table
        id_map = metadata.get_entity_id_map(instance)
        for position, table in enumerate(metadata.table_chain):
            if position in changes:
                await self.executor.update_one(
                    table.table_name, metadata.identity_conditions(id_map, table), changes[position]
                )

        await self.broadcaster.broadcast(
            EventKind.AFTER_UPDATE, metadata, instance, entity_id=id_map, updated_columns=operation.updated_columns
        )

    async def execute_delete_date(self, metadata: EntityMetadata, instance: Any, value: Optional[datetime]) -> None:
        """Write ``value`` into the delete date column of a persisted instance."""
        column = metadata.delete_date_column
        table = next((t for t in metadata.table_chain if column in t.own_columns), metadata)
        id_map = metadata.get_entity_id_map(instance)
        await self.executor.update_one(
            table.table_name, metadata.identity_conditions(id_map, table), {column.database_name: value}
        )
        column.set_entity_value(instance, value)

    async def execute_inverse_side_update(self, update: InverseSideUpdateOperation) -> None:
        holder_id = update.get_holder_id()
        if holder_id is None:
            raise MissingForeignKeyError(update.holder_metadata.name, update.relation.property_name)
        values = update.values()
        if not update.relation.nullable and any(value is None for value in values.values()):
            raise MissingForeignKeyError(update.holder_metadata.name, update.relation.property_name)
        table = update.relation.entity_metadata
        conditions = update.holder_metadata.identity_conditions(holder_id, table)
        conditions.update(update.expected)
        await self.executor.update_one(table.table_name, conditions, values)
        update.executed = True

    async def _remove_links(self, links: Sequence[JunctionOperation], seen: Set[Tuple[str, Any]]) -> None:
        for link in links:
            if link.key in seen:
                continue
            seen.add(link.key)
            await self.executor.delete_one(link.junction_metadata.table_name, link.build_values())

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    async def execute_removal(
        self, removal_plan: "RemovalPlan", unlinked: Optional[Set[Tuple[str, Any]]] = None
    ) -> None:
        """Null updates, junction removes, then deletes (child tables first)."""
        for update in removal_plan.inverse_side_updates:
            if not update.executed:
                await self.execute_inverse_side_update(update)

        await self._remove_links(removal_plan.junction_removes, unlinked if unlinked is not None else set())

        for operation in removal_plan.remove_operations:
            if operation.state != RemoveOperationState.QUEUED:
                continue
            metadata, instance = operation.metadata, operation.instance
            if instance is not None:
                await self.broadcaster.broadcast(
                    EventKind.BEFORE_REMOVE, metadata, instance, entity_id=operation.entity_id
                )

            for table in reversed(metadata.table_chain):
                await self.executor.delete_one(
                    table.table_name, metadata.identity_conditions(operation.entity_id, table)
                )
            operation.state = RemoveOperationState.EXECUTED

            if instance is not None:
                for column in metadata.primary_columns:
                    if not column.is_virtual:
                        column.set_entity_value(instance, None)
                await self.broadcaster.broadcast(
                    EventKind.AFTER_REMOVE, metadata, instance, entity_id=operation.entity_id
                )


__all__ = [
    "PersistOperation",
    "InverseSideUpdateOperation",
    "JunctionOperation",
    "PersistPlan",
    "PersistencePlanner",
    "PersistPlanExecutor",
]
