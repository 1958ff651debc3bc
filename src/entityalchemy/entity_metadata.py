# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Resolved entity metadata.

The builder creates these objects, the validator checks them and then freezes
them; planners and executors only read them. Relation targets start as deferred
references (string, class or callable) and are resolved in a dedicated linking
pass, following the same resolution state machine used for foreign key targets.

:module: entity_metadata
:synopsis: Entity, column, relation and constraint metadata plus the metadata graph
"""

from __future__ import annotations

import logging
from dataclasses import FrozenInstanceError, dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .constants import (
    CascadeAction,
    ColumnMode,
    ColumnType,
    ErrorMessages,
    EventKind,
    GenerationStrategy,
    InheritancePattern,
    RegistryResolutionConstants,
    RelationType,
    TableType,
    TreeRelationRole,
)
from .declarations import CascadeOptions, JoinColumnArgs, JoinTableArgs, target_name
from .dependency_graph import build_adjacency, stable_topological_order
from .errors import NoMetadataError

logger = logging.getLogger(__name__)


class _NotLoaded:
    """Marker for a property that is absent from an instance."""

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_LOADED"


NOT_LOADED = _NotLoaded()


class _Freezable:
    """Rejects attribute assignment once ``_frozen`` is set."""

    _frozen: bool = False

    def __setattr__(self, name: str, value: Any) -> None:
        if self._frozen:
            raise FrozenInstanceError(
                ErrorMessages.METADATA_FROZEN.format(entity_name=self._describe(), attribute=name)
            )
        object.__setattr__(self, name, value)

    def _describe(self) -> str:
        return type(self).__name__

    def _freeze(self, *sequence_fields: str) -> None:
        for name in sequence_fields:
            object.__setattr__(self, name, tuple(getattr(self, name)))
        object.__setattr__(self, "_frozen", True)


def _applies_to(declared_on: Any, instance: Any) -> bool:
    if isinstance(declared_on, type):
        return isinstance(instance, declared_on)
    return True


# -----------------------------------------------------------------------------
# Relation targets
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class RelationTarget:
    """
    Deferred reference to the entity a relation points at.

    The reference is a class, an entity name, or a zero-argument callable
    returning a class (for forward references between mutually dependent types).

    :class: RelationTarget
    :synopsis: Tagged unresolved/resolved relation target
    """

    reference: Any
    _resolution_state: str = RegistryResolutionConstants.RESOLUTION_STATE_UNRESOLVED
    _resolved: Optional["EntityMetadata"] = None
    _resolution_error: Optional[str] = None

    def get_target_type(self) -> str:
        if isinstance(self.reference, str):
            return RegistryResolutionConstants.TARGET_TYPE_STRING
        if callable(self.reference) and not isinstance(self.reference, type):
            return RegistryResolutionConstants.TARGET_TYPE_CALLABLE
        return RegistryResolutionConstants.TARGET_TYPE_CLASS

    def is_resolved(self) -> bool:
        return self._resolution_state == RegistryResolutionConstants.RESOLUTION_STATE_RESOLVED

    def resolve(self, lookup: Callable[[Any], Optional["EntityMetadata"]]) -> bool:
        """
        Resolve the reference with ``lookup`` (class or name -> metadata).

        Returns:
            bool: True if resolution was successful, False otherwise
        """
        if self.is_resolved():
            return True

        candidate = self.reference
        if self.get_target_type() == RegistryResolutionConstants.TARGET_TYPE_CALLABLE:
            # @@ STEP: Resolve callable reference
            candidate = self.reference()
            if not isinstance(candidate, (type, str)):
                self._resolution_error = (
                    f"{RegistryResolutionConstants.ERROR_INVALID_TARGET_TYPE}: callable must return a class"
                )
                self._resolution_state = RegistryResolutionConstants.RESOLUTION_STATE_ERROR
                return False

        metadata = lookup(candidate)
        if metadata is None:
            self._resolution_error = (
                f"{RegistryResolutionConstants.ERROR_TARGET_NOT_FOUND}: {target_name(candidate)}"
            )
            self._resolution_state = RegistryResolutionConstants.RESOLUTION_STATE_ERROR
            return False

        self._resolved = metadata
        self._resolution_state = RegistryResolutionConstants.RESOLUTION_STATE_RESOLVED
        self._resolution_error = None
        return True

    @property
    def entity_metadata(self) -> "EntityMetadata":
        if self._resolved is None:
            raise NoMetadataError(self.reference)
        return self._resolved

    def __repr__(self) -> str:
        return f"<RelationTarget({target_name(self.reference)}, {self._resolution_state})>"


# -----------------------------------------------------------------------------
# Columns
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class ColumnMetadata(_Freezable):
    """
    One table column.

    Join columns point at ``relation_metadata`` and ``referenced_column``; their
    value is read from the related instance when it is loaded. Virtual join
    columns exist only in the table, never as a property of the class.

    :class: ColumnMetadata
    :synopsis: Resolved column metadata
    """

    entity_metadata: "EntityMetadata"
    property_name: str
    database_name: str
    type: ColumnType = ColumnType.STRING
    mode: ColumnMode = ColumnMode.REGULAR
    nullable: bool = False
    primary: bool = False
    generation_strategy: GenerationStrategy = GenerationStrategy.NONE
    default: Any = None
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    unique: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    declared_on: Any = None
    relation_metadata: Optional["RelationMetadata"] = None
    referenced_column: Optional["ColumnMetadata"] = None

    def _describe(self) -> str:
        return f"{self.entity_metadata.name}.{self.property_name}"

    # ------------------------------------------------------------------
    # Mode predicates
    # ------------------------------------------------------------------

    @property
    def is_virtual(self) -> bool:
        return self.mode == ColumnMode.VIRTUAL

    @property
    def is_create_date(self) -> bool:
        return self.mode == ColumnMode.CREATE_DATE

    @property
    def is_update_date(self) -> bool:
        return self.mode == ColumnMode.UPDATE_DATE

    @property
    def is_version(self) -> bool:
        return self.mode == ColumnMode.VERSION

    @property
    def is_delete_date(self) -> bool:
        return self.mode == ColumnMode.DELETE_DATE

    @property
    def is_tree_level(self) -> bool:
        return self.mode == ColumnMode.TREE_LEVEL

    @property
    def is_discriminator(self) -> bool:
        return self.mode == ColumnMode.DISCRIMINATOR

    @property
    def is_generated(self) -> bool:
        return self.generation_strategy != GenerationStrategy.NONE

    def applies_to(self, instance: Any) -> bool:
        """False for columns propagated from a sibling single-table child."""
        return _applies_to(self.declared_on, instance)

    # ------------------------------------------------------------------
    # Instance access
    # ------------------------------------------------------------------

    def get_entity_value(self, instance: Any) -> Any:
        """
        Value of this column for ``instance``.

        Returns ``NOT_LOADED`` when neither the property nor the related
        instance is present on ``instance``.
        """
        relation = self.relation_metadata
        if relation is not None and self.referenced_column is not None:
            related = getattr(instance, relation.property_name, NOT_LOADED)
            if related is None:
                return None
            if related is not NOT_LOADED:
                return self.referenced_column.get_entity_value(related)
        return getattr(instance, self.property_name, NOT_LOADED)

    def set_entity_value(self, instance: Any, value: Any) -> None:
        if self.is_virtual:
            return
        setattr(instance, self.property_name, value)

    def __repr__(self) -> str:
        return f"<ColumnMetadata({self._describe()} -> {self.database_name})>"


# -----------------------------------------------------------------------------
# Relations
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class JunctionColumns:
    """Columns of a junction table split by the side they reference."""

    owner_metadata: "EntityMetadata"
    inverse_metadata: "EntityMetadata"
    owner_columns: List[ColumnMetadata] = field(default_factory=list)
    inverse_columns: List[ColumnMetadata] = field(default_factory=list)


@dataclass(eq=False)
class RelationMetadata(_Freezable):
    """
    One association between two entities.

    :class: RelationMetadata
    :synopsis: Resolved relation metadata with ownership and cascade policy
    """

    entity_metadata: "EntityMetadata"
    property_name: str
    relation_type: RelationType
    target: RelationTarget
    inverse_side_property: Optional[str] = None
    cascade: CascadeOptions = field(default_factory=CascadeOptions)
    nullable: bool = True
    on_delete: Optional[CascadeAction] = None
    is_primary: bool = False
    tree_role: Optional[TreeRelationRole] = None
    declared_on: Any = None
    join_column_declarations: List[JoinColumnArgs] = field(default_factory=list)
    join_table_declaration: Optional[JoinTableArgs] = None
    inverse_relation: Optional["RelationMetadata"] = None
    join_columns: List[ColumnMetadata] = field(default_factory=list)
    foreign_keys: List["ForeignKeyMetadata"] = field(default_factory=list)
    junction_entity_metadata: Optional["EntityMetadata"] = None

    def _describe(self) -> str:
        return f"{self.entity_metadata.name}.{self.property_name}"

    # ------------------------------------------------------------------
    # Kind predicates
    # ------------------------------------------------------------------

    @property
    def is_one_to_one(self) -> bool:
        return self.relation_type == RelationType.ONE_TO_ONE

    @property
    def is_many_to_one(self) -> bool:
        return self.relation_type == RelationType.MANY_TO_ONE

    @property
    def is_one_to_many(self) -> bool:
        return self.relation_type == RelationType.ONE_TO_MANY

    @property
    def is_many_to_many(self) -> bool:
        return self.relation_type == RelationType.MANY_TO_MANY

    @property
    def is_to_many(self) -> bool:
        return self.is_one_to_many or self.is_many_to_many

    @property
    def is_tree_parent(self) -> bool:
        return self.tree_role == TreeRelationRole.PARENT

    @property
    def is_tree_children(self) -> bool:
        return self.tree_role == TreeRelationRole.CHILDREN

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    @property
    def has_join_column_declaration(self) -> bool:
        return bool(self.join_column_declarations)

    @property
    def has_join_table_declaration(self) -> bool:
        return self.join_table_declaration is not None

    @property
    def is_owning(self) -> bool:
        return (
            self.is_many_to_one
            or (self.is_one_to_one and self.has_join_column_declaration)
            or (self.is_many_to_many and self.has_join_table_declaration)
        )

    @property
    def is_one_to_one_owner(self) -> bool:
        return self.is_one_to_one and self.has_join_column_declaration

    @property
    def is_one_to_one_not_owner(self) -> bool:
        return self.is_one_to_one and not self.has_join_column_declaration

    @property
    def is_with_join_columns(self) -> bool:
        """True when this side's table holds the foreign key."""
        return self.is_many_to_one or self.is_one_to_one_owner

    @property
    def has_inverse_side(self) -> bool:
        return self.inverse_relation is not None

    # ------------------------------------------------------------------
    # Cascades
    # ------------------------------------------------------------------

    @property
    def is_cascade_insert(self) -> bool:
        return self.cascade.insert

    @property
    def is_cascade_update(self) -> bool:
        return self.cascade.update

    @property
    def is_cascade_remove(self) -> bool:
        return self.cascade.remove

    # ------------------------------------------------------------------
    # Targets and columns
    # ------------------------------------------------------------------

    @property
    def inverse_entity_metadata(self) -> "EntityMetadata":
        return self.target.entity_metadata

    @property
    def referenced_columns(self) -> List[ColumnMetadata]:
        return [column.referenced_column for column in self.join_columns if column.referenced_column]

    def junction_column_pairs(self) -> Tuple[List[ColumnMetadata], List[ColumnMetadata]]:
        """Junction columns referencing (this side, the other side)."""
        junction = self.junction_entity_metadata
        if junction is None or junction.junction_columns is None:
            return [], []
        columns = junction.junction_columns
        if self.is_owning:
            return list(columns.owner_columns), list(columns.inverse_columns)
        return list(columns.inverse_columns), list(columns.owner_columns)

    def applies_to(self, instance: Any) -> bool:
        return _applies_to(self.declared_on, instance)

    def get_entity_value(self, instance: Any) -> Any:
        return getattr(instance, self.property_name, NOT_LOADED)

    def set_entity_value(self, instance: Any, value: Any) -> None:
        setattr(instance, self.property_name, value)

    def get_related_instances(self, instance: Any) -> Any:
        """
        Related instances held by ``instance`` as a list.

        Returns ``NOT_LOADED`` for an absent property; ``None`` or an empty
        collection yield an empty list.
        """
        value = self.get_entity_value(instance)
        if value is NOT_LOADED:
            return NOT_LOADED
        if value is None:
            return []
        if self.is_to_many:
            return list(value)
        return [value]

    def __repr__(self) -> str:
        return f"<RelationMetadata({self._describe()}, {self.relation_type})>"


# -----------------------------------------------------------------------------
# Constraints and listeners
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class ForeignKeyMetadata:
    """Foreign key derived from a relation's join columns."""

    entity_metadata: "EntityMetadata"
    referenced_entity_metadata: "EntityMetadata"
    columns: List[ColumnMetadata]
    referenced_columns: List[ColumnMetadata]
    on_delete: Optional[CascadeAction] = None
    name: Optional[str] = None
    relation_metadata: Optional[RelationMetadata] = None

    @property
    def column_names(self) -> List[str]:
        return [column.database_name for column in self.columns]

    @property
    def referenced_column_names(self) -> List[str]:
        return [column.database_name for column in self.referenced_columns]

    @property
    def referenced_table_name(self) -> str:
        return self.referenced_entity_metadata.table_name


@dataclass(eq=False)
class IndexMetadata:
    entity_metadata: "EntityMetadata"
    columns: List[ColumnMetadata]
    name: Optional[str] = None
    unique: bool = False

    @property
    def column_names(self) -> List[str]:
        return [column.database_name for column in self.columns]


@dataclass(eq=False)
class UniqueMetadata:
    entity_metadata: "EntityMetadata"
    columns: List[ColumnMetadata]
    name: Optional[str] = None

    @property
    def column_names(self) -> List[str]:
        return [column.database_name for column in self.columns]


@dataclass(eq=False)
class CheckMetadata:
    entity_metadata: "EntityMetadata"
    expression: str
    name: Optional[str] = None


@dataclass(eq=False)
class ExclusionMetadata:
    entity_metadata: "EntityMetadata"
    expression: str
    name: Optional[str] = None


@dataclass(eq=False)
class InheritanceMetadata:
    pattern: InheritancePattern
    discriminator_column: Optional[ColumnMetadata] = None


@dataclass(eq=False)
class ListenerMetadata:
    """Method of an entity class invoked for one lifecycle event."""

    entity_metadata: "EntityMetadata"
    declared_on: Any
    property_name: str
    event: EventKind

    def is_allowed(self, instance: Any) -> bool:
        return _applies_to(self.declared_on, instance)


@dataclass(eq=False)
class RelationCountMetadata:
    entity_metadata: "EntityMetadata"
    property_name: str
    relation: RelationMetadata


# -----------------------------------------------------------------------------
# Entities
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class EntityMetadata(_Freezable):
    """
    Resolved metadata of one mapped type (or synthesized junction table).

    ``own_columns`` and ``own_relations`` belong to this entity's table; for
    class-table children ``columns`` and ``relations`` also expose everything
    inherited from parent tables, root table first.

    :class: EntityMetadata
    :synopsis: Resolved entity metadata node of the metadata graph
    """

    name: str
    target: Any
    table_name: str
    given_table_name: Optional[str] = None
    table_type: TableType = TableType.REGULAR
    inheritance: Optional[InheritanceMetadata] = None
    discriminator_value: Any = None
    parent_entity_metadata: Optional["EntityMetadata"] = None
    child_entity_metadatas: List["EntityMetadata"] = field(default_factory=list)
    own_columns: List[ColumnMetadata] = field(default_factory=list)
    own_relations: List[RelationMetadata] = field(default_factory=list)
    foreign_keys: List[ForeignKeyMetadata] = field(default_factory=list)
    indices: List[IndexMetadata] = field(default_factory=list)
    uniques: List[UniqueMetadata] = field(default_factory=list)
    checks: List[CheckMetadata] = field(default_factory=list)
    exclusions: List[ExclusionMetadata] = field(default_factory=list)
    listeners: List[ListenerMetadata] = field(default_factory=list)
    relation_counts: List[RelationCountMetadata] = field(default_factory=list)
    junction_columns: Optional[JunctionColumns] = None
    closure_junction_entity_metadata: Optional["EntityMetadata"] = None

    def _describe(self) -> str:
        return self.name

    # ------------------------------------------------------------------
    # Kind predicates
    # ------------------------------------------------------------------

    @property
    def is_junction(self) -> bool:
        return self.table_type == TableType.JUNCTION

    @property
    def is_closure(self) -> bool:
        return self.table_type == TableType.CLOSURE

    @property
    def is_closure_junction(self) -> bool:
        return self.table_type == TableType.CLOSURE_JUNCTION

    @property
    def is_view(self) -> bool:
        return self.table_type == TableType.VIEW

    @property
    def is_class_table_child(self) -> bool:
        return self.table_type == TableType.CLASS_TABLE_CHILD

    @property
    def is_single_table_child(self) -> bool:
        return self.table_type == TableType.SINGLE_TABLE_CHILD

    @property
    def inheritance_pattern(self) -> Optional[InheritancePattern]:
        return self.inheritance.pattern if self.inheritance else None

    @property
    def is_single_table_participant(self) -> bool:
        return self.inheritance_pattern == InheritancePattern.SINGLE_TABLE

    # ------------------------------------------------------------------
    # Columns and relations
    # ------------------------------------------------------------------

    @property
    def table_chain(self) -> List["EntityMetadata"]:
        """Tables an instance is stored in, root table first."""
        if self.is_class_table_child and self.parent_entity_metadata is not None:
            return self.parent_entity_metadata.table_chain + [self]
        return [self]

    @property
    def columns(self) -> List[ColumnMetadata]:
        seen: Dict[str, ColumnMetadata] = {}
        for table in self.table_chain:
            for column in table.own_columns:
                seen.setdefault(column.property_name, column)
        return list(seen.values())

    @property
    def relations(self) -> List[RelationMetadata]:
        seen: Dict[str, RelationMetadata] = {}
        for table in self.table_chain:
            for relation in table.own_relations:
                seen.setdefault(relation.property_name, relation)
        return list(seen.values())

    @property
    def primary_columns(self) -> List[ColumnMetadata]:
        return [column for column in self.columns if column.primary]

    @property
    def own_primary_columns(self) -> List[ColumnMetadata]:
        return [column for column in self.own_columns if column.primary]

    @property
    def generated_columns(self) -> List[ColumnMetadata]:
        return [column for column in self.columns if column.is_generated]

    def _column_with_mode(self, mode: ColumnMode) -> Optional[ColumnMetadata]:
        return next((column for column in self.columns if column.mode == mode), None)

    @property
    def create_date_column(self) -> Optional[ColumnMetadata]:
        return self._column_with_mode(ColumnMode.CREATE_DATE)

    @property
    def update_date_column(self) -> Optional[ColumnMetadata]:
        return self._column_with_mode(ColumnMode.UPDATE_DATE)

    @property
    def version_column(self) -> Optional[ColumnMetadata]:
        return self._column_with_mode(ColumnMode.VERSION)

    @property
    def delete_date_column(self) -> Optional[ColumnMetadata]:
        return self._column_with_mode(ColumnMode.DELETE_DATE)

    @property
    def tree_level_column(self) -> Optional[ColumnMetadata]:
        return self._column_with_mode(ColumnMode.TREE_LEVEL)

    @property
    def discriminator_column(self) -> Optional[ColumnMetadata]:
        return self._column_with_mode(ColumnMode.DISCRIMINATOR)

    @property
    def relations_with_join_columns(self) -> List[RelationMetadata]:
        return [relation for relation in self.relations if relation.is_with_join_columns]

    @property
    def many_to_many_relations(self) -> List[RelationMetadata]:
        return [relation for relation in self.relations if relation.is_many_to_many]

    @property
    def tree_parent_relation(self) -> Optional[RelationMetadata]:
        return next((relation for relation in self.relations if relation.is_tree_parent), None)

    @property
    def tree_children_relation(self) -> Optional[RelationMetadata]:
        return next((relation for relation in self.relations if relation.is_tree_children), None)

    def find_column_with_property_name(self, property_name: str) -> Optional[ColumnMetadata]:
        return next((c for c in self.columns if c.property_name == property_name), None)

    def find_column_with_database_name(self, database_name: str) -> Optional[ColumnMetadata]:
        for column in list(self.own_columns) + self.columns:
            if column.database_name == database_name:
                return column
        return None

    def find_relation_with_property_name(self, property_name: str) -> Optional[RelationMetadata]:
        return next((r for r in self.relations if r.property_name == property_name), None)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def get_entity_id_map(self, instance: Any) -> Optional[Dict[str, Any]]:
        """
        Primary key values of ``instance`` keyed by property name.

        Returns None when any primary value is missing.
        """
        primary_columns = self.primary_columns
        if instance is None or not primary_columns:
            return None
        id_map: Dict[str, Any] = {}
        for column in primary_columns:
            value = column.get_entity_value(instance)
            if value is None or value is NOT_LOADED:
                return None
            id_map[column.property_name] = value
        return id_map

    def has_id(self, instance: Any) -> bool:
        return self.get_entity_id_map(instance) is not None

    def identity_conditions(self, id_map: Dict[str, Any], table: Optional["EntityMetadata"] = None) -> Dict[str, Any]:
        """WHERE conditions (database names) locating ``id_map`` in ``table`` (default: this table)."""
        table = table if table is not None else self
        return {column.database_name: id_map[column.property_name] for column in table.own_primary_columns}

    def id_map_from_row(self, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        id_map: Dict[str, Any] = {}
        for column in self.primary_columns:
            value = row.get(column.database_name)
            if value is None:
                return None
            id_map[column.property_name] = value
        return id_map

    def is_inheritance_descendant(self, instance: Any) -> bool:
        return _applies_to(self.target, instance)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def freeze(self) -> None:
        """Make this metadata and its columns and relations read-only."""
        for column in self.own_columns:
            column._freeze()
        for relation in self.own_relations:
            relation._freeze("join_column_declarations", "join_columns", "foreign_keys")
        self._freeze(
            "child_entity_metadatas",
            "own_columns",
            "own_relations",
            "foreign_keys",
            "indices",
            "uniques",
            "checks",
            "exclusions",
            "listeners",
            "relation_counts",
        )

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def __repr__(self) -> str:
        return f"<EntityMetadata({self.name}, table={self.table_name})>"


# -----------------------------------------------------------------------------
# Graph
# -----------------------------------------------------------------------------

class EntityMetadataGraph:
    """
    Built metadata, indexed by target class and entity name.

    :class: EntityMetadataGraph
    :synopsis: Read-only container shared by planners and executors
    """

    def __init__(self, metadatas: Sequence[EntityMetadata]) -> None:
        self._metadatas: List[EntityMetadata] = list(metadatas)
        self._by_key: Dict[Any, EntityMetadata] = {}
        for metadata in self._metadatas:
            self._by_key.setdefault(metadata.target, metadata)
            self._by_key.setdefault(metadata.name, metadata)

    def __iter__(self) -> Iterator[EntityMetadata]:
        return iter(self._metadatas)

    def __len__(self) -> int:
        return len(self._metadatas)

    @property
    def metadatas(self) -> List[EntityMetadata]:
        return list(self._metadatas)

    @property
    def junctions(self) -> List[EntityMetadata]:
        return [metadata for metadata in self._metadatas if metadata.is_junction]

    def has_metadata(self, target: Any) -> bool:
        return self._lookup(target) is not None

    def get_metadata(self, target: Any) -> EntityMetadata:
        """Metadata for a class, an entity name or an instance."""
        metadata = self._lookup(target)
        if metadata is None:
            raise NoMetadataError(target)
        return metadata

    def find_metadata_for_instance(self, instance: Any) -> EntityMetadata:
        metadata = self._lookup(type(instance))
        if metadata is None:
            raise NoMetadataError(type(instance))
        return metadata

    def _lookup(self, target: Any) -> Optional[EntityMetadata]:
        if isinstance(target, str):
            return self._by_key.get(target)
        if not isinstance(target, type):
            target = type(target)
        for candidate in target.__mro__:
            metadata = self._by_key.get(candidate)
            if metadata is not None:
                return metadata
        return None

    def creation_order(self) -> List[EntityMetadata]:
        """
        Tables in creation order: referenced tables before referencing ones.

        Single-table children share their root's table and are not listed.
        Tables caught in a foreign key cycle keep build order after the rest.
        """
        tables = [metadata for metadata in self._metadatas if not metadata.is_single_table_child]
        index = {id(metadata): position for position, metadata in enumerate(tables)}

        def table_of(metadata: EntityMetadata) -> EntityMetadata:
            while metadata.is_single_table_child and metadata.parent_entity_metadata is not None:
                metadata = metadata.parent_entity_metadata
            return metadata

        edges: List[Tuple[int, int]] = []
        for metadata in tables:
            for foreign_key in metadata.foreign_keys:
                referenced = index.get(id(table_of(foreign_key.referenced_entity_metadata)))
                if referenced is not None:
                    edges.append((referenced, index[id(metadata)]))

        ordered, residue = stable_topological_order(build_adjacency(len(tables), edges))
        if residue:
            logger.warning(
                f"Circular foreign keys between tables: {[tables[i].table_name for i in residue]}"
            )
        return [tables[i] for i in ordered + residue]

    def __repr__(self) -> str:
        return f"<EntityMetadataGraph({len(self._metadatas)} entities)>"


__all__ = [
    "NOT_LOADED",
    "RelationTarget",
    "ColumnMetadata",
    "JunctionColumns",
    "RelationMetadata",
    "ForeignKeyMetadata",
    "IndexMetadata",
    "UniqueMetadata",
    "CheckMetadata",
    "ExclusionMetadata",
    "InheritanceMetadata",
    "ListenerMetadata",
    "RelationCountMetadata",
    "EntityMetadata",
    "EntityMetadataGraph",
]
