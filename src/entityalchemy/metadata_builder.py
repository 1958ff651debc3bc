# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Metadata graph builder.

Turns the raw declarations of a registry into cross-referenced entity metadata.
The build runs as a sequence of passes over stubs created up front, so forward
references between entities resolve in a dedicated linking pass:

1. Stubs: one entity per non-abstract table declaration
2. Parent linking for inheritance children
3. Column, relation and listener selection over each inheritance tree
4. Single-table discriminator columns
5. Class-table parent key columns and child-to-parent foreign keys
6. Relation target resolution
7. Inverse side pairing
8. Join columns and foreign keys
9. Junction entities for owning many-to-many relations
10. Closure junction entities for closure-table trees
11. Single-table column propagation and discriminator indices
12. Indices, uniques, checks, exclusions and relation counts

:module: metadata_builder
:synopsis: Declaration registry -> entity metadata
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from .constants import (
    CascadeAction,
    ColumnMode,
    ColumnType,
    GenerationStrategy,
    InheritancePattern,
    NamingConstants,
    TableType,
)
from .declarations import (
    ColumnArgs,
    ColumnOptions,
    DeclarationRegistry,
    JoinColumnSpec,
    TableArgs,
    TargetArgs,
    get_inheritance_tree,
    target_name,
)
from .entity_metadata import (
    CheckMetadata,
    ColumnMetadata,
    EntityMetadata,
    ExclusionMetadata,
    ForeignKeyMetadata,
    IndexMetadata,
    InheritanceMetadata,
    JunctionColumns,
    ListenerMetadata,
    RelationCountMetadata,
    RelationMetadata,
    RelationTarget,
    UniqueMetadata,
)
from .errors import (
    JoinColumnNamingError,
    MissingOptionError,
    ReferencedColumnNotFoundError,
    UnknownPropertyError,
    UnresolvedTargetError,
)
from .naming import DefaultNamingStrategy, NamingStrategy

logger = logging.getLogger(__name__)

_CHILD_TABLE_TYPES = (TableType.SINGLE_TABLE_CHILD, TableType.CLASS_TABLE_CHILD)


class BuilderOptions(BaseModel):
    """Options applied to every entity of one build."""

    model_config = ConfigDict(frozen=True)

    tables_prefix: Optional[str] = None


def infer_column_type(options: ColumnOptions) -> ColumnType:
    """Column type from explicit options, falling back on the column's role."""
    if options.type is not None:
        return options.type
    if options.mode in (ColumnMode.CREATE_DATE, ColumnMode.UPDATE_DATE, ColumnMode.DELETE_DATE):
        return ColumnType.DATETIME
    if options.mode in (ColumnMode.VERSION, ColumnMode.TREE_LEVEL):
        return ColumnType.INT
    if options.generated == GenerationStrategy.INCREMENT:
        return ColumnType.INT
    if options.generated == GenerationStrategy.UUID:
        return ColumnType.UUID
    if options.enum:
        return ColumnType.ENUM
    return ColumnType.STRING


class EntityMetadataBuilder:
    """
    Builds entity metadata from a declaration registry.

    Building freezes the registry but never mutates its declarations, so two
    builds of one registry yield structurally equal metadata.

    :class: EntityMetadataBuilder
    :synopsis: Multi-pass metadata graph builder
    """

    def __init__(
        self,
        naming_strategy: Optional[NamingStrategy] = None,
        options: Optional[BuilderOptions] = None,
    ) -> None:
        self.naming_strategy: NamingStrategy = naming_strategy or DefaultNamingStrategy()
        self.options = options or BuilderOptions()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def build(self, registry: DeclarationRegistry, targets: Optional[Iterable[Any]] = None) -> List[EntityMetadata]:
        """
        Build metadata for every table of ``registry`` (or only ``targets``).

        Returns:
            List[EntityMetadata]: entities in declaration order followed by junctions
        """
        registry.freeze()
        state = _BuildState(registry, self.naming_strategy, self.options)

        # @@ STEP 1: Create one stub per non-abstract table
        state.create_stubs(registry.filter_tables(targets))

        # @@ STEP 2: Link inheritance children to their parents
        state.link_parents()

        # @@ STEP 3: Select columns, relations and listeners
        for metadata in state.entities:
            state.select_members(metadata)

        # @@ STEP 4: Add single-table discriminators
        state.add_discriminators()

        # @@ STEP 5: Add class-table parent keys
        for metadata in state.entities:
            state.add_parent_keys(metadata)

        # @@ STEP 6: Resolve relation targets
        state.resolve_relation_targets()

        # @@ STEP 7: Pair inverse sides
        state.pair_inverse_sides()

        # @@ STEP 8: Build join columns and foreign keys
        for metadata in state.entities:
            for relation in metadata.own_relations:
                if relation.is_with_join_columns:
                    state.build_join_columns(metadata, relation)

        # @@ STEP 9: Build junction entities
        for metadata in state.entities:
            for relation in metadata.own_relations:
                if relation.is_many_to_many and relation.has_join_table_declaration:
                    state.build_junction(metadata, relation)

        # @@ STEP 10: Build closure junctions of tree entities
        for metadata in state.entities:
            if metadata.is_closure:
                state.build_closure_junction(metadata)

        # @@ STEP 11: Propagate single-table child columns onto the root
        state.propagate_single_table_columns()

        # @@ STEP 12: Indices, constraints and relation counts
        for metadata in state.entities:
            state.build_constraints(metadata)

        built = state.entities + state.junctions
        logger.debug(
            f"Built metadata for {len(state.entities)} entities and {len(state.junctions)} junctions"
        )
        return built


class _BuildState:
    """Mutable state of one build invocation."""

    def __init__(self, registry: DeclarationRegistry, naming: NamingStrategy, options: BuilderOptions) -> None:
        self.registry = registry
        self.naming = naming
        self.options = options
        self.entities: List[EntityMetadata] = []
        self.junctions: List[EntityMetadata] = []
        self._table_args: Dict[int, TableArgs] = {}
        self._base_table_names: Dict[int, str] = {}
        self._junctions_by_name: Dict[str, EntityMetadata] = {}
        self._keyed: set = set()
        self._by_target: Dict[Any, EntityMetadata] = {}
        self._by_name: Dict[str, EntityMetadata] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prefixed(self, table_name: str) -> str:
        if self.options.tables_prefix:
            return self.naming.prefix_table_name(self.options.tables_prefix, table_name)
        return table_name

    def lookup(self, reference: Any) -> Optional[EntityMetadata]:
        """Stub for a class (walking its MRO) or an entity name."""
        if isinstance(reference, str):
            return self._by_name.get(reference)
        if isinstance(reference, type):
            for candidate in reference.__mro__:
                if candidate in self._by_target:
                    return self._by_target[candidate]
            return None
        return self._by_target.get(reference)

    def declaration_tree(self, metadata: EntityMetadata) -> List[Any]:
        """Targets whose declarations apply to ``metadata``, most derived first."""
        tree = get_inheritance_tree(metadata.target)
        parent = metadata.parent_entity_metadata
        if parent is None:
            return tree
        if parent.target in tree:
            tree = tree[: tree.index(parent.target)]
        if metadata.is_single_table_child:
            tree = tree + [t for t in self.declaration_tree(parent) if t not in tree]
        return tree

    @staticmethod
    def _select(declarations: Sequence[TargetArgs], tree: List[Any], key: str) -> List[Any]:
        """
        Most derived declaration per ``key`` attribute, in first-registration order.
        """
        rank = {target: position for position, target in enumerate(tree)}
        winners: Dict[str, Any] = {}
        order: List[str] = []
        for declaration in declarations:
            name = getattr(declaration, key)
            position = rank.get(declaration.target, len(tree))
            current = winners.get(name)
            if current is None:
                order.append(name)
                winners[name] = declaration
            elif position <= rank.get(current.target, len(tree)):
                winners[name] = declaration
        return [winners[name] for name in order]

    # ------------------------------------------------------------------
    # Pass 1 & 2: stubs and parents
    # ------------------------------------------------------------------

    def create_stubs(self, tables: Sequence[TableArgs]) -> None:
        for args in tables:
            if args.type == TableType.ABSTRACT:
                continue
            existing = self._by_target.get(args.target)
            if existing is not None:
                # @@ STEP: Re-declaration of a table replaces its arguments
                self._table_args[id(existing)] = args
                continue

            name = target_name(args.target)
            base_table_name = self.naming.table_name(name, args.name)
            metadata = EntityMetadata(
                name=name,
                target=args.target,
                table_name=self._prefixed(base_table_name),
                given_table_name=args.name,
                table_type=args.type,
            )
            self._table_args[id(metadata)] = args
            self._base_table_names[id(metadata)] = base_table_name
            self._by_target[args.target] = metadata
            self._by_name.setdefault(name, metadata)
            self.entities.append(metadata)

        logger.debug(f"Created {len(self.entities)} entity stubs")

    def link_parents(self) -> None:
        for metadata in self.entities:
            args = self._table_args[id(metadata)]
            if args.type in _CHILD_TABLE_TYPES:
                parent = self._find_parent(metadata, args)
                metadata.parent_entity_metadata = parent
                parent.child_entity_metadatas.append(metadata)

        for metadata in self.entities:
            metadata.inheritance = self._inheritance_of(metadata)
            if metadata.is_single_table_child:
                root = self._root_of(metadata)
                metadata.table_name = root.table_name
                self._base_table_names[id(metadata)] = self._base_table_names[id(root)]

    def _find_parent(self, metadata: EntityMetadata, args: TableArgs) -> EntityMetadata:
        if args.parent is not None:
            parent = self.lookup(args.parent)
            if parent is None or parent is metadata:
                raise UnresolvedTargetError(metadata.name, "parent", target_name(args.parent))
            return parent
        for ancestor in get_inheritance_tree(metadata.target)[1:]:
            parent = self._by_target.get(ancestor)
            if parent is not None:
                return parent
        raise MissingOptionError(metadata.name, "parent")

    @staticmethod
    def _root_of(metadata: EntityMetadata) -> EntityMetadata:
        while metadata.parent_entity_metadata is not None:
            metadata = metadata.parent_entity_metadata
        return metadata

    def _inheritance_of(self, metadata: EntityMetadata) -> Optional[InheritanceMetadata]:
        if metadata.is_single_table_child:
            return InheritanceMetadata(pattern=InheritancePattern.SINGLE_TABLE)
        if metadata.is_class_table_child:
            return InheritanceMetadata(pattern=InheritancePattern.CLASS_TABLE)
        declaration = self.registry.find_inheritance(metadata.target)
        if declaration is not None and metadata.child_entity_metadatas:
            return InheritanceMetadata(pattern=declaration.pattern)
        if declaration is not None and declaration.target is metadata.target:
            return InheritanceMetadata(pattern=declaration.pattern)
        return None

    # ------------------------------------------------------------------
    # Pass 3: members
    # ------------------------------------------------------------------

    def select_members(self, metadata: EntityMetadata) -> None:
        tree = self.declaration_tree(metadata)

        for args in self._select(self.registry.filter_columns(tree), tree, "property_name"):
            metadata.own_columns.append(self._create_column(metadata, args))

        join_columns = self.registry.filter_join_columns(tree)
        join_tables = self.registry.filter_join_tables(tree)
        for args in self._select(self.registry.filter_relations(tree), tree, "property_name"):
            relation = RelationMetadata(
                entity_metadata=metadata,
                property_name=self.naming.relation_name(args.property_name),
                relation_type=args.relation_type,
                target=RelationTarget(args.type),
                inverse_side_property=args.inverse_side_property,
                cascade=args.options.cascade,
                nullable=args.options.nullable,
                on_delete=args.options.on_delete,
                is_primary=args.options.primary,
                tree_role=args.options.tree_role,
                declared_on=args.target,
            )
            relation.join_column_declarations = self._most_derived(
                [jc for jc in join_columns if jc.property_name == args.property_name], tree
            )
            tables = self._most_derived(
                [jt for jt in join_tables if jt.property_name == args.property_name], tree
            )
            relation.join_table_declaration = tables[-1] if tables else None
            metadata.own_relations.append(relation)

        # || S.1: Listeners follow the whole class hierarchy, parent tables included
        seen = set()
        for args in self.registry.filter_listeners(get_inheritance_tree(metadata.target)):
            key = (args.property_name, args.event)
            if key in seen:
                continue
            seen.add(key)
            metadata.listeners.append(
                ListenerMetadata(
                    entity_metadata=metadata,
                    declared_on=args.target,
                    property_name=args.property_name,
                    event=args.event,
                )
            )

    @staticmethod
    def _most_derived(declarations: List[Any], tree: List[Any]) -> List[Any]:
        """Declarations made on the most derived target that declares any."""
        for target in tree:
            found = [d for d in declarations if d.target is target or d.target == target]
            if found:
                return found
        return []

    def _create_column(self, metadata: EntityMetadata, args: ColumnArgs) -> ColumnMetadata:
        options = args.options
        return ColumnMetadata(
            entity_metadata=metadata,
            property_name=args.property_name,
            database_name=self.naming.column_name(args.property_name, options.name),
            type=infer_column_type(options),
            mode=options.mode,
            nullable=options.nullable,
            primary=options.primary,
            generation_strategy=options.generated,
            default=options.default,
            length=options.length,
            precision=options.precision,
            scale=options.scale,
            unique=options.unique,
            enum=options.enum,
            declared_on=args.target,
        )

    # ------------------------------------------------------------------
    # Pass 4 & 5: inheritance columns
    # ------------------------------------------------------------------

    def add_discriminators(self) -> None:
        for metadata in self.entities:
            if not metadata.is_single_table_participant:
                continue

            declared = self.registry.find_discriminator_value(metadata.target)
            metadata.discriminator_value = declared.value if declared is not None else metadata.name

            if metadata.is_single_table_child:
                root_column = self._root_of(metadata).discriminator_column
                if root_column is None:
                    root_column = self._add_root_discriminator(self._root_of(metadata))
                column = dataclasses.replace(root_column, entity_metadata=metadata)
                metadata.own_columns.append(column)
            else:
                column = metadata.discriminator_column or self._add_root_discriminator(metadata)
            metadata.inheritance.discriminator_column = column

    def _add_root_discriminator(self, root: EntityMetadata) -> ColumnMetadata:
        existing = root.discriminator_column
        if existing is not None:
            return existing
        declaration = self.registry.find_inheritance(root.target)
        options = declaration.column if declaration is not None and declaration.column else ColumnOptions()
        property_name = options.name or NamingConstants.DEFAULT_DISCRIMINATOR_COLUMN
        column = ColumnMetadata(
            entity_metadata=root,
            property_name=property_name,
            database_name=self.naming.column_name(property_name, options.name),
            type=options.type or ColumnType.STRING,
            mode=ColumnMode.DISCRIMINATOR,
            nullable=False,
            length=options.length or NamingConstants.DEFAULT_DISCRIMINATOR_LENGTH,
        )
        root.own_columns.append(column)
        return column

    def add_parent_keys(self, metadata: EntityMetadata) -> None:
        if not metadata.is_class_table_child or id(metadata) in self._keyed:
            return
        self._keyed.add(id(metadata))
        parent = metadata.parent_entity_metadata
        if parent.is_class_table_child:
            self.add_parent_keys(parent)

        parent_columns = parent.own_primary_columns
        keys: List[ColumnMetadata] = []
        for parent_column in parent_columns:
            column = next((c for c in metadata.own_columns if c.property_name == parent_column.property_name), None)
            if column is None:
                column = ColumnMetadata(
                    entity_metadata=metadata,
                    property_name=parent_column.property_name,
                    database_name=parent_column.database_name,
                    type=parent_column.type,
                    length=parent_column.length,
                    precision=parent_column.precision,
                    scale=parent_column.scale,
                )
                metadata.own_columns.insert(len(keys), column)
            column.primary = True
            column.nullable = False
            column.referenced_column = parent_column
            keys.append(column)

        if keys:
            metadata.foreign_keys.append(
                ForeignKeyMetadata(
                    entity_metadata=metadata,
                    referenced_entity_metadata=parent,
                    columns=keys,
                    referenced_columns=list(parent_columns),
                    on_delete=CascadeAction.CASCADE,
                    name=self.naming.foreign_key_name(metadata.table_name, [c.database_name for c in keys]),
                )
            )

    # ------------------------------------------------------------------
    # Pass 6 & 7: relation targets and inverse sides
    # ------------------------------------------------------------------

    def resolve_relation_targets(self) -> None:
        for metadata in self.entities:
            for relation in metadata.own_relations:
                if not relation.target.resolve(self.lookup):
                    raise UnresolvedTargetError(
                        metadata.name, relation.property_name, target_name(relation.target.reference)
                    )

    def pair_inverse_sides(self) -> None:
        for metadata in self.entities:
            for relation in metadata.own_relations:
                target = relation.inverse_entity_metadata
                if relation.inverse_side_property:
                    relation.inverse_relation = target.find_relation_with_property_name(
                        relation.inverse_side_property
                    )
                    continue
                relation.inverse_relation = next(
                    (
                        candidate
                        for candidate in target.relations
                        if candidate is not relation
                        and candidate.inverse_side_property == relation.property_name
                        and self._descends_from(metadata, candidate.inverse_entity_metadata)
                    ),
                    None,
                )

    @staticmethod
    def _descends_from(metadata: EntityMetadata, ancestor: EntityMetadata) -> bool:
        current: Optional[EntityMetadata] = metadata
        while current is not None:
            if current is ancestor:
                return True
            current = current.parent_entity_metadata
        return False

    # ------------------------------------------------------------------
    # Pass 8: join columns
    # ------------------------------------------------------------------

    def build_join_columns(self, metadata: EntityMetadata, relation: RelationMetadata) -> None:
        target = relation.inverse_entity_metadata
        declarations: List[JoinColumnSpec] = list(relation.join_column_declarations) or [JoinColumnSpec()]

        # @@ STEP 1: Several join columns must all be fully named
        if len(declarations) > 1 and any(
            not declaration.name or not declaration.referenced_column_name for declaration in declarations
        ):
            raise JoinColumnNamingError(metadata.name, relation.property_name, len(declarations))

        # @@ STEP 2: Pair each join column with its referenced column
        pairs: List[Tuple[Optional[str], ColumnMetadata]] = []
        for declaration in declarations:
            if declaration.referenced_column_name:
                referenced = target.find_column_with_property_name(
                    declaration.referenced_column_name
                ) or target.find_column_with_database_name(declaration.referenced_column_name)
                if referenced is None:
                    raise ReferencedColumnNotFoundError(
                        metadata.name, relation.property_name, declaration.referenced_column_name, target.name
                    )
                pairs.append((declaration.name, referenced))
            else:
                primary_columns = target.primary_columns
                for referenced in primary_columns:
                    name = declaration.name if len(primary_columns) == 1 else None
                    pairs.append((name, referenced))

        # @@ STEP 3: Reuse declared columns, otherwise add virtual ones
        columns: List[ColumnMetadata] = []
        for name, referenced in pairs:
            database_name = name or self.naming.join_column_name(relation.property_name, referenced.property_name)
            column = next((c for c in metadata.own_columns if c.database_name == database_name), None)
            if column is None:
                column = ColumnMetadata(
                    entity_metadata=metadata,
                    property_name=database_name,
                    database_name=database_name,
                    type=referenced.type,
                    mode=ColumnMode.VIRTUAL,
                    nullable=relation.nullable,
                    primary=relation.is_primary,
                    length=referenced.length,
                    precision=referenced.precision,
                    scale=referenced.scale,
                    declared_on=relation.declared_on,
                )
                metadata.own_columns.append(column)
            column.relation_metadata = relation
            column.referenced_column = referenced
            columns.append(column)
        relation.join_columns = columns

        # @@ STEP 4: Materialize the foreign key
        if columns:
            foreign_key = ForeignKeyMetadata(
                entity_metadata=metadata,
                referenced_entity_metadata=target,
                columns=columns,
                referenced_columns=[c.referenced_column for c in columns],
                on_delete=relation.on_delete,
                name=self.naming.foreign_key_name(metadata.table_name, [c.database_name for c in columns]),
                relation_metadata=relation,
            )
            relation.foreign_keys = [foreign_key]
            metadata.foreign_keys.append(foreign_key)

    # ------------------------------------------------------------------
    # Pass 9: junctions
    # ------------------------------------------------------------------

    def _junction_referenced(
        self, entity: EntityMetadata, specs: Sequence[JoinColumnSpec], relation: RelationMetadata
    ) -> List[Tuple[Optional[str], ColumnMetadata]]:
        if not specs:
            return [(None, column) for column in entity.primary_columns]
        pairs = []
        for spec in specs:
            if spec.referenced_column_name:
                referenced = entity.find_column_with_property_name(
                    spec.referenced_column_name
                ) or entity.find_column_with_database_name(spec.referenced_column_name)
                if referenced is None:
                    raise ReferencedColumnNotFoundError(
                        relation.entity_metadata.name, relation.property_name, spec.referenced_column_name, entity.name
                    )
            elif len(entity.primary_columns) == 1:
                referenced = entity.primary_columns[0]
            else:
                raise JoinColumnNamingError(relation.entity_metadata.name, relation.property_name, len(specs))
            pairs.append((spec.name, referenced))
        return pairs

    def build_junction(self, metadata: EntityMetadata, relation: RelationMetadata) -> None:
        declaration = relation.join_table_declaration
        inverse = relation.inverse_entity_metadata
        owner_base = self._base_table_names[id(metadata)]
        inverse_base = self._base_table_names[id(inverse)]
        inverse_property = relation.inverse_relation.property_name if relation.inverse_relation else None
        table_name = self._prefixed(
            declaration.name
            or self.naming.join_table_name(owner_base, inverse_base, relation.property_name, inverse_property)
        )

        # @@ STEP 1: Reuse a junction already built for the same table
        junction = self._junctions_by_name.get(table_name)
        if junction is None:
            junction = self._create_junction(table_name, metadata, relation, owner_base, inverse_base)
        relation.junction_entity_metadata = junction
        if relation.inverse_relation is not None:
            relation.inverse_relation.junction_entity_metadata = junction

    def _create_junction(
        self,
        table_name: str,
        metadata: EntityMetadata,
        relation: RelationMetadata,
        owner_base: str,
        inverse_base: str,
    ) -> EntityMetadata:
        declaration = relation.join_table_declaration
        inverse = relation.inverse_entity_metadata
        junction = EntityMetadata(
            name=table_name,
            target=table_name,
            table_name=table_name,
            given_table_name=declaration.name,
            table_type=TableType.JUNCTION,
        )

        owner_pairs = self._junction_referenced(metadata, declaration.join_columns, relation)
        inverse_pairs = self._junction_referenced(inverse, declaration.inverse_join_columns, relation)
        owner_names = [
            name or self.naming.join_table_column_name(owner_base, referenced.property_name, referenced.database_name)
            for name, referenced in owner_pairs
        ]
        inverse_names = [
            name or self.naming.join_table_column_name(inverse_base, referenced.property_name, referenced.database_name)
            for name, referenced in inverse_pairs
        ]

        # @@ STEP 2: Disambiguate self-referencing column names
        if set(owner_names) & set(inverse_names):
            owner_names = [self.naming.join_table_column_duplication_prefix(n, 1) for n in owner_names]
            inverse_names = [self.naming.join_table_column_duplication_prefix(n, 2) for n in inverse_names]

        def make_columns(names: List[str], pairs: List[Tuple[Optional[str], ColumnMetadata]]) -> List[ColumnMetadata]:
            return [
                ColumnMetadata(
                    entity_metadata=junction,
                    property_name=name,
                    database_name=name,
                    type=referenced.type,
                    primary=True,
                    nullable=False,
                    length=referenced.length,
                    precision=referenced.precision,
                    scale=referenced.scale,
                    referenced_column=referenced,
                )
                for name, (_, referenced) in zip(names, pairs)
            ]

        owner_columns = make_columns(owner_names, owner_pairs)
        inverse_columns = make_columns(inverse_names, inverse_pairs)
        junction.own_columns.extend(owner_columns + inverse_columns)
        junction.junction_columns = JunctionColumns(
            owner_metadata=metadata,
            inverse_metadata=inverse,
            owner_columns=owner_columns,
            inverse_columns=inverse_columns,
        )

        # @@ STEP 3: Foreign keys and indices towards both sides
        inverse_on_delete = relation.inverse_relation.on_delete if relation.inverse_relation else None
        for columns, referenced_metadata, on_delete in (
            (owner_columns, metadata, relation.on_delete),
            (inverse_columns, inverse, inverse_on_delete),
        ):
            names = [column.database_name for column in columns]
            junction.foreign_keys.append(
                ForeignKeyMetadata(
                    entity_metadata=junction,
                    referenced_entity_metadata=referenced_metadata,
                    columns=columns,
                    referenced_columns=[column.referenced_column for column in columns],
                    on_delete=on_delete or CascadeAction.CASCADE,
                    name=self.naming.foreign_key_name(table_name, names),
                )
            )
            junction.indices.append(
                IndexMetadata(entity_metadata=junction, columns=columns, name=self.naming.index_name(table_name, names))
            )

        self._junctions_by_name[table_name] = junction
        self.junctions.append(junction)
        logger.debug(f"Created junction {table_name} for {metadata.name}.{relation.property_name}")
        return junction

    # ------------------------------------------------------------------
    # Pass 10: closure junctions
    # ------------------------------------------------------------------

    def build_closure_junction(self, metadata: EntityMetadata) -> EntityMetadata:
        """
        Companion table holding one row per ancestor/descendant pair of a tree.

        Every primary column of the tree entity yields a ``<column>_ancestor``
        and a ``<column>_descendant`` column; a ``level`` column holding the
        distance between both nodes is added when the entity has a tree level
        column.
        """
        table_name = self._prefixed(self.naming.closure_junction_table_name(self._base_table_names[id(metadata)]))
        closure = EntityMetadata(
            name=table_name,
            target=table_name,
            table_name=table_name,
            table_type=TableType.CLOSURE_JUNCTION,
        )

        # @@ STEP 1: Ancestor and descendant keys
        def make_columns(suffix: str) -> List[ColumnMetadata]:
            return [
                ColumnMetadata(
                    entity_metadata=closure,
                    property_name=self.naming.closure_junction_column_name(referenced.database_name, suffix),
                    database_name=self.naming.closure_junction_column_name(referenced.database_name, suffix),
                    type=referenced.type,
                    primary=True,
                    nullable=False,
                    length=referenced.length,
                    precision=referenced.precision,
                    scale=referenced.scale,
                    referenced_column=referenced,
                )
                for referenced in metadata.primary_columns
            ]

        ancestor_columns = make_columns(NamingConstants.ANCESTOR_SUFFIX)
        descendant_columns = make_columns(NamingConstants.DESCENDANT_SUFFIX)
        closure.own_columns.extend(ancestor_columns + descendant_columns)
        closure.junction_columns = JunctionColumns(
            owner_metadata=metadata,
            inverse_metadata=metadata,
            owner_columns=ancestor_columns,
            inverse_columns=descendant_columns,
        )

        # @@ STEP 2: Distance column mirrors the entity's tree level
        if metadata.tree_level_column is not None:
            closure.own_columns.append(
                ColumnMetadata(
                    entity_metadata=closure,
                    property_name=NamingConstants.CLOSURE_LEVEL_COLUMN,
                    database_name=NamingConstants.CLOSURE_LEVEL_COLUMN,
                    type=ColumnType.INT,
                    mode=ColumnMode.TREE_LEVEL,
                    nullable=True,
                )
            )

        # @@ STEP 3: Both key sets reference the tree entity
        for columns in (ancestor_columns, descendant_columns):
            names = [column.database_name for column in columns]
            closure.foreign_keys.append(
                ForeignKeyMetadata(
                    entity_metadata=closure,
                    referenced_entity_metadata=metadata,
                    columns=columns,
                    referenced_columns=[column.referenced_column for column in columns],
                    on_delete=CascadeAction.CASCADE,
                    name=self.naming.foreign_key_name(table_name, names),
                )
            )

        metadata.closure_junction_entity_metadata = closure
        self.junctions.append(closure)
        logger.debug(f"Created closure junction {table_name} for {metadata.name}")
        return closure

    # ------------------------------------------------------------------
    # Pass 11: single-table propagation
    # ------------------------------------------------------------------

    def _descendants(self, metadata: EntityMetadata) -> List[EntityMetadata]:
        found: List[EntityMetadata] = []
        for child in metadata.child_entity_metadatas:
            if child.is_single_table_child:
                found.append(child)
                found.extend(self._descendants(child))
        return found

    def propagate_single_table_columns(self) -> None:
        for root in self.entities:
            if not root.is_single_table_participant or root.is_single_table_child:
                continue

            known = {column.database_name for column in root.own_columns}
            foreign_keys = {tuple(fk.column_names) for fk in root.foreign_keys}
            for child in self._descendants(root):
                for column in child.own_columns:
                    if column.database_name not in known:
                        root.own_columns.append(dataclasses.replace(column, entity_metadata=root))
                        known.add(column.database_name)
                for foreign_key in child.foreign_keys:
                    if tuple(foreign_key.column_names) not in foreign_keys:
                        root.foreign_keys.append(dataclasses.replace(foreign_key, entity_metadata=root))
                        foreign_keys.add(tuple(foreign_key.column_names))

            discriminator = root.discriminator_column
            if discriminator is not None:
                root.indices.append(
                    IndexMetadata(
                        entity_metadata=root,
                        columns=[discriminator],
                        name=self.naming.index_name(root.table_name, [discriminator.database_name]),
                    )
                )

    # ------------------------------------------------------------------
    # Pass 12: constraints
    # ------------------------------------------------------------------

    def _resolve_columns(self, metadata: EntityMetadata, kind: str, names: Sequence[str]) -> List[ColumnMetadata]:
        columns: List[ColumnMetadata] = []
        for name in names:
            column = metadata.find_column_with_property_name(name)
            if column is not None:
                columns.append(column)
                continue
            relation = metadata.find_relation_with_property_name(name)
            if relation is not None and relation.join_columns:
                columns.extend(relation.join_columns)
                continue
            raise UnknownPropertyError(kind, metadata.name, name)
        return columns

    def build_constraints(self, metadata: EntityMetadata) -> None:
        tree = self.declaration_tree(metadata)
        table_name = metadata.table_name

        for args in self.registry.filter_indices(tree):
            columns = self._resolve_columns(metadata, "Index", args.columns)
            metadata.indices.append(
                IndexMetadata(
                    entity_metadata=metadata,
                    columns=columns,
                    name=args.name or self.naming.index_name(table_name, [c.database_name for c in columns]),
                    unique=args.unique,
                )
            )

        for args in self.registry.filter_uniques(tree):
            columns = self._resolve_columns(metadata, "Unique", args.columns)
            metadata.uniques.append(
                UniqueMetadata(
                    entity_metadata=metadata,
                    columns=columns,
                    name=args.name or self.naming.unique_constraint_name(table_name, [c.database_name for c in columns]),
                )
            )
        for column in metadata.own_columns:
            if column.unique:
                metadata.uniques.append(
                    UniqueMetadata(
                        entity_metadata=metadata,
                        columns=[column],
                        name=self.naming.unique_constraint_name(table_name, [column.database_name]),
                    )
                )

        for args in self.registry.filter_checks(tree):
            metadata.checks.append(
                CheckMetadata(
                    entity_metadata=metadata,
                    expression=args.expression,
                    name=args.name or self.naming.check_constraint_name(table_name, args.expression),
                )
            )

        for args in self.registry.filter_exclusions(tree):
            metadata.exclusions.append(
                ExclusionMetadata(
                    entity_metadata=metadata,
                    expression=args.expression,
                    name=args.name or self.naming.exclusion_constraint_name(table_name, args.expression),
                )
            )

        for args in self.registry.filter_relation_counts(tree):
            relation = metadata.find_relation_with_property_name(args.relation)
            if relation is None:
                raise UnknownPropertyError("RelationCount", metadata.name, args.relation)
            metadata.relation_counts.append(
                RelationCountMetadata(entity_metadata=metadata, property_name=args.property_name, relation=relation)
            )


__all__ = [
    "BuilderOptions",
    "EntityMetadataBuilder",
    "infer_column_type",
]
