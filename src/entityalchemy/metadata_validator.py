# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Structural validation of built entity metadata.

Checks run in a fixed priority order; each check is applied to every entity
before the next one starts, and the first violation is raised.

:module: metadata_validator
:synopsis: Fail-fast structural checks over the metadata graph
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Sequence

from .constants import ErrorMessages
from .dependency_graph import build_adjacency, find_cycle, stable_topological_order
from .entity_metadata import EntityMetadata
from .errors import (
    CircularRelationsError,
    DiscriminatorError,
    DoubleCascadeRemoveError,
    InvalidJoinColumnError,
    InverseSideNotFoundError,
    JoinColumnNotAllowedError,
    JoinTableNotAllowedError,
    MissingInverseSideError,
    MissingJoinColumnError,
    MissingJoinTableError,
    MissingPrimaryColumnError,
    MissingTreeParentError,
    RelationCountNotAllowedError,
)

logger = logging.getLogger(__name__)

Check = Callable[[EntityMetadata, Sequence[EntityMetadata]], None]


class EntityMetadataValidator:
    """
    Validates entity metadata produced by the builder.

    :class: EntityMetadataValidator
    :synopsis: Structural invariants of the metadata graph
    """

    def __init__(self) -> None:
        self._checks: List[Check] = [
            self.check_primary_columns,
            self.check_tree_parent,
            self.check_discriminator,
            self.check_relation_counts,
            self.check_inverse_sides,
            self.check_join_tables,
            self.check_join_columns,
            self.check_join_column_references,
            self.check_one_to_one_ownership,
            self.check_many_to_many_ownership,
            self.check_one_to_many_inverse,
            self.check_double_cascade_remove,
        ]

    def validate_many(self, metadatas: Sequence[EntityMetadata]) -> None:
        """Validate every entity, then the dependency graph between them."""
        metadatas = list(metadatas)
        for check in self._checks:
            for metadata in metadatas:
                check(metadata, metadatas)
        self.check_dependency_cycles(metadatas)
        logger.debug(f"Validated {len(metadatas)} entity metadatas")

    def validate(self, metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        """Run the per-entity checks for one entity."""
        for check in self._checks:
            check(metadata, all_metadatas)

    # ------------------------------------------------------------------
    # Entity checks
    # ------------------------------------------------------------------

    @staticmethod
    def check_primary_columns(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        if metadata.is_junction or metadata.is_class_table_child or metadata.is_view:
            return
        if not metadata.primary_columns:
            raise MissingPrimaryColumnError(metadata.name)

    @staticmethod
    def check_tree_parent(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        if metadata.is_closure and metadata.tree_parent_relation is None:
            raise MissingTreeParentError(metadata.name)

    @staticmethod
    def check_discriminator(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        if not metadata.is_single_table_participant:
            return
        if metadata.discriminator_column is None:
            raise DiscriminatorError(
                ErrorMessages.MISSING_DISCRIMINATOR_COLUMN.format(entity_name=metadata.name),
                entity_name=metadata.name,
            )
        if metadata.discriminator_value is None or metadata.discriminator_value == "":
            raise DiscriminatorError(
                ErrorMessages.EMPTY_DISCRIMINATOR_VALUE.format(entity_name=metadata.name),
                entity_name=metadata.name,
                property_name=metadata.discriminator_column.property_name,
            )

        # || S.1: Values are unique among participants sharing the table
        for other in all_metadatas:
            if (
                other is not metadata
                and other.is_single_table_participant
                and other.table_name == metadata.table_name
                and other.discriminator_value == metadata.discriminator_value
            ):
                raise DiscriminatorError(
                    ErrorMessages.DUPLICATE_DISCRIMINATOR_VALUE.format(
                        value=metadata.discriminator_value, entity_name=metadata.name, other_name=other.name
                    ),
                    entity_name=metadata.name,
                    property_name=metadata.discriminator_column.property_name,
                )

    @staticmethod
    def check_relation_counts(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        for relation_count in metadata.relation_counts:
            relation = relation_count.relation
            if not relation.is_to_many:
                raise RelationCountNotAllowedError(
                    metadata.name, relation_count.property_name, str(relation.relation_type)
                )

    @staticmethod
    def check_inverse_sides(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        for relation in metadata.own_relations:
            if relation.inverse_side_property and relation.inverse_relation is None:
                raise InverseSideNotFoundError(
                    metadata.name,
                    relation.property_name,
                    relation.inverse_side_property,
                    relation.inverse_entity_metadata.name,
                )

    @staticmethod
    def check_join_tables(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        for relation in metadata.own_relations:
            if not relation.has_join_table_declaration:
                continue
            if not relation.is_many_to_many:
                raise JoinTableNotAllowedError(
                    ErrorMessages.JOIN_TABLE_NOT_ALLOWED.format(
                        entity_name=metadata.name, property_name=relation.property_name
                    ),
                    entity_name=metadata.name,
                    property_name=relation.property_name,
                )
            inverse = relation.inverse_relation
            if inverse is not None and inverse is not relation and inverse.has_join_table_declaration:
                raise JoinTableNotAllowedError(
                    ErrorMessages.JOIN_TABLE_ON_BOTH_SIDES.format(
                        entity_name=metadata.name, property_name=relation.property_name
                    ),
                    entity_name=metadata.name,
                    property_name=relation.property_name,
                )

    @staticmethod
    def check_join_columns(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        for relation in metadata.own_relations:
            if not relation.has_join_column_declaration:
                continue
            if relation.is_to_many:
                raise JoinColumnNotAllowedError(
                    ErrorMessages.JOIN_COLUMN_NOT_ALLOWED.format(
                        entity_name=metadata.name, property_name=relation.property_name
                    ),
                    entity_name=metadata.name,
                    property_name=relation.property_name,
                )
            inverse = relation.inverse_relation
            if (
                relation.is_one_to_one
                and inverse is not None
                and inverse is not relation
                and inverse.has_join_column_declaration
            ):
                raise JoinColumnNotAllowedError(
                    ErrorMessages.JOIN_COLUMN_ON_BOTH_SIDES.format(
                        entity_name=metadata.name, property_name=relation.property_name
                    ),
                    entity_name=metadata.name,
                    property_name=relation.property_name,
                )

    @staticmethod
    def check_join_column_references(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        for relation in metadata.own_relations:
            if not relation.is_with_join_columns:
                continue
            target = relation.inverse_entity_metadata
            if not relation.join_columns:
                raise InvalidJoinColumnError(metadata.name, relation.property_name, relation.property_name, target.name)
            target_columns = {id(column) for column in target.columns}
            for column in relation.join_columns:
                referenced = column.referenced_column
                if referenced is None or id(referenced) not in target_columns:
                    raise InvalidJoinColumnError(
                        metadata.name, relation.property_name, column.database_name, target.name
                    )

    @staticmethod
    def check_one_to_one_ownership(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        for relation in metadata.own_relations:
            if not relation.is_one_to_one or relation.has_join_column_declaration:
                continue
            inverse = relation.inverse_relation
            if inverse is None or not inverse.has_join_column_declaration:
                raise MissingJoinColumnError(metadata.name, relation.property_name)

    @staticmethod
    def check_many_to_many_ownership(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        for relation in metadata.own_relations:
            if not relation.is_many_to_many or relation.has_join_table_declaration:
                continue
            inverse = relation.inverse_relation
            if inverse is None or not inverse.has_join_table_declaration:
                raise MissingJoinTableError(metadata.name, relation.property_name)

    @staticmethod
    def check_one_to_many_inverse(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        for relation in metadata.own_relations:
            if not relation.is_one_to_many:
                continue
            inverse = relation.inverse_relation
            if inverse is None or not inverse.is_many_to_one:
                raise MissingInverseSideError(metadata.name, relation.property_name)

    @staticmethod
    def check_double_cascade_remove(metadata: EntityMetadata, all_metadatas: Sequence[EntityMetadata]) -> None:
        for relation in metadata.own_relations:
            inverse = relation.inverse_relation
            if (
                relation.is_cascade_remove
                and inverse is not None
                and inverse is not relation
                and inverse.is_cascade_remove
            ):
                raise DoubleCascadeRemoveError(
                    metadata.name,
                    relation.property_name,
                    relation.inverse_entity_metadata.name,
                    inverse.property_name,
                )

    # ------------------------------------------------------------------
    # Graph checks
    # ------------------------------------------------------------------

    @staticmethod
    def check_dependency_cycles(metadatas: Sequence[EntityMetadata]) -> None:
        """
        Non-nullable owning relations must not form a cycle.

        An edge ``A -> B`` exists for every non-nullable relation of ``A`` whose
        join columns reference ``B``. Self references are excluded since they
        resolve through deferred foreign keys.
        """
        entities = [metadata for metadata in metadatas if not metadata.is_junction]
        index: Dict[int, int] = {id(metadata): position for position, metadata in enumerate(entities)}
        edges = []
        edge_properties: Dict[tuple, str] = {}
        for metadata in entities:
            for relation in metadata.own_relations:
                if not relation.is_with_join_columns or relation.nullable:
                    continue
                target = index.get(id(relation.inverse_entity_metadata))
                source = index[id(metadata)]
                if target is None or target == source:
                    continue
                edges.append((source, target))
                edge_properties.setdefault((source, target), relation.property_name)

        adjacency = build_adjacency(len(entities), edges)
        _, residue = stable_topological_order(adjacency)
        if not residue:
            return

        cycle = find_cycle(adjacency, residue) or residue
        path = [entities[i].name for i in cycle]
        first_edge = (cycle[0], cycle[1 % len(cycle)])
        raise CircularRelationsError(path, edge_properties.get(first_edge))


__all__ = ["EntityMetadataValidator"]
