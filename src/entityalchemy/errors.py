# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for EntityAlchemy.

Declaration and structural validation errors halt startup; planning errors are
raised per ``save``/``remove`` call. Every error carries the offending entity
name and property name so the fault is locatable without re-deriving metadata.

:module: errors
:synopsis: Declaration, validation and planning errors
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from .constants import ErrorMessages


class EntityAlchemyError(Exception):
    """
    Base class of every error raised by EntityAlchemy.

    :class: EntityAlchemyError
    :synopsis: Root of the error taxonomy
    """

    def __init__(
        self,
        message: str,
        *,
        entity_name: Optional[str] = None,
        property_name: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.entity_name = entity_name
        self.property_name = property_name


# -----------------------------------------------------------------------------
# Declaration errors
# -----------------------------------------------------------------------------

class DeclarationError(EntityAlchemyError, ValueError):
    """Raised while registering or resolving raw declarations."""


class UnresolvedTargetError(DeclarationError):
    """A relation or parent reference names an entity that is not registered."""

    def __init__(self, entity_name: str, property_name: str, target: Any) -> None:
        super().__init__(
            ErrorMessages.UNRESOLVED_TARGET.format(
                target=target, entity_name=entity_name, property_name=property_name
            ),
            entity_name=entity_name,
            property_name=property_name,
        )
        self.target = target


class ReferencedColumnNotFoundError(DeclarationError):
    """A join column references a column missing from the target entity."""

    def __init__(self, entity_name: str, property_name: str, column_name: str, target_name: str) -> None:
        super().__init__(
            ErrorMessages.REFERENCED_COLUMN_NOT_FOUND.format(
                column_name=column_name,
                entity_name=entity_name,
                property_name=property_name,
                target_name=target_name,
            ),
            entity_name=entity_name,
            property_name=property_name,
        )
        self.column_name = column_name


class MissingOptionError(DeclarationError):
    """A declaration lacks an option it cannot work without."""

    def __init__(self, entity_name: str, option: str) -> None:
        super().__init__(
            ErrorMessages.MISSING_OPTION.format(entity_name=entity_name, option=option),
            entity_name=entity_name,
            property_name=option,
        )


class JoinColumnNamingError(DeclarationError):
    """Multiple join columns on one relation without explicit names."""

    def __init__(self, entity_name: str, property_name: str, count: int) -> None:
        super().__init__(
            ErrorMessages.JOIN_COLUMN_NAMING.format(
                entity_name=entity_name, property_name=property_name, count=count
            ),
            entity_name=entity_name,
            property_name=property_name,
        )


class RegistryFrozenError(DeclarationError):
    """A declaration was added after the registry was handed to a builder."""

    def __init__(self, kind: str, entity_name: str) -> None:
        super().__init__(
            ErrorMessages.REGISTRY_FROZEN.format(kind=kind, entity_name=entity_name),
            entity_name=entity_name,
        )


class UnknownPropertyError(DeclarationError):
    """An index, constraint or relation count names a property the entity lacks."""

    def __init__(self, kind: str, entity_name: str, property_name: str) -> None:
        super().__init__(
            ErrorMessages.UNKNOWN_PROPERTY.format(
                kind=kind, entity_name=entity_name, property_name=property_name
            ),
            entity_name=entity_name,
            property_name=property_name,
        )


# -----------------------------------------------------------------------------
# Structural validation errors
# -----------------------------------------------------------------------------

class MetadataValidationError(EntityAlchemyError, ValueError):
    """Raised by the metadata validator for a structurally invalid graph."""


class MissingPrimaryColumnError(MetadataValidationError):
    def __init__(self, entity_name: str) -> None:
        super().__init__(
            ErrorMessages.MISSING_PRIMARY_COLUMN.format(entity_name=entity_name),
            entity_name=entity_name,
        )


class DiscriminatorError(MetadataValidationError):
    """Single-table inheritance discriminator misconfiguration."""


class RelationCountNotAllowedError(MetadataValidationError):
    def __init__(self, entity_name: str, property_name: str, relation_type: str) -> None:
        super().__init__(
            ErrorMessages.RELATION_COUNT_NOT_ALLOWED.format(
                entity_name=entity_name, property_name=property_name, relation_type=relation_type
            ),
            entity_name=entity_name,
            property_name=property_name,
        )


class InverseSideNotFoundError(MetadataValidationError):
    def __init__(self, entity_name: str, property_name: str, inverse_property: str, target_name: str) -> None:
        super().__init__(
            ErrorMessages.INVERSE_SIDE_NOT_FOUND.format(
                inverse_property=inverse_property,
                entity_name=entity_name,
                property_name=property_name,
                target_name=target_name,
            ),
            entity_name=entity_name,
            property_name=property_name,
        )


class JoinTableNotAllowedError(MetadataValidationError):
    """Join table on a non many-to-many relation, or on both sides of one."""


class JoinColumnNotAllowedError(MetadataValidationError):
    """Join column on a to-many relation, or on both sides of a one-to-one."""


class InvalidJoinColumnError(MetadataValidationError):
    def __init__(self, entity_name: str, property_name: str, column_name: str, target_name: str) -> None:
        super().__init__(
            ErrorMessages.INVALID_JOIN_COLUMN.format(
                column_name=column_name,
                entity_name=entity_name,
                property_name=property_name,
                target_name=target_name,
            ),
            entity_name=entity_name,
            property_name=property_name,
        )


class MissingJoinColumnError(MetadataValidationError):
    def __init__(self, entity_name: str, property_name: str) -> None:
        super().__init__(
            ErrorMessages.MISSING_JOIN_COLUMN.format(entity_name=entity_name, property_name=property_name),
            entity_name=entity_name,
            property_name=property_name,
        )


class MissingJoinTableError(MetadataValidationError):
    def __init__(self, entity_name: str, property_name: str) -> None:
        super().__init__(
            ErrorMessages.MISSING_JOIN_TABLE.format(entity_name=entity_name, property_name=property_name),
            entity_name=entity_name,
            property_name=property_name,
        )


class MissingInverseSideError(MetadataValidationError):
    def __init__(self, entity_name: str, property_name: str) -> None:
        super().__init__(
            ErrorMessages.MISSING_INVERSE_SIDE.format(entity_name=entity_name, property_name=property_name),
            entity_name=entity_name,
            property_name=property_name,
        )


class DoubleCascadeRemoveError(MetadataValidationError):
    def __init__(self, entity_name: str, property_name: str, target_name: str, inverse_property: str) -> None:
        super().__init__(
            ErrorMessages.DOUBLE_CASCADE_REMOVE.format(
                entity_name=entity_name,
                property_name=property_name,
                target_name=target_name,
                inverse_property=inverse_property,
            ),
            entity_name=entity_name,
            property_name=property_name,
        )


class CircularRelationsError(MetadataValidationError):
    """Non-nullable owning relations form a cycle."""

    def __init__(self, path: Sequence[str], property_name: Optional[str] = None) -> None:
        cycle = list(path) + [path[0]] if path else []
        super().__init__(
            ErrorMessages.CIRCULAR_RELATIONS.format(path=" -> ".join(cycle)),
            entity_name=path[0] if path else None,
            property_name=property_name,
        )
        self.path = list(path)


class MissingTreeParentError(MetadataValidationError):
    def __init__(self, entity_name: str) -> None:
        super().__init__(ErrorMessages.MISSING_TREE_PARENT.format(entity_name=entity_name), entity_name=entity_name)


# -----------------------------------------------------------------------------
# Planning errors
# -----------------------------------------------------------------------------

class PersistencePlanningError(EntityAlchemyError, RuntimeError):
    """Raised while planning one save or remove invocation."""


class AmbiguousPersistError(PersistencePlanningError):
    def __init__(self, entity_name: str, property_name: str) -> None:
        super().__init__(
            ErrorMessages.AMBIGUOUS_PERSIST.format(entity_name=entity_name, property_name=property_name),
            entity_name=entity_name,
            property_name=property_name,
        )


class MissingForeignKeyError(PersistencePlanningError):
    def __init__(self, entity_name: str, property_name: str) -> None:
        super().__init__(
            ErrorMessages.MISSING_FOREIGN_KEY.format(entity_name=entity_name, property_name=property_name),
            entity_name=entity_name,
            property_name=property_name,
        )


class CascadesNotAllowedError(PersistencePlanningError):
    def __init__(self, entity_name: str, property_name: str, target_name: str, kind: str) -> None:
        super().__init__(
            ErrorMessages.CASCADES_NOT_ALLOWED.format(
                entity_name=entity_name, property_name=property_name, target_name=target_name, kind=kind
            ),
            entity_name=entity_name,
            property_name=property_name,
        )


class CircularPersistError(PersistencePlanningError):
    def __init__(self, path: Sequence[str], property_name: Optional[str] = None) -> None:
        super().__init__(
            ErrorMessages.CIRCULAR_PERSIST.format(path=" -> ".join(path)),
            entity_name=path[0] if path else None,
            property_name=property_name,
        )
        self.path = list(path)


class MissingIdentifierError(PersistencePlanningError):
    def __init__(self, entity_name: str, action: str) -> None:
        super().__init__(
            ErrorMessages.MISSING_IDENTIFIER.format(entity_name=entity_name, action=action),
            entity_name=entity_name,
        )


class MissingDeleteDateColumnError(PersistencePlanningError):
    def __init__(self, entity_name: str, action: str) -> None:
        super().__init__(
            ErrorMessages.MISSING_DELETE_DATE_COLUMN.format(entity_name=entity_name, action=action),
            entity_name=entity_name,
        )


class CannotAttachTreeChildError(PersistencePlanningError):
    """Raised when a new tree node hangs under a parent that has no identifier."""

    def __init__(self, entity_name: str, property_name: str) -> None:
        super().__init__(
            ErrorMessages.CANNOT_ATTACH_TREE_CHILD.format(entity_name=entity_name, property_name=property_name),
            entity_name=entity_name,
            property_name=property_name,
        )


class NoMetadataError(EntityAlchemyError, LookupError):
    def __init__(self, target: Any) -> None:
        name = getattr(target, "__name__", target)
        super().__init__(ErrorMessages.NO_METADATA.format(target=name), entity_name=str(name))


# -----------------------------------------------------------------------------
# Executor errors
# -----------------------------------------------------------------------------

class DuplicateRowError(EntityAlchemyError, RuntimeError):
    """Raised by the in-memory executor when a primary key is inserted twice."""

    def __init__(self, table_name: str, key: Any) -> None:
        super().__init__(
            ErrorMessages.DUPLICATE_ROW.format(table_name=table_name, key=key),
            entity_name=table_name,
        )


__all__ = [
    "EntityAlchemyError",
    "DeclarationError",
    "UnresolvedTargetError",
    "ReferencedColumnNotFoundError",
    "MissingOptionError",
    "JoinColumnNamingError",
    "RegistryFrozenError",
    "UnknownPropertyError",
    "MetadataValidationError",
    "MissingPrimaryColumnError",
    "DiscriminatorError",
    "RelationCountNotAllowedError",
    "InverseSideNotFoundError",
    "JoinTableNotAllowedError",
    "JoinColumnNotAllowedError",
    "InvalidJoinColumnError",
    "MissingJoinColumnError",
    "MissingJoinTableError",
    "MissingInverseSideError",
    "DoubleCascadeRemoveError",
    "CircularRelationsError",
    "MissingTreeParentError",
    "PersistencePlanningError",
    "AmbiguousPersistError",
    "MissingForeignKeyError",
    "CascadesNotAllowedError",
    "CircularPersistError",
    "MissingIdentifierError",
    "MissingDeleteDateColumnError",
    "CannotAttachTreeChildError",
    "NoMetadataError",
    "DuplicateRowError",
]
