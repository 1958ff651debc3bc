# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Constants module for EntityAlchemy.

This module centralizes all enumerations, naming defaults and literal strings
used throughout the EntityAlchemy codebase. No magic values are allowed elsewhere.

:module: constants
:synopsis: Centralized constants and configuration for EntityAlchemy
:author: EntityAlchemy Contributors
"""

from __future__ import annotations

from enum import Enum, StrEnum
from typing import Dict, Final, Tuple


# ============================================================================
# CASCADE ACTIONS
# ============================================================================

class CascadeAction(Enum):
    """
    Foreign key cascade actions for referential integrity.

    :class: CascadeAction
    :synopsis: Enumeration of cascade actions for foreign key constraints
    """

    CASCADE = "CASCADE"      # Delete/update related records
    SET_NULL = "SET NULL"    # Set foreign key to NULL
    SET_DEFAULT = "SET DEFAULT"  # Set foreign key to default value
    RESTRICT = "RESTRICT"    # Prevent deletion/update if referenced
    NO_ACTION = "NO ACTION"  # Similar to RESTRICT but deferred


class CascadeConstants:
    """Names of the independently settable cascade flags."""

    INSERT: Final[str] = "insert"
    UPDATE: Final[str] = "update"
    REMOVE: Final[str] = "remove"
    ALL: Final[Tuple[str, ...]] = (INSERT, UPDATE, REMOVE)


# ============================================================================
# RELATION KINDS
# ============================================================================

class RelationType(StrEnum):
    """Kinds of associations between two entities."""

    ONE_TO_ONE = "one-to-one"
    MANY_TO_ONE = "many-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_MANY = "many-to-many"


# ============================================================================
# COLUMN DESCRIPTION
# ============================================================================

class ColumnType(StrEnum):
    """Semantic column types handed to dialect renderers."""

    # @@ STEP 1: Define textual types
    STRING = "string"
    TEXT = "text"

    # @@ STEP 2: Define numeric types
    INT = "int"
    BIGINT = "bigint"
    FLOAT = "float"
    DECIMAL = "decimal"

    # @@ STEP 3: Define boolean and temporal types
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"

    # @@ STEP 4: Define structured and identifier types
    JSON = "json"
    ENUM = "enum"
    UUID = "uuid"


class ColumnMode(StrEnum):
    """Role a column plays beyond storing a plain property value."""

    REGULAR = "regular"
    CREATE_DATE = "createDate"
    UPDATE_DATE = "updateDate"
    VERSION = "version"
    DELETE_DATE = "deleteDate"
    DISCRIMINATOR = "discriminator"
    TREE_LEVEL = "treeLevel"
    VIRTUAL = "virtual"


class GenerationStrategy(StrEnum):
    """How a column value is generated when none is supplied."""

    NONE = "none"
    INCREMENT = "increment"
    UUID = "uuid"


# Python annotations mapped to column types by the declaration front-end.
# String keys cover postponed annotations (``from __future__ import annotations``).
PYTHON_TYPE_COLUMN_TYPES: Final[Dict[str, ColumnType]] = {
    "str": ColumnType.STRING,
    "int": ColumnType.INT,
    "float": ColumnType.FLOAT,
    "bool": ColumnType.BOOLEAN,
    "Decimal": ColumnType.DECIMAL,
    "decimal.Decimal": ColumnType.DECIMAL,
    "date": ColumnType.DATE,
    "datetime.date": ColumnType.DATE,
    "time": ColumnType.TIME,
    "datetime.time": ColumnType.TIME,
    "datetime": ColumnType.DATETIME,
    "datetime.datetime": ColumnType.DATETIME,
    "dict": ColumnType.JSON,
    "list": ColumnType.JSON,
    "UUID": ColumnType.UUID,
    "uuid.UUID": ColumnType.UUID,
}


# ============================================================================
# TABLES AND INHERITANCE
# ============================================================================

class TableType(StrEnum):
    """Kinds of table declarations."""

    REGULAR = "regular"
    ABSTRACT = "abstract"
    VIEW = "view"
    SINGLE_TABLE_CHILD = "single-table-child"
    CLASS_TABLE_CHILD = "class-table-child"
    JUNCTION = "junction"
    CLOSURE = "closure"
    CLOSURE_JUNCTION = "closure-junction"


class TreeType(StrEnum):
    """Storage patterns for self-referencing hierarchies."""

    CLOSURE_TABLE = "closure-table"


class TreeRelationRole(StrEnum):
    """Role of a relation linking tree nodes of one entity."""

    PARENT = "treeParent"
    CHILDREN = "treeChildren"


class InheritancePattern(StrEnum):
    """Storage patterns for entity hierarchies."""

    SINGLE_TABLE = "single-table"
    CLASS_TABLE = "class-table"


# ============================================================================
# NAMING CONSTANTS
# ============================================================================

class NamingConstants:
    """Defaults used by naming strategies and synthesized columns."""

    # @@ STEP 1: Define synthesized column defaults
    DEFAULT_DISCRIMINATOR_COLUMN: Final[str] = "type"
    DEFAULT_DISCRIMINATOR_LENGTH: Final[int] = 255
    NAME_SEPARATOR: Final[str] = "_"
    CLOSURE_SUFFIX: Final[str] = "closure"
    ANCESTOR_SUFFIX: Final[str] = "ancestor"
    DESCENDANT_SUFFIX: Final[str] = "descendant"
    CLOSURE_LEVEL_COLUMN: Final[str] = "level"

    # @@ STEP 2: Define constraint name prefixes
    FOREIGN_KEY_PREFIX: Final[str] = "FK"
    INDEX_PREFIX: Final[str] = "IDX"
    UNIQUE_PREFIX: Final[str] = "UQ"
    CHECK_PREFIX: Final[str] = "CHK"
    EXCLUSION_PREFIX: Final[str] = "XCL"
    PRIMARY_KEY_PREFIX: Final[str] = "PK"

    # @@ STEP 3: Define hashed name length (hex digits kept after the prefix)
    CONSTRAINT_HASH_LENGTH: Final[int] = 27


# ============================================================================
# LIFECYCLE EVENTS
# ============================================================================

class EventKind(StrEnum):
    """Lifecycle events broadcast around persistence operations."""

    BEFORE_INSERT = "beforeInsert"
    AFTER_INSERT = "afterInsert"
    BEFORE_UPDATE = "beforeUpdate"
    AFTER_UPDATE = "afterUpdate"
    BEFORE_REMOVE = "beforeRemove"
    AFTER_REMOVE = "afterRemove"
    AFTER_LOAD = "afterLoad"


class SubscriberConstants:
    """Hook names looked up on subscriber objects."""

    LISTEN_TO: Final[str] = "listen_to"
    HOOKS: Final[Dict[EventKind, str]] = {
        EventKind.BEFORE_INSERT: "before_insert",
        EventKind.AFTER_INSERT: "after_insert",
        EventKind.BEFORE_UPDATE: "before_update",
        EventKind.AFTER_UPDATE: "after_update",
        EventKind.BEFORE_REMOVE: "before_remove",
        EventKind.AFTER_REMOVE: "after_remove",
        EventKind.AFTER_LOAD: "after_load",
    }


# ============================================================================
# OPERATION KINDS AND STATES
# ============================================================================

class PersistOperationKind(StrEnum):
    """Write issued for one persist operation."""

    INSERT = "insert"
    UPDATE = "update"


class JunctionOperationKind(StrEnum):
    """Write issued for one junction link."""

    INSERT = "insert"
    REMOVE = "remove"


class DependencyKind(StrEnum):
    """Direction of a foreign key between two planned writes."""

    OWNING = "owning"
    INVERSE = "inverse"


class RemoveOperationState(StrEnum):
    """Lifecycle of a single remove operation."""

    PENDING = "pending"
    QUEUED = "queued"
    EXECUTED = "executed"
    SKIPPED = "skipped"


class StatementKind(StrEnum):
    """Statements recorded by statement executors."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


# ============================================================================
# FRONT-END MARKERS
# ============================================================================

class DeclarationConstants:
    """Attribute names written on classes by the declaration front-end."""

    REGISTRY_ATTRIBUTE: Final[str] = "__entityalchemy_registry__"
    LISTENER_ATTRIBUTE: Final[str] = "__entityalchemy_listeners__"


# ============================================================================
# REGISTRY RESOLUTION
# ============================================================================

class RegistryResolutionConstants:
    """Constants for the declaration registry lifecycle and deferred target resolution."""

    # @@ STEP 1: Define resolution states
    RESOLUTION_STATE_UNRESOLVED: Final[str] = "unresolved"
    RESOLUTION_STATE_RESOLVED: Final[str] = "resolved"
    RESOLUTION_STATE_ERROR: Final[str] = "error"

    # @@ STEP 2: Define registry phases
    PHASE_REGISTRATION: Final[str] = "registration"
    PHASE_FROZEN: Final[str] = "frozen"

    # @@ STEP 3: Define target reference types
    TARGET_TYPE_STRING: Final[str] = "string"
    TARGET_TYPE_CLASS: Final[str] = "class"
    TARGET_TYPE_CALLABLE: Final[str] = "callable"

    # @@ STEP 4: Define resolution error types
    ERROR_TARGET_NOT_FOUND: Final[str] = "target_not_found"
    ERROR_INVALID_TARGET_TYPE: Final[str] = "invalid_target_type"


# ============================================================================
# ERROR MESSAGES
# ============================================================================

class ErrorMessages:
    """Error message constants."""

    # @@ STEP 1: Define declaration errors
    UNRESOLVED_TARGET: Final[str] = (
        "Cannot resolve target {target} of {entity_name}.{property_name}: "
        "no entity with this name or class is registered"
    )
    REFERENCED_COLUMN_NOT_FOUND: Final[str] = (
        "Referenced column '{column_name}' of {entity_name}.{property_name} "
        "was not found in entity {target_name}"
    )
    MISSING_OPTION: Final[str] = "Declaration of {entity_name} is missing required option '{option}'"
    JOIN_COLUMN_NAMING: Final[str] = (
        "Relation {entity_name}.{property_name} declares {count} join columns; "
        "each of them must specify both name and referenced column name"
    )
    REGISTRY_FROZEN: Final[str] = "Declaration registry is frozen; cannot add {kind} for {entity_name}"
    UNKNOWN_PROPERTY: Final[str] = "{kind} of {entity_name} references unknown property '{property_name}'"

    # @@ STEP 2: Define structural validation errors
    MISSING_PRIMARY_COLUMN: Final[str] = (
        "Entity {entity_name} does not have a primary column. "
        "Every entity must declare at least one primary column"
    )
    MISSING_DISCRIMINATOR_COLUMN: Final[str] = (
        "Entity {entity_name} uses single-table inheritance but has no discriminator column"
    )
    EMPTY_DISCRIMINATOR_VALUE: Final[str] = (
        "Entity {entity_name} uses single-table inheritance but has an empty discriminator value"
    )
    DUPLICATE_DISCRIMINATOR_VALUE: Final[str] = (
        "Discriminator value '{value}' of {entity_name} is already used by {other_name}"
    )
    RELATION_COUNT_NOT_ALLOWED: Final[str] = (
        "Relation count {entity_name}.{property_name} can only be applied on one-to-many "
        "or many-to-many relations, got {relation_type}"
    )
    INVERSE_SIDE_NOT_FOUND: Final[str] = (
        "Inverse side '{inverse_property}' of {entity_name}.{property_name} "
        "was not found in entity {target_name}"
    )
    JOIN_TABLE_NOT_ALLOWED: Final[str] = (
        "Join table on {entity_name}.{property_name} is only allowed on many-to-many relations"
    )
    JOIN_TABLE_ON_BOTH_SIDES: Final[str] = (
        "Join table is declared on both sides of {entity_name}.{property_name}; "
        "only the owning side may declare it"
    )
    JOIN_COLUMN_NOT_ALLOWED: Final[str] = (
        "Join column on {entity_name}.{property_name} is only allowed on one-to-one "
        "and many-to-one relations"
    )
    JOIN_COLUMN_ON_BOTH_SIDES: Final[str] = (
        "Join column is declared on both sides of one-to-one relation {entity_name}.{property_name}; "
        "only the owning side may declare it"
    )
    INVALID_JOIN_COLUMN: Final[str] = (
        "Join column '{column_name}' of {entity_name}.{property_name} "
        "does not reference an existing column of {target_name}"
    )
    MISSING_JOIN_COLUMN: Final[str] = (
        "One-to-one relation {entity_name}.{property_name} has no join column on either side; "
        "declare it on the owning side"
    )
    MISSING_JOIN_TABLE: Final[str] = (
        "Many-to-many relation {entity_name}.{property_name} has no join table on either side; "
        "declare it on the owning side"
    )
    MISSING_INVERSE_SIDE: Final[str] = (
        "One-to-many relation {entity_name}.{property_name} requires a many-to-one inverse side"
    )
    DOUBLE_CASCADE_REMOVE: Final[str] = (
        "Relation {entity_name}.{property_name} and its inverse {target_name}.{inverse_property} "
        "both cascade removal; keep it on one side only"
    )
    CIRCULAR_RELATIONS: Final[str] = (
        "Circular non-nullable relations detected: {path}. Mark one of these relations nullable"
    )
    MISSING_TREE_PARENT: Final[str] = (
        "Closure table entity {entity_name} must declare a tree parent relation"
    )

    # @@ STEP 3: Define planning errors
    AMBIGUOUS_PERSIST: Final[str] = (
        "Cannot determine insert-or-update without identifier and insert not permitted: "
        "{entity_name}.{property_name}"
    )
    MISSING_FOREIGN_KEY: Final[str] = (
        "Non-nullable foreign key of {entity_name}.{property_name} has no resolvable source"
    )
    CASCADES_NOT_ALLOWED: Final[str] = (
        "Relation {entity_name}.{property_name} holds a new {target_name} instance "
        "but does not allow cascade {kind}"
    )
    CIRCULAR_PERSIST: Final[str] = (
        "Cannot order writes: non-nullable foreign keys form a cycle through {path}"
    )
    MISSING_IDENTIFIER: Final[str] = "Cannot {action} {entity_name}: instance has no identifier"
    MISSING_DELETE_DATE_COLUMN: Final[str] = "Cannot {action} {entity_name}: entity has no delete date column"
    CANNOT_ATTACH_TREE_CHILD: Final[str] = (
        "Cannot attach new {entity_name} through {property_name}: its tree parent has no identifier"
    )
    NO_METADATA: Final[str] = "No entity metadata found for {target}"

    # @@ STEP 4: Define executor errors
    DUPLICATE_ROW: Final[str] = "Row with key {key} already exists in table {table_name}"

    # @@ STEP 5: Define metadata state errors
    METADATA_FROZEN: Final[str] = "Entity metadata {entity_name} is frozen; cannot set '{attribute}'"


# ============================================================================
# EXPORT ALL CONSTANTS
# ============================================================================

__all__ = [
    "CascadeAction",
    "CascadeConstants",
    "RelationType",
    "ColumnType",
    "ColumnMode",
    "GenerationStrategy",
    "PYTHON_TYPE_COLUMN_TYPES",
    "TableType",
    "InheritancePattern",
    "TreeType",
    "TreeRelationRole",
    "NamingConstants",
    "EventKind",
    "SubscriberConstants",
    "PersistOperationKind",
    "JunctionOperationKind",
    "DependencyKind",
    "RemoveOperationState",
    "StatementKind",
    "DeclarationConstants",
    "RegistryResolutionConstants",
    "ErrorMessages",
]
