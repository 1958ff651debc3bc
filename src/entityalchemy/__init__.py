# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
EntityAlchemy: entity metadata resolution and cascade persistence planning.
"""

from __future__ import annotations

from .broadcaster import Broadcaster, EntityEvent
from .constants import (
    CascadeAction,
    ColumnMode,
    ColumnType,
    EventKind,
    GenerationStrategy,
    InheritancePattern,
    RelationType,
    TableType,
    TreeType,
)
from .declarations import (
    CascadeOptions,
    ColumnOptions,
    DeclarationRegistry,
    RelationOptions,
    clear_registry,
    get_default_registry,
)
from .decorators import (
    Column,
    CreateDateColumn,
    DeleteDateColumn,
    JoinColumn,
    JoinTable,
    ManyToMany,
    ManyToOne,
    OneToMany,
    OneToOne,
    PrimaryColumn,
    PrimaryGeneratedColumn,
    RelationCount,
    TreeChildren,
    TreeLevelColumn,
    TreeParent,
    UpdateDateColumn,
    VersionColumn,
    abstract_entity,
    after_insert,
    after_load,
    after_remove,
    after_update,
    before_insert,
    before_remove,
    before_update,
    check,
    child_entity,
    discriminator_value,
    entity,
    exclusion,
    index,
    listener,
    table_inheritance,
    tree_entity,
    unique,
    view_entity,
)
from .entity_metadata import NOT_LOADED, EntityMetadata, EntityMetadataGraph
from .entity_session import EntitySession, SessionFactory, build_metadata_graph
from .errors import (
    AmbiguousPersistError,
    CannotAttachTreeChildError,
    CascadesNotAllowedError,
    CircularPersistError,
    CircularRelationsError,
    DeclarationError,
    EntityAlchemyError,
    MetadataValidationError,
    MissingDeleteDateColumnError,
    MissingForeignKeyError,
    MissingTreeParentError,
    NoMetadataError,
    PersistencePlanningError,
)
from .executor import InMemoryStatementExecutor, Statement, StatementExecutor
from .metadata_builder import BuilderOptions, EntityMetadataBuilder
from .metadata_validator import EntityMetadataValidator
from .naming import DefaultNamingStrategy, NamingStrategy, SnakeCaseNamingStrategy
from .persistence import PersistencePlanner, PersistPlan, PersistPlanExecutor
from .removal import RemovalPlan, RemovalPlanner

__version__ = "0.1.0"

__all__ = [
    "Broadcaster",
    "EntityEvent",
    "CascadeAction",
    "ColumnMode",
    "ColumnType",
    "EventKind",
    "GenerationStrategy",
    "InheritancePattern",
    "RelationType",
    "TableType",
    "TreeType",
    "CascadeOptions",
    "ColumnOptions",
    "DeclarationRegistry",
    "RelationOptions",
    "clear_registry",
    "get_default_registry",
    "Column",
    "CreateDateColumn",
    "DeleteDateColumn",
    "JoinColumn",
    "JoinTable",
    "ManyToMany",
    "ManyToOne",
    "OneToMany",
    "OneToOne",
    "PrimaryColumn",
    "PrimaryGeneratedColumn",
    "RelationCount",
    "TreeChildren",
    "TreeLevelColumn",
    "TreeParent",
    "UpdateDateColumn",
    "VersionColumn",
    "abstract_entity",
    "after_insert",
    "after_load",
    "after_remove",
    "after_update",
    "before_insert",
    "before_remove",
    "before_update",
    "check",
    "child_entity",
    "discriminator_value",
    "entity",
    "exclusion",
    "index",
    "listener",
    "table_inheritance",
    "tree_entity",
    "unique",
    "view_entity",
    "NOT_LOADED",
    "EntityMetadata",
    "EntityMetadataGraph",
    "EntitySession",
    "SessionFactory",
    "build_metadata_graph",
    "AmbiguousPersistError",
    "CannotAttachTreeChildError",
    "CascadesNotAllowedError",
    "CircularPersistError",
    "CircularRelationsError",
    "DeclarationError",
    "EntityAlchemyError",
    "MetadataValidationError",
    "MissingDeleteDateColumnError",
    "MissingForeignKeyError",
    "MissingTreeParentError",
    "NoMetadataError",
    "PersistencePlanningError",
    "InMemoryStatementExecutor",
    "Statement",
    "StatementExecutor",
    "BuilderOptions",
    "EntityMetadataBuilder",
    "EntityMetadataValidator",
    "DefaultNamingStrategy",
    "NamingStrategy",
    "SnakeCaseNamingStrategy",
    "PersistencePlanner",
    "PersistPlan",
    "PersistPlanExecutor",
    "RemovalPlan",
    "RemovalPlanner",
    "__version__",
]
