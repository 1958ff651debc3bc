# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Declaration registry: the ordered, append-only input of the metadata builder.

Declarations are pydantic argument models. A registry accumulates them during
process initialization and is frozen when handed to a builder; building never
mutates declarations, so one registry can be built any number of times.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import (
    CascadeAction,
    CascadeConstants,
    ColumnMode,
    ColumnType,
    EventKind,
    GenerationStrategy,
    InheritancePattern,
    RegistryResolutionConstants,
    RelationType,
    TableType,
    TreeRelationRole,
)
from .errors import MissingOptionError, RegistryFrozenError

logger = logging.getLogger(__name__)

ArgsType = TypeVar("ArgsType", bound="TargetArgs")


def target_name(target: Any) -> str:
    """Entity name of a declaration target (class or string)."""
    if isinstance(target, str):
        return target
    return getattr(target, "__name__", str(target))


def get_inheritance_tree(target: Any) -> List[Any]:
    """
    Targets whose declarations apply to ``target``, most derived first.

    Class targets follow their MRO (``object`` excluded); string targets have no
    language-level ancestors.
    """
    if isinstance(target, type):
        return [cls for cls in target.__mro__ if cls is not object]
    return [target]


# -----------------------------------------------------------------------------
# Option bags
# -----------------------------------------------------------------------------

class CascadeOptions(BaseModel):
    """
    Independently settable cascade flags.

    Accepts ``True`` (all flags), ``False``/``None`` (no flags), a flag name or
    a collection of flag names in place of a mapping.
    """

    model_config = ConfigDict(frozen=True)

    insert: bool = False
    update: bool = False
    remove: bool = False

    @model_validator(mode="before")
    @classmethod
    def _coerce_flags(cls, data: Any) -> Any:
        if data is None or data is False:
            return {}
        if data is True:
            return {flag: True for flag in CascadeConstants.ALL}
        if isinstance(data, str):
            data = [data]
        if isinstance(data, (list, tuple, set, frozenset)):
            unknown = sorted(set(data) - set(CascadeConstants.ALL))
            if unknown:
                raise ValueError(f"Unknown cascade flags: {unknown}")
            return {flag: True for flag in data}
        return data


class ColumnOptions(BaseModel):
    """Column option bag."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: Optional[ColumnType] = None
    name: Optional[str] = None
    nullable: bool = False
    primary: bool = False
    generated: GenerationStrategy = GenerationStrategy.NONE
    default: Any = None
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    unique: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    mode: ColumnMode = ColumnMode.REGULAR

    @field_validator("generated", mode="before")
    @classmethod
    def _coerce_generated(cls, value: Any) -> Any:
        if value is True:
            return GenerationStrategy.INCREMENT
        if value is None or value is False:
            return GenerationStrategy.NONE
        return value


class RelationOptions(BaseModel):
    """Relation option bag."""

    model_config = ConfigDict(frozen=True)

    cascade: CascadeOptions = Field(default_factory=CascadeOptions)
    nullable: bool = True
    on_delete: Optional[CascadeAction] = None
    primary: bool = False
    tree_role: Optional[TreeRelationRole] = None


class JoinColumnSpec(BaseModel):
    """Name and referenced column of one join column."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    referenced_column_name: Optional[str] = None


class JoinTableSpec(BaseModel):
    """Junction table options of an owning many-to-many relation."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    join_columns: Tuple[JoinColumnSpec, ...] = ()
    inverse_join_columns: Tuple[JoinColumnSpec, ...] = ()


# -----------------------------------------------------------------------------
# Declaration arguments
# -----------------------------------------------------------------------------

class TargetArgs(BaseModel):
    """Base of every declaration: the class or entity name it applies to."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    target: Any

    @property
    def target_name(self) -> str:
        return target_name(self.target)


class TableArgs(TargetArgs):
    name: Optional[str] = None
    type: TableType = TableType.REGULAR
    parent: Any = None


class ColumnArgs(TargetArgs):
    property_name: str
    options: ColumnOptions = Field(default_factory=ColumnOptions)


class RelationArgs(TargetArgs):
    property_name: str
    relation_type: RelationType
    type: Any
    inverse_side_property: Optional[str] = None
    options: RelationOptions = Field(default_factory=RelationOptions)


class JoinColumnArgs(JoinColumnSpec, TargetArgs):
    property_name: str


class JoinTableArgs(JoinTableSpec, TargetArgs):
    property_name: str


class IndexArgs(TargetArgs):
    columns: Tuple[str, ...] = Field(min_length=1)
    name: Optional[str] = None
    unique: bool = False


class UniqueArgs(TargetArgs):
    columns: Tuple[str, ...] = Field(min_length=1)
    name: Optional[str] = None


class CheckArgs(TargetArgs):
    expression: Optional[str] = None
    name: Optional[str] = None


class ExclusionArgs(TargetArgs):
    expression: Optional[str] = None
    name: Optional[str] = None


class InheritanceArgs(TargetArgs):
    pattern: InheritancePattern
    column: Optional[ColumnOptions] = None


class DiscriminatorValueArgs(TargetArgs):
    value: Any


class ListenerArgs(TargetArgs):
    property_name: str
    event: EventKind


class RelationCountArgs(TargetArgs):
    property_name: str
    relation: str


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

class DeclarationRegistry:
    """
    Ordered, append-only collection of raw declarations.

    The registry goes through two phases:

    1. Registration Phase: ``add_*`` calls append declarations in order
    2. Frozen Phase: the registry was handed to a builder and rejects additions

    :class: DeclarationRegistry
    :synopsis: Input surface of the metadata builder
    """

    def __init__(self) -> None:
        self._phase: str = RegistryResolutionConstants.PHASE_REGISTRATION
        self.tables: List[TableArgs] = []
        self.columns: List[ColumnArgs] = []
        self.relations: List[RelationArgs] = []
        self.join_columns: List[JoinColumnArgs] = []
        self.join_tables: List[JoinTableArgs] = []
        self.indices: List[IndexArgs] = []
        self.uniques: List[UniqueArgs] = []
        self.checks: List[CheckArgs] = []
        self.exclusions: List[ExclusionArgs] = []
        self.inheritances: List[InheritanceArgs] = []
        self.discriminator_values: List[DiscriminatorValueArgs] = []
        self.listeners: List[ListenerArgs] = []
        self.relation_counts: List[RelationCountArgs] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def phase(self) -> str:
        return self._phase

    @property
    def is_frozen(self) -> bool:
        return self._phase == RegistryResolutionConstants.PHASE_FROZEN

    def freeze(self) -> None:
        """Hand the registry off to a builder; later additions are rejected."""
        if not self.is_frozen:
            logger.debug(f"Freezing declaration registry with {len(self.tables)} tables")
        self._phase = RegistryResolutionConstants.PHASE_FROZEN

    def clear(self) -> None:
        """Drop every declaration and return to the registration phase."""
        self.__init__()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _append(
        self,
        bucket: List[Any],
        model: Type[ArgsType],
        args: Optional[ArgsType],
        kwargs: Dict[str, Any],
    ) -> ArgsType:
        # @@ STEP 1: Accept either a ready-made args model or its fields
        declaration = args if args is not None else model(**kwargs)

        # @@ STEP 2: Enforce the append-only lifecycle
        if self.is_frozen:
            raise RegistryFrozenError(model.__name__, declaration.target_name)

        bucket.append(declaration)
        return declaration

    def add_table(self, args: Optional[TableArgs] = None, **kwargs: Any) -> TableArgs:
        return self._append(self.tables, TableArgs, args, kwargs)

    def add_column(self, args: Optional[ColumnArgs] = None, **kwargs: Any) -> ColumnArgs:
        return self._append(self.columns, ColumnArgs, args, kwargs)

    def add_relation(self, args: Optional[RelationArgs] = None, **kwargs: Any) -> RelationArgs:
        return self._append(self.relations, RelationArgs, args, kwargs)

    def add_join_column(self, args: Optional[JoinColumnArgs] = None, **kwargs: Any) -> JoinColumnArgs:
        return self._append(self.join_columns, JoinColumnArgs, args, kwargs)

    def add_join_table(self, args: Optional[JoinTableArgs] = None, **kwargs: Any) -> JoinTableArgs:
        return self._append(self.join_tables, JoinTableArgs, args, kwargs)

    def add_index(self, args: Optional[IndexArgs] = None, **kwargs: Any) -> IndexArgs:
        return self._append(self.indices, IndexArgs, args, kwargs)

    def add_unique(self, args: Optional[UniqueArgs] = None, **kwargs: Any) -> UniqueArgs:
        return self._append(self.uniques, UniqueArgs, args, kwargs)

    def add_check(self, args: Optional[CheckArgs] = None, **kwargs: Any) -> CheckArgs:
        declaration = args if args is not None else CheckArgs(**kwargs)
        if not declaration.expression:
            raise MissingOptionError(declaration.target_name, "expression")
        return self._append(self.checks, CheckArgs, declaration, {})

    def add_exclusion(self, args: Optional[ExclusionArgs] = None, **kwargs: Any) -> ExclusionArgs:
        declaration = args if args is not None else ExclusionArgs(**kwargs)
        if not declaration.expression:
            raise MissingOptionError(declaration.target_name, "expression")
        return self._append(self.exclusions, ExclusionArgs, declaration, {})

    def add_inheritance(self, args: Optional[InheritanceArgs] = None, **kwargs: Any) -> InheritanceArgs:
        return self._append(self.inheritances, InheritanceArgs, args, kwargs)

    def add_discriminator_value(
        self, args: Optional[DiscriminatorValueArgs] = None, **kwargs: Any
    ) -> DiscriminatorValueArgs:
        return self._append(self.discriminator_values, DiscriminatorValueArgs, args, kwargs)

    def add_listener(self, args: Optional[ListenerArgs] = None, **kwargs: Any) -> ListenerArgs:
        return self._append(self.listeners, ListenerArgs, args, kwargs)

    def add_relation_count(self, args: Optional[RelationCountArgs] = None, **kwargs: Any) -> RelationCountArgs:
        return self._append(self.relation_counts, RelationCountArgs, args, kwargs)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @staticmethod
    def _filter(items: Sequence[ArgsType], targets: Iterable[Any]) -> List[ArgsType]:
        wanted = list(targets)
        return [item for item in items if any(item.target is t or item.target == t for t in wanted)]

    def filter_tables(self, targets: Optional[Iterable[Any]] = None) -> List[TableArgs]:
        if targets is None:
            return list(self.tables)
        return self._filter(self.tables, targets)

    def filter_columns(self, targets: Iterable[Any]) -> List[ColumnArgs]:
        return self._filter(self.columns, targets)

    def filter_relations(self, targets: Iterable[Any]) -> List[RelationArgs]:
        return self._filter(self.relations, targets)

    def filter_join_columns(self, targets: Iterable[Any]) -> List[JoinColumnArgs]:
        return self._filter(self.join_columns, targets)

    def filter_join_tables(self, targets: Iterable[Any]) -> List[JoinTableArgs]:
        return self._filter(self.join_tables, targets)

    def filter_indices(self, targets: Iterable[Any]) -> List[IndexArgs]:
        return self._filter(self.indices, targets)

    def filter_uniques(self, targets: Iterable[Any]) -> List[UniqueArgs]:
        return self._filter(self.uniques, targets)

    def filter_checks(self, targets: Iterable[Any]) -> List[CheckArgs]:
        return self._filter(self.checks, targets)

    def filter_exclusions(self, targets: Iterable[Any]) -> List[ExclusionArgs]:
        return self._filter(self.exclusions, targets)

    def filter_listeners(self, targets: Iterable[Any]) -> List[ListenerArgs]:
        return self._filter(self.listeners, targets)

    def filter_relation_counts(self, targets: Iterable[Any]) -> List[RelationCountArgs]:
        return self._filter(self.relation_counts, targets)

    def find_table(self, target: Any) -> Optional[TableArgs]:
        found = self._filter(self.tables, [target])
        return found[-1] if found else None

    def find_inheritance(self, target: Any) -> Optional[InheritanceArgs]:
        """Inheritance declared on ``target`` or the closest ancestor that declares one."""
        for candidate in get_inheritance_tree(target):
            found = self._filter(self.inheritances, [candidate])
            if found:
                return found[-1]
        return None

    def find_discriminator_value(self, target: Any) -> Optional[DiscriminatorValueArgs]:
        found = self._filter(self.discriminator_values, [target])
        return found[-1] if found else None

    def __repr__(self) -> str:
        return f"<DeclarationRegistry(phase={self._phase}, tables={len(self.tables)})>"


# -----------------------------------------------------------------------------
# Default registry
# -----------------------------------------------------------------------------

_default_registry = DeclarationRegistry()


def get_default_registry() -> DeclarationRegistry:
    """Registry used by the declaration front-end when none is passed."""
    return _default_registry


def clear_registry() -> None:
    """Clear the default registry (tests, interactive sessions)."""
    _default_registry.clear()


__all__ = [
    "CascadeOptions",
    "ColumnOptions",
    "RelationOptions",
    "JoinColumnSpec",
    "JoinTableSpec",
    "TargetArgs",
    "TableArgs",
    "ColumnArgs",
    "RelationArgs",
    "JoinColumnArgs",
    "JoinTableArgs",
    "IndexArgs",
    "UniqueArgs",
    "CheckArgs",
    "ExclusionArgs",
    "InheritanceArgs",
    "DiscriminatorValueArgs",
    "ListenerArgs",
    "RelationCountArgs",
    "DeclarationRegistry",
    "get_default_registry",
    "clear_registry",
    "get_inheritance_tree",
    "target_name",
]
