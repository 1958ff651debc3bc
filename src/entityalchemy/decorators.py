# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Declaration front-end.

Entity classes are plain Python classes. Columns and relations are declared as
class attributes holding markers; the class decorators move those markers into
a declaration registry (in definition order) and delete them from the class, so
an instance that never set a property reports it as not loaded.

Example::

    @entity()
    class Post:
        id = PrimaryGeneratedColumn()
        title = Column(str)
        categories = ManyToMany("Category", "posts", join_table=True, cascade=["insert"])

:module: decorators
:synopsis: Class decorators and attribute markers feeding the declaration registry
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, TypeVar, Union

from .constants import (
    PYTHON_TYPE_COLUMN_TYPES,
    ColumnMode,
    ColumnType,
    DeclarationConstants,
    EventKind,
    GenerationStrategy,
    InheritancePattern,
    RelationType,
    TableType,
    TreeRelationRole,
    TreeType,
)
from .declarations import (
    ColumnOptions,
    DeclarationRegistry,
    JoinColumnSpec,
    JoinTableSpec,
    RelationOptions,
    get_default_registry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

JoinColumnOption = Union[bool, Dict[str, Any], JoinColumnSpec, Sequence[Union[Dict[str, Any], JoinColumnSpec]], None]
JoinTableOption = Union[bool, Dict[str, Any], JoinTableSpec, None]


# -----------------------------------------------------------------------------
# Attribute markers
# -----------------------------------------------------------------------------

class ColumnMarker:
    """Class attribute standing for one column until the class is decorated."""

    def __init__(self, options: ColumnOptions) -> None:
        self.options = options

    def __repr__(self) -> str:
        return f"<ColumnMarker({self.options.type}, mode={self.options.mode})>"


class RelationMarker:
    """Class attribute standing for one relation until the class is decorated."""

    def __init__(
        self,
        relation_type: RelationType,
        type: Any,
        inverse_side: Optional[str],
        options: RelationOptions,
        join_columns: List[JoinColumnSpec],
        join_table: Optional[JoinTableSpec],
    ) -> None:
        self.relation_type = relation_type
        self.type = type
        self.inverse_side = inverse_side
        self.options = options
        self.join_columns = join_columns
        self.join_table = join_table

    def __repr__(self) -> str:
        return f"<RelationMarker({self.relation_type})>"


class RelationCountMarker:
    def __init__(self, relation: str) -> None:
        self.relation = relation


def _column_type(type: Any) -> Optional[ColumnType]:
    if type is None or isinstance(type, ColumnType):
        return type
    if isinstance(type, str):
        try:
            return ColumnType(type)
        except ValueError:
            return PYTHON_TYPE_COLUMN_TYPES.get(type)
    return PYTHON_TYPE_COLUMN_TYPES.get(getattr(type, "__name__", ""))


def Column(type: Any = None, **options: Any) -> Any:
    """
    Regular column.

    ``type`` is a ``ColumnType``, its value, or a Python type (``str``, ``int``,
    ``datetime``...). When omitted it is inferred from the class annotation.
    """
    return ColumnMarker(ColumnOptions(type=_column_type(type), **options))


def PrimaryColumn(type: Any = None, **options: Any) -> Any:
    return Column(type, primary=True, **options)


def PrimaryGeneratedColumn(strategy: Union[str, GenerationStrategy] = GenerationStrategy.INCREMENT, **options: Any) -> Any:
    return Column(options.pop("type", None), primary=True, generated=GenerationStrategy(strategy), **options)


def CreateDateColumn(**options: Any) -> Any:
    return Column(options.pop("type", None), mode=ColumnMode.CREATE_DATE, **options)


def UpdateDateColumn(**options: Any) -> Any:
    return Column(options.pop("type", None), mode=ColumnMode.UPDATE_DATE, **options)


def VersionColumn(**options: Any) -> Any:
    return Column(options.pop("type", None), mode=ColumnMode.VERSION, **options)


def DeleteDateColumn(**options: Any) -> Any:
    """Nullable timestamp set by soft removal and cleared by recovery."""
    options.setdefault("nullable", True)
    return Column(options.pop("type", None), mode=ColumnMode.DELETE_DATE, **options)


def TreeLevelColumn(**options: Any) -> Any:
    """Depth of a closure-table node, written on insert (roots are level 0)."""
    options.setdefault("nullable", True)
    return Column(options.pop("type", None), mode=ColumnMode.TREE_LEVEL, **options)


# -----------------------------------------------------------------------------
# Relations
# -----------------------------------------------------------------------------

def JoinColumn(name: Optional[str] = None, referenced_column_name: Optional[str] = None) -> JoinColumnSpec:
    return JoinColumnSpec(name=name, referenced_column_name=referenced_column_name)


def JoinTable(
    name: Optional[str] = None,
    join_columns: Sequence[Union[Dict[str, Any], JoinColumnSpec]] = (),
    inverse_join_columns: Sequence[Union[Dict[str, Any], JoinColumnSpec]] = (),
) -> JoinTableSpec:
    return JoinTableSpec(
        name=name, join_columns=tuple(join_columns), inverse_join_columns=tuple(inverse_join_columns)
    )


def _join_columns(option: JoinColumnOption) -> List[JoinColumnSpec]:
    if option is None or option is False:
        return []
    if option is True:
        return [JoinColumnSpec()]
    if isinstance(option, (dict, JoinColumnSpec)):
        option = [option]
    return [spec if isinstance(spec, JoinColumnSpec) else JoinColumnSpec(**spec) for spec in option]


def _join_table(option: JoinTableOption) -> Optional[JoinTableSpec]:
    if option is None or option is False:
        return None
    if option is True:
        return JoinTableSpec()
    if isinstance(option, JoinTableSpec):
        return option
    return JoinTableSpec(**option)


def _relation(
    relation_type: RelationType,
    type: Any,
    inverse_side: Optional[str],
    join_column: JoinColumnOption = None,
    join_table: JoinTableOption = None,
    **options: Any,
) -> Any:
    return RelationMarker(
        relation_type=relation_type,
        type=type,
        inverse_side=inverse_side,
        options=RelationOptions(**options),
        join_columns=_join_columns(join_column),
        join_table=_join_table(join_table),
    )


def OneToOne(type: Any, inverse_side: Optional[str] = None, *, join_column: JoinColumnOption = None, **options: Any) -> Any:
    """One-to-one relation; the side passing ``join_column`` owns the foreign key."""
    return _relation(RelationType.ONE_TO_ONE, type, inverse_side, join_column=join_column, **options)


def ManyToOne(type: Any, inverse_side: Optional[str] = None, *, join_column: JoinColumnOption = None, **options: Any) -> Any:
    return _relation(RelationType.MANY_TO_ONE, type, inverse_side, join_column=join_column, **options)


def OneToMany(type: Any, inverse_side: str, **options: Any) -> Any:
    return _relation(RelationType.ONE_TO_MANY, type, inverse_side, **options)


def ManyToMany(type: Any, inverse_side: Optional[str] = None, *, join_table: JoinTableOption = None, **options: Any) -> Any:
    """Many-to-many relation; the side passing ``join_table`` owns the junction table."""
    return _relation(RelationType.MANY_TO_MANY, type, inverse_side, join_table=join_table, **options)


def TreeParent(*, join_column: JoinColumnOption = None, **options: Any) -> Any:
    """
    Many-to-one link from a tree node to its parent node of the same entity.

    Pairs with the ``TreeChildren`` relation of the class when one is declared.
    """
    return _relation(
        RelationType.MANY_TO_ONE, None, None, join_column=join_column, tree_role=TreeRelationRole.PARENT, **options
    )


def TreeChildren(**options: Any) -> Any:
    return _relation(RelationType.ONE_TO_MANY, None, None, tree_role=TreeRelationRole.CHILDREN, **options)


def RelationCount(relation: str) -> Any:
    """Count of the rows linked through the to-many relation ``relation``."""
    return RelationCountMarker(relation)


# -----------------------------------------------------------------------------
# Listener methods
# -----------------------------------------------------------------------------

def listener(event: Union[str, EventKind]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark a method to be called for ``event`` on instances of the decorated entity."""
    kind = EventKind(event)

    def decorator(method: Callable[..., Any]) -> Callable[..., Any]:
        events = list(getattr(method, DeclarationConstants.LISTENER_ATTRIBUTE, ()))
        events.append(kind)
        setattr(method, DeclarationConstants.LISTENER_ATTRIBUTE, tuple(events))
        return method

    return decorator


before_insert = listener(EventKind.BEFORE_INSERT)
after_insert = listener(EventKind.AFTER_INSERT)
before_update = listener(EventKind.BEFORE_UPDATE)
after_update = listener(EventKind.AFTER_UPDATE)
before_remove = listener(EventKind.BEFORE_REMOVE)
after_remove = listener(EventKind.AFTER_REMOVE)
after_load = listener(EventKind.AFTER_LOAD)


# -----------------------------------------------------------------------------
# Class decorators
# -----------------------------------------------------------------------------

def _resolve_registry(cls: Type[Any], registry: Optional[DeclarationRegistry]) -> DeclarationRegistry:
    if registry is not None:
        return registry
    declared = getattr(cls, DeclarationConstants.REGISTRY_ATTRIBUTE, None)
    if isinstance(declared, DeclarationRegistry):
        return declared
    return get_default_registry()


def _annotations(cls: Type[Any]) -> Dict[str, Any]:
    try:
        return inspect.get_annotations(cls)
    except NameError as exc:
        logger.debug(f"Column types of {cls.__name__} are not inferred from annotations: {exc}")
        return {}


def _annotation_type(annotations: Dict[str, Any], name: str) -> Optional[ColumnType]:
    annotation = annotations.get(name)
    if annotation is None:
        return None
    if isinstance(annotation, str):
        # || S.1: Postponed annotations: strip Optional[...] and look the name up
        text = annotation.strip()
        if text.startswith("Optional[") and text.endswith("]"):
            text = text[len("Optional["):-1]
        text = text.split("|")[0].strip()
        return PYTHON_TYPE_COLUMN_TYPES.get(text)
    return _column_type(annotation)


def _register_members(registry: DeclarationRegistry, cls: Type[Any]) -> None:
    """Move markers and listener methods declared in ``cls``'s body into ``registry``."""
    annotations = _annotations(cls)
    tree_names = {
        value.options.tree_role: name
        for name, value in vars(cls).items()
        if isinstance(value, RelationMarker) and value.options.tree_role is not None
    }
    for name, value in list(vars(cls).items()):
        if isinstance(value, ColumnMarker):
            options = value.options
            if options.type is None:
                inferred = _annotation_type(annotations, name)
                if inferred is not None:
                    options = options.model_copy(update={"type": inferred})
            registry.add_column(target=cls, property_name=name, options=options)
            delattr(cls, name)

        elif isinstance(value, RelationMarker):
            type, inverse_side = value.type, value.inverse_side
            role = value.options.tree_role
            if role is not None:
                # || S.1: Tree relations target the decorated class and pair with each other
                type = cls if type is None else type
                if inverse_side is None:
                    other = TreeRelationRole.CHILDREN if role == TreeRelationRole.PARENT else TreeRelationRole.PARENT
                    inverse_side = tree_names.get(other)
            registry.add_relation(
                target=cls,
                property_name=name,
                relation_type=value.relation_type,
                type=type,
                inverse_side_property=inverse_side,
                options=value.options,
            )
            for spec in value.join_columns:
                registry.add_join_column(
                    target=cls,
                    property_name=name,
                    name=spec.name,
                    referenced_column_name=spec.referenced_column_name,
                )
            if value.join_table is not None:
                registry.add_join_table(
                    target=cls,
                    property_name=name,
                    name=value.join_table.name,
                    join_columns=value.join_table.join_columns,
                    inverse_join_columns=value.join_table.inverse_join_columns,
                )
            delattr(cls, name)

        elif isinstance(value, RelationCountMarker):
            registry.add_relation_count(target=cls, property_name=name, relation=value.relation)
            delattr(cls, name)

        else:
            for event in getattr(value, DeclarationConstants.LISTENER_ATTRIBUTE, ()):
                registry.add_listener(target=cls, property_name=name, event=event)


def _table_decorator(
    table_type: TableType,
    name: Optional[str],
    registry: Optional[DeclarationRegistry],
    parent: Any = None,
    discriminator: Any = None,
) -> Callable[[Type[T]], Type[T]]:
    def decorator(cls: Type[T]) -> Type[T]:
        target_registry = _resolve_registry(cls, registry)
        kind = table_type
        if kind == TableType.SINGLE_TABLE_CHILD:
            declaration = target_registry.find_inheritance(cls)
            if declaration is not None and declaration.pattern == InheritancePattern.CLASS_TABLE:
                kind = TableType.CLASS_TABLE_CHILD

        target_registry.add_table(target=cls, name=name, type=kind, parent=parent)
        if discriminator is not None:
            target_registry.add_discriminator_value(target=cls, value=discriminator)
        _register_members(target_registry, cls)
        logger.debug(f"Declared {kind} table for {cls.__name__}")
        return cls

    return decorator


def entity(
    name: Optional[str] = None,
    *,
    registry: Optional[DeclarationRegistry] = None,
    type: Union[str, TableType] = TableType.REGULAR,
) -> Callable[[Type[T]], Type[T]]:
    """Decorator to mark a class as a mapped entity stored in table ``name``."""
    return _table_decorator(TableType(type), name, registry)


def tree_entity(
    tree_type: Union[str, TreeType] = TreeType.CLOSURE_TABLE,
    name: Optional[str] = None,
    *,
    registry: Optional[DeclarationRegistry] = None,
) -> Callable[[Type[T]], Type[T]]:
    """
    Decorator for an entity stored as a tree.

    Only ``"closure-table"`` trees are supported: every ancestor and descendant
    pair is kept in a companion ``<table>_closure`` table maintained on insert.
    """
    TreeType(tree_type)
    return _table_decorator(TableType.CLOSURE, name, registry)


def view_entity(name: Optional[str] = None, *, registry: Optional[DeclarationRegistry] = None) -> Callable[[Type[T]], Type[T]]:
    return _table_decorator(TableType.VIEW, name, registry)


def abstract_entity(*, registry: Optional[DeclarationRegistry] = None) -> Callable[[Type[T]], Type[T]]:
    """Decorator for a base class whose columns and relations are inherited but never stored on their own."""
    return _table_decorator(TableType.ABSTRACT, None, registry)


def child_entity(
    discriminator: Any = None,
    *,
    parent: Any = None,
    registry: Optional[DeclarationRegistry] = None,
) -> Callable[[Type[T]], Type[T]]:
    """
    Decorator for a child of an inheritance hierarchy.

    The child shares its root's table under single-table inheritance, or gets
    its own table keyed by the parent's primary key under class-table
    inheritance, following the ``table_inheritance`` declared on an ancestor.
    """
    return _table_decorator(TableType.SINGLE_TABLE_CHILD, None, registry, parent=parent, discriminator=discriminator)


def table_inheritance(
    pattern: Union[str, InheritancePattern] = InheritancePattern.SINGLE_TABLE,
    column: Optional[Union[Dict[str, Any], ColumnOptions]] = None,
    *,
    registry: Optional[DeclarationRegistry] = None,
) -> Callable[[Type[T]], Type[T]]:
    """Declare the inheritance pattern of a hierarchy root (and its discriminator column)."""

    def decorator(cls: Type[T]) -> Type[T]:
        options = column if column is None or isinstance(column, ColumnOptions) else ColumnOptions(**column)
        _resolve_registry(cls, registry).add_inheritance(
            target=cls, pattern=InheritancePattern(pattern), column=options
        )
        return cls

    return decorator


def discriminator_value(value: Any, *, registry: Optional[DeclarationRegistry] = None) -> Callable[[Type[T]], Type[T]]:
    def decorator(cls: Type[T]) -> Type[T]:
        _resolve_registry(cls, registry).add_discriminator_value(target=cls, value=value)
        return cls

    return decorator


def index(
    *columns: str,
    name: Optional[str] = None,
    unique: bool = False,
    registry: Optional[DeclarationRegistry] = None,
) -> Callable[[Type[T]], Type[T]]:
    def decorator(cls: Type[T]) -> Type[T]:
        _resolve_registry(cls, registry).add_index(target=cls, columns=columns, name=name, unique=unique)
        return cls

    return decorator


def unique(
    *columns: str, name: Optional[str] = None, registry: Optional[DeclarationRegistry] = None
) -> Callable[[Type[T]], Type[T]]:
    def decorator(cls: Type[T]) -> Type[T]:
        _resolve_registry(cls, registry).add_unique(target=cls, columns=columns, name=name)
        return cls

    return decorator


def check(
    expression: str, *, name: Optional[str] = None, registry: Optional[DeclarationRegistry] = None
) -> Callable[[Type[T]], Type[T]]:
    def decorator(cls: Type[T]) -> Type[T]:
        _resolve_registry(cls, registry).add_check(target=cls, expression=expression, name=name)
        return cls

    return decorator


def exclusion(
    expression: str, *, name: Optional[str] = None, registry: Optional[DeclarationRegistry] = None
) -> Callable[[Type[T]], Type[T]]:
    def decorator(cls: Type[T]) -> Type[T]:
        _resolve_registry(cls, registry).add_exclusion(target=cls, expression=expression, name=name)
        return cls

    return decorator


__all__ = [
    "ColumnMarker",
    "RelationMarker",
    "RelationCountMarker",
    "Column",
    "PrimaryColumn",
    "PrimaryGeneratedColumn",
    "CreateDateColumn",
    "UpdateDateColumn",
    "VersionColumn",
    "DeleteDateColumn",
    "TreeLevelColumn",
    "JoinColumn",
    "JoinTable",
    "OneToOne",
    "ManyToOne",
    "OneToMany",
    "ManyToMany",
    "RelationCount",
    "TreeParent",
    "TreeChildren",
    "listener",
    "before_insert",
    "after_insert",
    "before_update",
    "after_update",
    "before_remove",
    "after_remove",
    "after_load",
    "entity",
    "view_entity",
    "tree_entity",
    "abstract_entity",
    "child_entity",
    "table_inheritance",
    "discriminator_value",
    "index",
    "unique",
    "check",
    "exclusion",
]
