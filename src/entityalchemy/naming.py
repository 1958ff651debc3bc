# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Naming strategies: deterministic mappings from logical names to database names.

Strategies are pure; the builder asks them for every table, column, junction and
constraint name it synthesizes, so swapping a strategy changes generated names
without touching the builder.
"""

from __future__ import annotations

import hashlib
import re
from typing import Optional, Protocol, Sequence, runtime_checkable

from .constants import NamingConstants

_CAMEL_BOUNDARY = re.compile(r"((?<=[a-z0-9])[A-Z]|(?!^)[A-Z](?=[a-z]))")
_SEPARATORS = re.compile(r"[\s_\-]+")


def snake_case(value: str) -> str:
    """``PostDetails`` -> ``post_details``."""
    return _CAMEL_BOUNDARY.sub(r"_\1", value).lower()


def camel_case(value: str) -> str:
    """``post_id`` -> ``postId``; already camel-cased parts keep their inner capitals."""
    parts = [part for part in _SEPARATORS.split(value) if part]
    if not parts:
        return ""
    head = parts[0][0].lower() + parts[0][1:]
    return head + "".join(part[0].upper() + part[1:] for part in parts[1:])


def _hashed(prefix: str, table_name: str, column_names: Sequence[str]) -> str:
    key = f"{table_name}{NamingConstants.NAME_SEPARATOR}{NamingConstants.NAME_SEPARATOR.join(column_names)}"
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
    return f"{prefix}{NamingConstants.NAME_SEPARATOR}{digest[:NamingConstants.CONSTRAINT_HASH_LENGTH]}"


@runtime_checkable
class NamingStrategy(Protocol):
    """Interface every naming strategy implements."""

    def table_name(self, target_name: str, user_specified_name: Optional[str]) -> str: ...

    def column_name(self, property_name: str, user_specified_name: Optional[str]) -> str: ...

    def relation_name(self, property_name: str) -> str: ...

    def join_column_name(self, relation_name: str, referenced_column_name: str) -> str: ...

    def join_table_name(
        self,
        first_table_name: str,
        second_table_name: str,
        first_property_name: str,
        second_property_name: Optional[str],
    ) -> str: ...

    def join_table_column_name(
        self, table_name: str, property_name: str, column_name: Optional[str] = None
    ) -> str: ...

    def join_table_column_duplication_prefix(self, column_name: str, index: int) -> str: ...

    def closure_junction_table_name(self, original_closure_table_name: str) -> str: ...

    def closure_junction_column_name(self, column_name: str, suffix: str) -> str: ...

    def foreign_key_name(self, table_name: str, column_names: Sequence[str]) -> str: ...

    def index_name(self, table_name: str, column_names: Sequence[str]) -> str: ...

    def unique_constraint_name(self, table_name: str, column_names: Sequence[str]) -> str: ...

    def check_constraint_name(self, table_name: str, expression: str) -> str: ...

    def exclusion_constraint_name(self, table_name: str, expression: str) -> str: ...

    def primary_key_name(self, table_name: str, column_names: Sequence[str]) -> str: ...

    def prefix_table_name(self, prefix: str, table_name: str) -> str: ...


class DefaultNamingStrategy:
    """
    Default naming: snake_case tables, camelCase join columns, hashed constraint names.

    :class: DefaultNamingStrategy
    :synopsis: Deterministic naming strategy used when none is injected
    """

    def table_name(self, target_name: str, user_specified_name: Optional[str]) -> str:
        return user_specified_name if user_specified_name else snake_case(target_name)

    def column_name(self, property_name: str, user_specified_name: Optional[str]) -> str:
        return user_specified_name if user_specified_name else property_name

    def relation_name(self, property_name: str) -> str:
        return property_name

    def join_column_name(self, relation_name: str, referenced_column_name: str) -> str:
        return camel_case(f"{relation_name}_{referenced_column_name}")

    def join_table_name(
        self,
        first_table_name: str,
        second_table_name: str,
        first_property_name: str,
        second_property_name: Optional[str],
    ) -> str:
        return snake_case(
            f"{first_table_name}_{first_property_name.replace('.', '_')}_{second_table_name}"
        )

    def join_table_column_name(
        self, table_name: str, property_name: str, column_name: Optional[str] = None
    ) -> str:
        return camel_case(f"{table_name}_{column_name if column_name else property_name}")

    def join_table_column_duplication_prefix(self, column_name: str, index: int) -> str:
        return f"{column_name}{NamingConstants.NAME_SEPARATOR}{index}"

    def closure_junction_table_name(self, original_closure_table_name: str) -> str:
        return f"{original_closure_table_name}{NamingConstants.NAME_SEPARATOR}{NamingConstants.CLOSURE_SUFFIX}"

    def closure_junction_column_name(self, column_name: str, suffix: str) -> str:
        return f"{column_name}{NamingConstants.NAME_SEPARATOR}{suffix}"

    def foreign_key_name(self, table_name: str, column_names: Sequence[str]) -> str:
        return _hashed(NamingConstants.FOREIGN_KEY_PREFIX, table_name, column_names)

    def index_name(self, table_name: str, column_names: Sequence[str]) -> str:
        return _hashed(NamingConstants.INDEX_PREFIX, table_name, column_names)

    def unique_constraint_name(self, table_name: str, column_names: Sequence[str]) -> str:
        return _hashed(NamingConstants.UNIQUE_PREFIX, table_name, column_names)

    def check_constraint_name(self, table_name: str, expression: str) -> str:
        return _hashed(NamingConstants.CHECK_PREFIX, table_name, [expression])

    def exclusion_constraint_name(self, table_name: str, expression: str) -> str:
        return _hashed(NamingConstants.EXCLUSION_PREFIX, table_name, [expression])

    def primary_key_name(self, table_name: str, column_names: Sequence[str]) -> str:
        return _hashed(NamingConstants.PRIMARY_KEY_PREFIX, table_name, column_names)

    def prefix_table_name(self, prefix: str, table_name: str) -> str:
        return f"{prefix}{table_name}"


class SnakeCaseNamingStrategy(DefaultNamingStrategy):
    """Snake-cased join and junction column names (``details_id``, ``post_id``)."""

    def join_column_name(self, relation_name: str, referenced_column_name: str) -> str:
        return snake_case(f"{relation_name}_{referenced_column_name}")

    def join_table_column_name(
        self, table_name: str, property_name: str, column_name: Optional[str] = None
    ) -> str:
        return snake_case(f"{table_name}_{column_name if column_name else property_name}")


__all__ = [
    "NamingStrategy",
    "DefaultNamingStrategy",
    "SnakeCaseNamingStrategy",
    "snake_case",
    "camel_case",
]
