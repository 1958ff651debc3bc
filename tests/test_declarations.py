# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the declaration registry and its option models.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from entityalchemy.constants import GenerationStrategy, InheritancePattern, RelationType, TableType
from entityalchemy.declarations import (
    CascadeOptions,
    ColumnOptions,
    DeclarationRegistry,
    clear_registry,
    get_default_registry,
    get_inheritance_tree,
    target_name,
)
from entityalchemy.errors import DeclarationError, MissingOptionError, RegistryFrozenError


class TestCascadeOptions:
    """Coercion of the cascade option bag."""

    def test_true_enables_every_flag(self):
        options = CascadeOptions.model_validate(True)
        assert options.insert and options.update and options.remove

    def test_false_and_none_enable_nothing(self):
        for value in (False, None):
            options = CascadeOptions.model_validate(value)
            assert not (options.insert or options.update or options.remove)

    def test_flag_names_enable_listed_flags(self):
        options = CascadeOptions.model_validate(["insert", "remove"])
        assert options.insert is True
        assert options.update is False
        assert options.remove is True

    def test_single_flag_name(self):
        assert CascadeOptions.model_validate("update").update is True

    def test_unknown_flag_rejected(self):
        with pytest.raises(ValidationError):
            CascadeOptions.model_validate(["insert", "merge"])

    def test_options_are_frozen(self):
        options = CascadeOptions(insert=True)
        with pytest.raises(ValidationError):
            options.insert = False


class TestColumnOptions:
    def test_generated_true_means_increment(self):
        assert ColumnOptions(generated=True).generated == GenerationStrategy.INCREMENT

    def test_generated_none_means_not_generated(self):
        assert ColumnOptions(generated=None).generated == GenerationStrategy.NONE

    def test_defaults(self):
        options = ColumnOptions()
        assert options.nullable is False
        assert options.primary is False
        assert options.type is None


class TestDeclarationRegistry:
    """Registration order, lookup and the frozen phase."""

    def test_declarations_keep_registration_order(self, registry: DeclarationRegistry):
        registry.add_table(target="Post")
        registry.add_column(target="Post", property_name="id", options=ColumnOptions(primary=True))
        registry.add_column(target="Post", property_name="title")
        registry.add_column(target="Other", property_name="x")

        columns = registry.filter_columns(["Post"])
        assert [c.property_name for c in columns] == ["id", "title"]

    def test_filter_tables_without_targets_returns_all(self, registry: DeclarationRegistry):
        registry.add_table(target="A")
        registry.add_table(target="B")
        assert [t.target for t in registry.filter_tables()] == ["A", "B"]
        assert [t.target for t in registry.filter_tables(["B"])] == ["B"]

    def test_find_table_returns_latest(self, registry: DeclarationRegistry):
        registry.add_table(target="A", name="first")
        registry.add_table(target="A", name="second")
        assert registry.find_table("A").name == "second"
        assert registry.find_table("missing") is None

    def test_freeze_rejects_additions(self, registry: DeclarationRegistry):
        registry.add_table(target="A")
        registry.freeze()

        assert registry.is_frozen
        with pytest.raises(RegistryFrozenError) as exc_info:
            registry.add_column(target="A", property_name="id")
        assert isinstance(exc_info.value, DeclarationError)
        assert isinstance(exc_info.value, ValueError)

    def test_clear_returns_to_registration(self, registry: DeclarationRegistry):
        registry.add_table(target="A")
        registry.freeze()
        registry.clear()

        assert not registry.is_frozen
        assert registry.tables == []
        registry.add_table(target="B")
        assert len(registry.tables) == 1

    def test_check_without_expression_rejected(self, registry: DeclarationRegistry):
        with pytest.raises(MissingOptionError):
            registry.add_check(target="A")
        with pytest.raises(MissingOptionError):
            registry.add_exclusion(target="A", expression="")
        assert registry.checks == []

    def test_index_requires_columns(self, registry: DeclarationRegistry):
        with pytest.raises(ValidationError):
            registry.add_index(target="A", columns=())

    def test_find_inheritance_walks_ancestors(self, registry: DeclarationRegistry):
        class Root:
            pass

        class Middle(Root):
            pass

        class Leaf(Middle):
            pass

        registry.add_inheritance(target=Root, pattern=InheritancePattern.CLASS_TABLE)
        found = registry.find_inheritance(Leaf)
        assert found is not None
        assert found.target is Root
        assert registry.find_inheritance("Leaf") is None

    def test_relation_args_accept_string_targets(self, registry: DeclarationRegistry):
        args = registry.add_relation(
            target="Post",
            property_name="author",
            relation_type=RelationType.MANY_TO_ONE,
            type="User",
            options={"cascade": True},
        )
        assert args.options.cascade.insert is True
        assert args.target_name == "Post"

    def test_table_type_coerced_from_value(self, registry: DeclarationRegistry):
        args = registry.add_table(target="V", type="view")
        assert args.type == TableType.VIEW


class TestHelpers:
    def test_inheritance_tree_follows_mro(self):
        class Base:
            pass

        class Child(Base):
            pass

        assert get_inheritance_tree(Child) == [Child, Base]
        assert get_inheritance_tree("Child") == ["Child"]

    def test_target_name(self):
        class Named:
            pass

        assert target_name(Named) == "Named"
        assert target_name("Post") == "Post"

    def test_default_registry_cleared(self):
        get_default_registry().add_table(target="A")
        clear_registry()
        assert get_default_registry().tables == []
