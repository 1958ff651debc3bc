# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for closure-table trees: the closure junction built next to a tree
entity and the ancestor/descendant rows written and removed with its nodes.
"""

from __future__ import annotations

from typing import List

import pytest

from entityalchemy import (
    CannotAttachTreeChildError,
    Column,
    EntitySession,
    MissingTreeParentError,
    PrimaryGeneratedColumn,
    TreeChildren,
    TreeLevelColumn,
    TreeParent,
    build_metadata_graph,
    tree_entity,
)
from entityalchemy.constants import ColumnType, StatementKind, TableType

from . import Model, statement_trace


def declare_category(**parent_options):
    @tree_entity("closure-table")
    class Category(Model):
        id = PrimaryGeneratedColumn()
        name = Column(str)
        level = TreeLevelColumn()
        parent = TreeParent(**parent_options)
        children = TreeChildren(cascade=True)

    return Category


def closure_pairs(session: EntitySession) -> List[tuple]:
    return [
        (row["id_ancestor"], row["id_descendant"], row["level"])
        for row in session.executor.rows("category_closure")
    ]


class TestClosureMetadata:
    def test_closure_junction_built(self):
        Category = declare_category()
        graph = build_metadata_graph()

        metadata = graph.get_metadata(Category)
        closure = metadata.closure_junction_entity_metadata
        assert metadata.is_closure
        assert closure.is_closure_junction
        assert closure.table_type == TableType.CLOSURE_JUNCTION
        assert closure.table_name == "category_closure"
        assert [c.database_name for c in closure.own_columns] == ["id_ancestor", "id_descendant", "level"]
        assert [c.database_name for c in closure.own_primary_columns] == ["id_ancestor", "id_descendant"]
        assert closure.own_columns[2].type == ColumnType.INT
        assert [fk.referenced_entity_metadata for fk in closure.foreign_keys] == [metadata, metadata]
        assert graph.get_metadata("category_closure") is closure

    def test_tree_relations_pair_with_each_other(self):
        Category = declare_category()
        metadata = build_metadata_graph().get_metadata(Category)

        parent, children = metadata.tree_parent_relation, metadata.tree_children_relation
        assert parent.inverse_entity_metadata is metadata
        assert parent.inverse_relation is children
        assert children.inverse_relation is parent
        assert parent.is_tree_parent and children.is_tree_children
        assert [c.database_name for c in parent.join_columns] == ["parentId"]

    def test_level_column_only_with_tree_level(self):
        @tree_entity()
        class Folder(Model):
            id = PrimaryGeneratedColumn()
            parent = TreeParent()

        closure = build_metadata_graph().get_metadata(Folder).closure_junction_entity_metadata
        assert [c.database_name for c in closure.own_columns] == ["id_ancestor", "id_descendant"]

    def test_tables_prefix(self):
        declare_category()
        graph = build_metadata_graph(tables_prefix="app_")
        assert graph.has_metadata("app_category_closure")

    def test_tree_parent_required(self):
        @tree_entity()
        class Folder(Model):
            id = PrimaryGeneratedColumn()
            name = Column(str)

        with pytest.raises(MissingTreeParentError):
            build_metadata_graph()

    def test_unknown_tree_type(self):
        with pytest.raises(ValueError):
            tree_entity("nested-set")


class TestClosureWrites:
    @pytest.mark.asyncio
    async def test_children_attached_through_parent_relation(self):
        Category = declare_category()
        session = EntitySession()
        a1 = await session.save(Category(name="a1"))
        a11 = await session.save(Category(name="a11", parent=a1))
        a12 = await session.save(Category(name="a12", parent=a1))

        rows = session.executor.rows("category_closure")
        assert len([row for row in rows if row["id_ancestor"] == a1.id]) == 3
        assert len([row for row in rows if row["id_descendant"] == a11.id]) == 2
        assert len([row for row in rows if row["id_descendant"] == a12.id]) == 2
        assert (a1.level, a11.level, a12.level) == (0, 1, 1)

    @pytest.mark.asyncio
    async def test_children_attached_through_children_relation(self):
        Category = declare_category()
        session = EntitySession()
        a1 = Category(name="a1", children=[Category(name="a11"), Category(name="a12")])
        await session.save(a1)

        assert statement_trace(session.executor) == [
            (StatementKind.INSERT, "category"),
            (StatementKind.INSERT, "category_closure"),
            (StatementKind.INSERT, "category"),
            (StatementKind.INSERT, "category_closure"),
            (StatementKind.INSERT, "category_closure"),
            (StatementKind.INSERT, "category"),
            (StatementKind.INSERT, "category_closure"),
            (StatementKind.INSERT, "category_closure"),
        ]
        assert closure_pairs(session) == [(1, 1, 0), (2, 2, 0), (1, 2, 1), (3, 3, 0), (1, 3, 1)]
        assert [row.get("parentId") for row in session.executor.rows("category")] == [None, 1, 1]

    @pytest.mark.asyncio
    async def test_grandchild_distances(self):
        Category = declare_category()
        session = EntitySession()
        a1 = await session.save(Category(name="a1"))
        a11 = await session.save(Category(name="a11", parent=a1))
        a111 = await session.save(Category(name="a111", parent=a11))

        ancestors = [pair for pair in closure_pairs(session) if pair[1] == a111.id]
        assert ancestors == [(a111.id, a111.id, 0), (a11.id, a111.id, 1), (a1.id, a111.id, 2)]
        assert a111.level == 2

    @pytest.mark.asyncio
    async def test_unsaved_parent_cannot_take_children(self):
        Category = declare_category()
        session = EntitySession()
        with pytest.raises(CannotAttachTreeChildError) as exc_info:
            await session.save(Category(name="a11", parent=Category(name="a1")))

        assert exc_info.value.property_name == "parent"
        assert session.executor.rows("category_closure") == []

    @pytest.mark.asyncio
    async def test_removed_node_leaves_closure(self):
        Category = declare_category()
        session = EntitySession()
        a1 = await session.save(Category(name="a1"))
        a11 = await session.save(Category(name="a11", parent=a1))
        session.executor.clear_statements()

        await session.remove(a11)

        assert statement_trace(session.executor) == [
            (StatementKind.DELETE, "category_closure"),
            (StatementKind.DELETE, "category_closure"),
            (StatementKind.DELETE, "category"),
        ]
        assert closure_pairs(session) == [(1, 1, 0)]

    @pytest.mark.asyncio
    async def test_removed_subtree_leaves_no_rows(self):
        Category = declare_category()
        session = EntitySession()
        a1 = await session.save(Category(name="a1", children=[Category(name="a11"), Category(name="a12")]))

        await session.remove(a1)
        assert session.executor.rows("category") == []
        assert session.executor.rows("category_closure") == []
