# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the metadata graph builder.

Tests cover:
- Table, join column and junction naming
- Inverse side pairing and deferred relation targets
- Single-table and class-table inheritance
- Constraints, relation counts and table prefixes
- Declaration errors raised while building
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from entityalchemy import (
    BuilderOptions,
    Column,
    EntityMetadataBuilder,
    JoinColumn,
    ManyToMany,
    ManyToOne,
    OneToMany,
    PrimaryGeneratedColumn,
    RelationCount,
    SnakeCaseNamingStrategy,
    build_metadata_graph,
    check,
    child_entity,
    entity,
    get_default_registry,
    index,
    table_inheritance,
)
from entityalchemy.constants import CascadeAction, ColumnMode, ColumnType, InheritancePattern, TableType
from entityalchemy.errors import (
    JoinColumnNamingError,
    ReferencedColumnNotFoundError,
    UnknownPropertyError,
    UnresolvedTargetError,
)

from . import Model


class TestBlogGraph:
    """Join columns and junctions of the blog models."""

    def test_table_names(self, blog):
        graph = build_metadata_graph()
        assert graph.get_metadata(blog.Post).table_name == "post"
        assert graph.get_metadata(blog.PostDetails).table_name == "post_details"
        assert graph.get_metadata("Category").table_name == "category"

    def test_owning_one_to_one_join_column(self, blog):
        graph = build_metadata_graph()
        post = graph.get_metadata(blog.Post)
        details = graph.get_metadata(blog.PostDetails)

        relation = post.find_relation_with_property_name("details")
        assert relation.is_owning and relation.is_one_to_one_owner
        (join_column,) = relation.join_columns
        assert join_column.database_name == "detailsId"
        assert join_column.mode == ColumnMode.VIRTUAL
        assert join_column.nullable is True
        assert join_column.type == ColumnType.INT
        assert join_column.referenced_column is details.find_column_with_property_name("id")

        (foreign_key,) = post.foreign_keys
        assert foreign_key.referenced_table_name == "post_details"
        assert foreign_key.column_names == ["detailsId"]
        assert foreign_key.name.startswith("FK_")

    def test_inverse_sides_paired(self, blog):
        graph = build_metadata_graph()
        details_relation = graph.get_metadata(blog.PostDetails).find_relation_with_property_name("post")
        post_relation = graph.get_metadata(blog.Post).find_relation_with_property_name("details")

        assert details_relation.inverse_relation is post_relation
        assert post_relation.inverse_relation is details_relation
        assert details_relation.is_one_to_one_not_owner
        assert details_relation.join_columns == ()

    def test_junction_entity(self, blog):
        graph = build_metadata_graph()
        (junction,) = graph.junctions
        post_relation = graph.get_metadata(blog.Post).find_relation_with_property_name("categories")
        category_relation = graph.get_metadata(blog.Category).find_relation_with_property_name("posts")

        assert junction.table_name == "post_categories_category"
        assert junction.table_type == TableType.JUNCTION
        assert [c.database_name for c in junction.own_columns] == ["postId", "categoryId"]
        assert all(c.primary and not c.nullable for c in junction.own_columns)
        assert [fk.referenced_table_name for fk in junction.foreign_keys] == ["post", "category"]
        assert all(fk.on_delete == CascadeAction.CASCADE for fk in junction.foreign_keys)
        assert len(junction.indices) == 2
        assert post_relation.junction_entity_metadata is junction
        assert category_relation.junction_entity_metadata is junction

        this_columns, other_columns = category_relation.junction_column_pairs()
        assert [c.database_name for c in this_columns] == ["categoryId"]
        assert [c.database_name for c in other_columns] == ["postId"]

    def test_creation_order_puts_referenced_tables_first(self, blog):
        graph = build_metadata_graph()
        names = [metadata.table_name for metadata in graph.creation_order()]
        assert names.index("post_details") < names.index("post")
        assert names.index("post") < names.index("post_categories_category")
        assert names.index("category") < names.index("post_categories_category")

    def test_graph_is_frozen(self, blog):
        graph = build_metadata_graph()
        post = graph.get_metadata(blog.Post)
        assert post.is_frozen
        with pytest.raises(FrozenInstanceError):
            post.table_name = "renamed"
        with pytest.raises(FrozenInstanceError):
            post.columns[0].nullable = True

    def test_tables_prefix(self, blog):
        graph = build_metadata_graph(tables_prefix="app_")
        assert graph.get_metadata(blog.Post).table_name == "app_post"
        (junction,) = graph.junctions
        assert junction.table_name == "app_post_categories_category"
        assert [c.database_name for c in junction.own_columns] == ["postId", "categoryId"]

    def test_naming_strategy_injected(self, blog):
        graph = build_metadata_graph(naming_strategy=SnakeCaseNamingStrategy())
        post = graph.get_metadata(blog.Post)
        assert post.find_relation_with_property_name("details").join_columns[0].database_name == "details_id"
        (junction,) = graph.junctions
        assert [c.database_name for c in junction.own_columns] == ["post_id", "category_id"]

    def test_building_twice_is_structurally_equal(self, blog):
        registry = get_default_registry()
        first = EntityMetadataBuilder().build(registry)
        second = EntityMetadataBuilder().build(registry)

        def shape(metadatas):
            return [
                (m.table_name, [(c.database_name, c.type, c.primary) for c in m.own_columns])
                for m in metadatas
            ]

        assert shape(first) == shape(second)
        assert first[0] is not second[0]


class TestRelations:
    def test_many_to_one_join_column_synthesized(self, album):
        graph = build_metadata_graph()
        photo = graph.get_metadata(album.Photo)
        relation = photo.find_relation_with_property_name("user")

        assert relation.is_with_join_columns
        assert relation.join_columns[0].database_name == "userId"
        assert graph.get_metadata(album.User).find_relation_with_property_name("photos").inverse_relation is relation

    def test_declared_column_reused_as_join_column(self):
        @entity()
        class Owner(Model):
            id = PrimaryGeneratedColumn()

        @entity()
        class Pet(Model):
            id = PrimaryGeneratedColumn()
            owner_id = Column(int, nullable=True)
            owner = ManyToOne(Owner, join_column=JoinColumn("owner_id"))

        pet = build_metadata_graph().get_metadata(Pet)
        (join_column,) = pet.find_relation_with_property_name("owner").join_columns
        assert join_column is pet.find_column_with_property_name("owner_id")
        assert join_column.mode == ColumnMode.REGULAR
        assert len([c for c in pet.own_columns if c.database_name == "owner_id"]) == 1

    def test_callable_target_resolved(self):
        @entity()
        class Node(Model):
            id = PrimaryGeneratedColumn()
            leaves = OneToMany(lambda: Leaf, "node")

        @entity()
        class Leaf(Model):
            id = PrimaryGeneratedColumn()
            node = ManyToOne(Node, "leaves")

        graph = build_metadata_graph()
        relation = graph.get_metadata(Node).find_relation_with_property_name("leaves")
        assert relation.target.is_resolved()
        assert relation.inverse_entity_metadata is graph.get_metadata(Leaf)

    def test_self_referencing_junction_columns_suffixed(self):
        @entity()
        class Person(Model):
            id = PrimaryGeneratedColumn()
            friends = ManyToMany("Person", join_table=True)

        (junction,) = build_metadata_graph().junctions
        assert junction.table_name == "person_friends_person"
        assert [c.database_name for c in junction.own_columns] == ["personId_1", "personId_2"]

    def test_unresolved_target(self):
        @entity()
        class Orphan(Model):
            id = PrimaryGeneratedColumn()
            parent = ManyToOne("Missing")

        with pytest.raises(UnresolvedTargetError) as exc_info:
            build_metadata_graph()
        assert exc_info.value.entity_name == "Orphan"
        assert exc_info.value.property_name == "parent"

    def test_referenced_column_not_found(self):
        @entity()
        class Owner(Model):
            id = PrimaryGeneratedColumn()

        @entity()
        class Pet(Model):
            id = PrimaryGeneratedColumn()
            owner = ManyToOne(Owner, join_column=JoinColumn(referenced_column_name="code"))

        with pytest.raises(ReferencedColumnNotFoundError):
            build_metadata_graph()

    def test_multiple_join_columns_need_names(self):
        @entity()
        class Owner(Model):
            id = PrimaryGeneratedColumn()
            code = Column(str)

        @entity()
        class Pet(Model):
            id = PrimaryGeneratedColumn()
            owner = ManyToOne(Owner, join_column=[{"name": "owner_id"}, {"referenced_column_name": "code"}])

        with pytest.raises(JoinColumnNamingError):
            build_metadata_graph()


class TestInheritance:
    """Single-table and class-table hierarchies."""

    def test_single_table_hierarchy(self):
        @table_inheritance(InheritancePattern.SINGLE_TABLE)
        @entity()
        class Content(Model):
            id = PrimaryGeneratedColumn()
            title = Column(str)

        @child_entity("photo")
        class Photo(Content):
            size = Column(int, nullable=True)

        @child_entity("question")
        class Question(Content):
            answers = Column(int, nullable=True)

        graph = build_metadata_graph()
        content = graph.get_metadata(Content)
        photo = graph.get_metadata(Photo)

        assert photo.table_name == "content"
        assert photo.parent_entity_metadata is content
        assert content.discriminator_value == "Content"
        assert photo.discriminator_value == "photo"
        assert photo.discriminator_column.database_name == "type"
        assert [c.property_name for c in photo.own_columns] == ["id", "title", "size", "type"]

        root_columns = [c.database_name for c in content.own_columns]
        assert set(root_columns) == {"id", "title", "type", "size", "answers"}
        assert any(index.column_names == ["type"] for index in content.indices)

        # Propagated child columns only apply to instances of the declaring child
        size = content.find_column_with_database_name("size")
        assert size.applies_to(Photo())
        assert not size.applies_to(Question())

    def test_class_table_hierarchy(self):
        @table_inheritance("class-table")
        @entity()
        class Person(Model):
            id = PrimaryGeneratedColumn()
            name = Column(str)

        @child_entity()
        class Employee(Person):
            salary = Column(int)

        graph = build_metadata_graph()
        person = graph.get_metadata(Person)
        employee = graph.get_metadata(Employee)

        assert employee.table_name == "employee"
        assert employee.table_chain == [person, employee]
        key = employee.own_columns[0]
        assert key.property_name == "id" and key.primary
        assert key.referenced_column is person.find_column_with_property_name("id")
        (foreign_key,) = employee.foreign_keys
        assert foreign_key.referenced_entity_metadata is person
        assert foreign_key.on_delete == CascadeAction.CASCADE
        assert [c.property_name for c in employee.columns] == ["id", "name", "salary"]
        assert graph.find_metadata_for_instance(Employee()) is employee


class TestConstraints:
    def test_indices_checks_and_relation_counts(self, registry):
        @index("title", "author", registry=registry)
        @check("length(title) > 0", registry=registry)
        @entity(registry=registry)
        class Book(Model):
            id = PrimaryGeneratedColumn()
            title = Column(str, unique=True)
            author = ManyToOne("Author", "books")

        @entity(registry=registry)
        class Author(Model):
            id = PrimaryGeneratedColumn()
            books = OneToMany(Book, "author")
            book_count = RelationCount("books")

        metadatas = EntityMetadataBuilder(options=BuilderOptions()).build(registry)
        book = next(m for m in metadatas if m.name == "Book")
        author = next(m for m in metadatas if m.name == "Author")

        (book_index,) = book.indices
        assert book_index.column_names == ["title", "authorId"]
        assert book_index.name.startswith("IDX_")
        (book_unique,) = book.uniques
        assert book_unique.column_names == ["title"]
        (book_check,) = book.checks
        assert book_check.expression == "length(title) > 0"
        (count,) = author.relation_counts
        assert count.relation is author.find_relation_with_property_name("books")

    def test_unknown_index_property(self, registry):
        @index("missing", registry=registry)
        @entity(registry=registry)
        class Book(Model):
            id = PrimaryGeneratedColumn()

        with pytest.raises(UnknownPropertyError):
            EntityMetadataBuilder().build(registry)
