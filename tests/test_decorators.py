# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the class decorators and property markers.
"""

from __future__ import annotations

from datetime import datetime

from entityalchemy import (
    Column,
    CreateDateColumn,
    JoinColumn,
    JoinTable,
    ManyToMany,
    ManyToOne,
    OneToMany,
    PrimaryColumn,
    PrimaryGeneratedColumn,
    RelationCount,
    VersionColumn,
    after_insert,
    before_insert,
    check,
    child_entity,
    entity,
    get_default_registry,
    index,
    table_inheritance,
    unique,
)
from entityalchemy.constants import (
    ColumnMode,
    ColumnType,
    EventKind,
    GenerationStrategy,
    InheritancePattern,
    RelationType,
    TableType,
)

from . import Model


class TestColumnMarkers:
    """Column markers become column declarations in definition order."""

    def test_columns_registered_in_order(self, registry):
        @entity(registry=registry)
        class Book(Model):
            id = PrimaryGeneratedColumn()
            title = Column(str, length=120)
            pages = Column(int, nullable=True)

        columns = registry.filter_columns([Book])
        assert [c.property_name for c in columns] == ["id", "title", "pages"]
        assert columns[0].options.primary is True
        assert columns[0].options.generated == GenerationStrategy.INCREMENT
        assert columns[1].options.type == ColumnType.STRING
        assert columns[1].options.length == 120
        assert columns[2].options.nullable is True

    def test_markers_removed_from_class(self, registry):
        @entity(registry=registry)
        class Book(Model):
            id = PrimaryGeneratedColumn()
            title = Column(str)

        book = Book(title="Dune")
        assert "id" not in vars(Book)
        assert not hasattr(book, "id")
        assert book.title == "Dune"

    def test_type_inferred_from_annotation(self, registry):
        @entity(registry=registry)
        class Event(Model):
            id: int = PrimaryColumn()
            starts_at: datetime = Column()
            score: float = Column()

        types = {c.property_name: c.options.type for c in registry.filter_columns([Event])}
        assert types == {"id": ColumnType.INT, "starts_at": ColumnType.DATETIME, "score": ColumnType.FLOAT}

    def test_special_columns(self, registry):
        @entity(registry=registry)
        class Doc(Model):
            id = PrimaryGeneratedColumn("uuid")
            created = CreateDateColumn()
            version = VersionColumn()

        columns = {c.property_name: c.options for c in registry.filter_columns([Doc])}
        assert columns["id"].generated == GenerationStrategy.UUID
        assert columns["created"].mode == ColumnMode.CREATE_DATE
        assert columns["version"].mode == ColumnMode.VERSION


class TestRelationMarkers:
    def test_relations_and_join_declarations(self, registry):
        @entity(registry=registry)
        class Author(Model):
            id = PrimaryGeneratedColumn()
            books = OneToMany("Book", "author")

        @entity(registry=registry)
        class Book(Model):
            id = PrimaryGeneratedColumn()
            author = ManyToOne(Author, "books", join_column=JoinColumn("writer_id"), cascade=True)
            tags = ManyToMany(
                "Tag",
                join_table=JoinTable("book_tags", join_columns=[{"name": "book"}]),
            )
            tag_count = RelationCount("tags")

        relations = {r.property_name: r for r in registry.filter_relations([Author, Book])}
        assert relations["books"].relation_type == RelationType.ONE_TO_MANY
        assert relations["author"].type is Author
        assert relations["author"].options.cascade.remove is True

        (join_column,) = registry.filter_join_columns([Book])
        assert join_column.property_name == "author"
        assert join_column.name == "writer_id"

        (join_table,) = registry.filter_join_tables([Book])
        assert join_table.name == "book_tags"
        assert join_table.join_columns[0].name == "book"

        (count,) = registry.filter_relation_counts([Book])
        assert count.relation == "tags"


class TestClassDecorators:
    def test_default_registry_used_without_argument(self):
        @entity("books")
        class Book(Model):
            id = PrimaryGeneratedColumn()

        table = get_default_registry().find_table(Book)
        assert table is not None
        assert table.name == "books"

    def test_registry_class_attribute(self, registry):
        class Base(Model):
            __entityalchemy_registry__ = registry

        @entity()
        class Book(Base):
            id = PrimaryGeneratedColumn()

        assert registry.find_table(Book) is not None
        assert get_default_registry().find_table(Book) is None

    def test_listener_methods(self, registry):
        @entity(registry=registry)
        class Book(Model):
            id = PrimaryGeneratedColumn()

            @before_insert
            @after_insert
            def touch(self):
                pass

        events = {listener.event for listener in registry.filter_listeners([Book])}
        assert events == {EventKind.BEFORE_INSERT, EventKind.AFTER_INSERT}
        assert callable(Book.touch)

    def test_child_entity_follows_inheritance_pattern(self, registry):
        @table_inheritance(InheritancePattern.CLASS_TABLE, registry=registry)
        @entity(registry=registry)
        class Person(Model):
            id = PrimaryGeneratedColumn()

        @child_entity(registry=registry)
        class Employee(Person):
            salary = Column(int)

        @table_inheritance("single-table", registry=registry)
        @entity(registry=registry)
        class Content(Model):
            id = PrimaryGeneratedColumn()

        @child_entity("photo", registry=registry)
        class Photo(Content):
            size = Column(int)

        assert registry.find_table(Employee).type == TableType.CLASS_TABLE_CHILD
        assert registry.find_table(Photo).type == TableType.SINGLE_TABLE_CHILD
        assert registry.find_discriminator_value(Photo).value == "photo"

    def test_constraint_decorators(self, registry):
        @index("title", unique=True, registry=registry)
        @unique("isbn", registry=registry)
        @check("pages > 0", name="positive_pages", registry=registry)
        @entity(registry=registry)
        class Book(Model):
            id = PrimaryGeneratedColumn()
            title = Column(str)
            isbn = Column(str)
            pages = Column(int)

        assert registry.filter_indices([Book])[0].columns == ("title",)
        assert registry.filter_indices([Book])[0].unique is True
        assert registry.filter_uniques([Book])[0].columns == ("isbn",)
        assert registry.filter_checks([Book])[0].name == "positive_pages"
