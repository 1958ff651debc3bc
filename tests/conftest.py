# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and shared fixtures for EntityAlchemy tests.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from entityalchemy import (
    Column,
    DeclarationRegistry,
    EntitySession,
    ManyToMany,
    ManyToOne,
    OneToMany,
    OneToOne,
    PrimaryGeneratedColumn,
    clear_registry,
    entity,
)

from . import Model


@pytest.fixture(autouse=True)
def global_registry_cleanup():
    """
    Clean up the default registry before and after EVERY test.

    Decorated classes register into the default registry, so models declared
    by one test would otherwise leak into the graph built by the next.
    """
    clear_registry()

    yield

    clear_registry()


@pytest.fixture(scope="function")
def registry() -> DeclarationRegistry:
    """Fresh registry isolated from the default one."""
    return DeclarationRegistry()


@pytest.fixture(scope="function")
def blog() -> SimpleNamespace:
    """Post with owned details (one-to-one) and owned categories (many-to-many)."""

    @entity()
    class PostDetails(Model):
        id = PrimaryGeneratedColumn()
        author_name = Column(str, nullable=True)
        post = OneToOne("Post", "details")

    @entity()
    class Category(Model):
        id = PrimaryGeneratedColumn()
        name = Column(str)
        posts = ManyToMany("Post", "categories")

    @entity()
    class Post(Model):
        id = PrimaryGeneratedColumn()
        title = Column(str)
        details = OneToOne(PostDetails, "post", join_column=True, cascade=["insert", "update", "remove"])
        categories = ManyToMany(Category, "posts", join_table=True, cascade=["insert"])

    return SimpleNamespace(Post=Post, PostDetails=PostDetails, Category=Category)


@pytest.fixture(scope="function")
def album() -> SimpleNamespace:
    """User with photos (one-to-many) whose rows hold the foreign key."""

    @entity()
    class User(Model):
        id = PrimaryGeneratedColumn()
        name = Column(str)
        photos = OneToMany("Photo", "user", cascade=["insert"])

    @entity()
    class Photo(Model):
        id = PrimaryGeneratedColumn()
        url = Column(str)
        user = ManyToOne(User, "photos")

    return SimpleNamespace(User=User, Photo=Photo)


@pytest.fixture(scope="function")
def blog_session(blog: SimpleNamespace) -> EntitySession:
    return EntitySession()


@pytest.fixture(scope="function")
def album_session(album: SimpleNamespace) -> EntitySession:
    return EntitySession()
