# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for EntitySession: direct operations, the staged unit of work,
lifecycle events and the session factory.
"""

from __future__ import annotations

from datetime import datetime
from typing import List

import pytest

from entityalchemy import (
    Column,
    DeleteDateColumn,
    EntitySession,
    InMemoryStatementExecutor,
    MissingDeleteDateColumnError,
    NoMetadataError,
    PrimaryGeneratedColumn,
    SessionFactory,
    after_load,
    after_update,
    before_insert,
    entity,
)
from entityalchemy.constants import EventKind, StatementKind
from entityalchemy.errors import MissingIdentifierError

from . import Model, inserted_tables, statement_trace


class DriverError(Exception):
    pass


class FailingExecutor(InMemoryStatementExecutor):
    """Executor whose inserts fail like a dropped database connection."""

    async def insert_one(self, table_name, values):
        raise DriverError("connection lost")


class EventLog:
    """Subscriber appending ``(event, entity name)`` pairs."""

    def __init__(self) -> None:
        self.events: List[tuple] = []

    def _record(self, event) -> None:
        self.events.append((event.event, event.metadata.name))

    before_insert = after_insert = _record
    before_update = _record
    before_remove = after_remove = _record

    def after_update(self, event) -> None:
        self.events.append((event.event, event.metadata.name, [c.property_name for c in event.updated_columns]))


class TestDirectOperations:
    @pytest.mark.asyncio
    async def test_save_returns_instance(self, album, album_session):
        user = album.User(name="ada")
        assert await album_session.save(user) is user
        assert user.id == 1

    @pytest.mark.asyncio
    async def test_save_all(self, album, album_session):
        users = await album_session.save_all([album.User(name="ada"), album.User(name="alan")])
        assert [user.id for user in users] == [1, 2]

    @pytest.mark.asyncio
    async def test_unknown_class(self, album_session):
        with pytest.raises(NoMetadataError):
            await album_session.save(object())

    @pytest.mark.asyncio
    async def test_save_propagates_executor_errors(self, album):
        session = EntitySession(executor=FailingExecutor())
        user = album.User(name="ada")
        with pytest.raises(DriverError, match="connection lost"):
            await session.save(user)
        assert getattr(user, "id", None) is None

    @pytest.mark.asyncio
    async def test_remove_needs_identifier(self, album, album_session):
        with pytest.raises(MissingIdentifierError):
            await album_session.remove(album.User(name="ada"))

    @pytest.mark.asyncio
    async def test_load_merges_row(self, album, album_session):
        await album_session.save(album.User(name="ada"))

        assert await album_session.load(album.User, {"id": 1}) == {"id": 1, "name": "ada"}
        assert await album_session.load("User", {"id": 2}) is None

    def test_metadata_lookup(self, album, album_session):
        assert album_session.has_metadata(album.User)
        assert not album_session.has_metadata(Model)
        assert album_session.get_metadata("Photo").target is album.Photo

    @pytest.mark.asyncio
    async def test_tables_prefix(self, album):
        session = EntitySession(tables_prefix="app_")
        await session.save(album.User(name="ada", photos=[album.Photo(url="a.png")]))
        assert inserted_tables(session.executor) == ["app_user", "app_photo"]


class TestSoftRemove:
    @staticmethod
    def declare_post():
        @entity()
        class Post(Model):
            id = PrimaryGeneratedColumn()
            title = Column(str)
            deleted_at = DeleteDateColumn()

        return Post

    @pytest.mark.asyncio
    async def test_soft_remove_stamps_delete_date(self):
        Post = self.declare_post()
        session = EntitySession()
        first = await session.save(Post(title="first"))
        await session.save(Post(title="second"))
        session.executor.clear_statements()

        assert await session.soft_remove(first) is first

        assert statement_trace(session.executor) == [(StatementKind.UPDATE, "post")]
        rows = session.executor.rows("post")
        assert isinstance(rows[0]["deleted_at"], datetime)
        assert rows[0]["deleted_at"].tzinfo is not None
        assert rows[1].get("deleted_at") is None
        assert first.deleted_at == rows[0]["deleted_at"]
        assert session.get_metadata(Post).delete_date_column.is_delete_date

    @pytest.mark.asyncio
    async def test_recover_clears_delete_date(self):
        Post = self.declare_post()
        session = EntitySession()
        post = await session.save(Post(title="first"))
        await session.soft_remove(post)

        await session.recover(post)
        assert session.executor.rows("post")[0]["deleted_at"] is None
        assert post.deleted_at is None

    @pytest.mark.asyncio
    async def test_entity_without_delete_date(self, album, album_session):
        user = await album_session.save(album.User(name="ada"))
        with pytest.raises(MissingDeleteDateColumnError) as exc_info:
            await album_session.soft_remove(user)
        assert exc_info.value.entity_name == "User"

        with pytest.raises(MissingDeleteDateColumnError):
            await album_session.recover(user)

    @pytest.mark.asyncio
    async def test_soft_remove_needs_identifier(self):
        Post = self.declare_post()
        with pytest.raises(MissingIdentifierError):
            await EntitySession().soft_remove(Post(title="draft"))


class TestStagedOperations:
    """add/delete stage instances; flush writes them in staging order."""

    @pytest.mark.asyncio
    async def test_flush_saves_then_removes(self, album, album_session):
        old = await album_session.save(album.User(name="old"))
        album_session.executor.clear_statements()

        album_session.delete(old)
        album_session.add(album.User(name="new"))
        assert len(album_session.pending) == 2

        await album_session.flush()
        assert statement_trace(album_session.executor) == [
            (StatementKind.INSERT, "user"),
            (StatementKind.DELETE, "user"),
        ]
        assert album_session.pending == []

    def test_staging_moves_between_lists(self, album, album_session):
        user = album.User(name="ada")
        album_session.add(user)
        album_session.add(user)
        assert album_session.pending == [user]

        album_session.delete(user)
        assert album_session.pending == [user]
        album_session.add(user)
        assert album_session.pending == [user]

        album_session.rollback()
        assert album_session.pending == []

    @pytest.mark.asyncio
    async def test_begin_flushes_on_success(self, album, album_session):
        async with album_session.begin() as session:
            session.add_all([album.User(name="ada"), album.User(name="alan")])
            assert album_session.executor.statements == []

        assert inserted_tables(album_session.executor) == ["user", "user"]

    @pytest.mark.asyncio
    async def test_begin_reraises_lookup_errors(self, album, album_session):
        with pytest.raises(KeyError):
            async with album_session.begin() as session:
                session.add(album.User(name="ada"))
                raise KeyError("missing")

        assert album_session.pending == []
        assert album_session.executor.statements == []

    @pytest.mark.asyncio
    async def test_begin_reraises_custom_errors_unchanged(self, album, album_session):
        with pytest.raises(DriverError) as exc_info:
            async with album_session.begin() as session:
                session.add(album.User(name="ada"))
                raise DriverError("boom")

        assert str(exc_info.value) == "boom"
        assert exc_info.value.__cause__ is None
        assert album_session.pending == []

    @pytest.mark.asyncio
    async def test_begin_propagates_executor_errors(self, album):
        session = EntitySession(executor=FailingExecutor())
        with pytest.raises(DriverError, match="connection lost"):
            async with session.begin():
                session.add(album.User(name="ada"))

        assert session.pending == []

    @pytest.mark.asyncio
    async def test_context_manager(self, album, album_session):
        async with album_session as session:
            session.add(album.User(name="ada"))
        assert inserted_tables(album_session.executor) == ["user"]

        with pytest.raises(ValueError):
            async with album_session as session:
                session.add(album.User(name="alan"))
                raise ValueError("stop")
        assert album_session.pending == []


class TestEvents:
    @pytest.mark.asyncio
    async def test_subscriber_sees_cascaded_writes(self, album):
        log = EventLog()
        session = EntitySession(subscribers=[log])
        user = await session.save(album.User(name="ada", photos=[album.Photo(url="a.png")]))

        assert log.events == [
            (EventKind.BEFORE_INSERT, "User"),
            (EventKind.AFTER_INSERT, "User"),
            (EventKind.BEFORE_INSERT, "Photo"),
            (EventKind.AFTER_INSERT, "Photo"),
        ]

        log.events.clear()
        user.name = "grace"
        await session.save(user)
        assert log.events == [
            (EventKind.BEFORE_UPDATE, "User"),
            (EventKind.AFTER_UPDATE, "User", ["name"]),
        ]

        log.events.clear()
        await session.remove(user)
        assert log.events == [(EventKind.BEFORE_REMOVE, "User"), (EventKind.AFTER_REMOVE, "User")]

    @pytest.mark.asyncio
    async def test_listener_methods_fire_on_save(self):
        @entity()
        class Counter(Model):
            id = PrimaryGeneratedColumn()
            label = Column(str)
            value = Column(int)

            @before_insert
            def normalize(self):
                self.label = self.label.strip()

            @after_update
            def bump(self):
                self.updates = getattr(self, "updates", 0) + 1

        session = EntitySession()
        counter = await session.save(Counter(label="  hits ", value=0))
        assert session.executor.rows("counter")[0]["label"] == "hits"

        counter.value = 1
        await session.save(counter)
        assert counter.updates == 1

    @pytest.mark.asyncio
    async def test_broadcast_loaded(self, album, album_session):
        loaded = []

        class Watcher:
            def after_load(self, event):
                loaded.append(event.metadata.name)

        album_session.add_subscriber(Watcher())
        user = album.User(name="ada")
        user.photos = [album.Photo(url="a.png")]

        await album_session.broadcast_loaded(user)
        assert loaded == ["Photo", "User"]
        assert album_session.executor.statements == []

    @pytest.mark.asyncio
    async def test_after_load_listener(self):
        @entity()
        class Report(Model):
            id = PrimaryGeneratedColumn()
            body = Column(str)

            @after_load
            def parse(self):
                self.words = self.body.split()

        session = EntitySession()
        report = Report(id=1, body="all good")
        await session.broadcast_loaded(report)
        assert report.words == ["all", "good"]


class TestSessionFactory:
    @pytest.mark.asyncio
    async def test_sessions_share_graph_and_executor(self, album):
        factory = SessionFactory()
        first, second = factory(), factory.create_session()

        assert first.graph is second.graph is factory.graph
        await first.save(album.User(name="ada"))
        assert await second.load(album.User, {"id": 1}) is not None

    @pytest.mark.asyncio
    async def test_executor_override(self, album):
        factory = SessionFactory(strict_cascades=True)
        executor = InMemoryStatementExecutor.from_metadatas(factory.graph)
        session = factory(executor=executor)

        assert session.executor is executor
        assert session.planner.strict_cascades is True

    @pytest.mark.asyncio
    async def test_session_scope(self, album):
        factory = SessionFactory()
        async with factory.session_scope() as session:
            session.add(album.User(name="ada"))

        assert factory.executor.rows("user") == [{"name": "ada", "id": 1}]

    @pytest.mark.asyncio
    async def test_session_scope_propagates_executor_errors(self, album):
        factory = SessionFactory(executor=FailingExecutor())
        with pytest.raises(DriverError, match="connection lost"):
            async with factory.session_scope() as session:
                session.add(album.User(name="ada"))
