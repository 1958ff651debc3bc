# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the in-memory statement executor.
"""

from __future__ import annotations

import pytest

from entityalchemy.constants import StatementKind
from entityalchemy.errors import DuplicateRowError
from entityalchemy.executor import InMemoryStatementExecutor, StatementExecutor


@pytest.fixture
def executor() -> InMemoryStatementExecutor:
    return InMemoryStatementExecutor(
        primary_keys={"post": ("id",), "link": ("a", "b")},
        increment_columns={"post": ("id",)},
    )


class TestInMemoryStatementExecutor:
    """Rows, sequences and the statement log."""

    def test_satisfies_protocol(self, executor):
        assert isinstance(executor, StatementExecutor)

    @pytest.mark.asyncio
    async def test_increment_sequence_starts_at_one(self, executor):
        first = await executor.insert_one("post", {"title": "a"})
        second = await executor.insert_one("post", {"title": "b"})

        assert first == {"id": 1}
        assert second == {"id": 2}
        assert executor.rows("post") == [{"title": "a", "id": 1}, {"title": "b", "id": 2}]

    @pytest.mark.asyncio
    async def test_explicit_key_advances_sequence(self, executor):
        assert await executor.insert_one("post", {"id": 10, "title": "a"}) == {}
        assert await executor.insert_one("post", {"title": "b"}) == {"id": 11}

    @pytest.mark.asyncio
    async def test_duplicate_primary_key_rejected(self, executor):
        await executor.insert_one("link", {"a": 1, "b": 2})
        await executor.insert_one("link", {"a": 1, "b": 3})
        with pytest.raises(DuplicateRowError):
            await executor.insert_one("link", {"a": 1, "b": 2})
        assert len(executor.rows("link")) == 2

    @pytest.mark.asyncio
    async def test_update_and_delete_match_conditions(self, executor):
        await executor.insert_one("post", {"title": "a"})
        await executor.insert_one("post", {"title": "b"})

        await executor.update_one("post", {"id": 2}, {"title": "B"})
        assert (await executor.find_one("post", {"id": 2}))["title"] == "B"

        await executor.delete_one("post", {"id": 1})
        assert await executor.find_one("post", {"id": 1}) is None
        assert [row["id"] for row in await executor.find_many("post", {})] == [2]

    @pytest.mark.asyncio
    async def test_update_without_match_is_recorded(self, executor):
        await executor.update_one("post", {"id": 99}, {"title": "x"})
        assert executor.rows("post") == []
        assert executor.statements[-1].kind == StatementKind.UPDATE

    @pytest.mark.asyncio
    async def test_reads_return_copies(self, executor):
        await executor.insert_one("post", {"title": "a"})
        row = await executor.find_one("post", {"id": 1})
        row["title"] = "changed"
        assert executor.rows("post")[0]["title"] == "a"

    @pytest.mark.asyncio
    async def test_statement_log(self, executor):
        await executor.insert_one("post", {"title": "a"})
        await executor.update_one("post", {"id": 1}, {"title": "b"})
        await executor.delete_one("post", {"id": 1})

        kinds = [statement.kind for statement in executor.statements]
        assert kinds == [StatementKind.INSERT, StatementKind.UPDATE, StatementKind.DELETE]
        assert executor.statements[0].values == {"title": "a", "id": 1}
        assert executor.statements[1].conditions == {"id": 1}
        assert len(executor.statements_for("post")) == 3

        executor.clear_statements()
        assert executor.statements == []
