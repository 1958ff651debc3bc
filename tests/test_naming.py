# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for naming strategies.
"""

from __future__ import annotations

import re

from entityalchemy.naming import (
    DefaultNamingStrategy,
    NamingStrategy,
    SnakeCaseNamingStrategy,
    camel_case,
    snake_case,
)


class TestCaseConversion:
    def test_snake_case(self):
        assert snake_case("PostDetails") == "post_details"
        assert snake_case("Post") == "post"
        assert snake_case("post_categories_category") == "post_categories_category"
        assert snake_case("HTTPRequest") == "http_request"

    def test_camel_case(self):
        assert camel_case("details_id") == "detailsId"
        assert camel_case("post_id") == "postId"
        assert camel_case("post_details_id") == "postDetailsId"
        assert camel_case("") == ""


class TestDefaultNamingStrategy:
    """Names synthesized by the default strategy."""

    def setup_method(self):
        self.naming = DefaultNamingStrategy()

    def test_satisfies_protocol(self):
        assert isinstance(self.naming, NamingStrategy)

    def test_table_names(self):
        assert self.naming.table_name("PostDetails", None) == "post_details"
        assert self.naming.table_name("PostDetails", "details") == "details"

    def test_column_names(self):
        assert self.naming.column_name("title", None) == "title"
        assert self.naming.column_name("title", "post_title") == "post_title"

    def test_join_column_name(self):
        assert self.naming.join_column_name("details", "id") == "detailsId"

    def test_join_table_names(self):
        assert self.naming.join_table_name("post", "category", "categories", "posts") == "post_categories_category"
        assert self.naming.join_table_column_name("post", "id") == "postId"
        assert self.naming.join_table_column_name("category", "id", "id") == "categoryId"
        assert self.naming.join_table_column_duplication_prefix("categoryId", 2) == "categoryId_2"

    def test_closure_junction_names(self):
        assert self.naming.closure_junction_table_name("category") == "category_closure"
        assert self.naming.closure_junction_column_name("id", "ancestor") == "id_ancestor"
        assert self.naming.closure_junction_column_name("id", "descendant") == "id_descendant"

    def test_constraint_names_are_hashed_and_deterministic(self):
        first = self.naming.foreign_key_name("post", ["detailsId"])
        second = self.naming.foreign_key_name("post", ["detailsId"])
        other = self.naming.foreign_key_name("post", ["authorId"])

        assert first == second
        assert first != other
        assert re.fullmatch(r"FK_[0-9a-f]{27}", first)
        assert self.naming.index_name("post", ["title"]).startswith("IDX_")
        assert self.naming.unique_constraint_name("post", ["title"]).startswith("UQ_")
        assert self.naming.check_constraint_name("post", "views >= 0").startswith("CHK_")
        assert self.naming.exclusion_constraint_name("post", "x").startswith("XCL_")
        assert self.naming.primary_key_name("post", ["id"]).startswith("PK_")

    def test_prefix(self):
        assert self.naming.prefix_table_name("app_", "post") == "app_post"


class TestSnakeCaseNamingStrategy:
    def test_join_columns_snake_cased(self):
        naming = SnakeCaseNamingStrategy()
        assert naming.join_column_name("details", "id") == "details_id"
        assert naming.join_table_column_name("post", "id") == "post_id"
        assert naming.table_name("PostDetails", None) == "post_details"
