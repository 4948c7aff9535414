"""
Unit tests for SQL script splitting.
"""

from schemaledger.migrations.sql import split_sql_statements


class TestSplitSqlStatements:
    """Tests for split_sql_statements."""

    def test_single_statement_without_semicolon(self):
        assert split_sql_statements("CREATE TABLE a (id INT)") == [
            "CREATE TABLE a (id INT)"
        ]

    def test_multiple_statements(self):
        sql = """
            CREATE TABLE a (id INT);
            CREATE INDEX idx_a ON a (id);
        """
        assert split_sql_statements(sql) == [
            "CREATE TABLE a (id INT)",
            "CREATE INDEX idx_a ON a (id)",
        ]

    def test_semicolon_in_string(self):
        sql = "INSERT INTO t VALUES ('a;b'); INSERT INTO t VALUES ('it''s; fine')"
        assert split_sql_statements(sql) == [
            "INSERT INTO t VALUES ('a;b')",
            "INSERT INTO t VALUES ('it''s; fine')",
        ]

    def test_semicolon_in_quoted_identifier(self):
        assert split_sql_statements('SELECT "odd;name" FROM t') == [
            'SELECT "odd;name" FROM t'
        ]

    def test_comments_are_not_split(self):
        sql = "-- first; still a comment\nSELECT 1; /* block; comment */ SELECT 2"
        statements = split_sql_statements(sql)

        assert len(statements) == 2
        assert statements[0].endswith("SELECT 1")
        assert statements[1].endswith("SELECT 2")

    def test_comment_only_script_is_empty(self):
        sql = "-- Migration: add users\n-- Add your UP migration SQL here\n"
        assert split_sql_statements(sql) == []

    def test_empty_statements_dropped(self):
        assert split_sql_statements(";;  ;SELECT 1;;") == ["SELECT 1"]

    def test_dollar_quoted_body(self):
        sql = """
            CREATE FUNCTION f() RETURNS trigger AS $$
            BEGIN
                NEW.updated_at = now();
                RETURN NEW;
            END;
            $$ LANGUAGE plpgsql;
            SELECT 1;
        """
        statements = split_sql_statements(sql)

        assert len(statements) == 2
        assert "RETURN NEW;" in statements[0]
        assert statements[0].endswith("LANGUAGE plpgsql")

    def test_tagged_dollar_quote(self):
        sql = "DO $body$ BEGIN PERFORM 1; END $body$; SELECT 2"
        assert split_sql_statements(sql) == [
            "DO $body$ BEGIN PERFORM 1; END $body$",
            "SELECT 2",
        ]

    def test_positional_parameter_is_not_a_dollar_quote(self):
        assert split_sql_statements("SELECT $1; SELECT 2") == ["SELECT $1", "SELECT 2"]
