"""
SQL script splitting.

Drivers such as ``sqlite3`` execute one statement per call, so migration
scripts are split on top-level semicolons before execution.
"""

import re
from typing import List

_DOLLAR_TAG = re.compile(r"\$[A-Za-z_0-9]*\$")


def split_sql_statements(sql: str) -> List[str]:
    """
    Split a SQL script into individual statements.

    Semicolons inside single- or double-quoted strings, ``--`` line comments,
    ``/* */`` block comments and PostgreSQL dollar-quoted bodies
    (``$$ ... $$``, ``$tag$ ... $tag$``) do not end a statement. Statements
    consisting only of whitespace and comments are dropped.

    Example:
        >>> split_sql_statements("CREATE TABLE a (id INT); -- done")
        ['CREATE TABLE a (id INT)']
    """
    statements: List[str] = []
    current: List[str] = []
    has_code = False
    i = 0
    n = len(sql)

    while i < n:
        ch = sql[i]

        if ch == "-" and sql.startswith("--", i):
            end = sql.find("\n", i)
            end = n if end == -1 else end
            current.append(sql[i:end])
            i = end
            continue

        if ch == "/" and sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = n if end == -1 else end + 2
            current.append(sql[i:end])
            i = end
            continue

        if ch in ("'", '"'):
            end = _end_of_quoted(sql, i, ch)
            current.append(sql[i:end])
            has_code = True
            i = end
            continue

        if ch == "$":
            match = _DOLLAR_TAG.match(sql, i)
            if match:
                tag = match.group(0)
                end = sql.find(tag, match.end())
                end = n if end == -1 else end + len(tag)
                current.append(sql[i:end])
                has_code = True
                i = end
                continue

        if ch == ";":
            if has_code:
                statements.append("".join(current).strip())
            current = []
            has_code = False
            i += 1
            continue

        if not ch.isspace():
            has_code = True
        current.append(ch)
        i += 1

    if has_code:
        statements.append("".join(current).strip())

    return statements


def _end_of_quoted(sql: str, start: int, quote: str) -> int:
    """Index just past the closing quote; doubled quotes are escapes."""
    i = start + 1
    n = len(sql)
    while i < n:
        if sql[i] == quote:
            if i + 1 < n and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n
