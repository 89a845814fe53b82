"""Split multi-statement SQL text on top-level semicolons.

A semicolon ends a statement only outside quoted strings, comments and
parentheses.  A quote preceded by a backslash does not open or close a
string; backslash escapes are otherwise not interpreted.
"""

from __future__ import annotations


def strip_leading_comments(sql: str) -> str:
    """Remove ``--`` and ``/* */`` comments that precede the first token."""
    result = sql.strip()
    while True:
        if result.startswith("--"):
            newline = result.find("\n")
            if newline == -1:
                return ""
            result = result[newline + 1 :].strip()
        elif result.startswith("/*"):
            end = result.find("*/")
            if end == -1:
                return ""
            result = result[end + 2 :].strip()
        else:
            return result


def split_statements(sql: str) -> list[str]:
    """Return the trimmed, non-empty statements of *sql* in order.

    Statements keep their own comments; slices holding only comments or
    whitespace are dropped.  The terminating semicolon is not included.
    """
    statements: list[str] = []
    current: list[str] = []
    quote: str | None = None
    in_line_comment = False
    in_block_comment = False
    depth = 0

    def flush() -> None:
        text = "".join(current).strip()
        if text and strip_leading_comments(text):
            statements.append(text)
        current.clear()

    i = 0
    length = len(sql)
    while i < length:
        char = sql[i]
        nxt = sql[i + 1] if i + 1 < length else ""
        prev = sql[i - 1] if i > 0 else ""

        if in_line_comment:
            current.append(char)
            if char == "\n":
                in_line_comment = False
            i += 1
            continue
        if in_block_comment:
            current.append(char)
            if char == "*" and nxt == "/":
                current.append(nxt)
                i += 2
                in_block_comment = False
                continue
            i += 1
            continue

        if quote is None:
            if char == "-" and nxt == "-":
                in_line_comment = True
                current.append("--")
                i += 2
                continue
            if char == "/" and nxt == "*":
                in_block_comment = True
                current.append("/*")
                i += 2
                continue

        if char in ("'", '"') and prev != "\\":
            if quote is None:
                quote = char
            elif char == quote:
                quote = None

        if quote is None:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
            elif char == ";" and depth <= 0:
                flush()
                depth = 0
                i += 1
                continue

        current.append(char)
        i += 1

    flush()
    return statements


def count_statements(sql: str) -> int:
    return len(split_statements(sql))
