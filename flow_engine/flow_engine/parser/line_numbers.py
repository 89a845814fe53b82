"""Approximate source-line assignment for flow nodes.

Lines are found by keyword proximity in the raw statement text, not from
parser positions.  Join nodes claim distinct lines so that two joins of the
same type are not both bound to the first occurrence.
"""

from __future__ import annotations

import re

from flow_engine.models.flow import AccessMode, FlowNode, FlowNodeKind

KEYWORDS: tuple[str, ...] = (
    "SELECT",
    "FROM",
    "WHERE",
    "GROUP BY",
    "HAVING",
    "ORDER BY",
    "LIMIT",
    "INNER JOIN",
    "LEFT JOIN",
    "RIGHT JOIN",
    "FULL JOIN",
    "CROSS JOIN",
    "LEFT OUTER JOIN",
    "RIGHT OUTER JOIN",
    "FULL OUTER JOIN",
    "JOIN",
    "WITH",
    "UNION",
    "INTERSECT",
    "EXCEPT",
    "INSERT",
    "UPDATE",
    "DELETE",
    "MERGE",
    "CREATE",
    "DROP",
)

_JOIN_KEYWORDS = (
    "LEFT OUTER JOIN",
    "RIGHT OUTER JOIN",
    "FULL OUTER JOIN",
    "INNER JOIN",
    "LEFT JOIN",
    "RIGHT JOIN",
    "FULL JOIN",
    "CROSS JOIN",
)

_PATTERNS = {
    kw: re.compile(r"\b" + r"\s+".join(kw.split()) + r"\b", re.IGNORECASE) for kw in KEYWORDS
}

# Node kinds located by the first occurrence of a single keyword.
_FIRST_KEYWORD = {
    FlowNodeKind.SORT: "ORDER BY",
    FlowNodeKind.LIMIT: "LIMIT",
    FlowNodeKind.SELECT: "SELECT",
    FlowNodeKind.CTE: "WITH",
    FlowNodeKind.WINDOW: "SELECT",
    FlowNodeKind.CASE: "SELECT",
}


def keyword_lines(sql: str) -> dict[str, list[int]]:
    """Map each keyword to the 1-indexed lines it appears on."""
    found: dict[str, list[int]] = {}
    for number, line in enumerate(sql.split("\n"), start=1):
        for keyword, pattern in _PATTERNS.items():
            if pattern.search(line):
                found.setdefault(keyword, []).append(number)
    return found


def assign_line_numbers(nodes: list[FlowNode], sql: str) -> None:
    """Set ``source_line`` on the top-level *nodes* in place."""
    lines = keyword_lines(sql)
    text_lines = sql.split("\n")
    used_join_lines: set[int] = set()

    def first(keyword: str) -> int | None:
        hits = lines.get(keyword)
        return hits[0] if hits else None

    read_start = min(
        [*lines.get("FROM", []), *lines.get("JOIN", []), len(text_lines)]
    )

    for node in nodes:
        kind = node.kind
        if kind == FlowNodeKind.TABLE:
            start = 1 if node.access_mode == AccessMode.WRITE else read_start
            node.source_line = _find_name(text_lines, node.label, start) or first("FROM")
        elif kind == FlowNodeKind.JOIN:
            node.source_line = _claim_join_line(node.label, lines, used_join_lines)
        elif kind == FlowNodeKind.FILTER:
            node.source_line = first("HAVING" if node.label == "HAVING" else "WHERE")
        elif kind == FlowNodeKind.AGGREGATE:
            node.source_line = first("GROUP BY") if node.label == "GROUP BY" else first("SELECT")
        elif kind == FlowNodeKind.UNION:
            node.source_line = first("UNION") or first("INTERSECT") or first("EXCEPT")
        elif kind == FlowNodeKind.RESULT:
            keyword = node.label.split()[0].upper() if node.label else "SELECT"
            node.source_line = first(keyword) or first("SELECT")
        elif kind == FlowNodeKind.SUBQUERY:
            node.source_line = first("FROM")
        elif kind in _FIRST_KEYWORD:
            node.source_line = first(_FIRST_KEYWORD[kind])


def _claim_join_line(
    label: str, lines: dict[str, list[int]], used: set[int]
) -> int | None:
    upper = label.upper()
    candidates = [kw for kw in _JOIN_KEYWORDS if kw in upper] + ["JOIN"]
    for keyword in candidates:
        for line in lines.get(keyword, []):
            if line not in used:
                used.add(line)
                return line
    return None


def _find_name(text_lines: list[str], name: str, start_line: int) -> int | None:
    """Return the first line at or after *start_line* mentioning *name*."""
    if not name:
        return None
    pattern = re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE)
    for number in range(max(start_line, 1), len(text_lines) + 1):
        if pattern.search(text_lines[number - 1]):
            return number
    return None


def shift_lines(nodes: list[FlowNode], offset: int) -> None:
    """Move node line numbers from statement-relative to document-relative."""
    if offset == 0:
        return
    for node in nodes:
        if node.source_line is not None:
            node.source_line += offset
        if node.end_line is not None:
            node.end_line += offset
