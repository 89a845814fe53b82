"""Traversal helpers over the toolkit expression model.

All walks are depth-bounded and never descend into the body of a
:class:`SubqueryExpr`; callers that care about nested queries handle them
explicitly.
"""

from __future__ import annotations

from collections.abc import Iterator

from flow_engine.sql_toolkit import (
    BinaryExpr,
    CaseExpr,
    CastExpr,
    Expr,
    FunctionExpr,
    FunctionSource,
    QueryStatement,
    SelectStatement,
    SetOperation,
    SubqueryExpr,
    SubquerySource,
    TableSource,
    UnaryExpr,
    UnknownExpr,
)

_CONNECTIVES = frozenset({"AND", "OR"})


def child_exprs(expr: Expr) -> tuple[Expr, ...]:
    """Return the direct sub-expressions of *expr*."""
    if isinstance(expr, BinaryExpr):
        return (expr.left, expr.right)
    if isinstance(expr, FunctionExpr):
        return expr.args
    if isinstance(expr, CaseExpr):
        children: list[Expr] = []
        if expr.operand is not None:
            children.append(expr.operand)
        for branch in expr.branches:
            children.extend((branch.condition, branch.result))
        if expr.default is not None:
            children.append(expr.default)
        return tuple(children)
    if isinstance(expr, (UnaryExpr, CastExpr)):
        return (expr.operand,)
    if isinstance(expr, UnknownExpr):
        return expr.children
    return ()


def walk_expr(expr: Expr | None, max_depth: int = 64) -> Iterator[Expr]:
    """Yield *expr* and its sub-expressions, pre-order, up to *max_depth*."""
    if expr is None:
        return
    stack: list[tuple[Expr, int]] = [(expr, 0)]
    while stack:
        node, depth = stack.pop()
        yield node
        if depth >= max_depth:
            continue
        for child in reversed(child_exprs(node)):
            stack.append((child, depth + 1))


def expr_sql(expr: Expr | None) -> str:
    if expr is None:
        return ""
    return getattr(expr, "sql_text", "") or "?"


def split_conditions(expr: Expr | None, max_depth: int = 64) -> list[str]:
    """Split a predicate on top-level AND/OR into its leaf conditions."""
    if expr is None:
        return []
    conditions: list[str] = []
    stack: list[tuple[Expr, int]] = [(expr, 0)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, BinaryExpr) and node.operator in _CONNECTIVES and depth < max_depth:
            stack.append((node.right, depth + 1))
            stack.append((node.left, depth + 1))
        else:
            conditions.append(expr_sql(node))
    return conditions


def find_aggregates(expr: Expr | None, max_depth: int = 64) -> list[FunctionExpr]:
    """Return aggregate calls in *expr* that are not window functions."""
    found: list[FunctionExpr] = []
    if expr is None:
        return found
    stack: list[tuple[Expr, int]] = [(expr, 0)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, FunctionExpr):
            if node.is_window:
                continue
            if node.aggregate:
                found.append(node)
                continue
        if depth < max_depth:
            stack.extend((c, depth + 1) for c in reversed(child_exprs(node)))
    return found


def find_windows(expr: Expr | None, max_depth: int = 64) -> list[FunctionExpr]:
    return [
        e for e in walk_expr(expr, max_depth) if isinstance(e, FunctionExpr) and e.is_window
    ]


def find_cases(expr: Expr | None, max_depth: int = 64) -> list[CaseExpr]:
    return [e for e in walk_expr(expr, max_depth) if isinstance(e, CaseExpr)]


def find_subqueries(expr: Expr | None, max_depth: int = 64) -> list[SubqueryExpr]:
    return [e for e in walk_expr(expr, max_depth) if isinstance(e, SubqueryExpr)]


def find_functions(expr: Expr | None, max_depth: int = 64) -> list[FunctionExpr]:
    return [e for e in walk_expr(expr, max_depth) if isinstance(e, FunctionExpr)]


def select_blocks(query: QueryStatement) -> list[SelectStatement]:
    """Return the SELECT blocks of a (possibly compound) query, left to right."""
    if isinstance(query, SetOperation):
        return select_blocks(query.left) + select_blocks(query.right)
    return [query]


def query_tables(query: QueryStatement, cte_names: frozenset[str] = frozenset()) -> list[str]:
    """Return physical table names read by *query*, in first-seen order.

    Derived tables, expression subqueries and set-operation branches are
    followed; names in *cte_names* and the query's own CTEs are excluded.
    """
    names: list[str] = []
    seen: set[str] = set()
    pending: list[tuple[QueryStatement, frozenset[str]]] = [(query, cte_names)]

    while pending:
        current, scope = pending.pop(0)
        scope = scope | {c.name.lower() for c in current.ctes}
        for cte in current.ctes:
            pending.append((cte.query, scope))
        for block in select_blocks(current):
            block_scope = scope | {c.name.lower() for c in block.ctes}
            if block is not current:
                for cte in block.ctes:
                    pending.append((cte.query, block_scope))
            for source in block.from_sources:
                if isinstance(source, TableSource):
                    key = source.display_name.lower()
                    if source.name.lower() not in block_scope and key not in seen:
                        seen.add(key)
                        names.append(source.display_name)
                elif isinstance(source, SubquerySource):
                    pending.append((source.query, block_scope))
            exprs: list[Expr | None] = [block.where, block.having]
            exprs.extend(item.expr for item in block.items)
            exprs.extend(j.condition for j in block.joins)
            for expr in exprs:
                for sub in find_subqueries(expr):
                    pending.append((sub.query, block_scope))
    return names


def referenced_names(query: QueryStatement) -> set[str]:
    """Return the lower-cased bare name of every table source anywhere in *query*.

    CTE bodies, derived tables and expression subqueries are searched and
    CTE names are not filtered out.
    """
    names: set[str] = set()
    pending: list[QueryStatement] = [query]
    while pending:
        current = pending.pop()
        pending.extend(c.query for c in current.ctes)
        for block in select_blocks(current):
            if block is not current:
                pending.extend(c.query for c in block.ctes)
            for source in block.from_sources:
                if isinstance(source, TableSource):
                    names.add(source.name.lower())
                elif isinstance(source, SubquerySource):
                    pending.append(source.query)
            exprs: list[Expr | None] = [block.where, block.having]
            exprs.extend(item.expr for item in block.items)
            exprs.extend(j.condition for j in block.joins)
            for expr in exprs:
                pending.extend(sub.query for sub in find_subqueries(expr))
    return names

def source_label(source: object) -> str:
    """Return the display label of a FROM item."""
    if isinstance(source, TableSource):
        return source.display_name
    if isinstance(source, SubquerySource):
        return source.alias or "subquery"
    if isinstance(source, FunctionSource):
        return source.alias or source.name
    return getattr(source, "alias", None) or getattr(source, "sql_text", "") or "unknown"
