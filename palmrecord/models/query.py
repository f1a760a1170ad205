"""
PalmRecord Query Builder — fluent, mutable, async-terminal query chain.

A ``QueryBuilder`` accumulates filters, joins, grouping, ordering and
pagination for one table, and compiles them into a single parameterized
statement. Chain methods mutate the builder and return it; terminal
methods (``all``, ``one``, ``count``, ``exists``, aggregates, ``chunk``)
are coroutines that execute the statement.

Every value is bound through a ``?`` placeholder, in the order the clauses
were added, including IN lists, BETWEEN bounds and raw fragments.

Usage:
    expensive = await (
        Product.query()
        .where("price", ">", 15)
        .order_by("price", "DESC")
        .all()
    )

    total = await Order.where("status", "paid").sum("amount")

    users = await User.query().with_relations("posts").all()

A builder is single-owner: do not share one instance between concurrent
chains. Use ``clone()`` to fork a chain.
"""

from __future__ import annotations

import inspect
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Type, TYPE_CHECKING

from ..faults.domains import QueryArgumentFault, RelationFault
from .collection import Collection

if TYPE_CHECKING:
    from ..db.engine import Database
    from .base import Model

logger = logging.getLogger("palmrecord.models.query")

__all__ = ["QueryBuilder", "ResultMode"]

_MISSING = object()

OPERATORS = frozenset({"=", "!=", "<>", "<", "<=", ">", ">=", "LIKE", "NOT LIKE"})

# filter("age", ">20") / filter({"age": ">=18"})
_COMBINED_OP_RE = re.compile(r"^(>=|<=|>|<|!=|<>)\s*(.+)$", re.DOTALL)

# Select, having and aggregate terms that are SQL expressions rather than column names
_EXPRESSION_RE = re.compile(
    r"\b(COUNT|SUM|AVG|MAX|MIN|CONCAT|CASE|WHEN|THEN|ELSE|END|AS|DISTINCT)\b|[()]",
    re.IGNORECASE,
)

_JOIN_TYPES = ("INNER", "LEFT", "RIGHT", "CROSS")


class ResultMode:
    MODEL = "model"
    OBJECT = "object"
    DICT = "dict"


@dataclass(frozen=True)
class _Where:
    """One WHERE clause. ``kind`` selects how it is rendered."""

    kind: str
    boolean: str = "AND"
    column: str = ""
    operator: str = "="
    value: Any = None
    values: Tuple[Any, ...] = ()
    extra: Any = None


@dataclass(frozen=True)
class _Join:
    type: str
    table: str
    first: Optional[str] = None
    operator: Optional[str] = None
    second: Optional[str] = None


@dataclass
class _Having:
    column: str
    operator: str
    value: Any = field(default=None)


def _normalize_operator(operator: Any, operation: str) -> str:
    if not isinstance(operator, str):
        raise QueryArgumentFault(operation, f"operator must be a string, got {type(operator).__name__}")
    op = " ".join(operator.upper().split())
    if op not in OPERATORS:
        raise QueryArgumentFault(operation, f"unsupported operator {operator!r}")
    return op


class QueryBuilder:
    """
    Fluent query builder bound to one model class.

    State is kept as structured clauses and rendered on demand by
    ``to_sql_with_bindings()``, so compiling twice yields the same SQL.
    """

    __slots__ = (
        "_model_cls",
        "_table",
        "_db",
        "_wheres",
        "_joins",
        "_group_by",
        "_havings",
        "_orders",
        "_limit_val",
        "_offset_val",
        "_columns",
        "_with",
        "_mode",
    )

    def __init__(self, model_cls: Type[Model], db: Optional[Database] = None):
        self._model_cls = model_cls
        self._table: str = model_cls.table
        self._db = db
        self._wheres: List[_Where] = []
        self._joins: List[_Join] = []
        self._group_by: List[str] = []
        self._havings: List[_Having] = []
        self._orders: List[Tuple[str, str]] = []
        self._limit_val: Optional[int] = None
        self._offset_val: Optional[int] = None
        self._columns: List[str] = ["*"]
        self._with: List[str] = []
        self._mode: str = ResultMode.MODEL

    @property
    def db(self) -> Database:
        if self._db is None:
            self._db = self._model_cls.get_database()
        return self._db

    @property
    def model(self) -> Type[Model]:
        return self._model_cls

    @property
    def table(self) -> str:
        return self._table

    # ── Result modes ─────────────────────────────────────────────────

    def as_models(self) -> QueryBuilder:
        """Hydrate rows into model instances wrapped in a Collection (default)."""
        self._mode = ResultMode.MODEL
        return self

    def as_objects(self) -> QueryBuilder:
        """Return rows as attribute-access namespaces in a list."""
        self._mode = ResultMode.OBJECT
        return self

    def as_dicts(self) -> QueryBuilder:
        """Return rows as plain dicts in a list."""
        self._mode = ResultMode.DICT
        return self

    # ── WHERE ────────────────────────────────────────────────────────

    def _add_basic(self, boolean: str, column: Any, operator: Any, value: Any, operation: str) -> QueryBuilder:
        if isinstance(column, Mapping):
            for key, val in column.items():
                self._add_basic(boolean, key, val, _MISSING, operation)
            return self

        if operator is _MISSING:
            raise QueryArgumentFault(operation, f"no value given for column '{column}'")
        if value is _MISSING:
            # where("id", 1) means where("id", "=", 1)
            value = operator
            operator = "="

        op = _normalize_operator(operator, operation)
        if value is None:
            kind = "not_null" if op in ("!=", "<>") else "null"
            if op not in ("=", "!=", "<>"):
                raise QueryArgumentFault(operation, f"cannot compare '{column}' {op} NULL")
            self._wheres.append(_Where(kind, boolean, column))
        else:
            self._wheres.append(_Where("basic", boolean, column, op, value))
        return self

    def where(self, column: Any, operator: Any = _MISSING, value: Any = _MISSING) -> QueryBuilder:
        """
        Add an AND condition.

            .where("id", 5)                  # `id` = ?
            .where("price", ">", 15)         # `price` > ?
            .where({"status": "active", "role": "admin"})
            .where("deleted_at", None)       # `deleted_at` IS NULL
        """
        return self._add_basic("AND", column, operator, value, "where")

    def and_where(self, column: Any, operator: Any = _MISSING, value: Any = _MISSING) -> QueryBuilder:
        return self._add_basic("AND", column, operator, value, "and_where")

    def or_where(self, column: Any, operator: Any = _MISSING, value: Any = _MISSING) -> QueryBuilder:
        """Add an OR condition; a mapping adds one OR condition per key."""
        return self._add_basic("OR", column, operator, value, "or_where")

    def filter(self, column: Any, operator: Any = _MISSING, value: Any = _MISSING) -> QueryBuilder:
        """
        Like ``where`` but also accepts the operator fused into the value.

            .filter("age", ">20")
            .filter({"name": "John", "age": ">=18"})
        """
        if isinstance(column, Mapping):
            for key, val in column.items():
                self.filter(key, val)
            return self

        if value is _MISSING and isinstance(operator, str):
            match = _COMBINED_OP_RE.match(operator)
            if match:
                return self._add_basic("AND", column, match.group(1), match.group(2).strip(), "filter")
        return self._add_basic("AND", column, operator, value, "filter")

    def where_in(self, column: str, values: Iterable[Any]) -> QueryBuilder:
        """``column IN (?, ...)``; an empty list matches no rows."""
        self._wheres.append(_Where("in", "AND", column, values=tuple(values)))
        return self

    def or_where_in(self, column: str, values: Iterable[Any]) -> QueryBuilder:
        self._wheres.append(_Where("in", "OR", column, values=tuple(values)))
        return self

    def where_not_in(self, column: str, values: Iterable[Any]) -> QueryBuilder:
        """``column NOT IN (?, ...)``; an empty list matches every row."""
        self._wheres.append(_Where("not_in", "AND", column, values=tuple(values)))
        return self

    def _range(self, kind: str, column: str, values: Sequence[Any], operation: str) -> QueryBuilder:
        bounds = tuple(values) if not isinstance(values, (str, bytes)) else (values,)
        if len(bounds) != 2:
            raise QueryArgumentFault(operation, f"expects exactly 2 values, got {len(bounds)}")
        self._wheres.append(_Where(kind, "AND", column, values=bounds))
        return self

    def where_between(self, column: str, values: Sequence[Any]) -> QueryBuilder:
        return self._range("between", column, values, "where_between")

    def where_not_between(self, column: str, values: Sequence[Any]) -> QueryBuilder:
        return self._range("not_between", column, values, "where_not_between")

    def where_null(self, column: str) -> QueryBuilder:
        self._wheres.append(_Where("null", "AND", column))
        return self

    def where_not_null(self, column: str) -> QueryBuilder:
        self._wheres.append(_Where("not_null", "AND", column))
        return self

    def or_where_null(self, column: str) -> QueryBuilder:
        self._wheres.append(_Where("null", "OR", column))
        return self

    def where_date(self, column: str, operator: Any, value: Any = _MISSING) -> QueryBuilder:
        """Compare the date part of a column: ``where_date("created_at", ">", "2024-01-01")``."""
        if value is _MISSING:
            value, operator = operator, "="
        op = _normalize_operator(operator, "where_date")
        self._wheres.append(_Where("date_part", "AND", column, op, str(value), extra="date"))
        return self

    def where_month(self, column: str, month: int) -> QueryBuilder:
        self._wheres.append(_Where("date_part", "AND", column, "=", int(month), extra="month"))
        return self

    def where_year(self, column: str, year: int) -> QueryBuilder:
        self._wheres.append(_Where("date_part", "AND", column, "=", int(year), extra="year"))
        return self

    def where_column(self, first: str, operator: str, second: Any = _MISSING) -> QueryBuilder:
        """Compare two columns; the right-hand side is an identifier, never a value."""
        if second is _MISSING:
            second, operator = operator, "="
        op = _normalize_operator(operator, "where_column")
        self._wheres.append(_Where("column", "AND", first, op, extra=second))
        return self

    def where_raw(self, sql: str, bindings: Optional[Sequence[Any]] = None) -> QueryBuilder:
        """Add a raw, parenthesized fragment with its own ``?`` bindings."""
        bindings = tuple(bindings or ())
        if sql.count("?") != len(bindings):
            raise QueryArgumentFault(
                "where_raw",
                f"{sql.count('?')} placeholder(s) but {len(bindings)} binding(s)",
            )
        self._wheres.append(_Where("raw", "AND", value=sql, values=bindings))
        return self

    def search(self, term: Optional[str], columns: Any) -> QueryBuilder:
        """
        Grouped ``(c1 LIKE ? OR c2 LIKE ?)`` substring match.

        An empty term or an empty column list adds nothing.
        """
        if not term:
            return self
        if isinstance(columns, str):
            columns = [columns]
        columns = tuple(columns or ())
        if not columns:
            return self
        self._wheres.append(_Where("search", "AND", value=f"%{term}%", values=columns))
        return self

    # ── Joins, grouping, ordering, pagination ────────────────────────

    def join(self, table: str, first: str, operator: str, second: str, type: str = "INNER") -> QueryBuilder:
        join_type = type.upper()
        if join_type not in _JOIN_TYPES:
            raise QueryArgumentFault("join", f"unsupported join type {type!r}")
        op = _normalize_operator(operator, "join")
        self._joins.append(_Join(join_type, table, first, op, second))
        return self

    def left_join(self, table: str, first: str, operator: str, second: str) -> QueryBuilder:
        return self.join(table, first, operator, second, "LEFT")

    def right_join(self, table: str, first: str, operator: str, second: str) -> QueryBuilder:
        return self.join(table, first, operator, second, "RIGHT")

    def cross_join(self, table: str) -> QueryBuilder:
        self._joins.append(_Join("CROSS", table))
        return self

    def group_by(self, *columns: str) -> QueryBuilder:
        self._group_by.extend(columns)
        return self

    def having(self, column: str, operator: str, value: Any) -> QueryBuilder:
        """``HAVING column op ?``; ``column`` may be an aggregate expression."""
        op = _normalize_operator(operator, "having")
        self._havings.append(_Having(column, op, value))
        return self

    def order_by(self, column: str, direction: str = "ASC") -> QueryBuilder:
        direction = "DESC" if str(direction).upper() == "DESC" else "ASC"
        self._orders.append((column, direction))
        return self

    def limit(self, n: int) -> QueryBuilder:
        self._limit_val = int(n)
        return self

    def offset(self, n: int) -> QueryBuilder:
        self._offset_val = int(n)
        return self

    def skip(self, n: int) -> QueryBuilder:
        return self.offset(n)

    def from_to(self, start: int, end: int) -> QueryBuilder:
        """Rows ``start`` (inclusive) to ``end`` (exclusive); an inverted range yields nothing."""
        self._offset_val = int(start)
        self._limit_val = max(int(end) - int(start), 0)
        return self

    def select(self, *columns: Any) -> QueryBuilder:
        """
        Choose result columns. Plain names are quoted; expressions such as
        ``"COUNT(*) AS total"`` pass through unchanged.
        """
        if len(columns) == 1 and isinstance(columns[0], (list, tuple)):
            columns = tuple(columns[0])
        self._columns = list(columns) or ["*"]
        return self

    def with_relations(self, *names: str) -> QueryBuilder:
        """Eager-load declared relations after ``all()`` (model mode only)."""
        if len(names) == 1 and isinstance(names[0], (list, tuple)):
            names = tuple(names[0])
        from .registry import ModelRegistry
        declared = ModelRegistry.relations_for(self._model_cls)
        for name in names:
            if name not in declared:
                raise RelationFault(self._model_cls.__name__, name)
            if name not in self._with:
                self._with.append(name)
        return self

    prefetch_related = with_relations

    # ── Cloning ──────────────────────────────────────────────────────

    def clone(self) -> QueryBuilder:
        """Independent copy of this builder."""
        c = QueryBuilder(self._model_cls, self._db)
        c._wheres = self._wheres.copy()
        c._joins = self._joins.copy()
        c._group_by = self._group_by.copy()
        c._havings = self._havings.copy()
        c._orders = self._orders.copy()
        c._limit_val = self._limit_val
        c._offset_val = self._offset_val
        c._columns = self._columns.copy()
        c._with = self._with.copy()
        c._mode = self._mode
        return c

    _clone = clone

    # ── Compilation ──────────────────────────────────────────────────

    def _quote(self, name: str) -> str:
        return self.db.quote_identifier(name)

    def _term(self, expr: str) -> str:
        """Quote a column name, leaving SQL expressions untouched."""
        if expr == "*" or _EXPRESSION_RE.search(expr):
            return expr
        return self._quote(expr)

    def _render_where(self, clause: _Where) -> Tuple[str, List[Any]]:
        kind = clause.kind
        if kind == "basic":
            return f"{self._quote(clause.column)} {clause.operator} ?", [clause.value]
        if kind == "null":
            return f"{self._quote(clause.column)} IS NULL", []
        if kind == "not_null":
            return f"{self._quote(clause.column)} IS NOT NULL", []
        if kind in ("in", "not_in"):
            if not clause.values:
                return ("1 = 0" if kind == "in" else "1 = 1"), []
            marks = ", ".join("?" for _ in clause.values)
            op = "IN" if kind == "in" else "NOT IN"
            return f"{self._quote(clause.column)} {op} ({marks})", list(clause.values)
        if kind in ("between", "not_between"):
            op = "BETWEEN" if kind == "between" else "NOT BETWEEN"
            return f"{self._quote(clause.column)} {op} ? AND ?", list(clause.values)
        if kind == "date_part":
            expr = self.db.adapter.date_part_sql(clause.extra, self._quote(clause.column))
            return f"{expr} {clause.operator} ?", [clause.value]
        if kind == "column":
            return f"{self._quote(clause.column)} {clause.operator} {self._quote(clause.extra)}", []
        if kind == "raw":
            return f"({clause.value})", list(clause.values)
        if kind == "search":
            parts = [f"{self._quote(col)} LIKE ?" for col in clause.values]
            return "(" + " OR ".join(parts) + ")", [clause.value] * len(parts)
        raise QueryArgumentFault("compile", f"unknown clause kind {kind!r}")

    def _compile_where(self) -> Tuple[str, List[Any]]:
        """
        Combine clauses strictly left to right.

        When the combinator changes after two or more clauses, the running
        expression is parenthesized: ``a OR b`` then ``AND c`` gives
        ``(a OR b) AND c``.
        """
        expr = ""
        bindings: List[Any] = []
        joined = 0
        last_boolean: Optional[str] = None
        for clause in self._wheres:
            sql, params = self._render_where(clause)
            bindings.extend(params)
            if joined == 0:
                expr = sql
            else:
                if last_boolean is not None and clause.boolean != last_boolean and joined > 1:
                    expr = f"({expr})"
                expr = f"{expr} {clause.boolean} {sql}"
                last_boolean = clause.boolean
            joined += 1
        if not expr:
            return "", []
        return f" WHERE {expr}", bindings

    def _compile_joins(self) -> str:
        sql = ""
        for join in self._joins:
            sql += f" {join.type} JOIN {self._quote(join.table)}"
            if join.first is not None:
                sql += f" ON {self._quote(join.first)} {join.operator} {self._quote(join.second)}"
        return sql

    def _compile_select_list(self) -> str:
        if "*" in self._columns:
            return "*"
        return ", ".join(self._term(col) for col in self._columns)

    def _compile_tail(self) -> Tuple[str, List[Any]]:
        sql = ""
        bindings: List[Any] = []
        if self._group_by:
            sql += " GROUP BY " + ", ".join(self._quote(col) for col in self._group_by)
        if self._havings:
            parts = []
            for having in self._havings:
                parts.append(f"{self._term(having.column)} {having.operator} ?")
                bindings.append(having.value)
            sql += " HAVING " + " AND ".join(parts)
        if self._orders:
            sql += " ORDER BY " + ", ".join(f"{self._quote(col)} {direction}" for col, direction in self._orders)
        limit = self.db.adapter.limit_clause(self._limit_val, self._offset_val)
        if limit:
            sql += f" {limit}"
        return sql, bindings

    def to_sql_with_bindings(self) -> Tuple[str, List[Any]]:
        """The compiled SELECT and its positional bindings."""
        where_sql, bindings = self._compile_where()
        tail_sql, tail_bindings = self._compile_tail()
        sql = (
            f"SELECT {self._compile_select_list()} FROM {self._quote(self._table)}"
            f"{self._compile_joins()}{where_sql}{tail_sql}"
        )
        return sql, bindings + tail_bindings

    def to_sql(self) -> str:
        return self.to_sql_with_bindings()[0]

    def _compile_aggregate(self, expression: str) -> Tuple[str, List[Any]]:
        where_sql, bindings = self._compile_where()
        sql = (
            f"SELECT {expression} AS aggregate FROM {self._quote(self._table)}"
            f"{self._compile_joins()}{where_sql}"
        )
        return sql, bindings

    # ── Materialization ──────────────────────────────────────────────

    def _materialize(self, rows: List[dict]) -> Any:
        if self._mode == ResultMode.MODEL:
            return Collection(self._model_cls.from_row(row) for row in rows)
        if self._mode == ResultMode.OBJECT:
            return [SimpleNamespace(**row) for row in rows]
        return rows

    # ── Terminal methods (async, execute query) ──────────────────────

    async def all(self) -> Any:
        """
        Execute and return every matching row.

        Model mode returns a Collection (with requested relations attached);
        object and dict modes return a list.
        """
        sql, bindings = self.to_sql_with_bindings()
        rows = await self.db.fetch_all(sql, bindings)
        logger.debug(f"{self._model_cls.__name__}: {len(rows)} row(s) from {self._table}")
        results = self._materialize(rows)

        if self._mode == ResultMode.MODEL and self._with and results:
            from .relations import RelationshipLoader
            await RelationshipLoader(self._model_cls).load(results, self._with)
        return results

    async def get(self) -> Any:
        return await self.all()

    async def one(self) -> Any:
        """First matching row, or None. Forces ``LIMIT 1``."""
        self.limit(1)
        results = await self.all()
        return results[0] if results else None

    first = one

    async def count(self) -> int:
        """Number of matching rows (ORDER BY and LIMIT are ignored)."""
        sql, bindings = self._compile_aggregate("COUNT(1)")
        val = await self.db.fetch_val(sql, bindings)
        return int(val) if val else 0

    async def exists(self) -> bool:
        return (await self.count()) > 0

    async def _aggregate(self, function: str, column: str) -> Any:
        sql, bindings = self._compile_aggregate(f"{function}({self._term(column)})")
        return await self.db.fetch_val(sql, bindings)

    async def sum(self, column: str) -> Any:
        """SUM over matching rows; None when nothing matches."""
        return await self._aggregate("SUM", column)

    async def avg(self, column: str) -> Any:
        return await self._aggregate("AVG", column)

    async def max(self, column: str) -> Any:
        return await self._aggregate("MAX", column)

    async def min(self, column: str) -> Any:
        return await self._aggregate("MIN", column)

    async def pluck(self, column: str) -> List[Any]:
        """Values of a single column from every matching row."""
        query = self.clone().select(column).as_dicts()
        query._with = []
        rows = await query.all()
        key = column.split(".")[-1]
        return [row[key] for row in rows]

    @staticmethod
    async def _invoke(callback: Callable, results: Any) -> Any:
        outcome = callback(results)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    async def chunk(self, size: int, callback: Callable) -> bool:
        """
        Process matching rows page by page using LIMIT/OFFSET.

        ``callback`` (sync or async) receives each non-empty page; returning
        ``False`` stops early and makes ``chunk`` return False.
        """
        if size < 1:
            raise QueryArgumentFault("chunk", "size must be at least 1")

        page = 0
        while True:
            query = self.clone()
            query._offset_val = page * size
            query._limit_val = size
            results = await query.all()
            count = len(results)
            if count == 0:
                break
            if await self._invoke(callback, results) is False:
                return False
            if count < size:
                break
            page += 1
        return True

    async def chunk_by_id(self, size: int, callback: Callable, column: str = "id") -> bool:
        """
        Like ``chunk`` but pages on an increasing column (``column > last``),
        which stays correct when earlier pages are modified by the callback.
        """
        if size < 1:
            raise QueryArgumentFault("chunk_by_id", "size must be at least 1")

        key = column.split(".")[-1]
        last = None
        while True:
            query = self.clone()
            if last is not None:
                query.where(column, ">", last)
            query._orders = [(column, "ASC")]
            query._offset_val = None
            query._limit_val = size
            results = await query.all()
            count = len(results)
            if count == 0:
                break
            if await self._invoke(callback, results) is False:
                return False
            last = _read(results[-1], key)
            if count < size:
                break
        return True

    # ── Iteration ────────────────────────────────────────────────────

    def __aiter__(self):
        """
        Async iteration over the results.

            async for user in User.where("active", True):
                ...
        """
        return _QueryIterator(self)

    def __repr__(self) -> str:
        return f"<QueryBuilder {self._model_cls.__name__} table={self._table!r} clauses={len(self._wheres)}>"


def _read(row: Any, key: str) -> Any:
    if isinstance(row, Mapping):
        return row[key]
    if hasattr(row, "get") and callable(row.get):
        return row.get(key)
    return getattr(row, key)


class _QueryIterator:
    """Async iterator over QueryBuilder results."""

    def __init__(self, query: QueryBuilder):
        self._query = query
        self._results: Optional[Any] = None
        self._index = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._results is None:
            self._results = await self._query.all()
        if self._index >= len(self._results):
            raise StopAsyncIteration
        item = self._results[self._index]
        self._index += 1
        return item
