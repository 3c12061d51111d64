"""Row predicates, ordering and select-clause parsing for the query builder.

Operators follow PostgREST names (``eq``, ``ilike``, ``in``...). A filter that
cannot be understood compiles to ``None``, which the executor treats as "no
filtering"; a comparison between incomparable values simply does not match.
"""

import operator
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, TypeAlias

from loguru import logger

Row: TypeAlias = dict[str, Any]
Predicate: TypeAlias = Callable[[Row], bool]

_ORDERING: dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}
OPERATORS = frozenset({"eq", "neq", "like", "ilike", "is", "in", *_ORDERING})


def like_to_regex(pattern: str, *, case_sensitive: bool) -> re.Pattern[str]:
    """Translate a SQL LIKE pattern (``%`` and ``_`` wildcards) into an anchored regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), flags=re.DOTALL if case_sensitive else re.DOTALL | re.IGNORECASE)


def _ordered(compare: Callable[[Any, Any], bool], left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    try:
        return compare(left, right)
    except TypeError:
        return False


def build_predicate(column: str, op: str, value: Any) -> Predicate | None:
    match op:
        case "eq":
            return lambda row: row.get(column) == value
        case "neq":
            return lambda row: row.get(column) is not None and row.get(column) != value
        case "gt" | "gte" | "lt" | "lte":
            compare = _ORDERING[op]
            return lambda row: _ordered(compare, row.get(column), value)
        case "like" | "ilike":
            if not isinstance(value, str):
                return None
            regex = like_to_regex(value, case_sensitive=op == "like")
            return lambda row: row.get(column) is not None and regex.fullmatch(str(row[column])) is not None
        case "is":
            return lambda row: row.get(column) is value if value is None else row.get(column) == value
        case "in":
            if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
                return None
            options = list(value)
            return lambda row: row.get(column) in options
        case _:
            return None


@dataclass(frozen=True)
class ColumnFilter:
    column: str
    op: str
    value: Any
    negate: bool = False

    def compile(self) -> Predicate | None:
        predicate = build_predicate(self.column, self.op, self.value)
        if predicate is None:
            logger.warning(f"Unsupported filter {self.column}.{self.op}, ignoring it")
            return None
        if self.negate:
            if self.op == "is":
                return lambda row: not predicate(row)
            # SQL NOT over a null column is unknown, so the row is filtered out
            return lambda row: row.get(self.column) is not None and not predicate(row)
        return predicate


@dataclass(frozen=True)
class OrFilter:
    expression: str

    def compile(self) -> Predicate | None:
        try:
            predicates = [f.compile() for f in parse_or(self.expression)]
        except ValueError as e:
            logger.warning(f"Malformed or() expression {self.expression!r}: {e}; ignoring it")
            return None
        if any(p is None for p in predicates):
            return None
        return lambda row: any(p(row) for p in predicates)


Filter: TypeAlias = ColumnFilter | OrFilter


@dataclass(frozen=True)
class Order:
    column: str
    desc: bool = False
    nulls_first: bool = False


def sort_rows(rows: list[Row], orders: tuple[Order, ...]) -> list[Row]:
    """Sort by every order, the first one being the primary key (stable sorts applied last-to-first)."""
    for order in reversed(orders):
        present = [r for r in rows if r.get(order.column) is not None]
        missing = [r for r in rows if r.get(order.column) is None]
        try:
            present = sorted(present, key=lambda r: r[order.column], reverse=order.desc)
        except TypeError:
            logger.warning(f"Cannot order by {order.column}: mixed value types, keeping current order")
        rows = missing + present if order.nulls_first else present + missing
    return rows


# ── Expression parsing ─────────────────────────────────────────────────────────

def split_top_level(text: str, sep: str = ",") -> Iterator[str]:
    """Split on *sep* outside parentheses and double quotes.

    Raises:
        ValueError on unbalanced parentheses or quotes
    """
    depth = 0
    quoted = False
    current: list[str] = []
    for char in text:
        if char == '"':
            quoted = not quoted
        elif not quoted and char == "(":
            depth += 1
        elif not quoted and char == ")":
            depth -= 1
            if depth < 0:
                raise ValueError("unbalanced parentheses")
        if char == sep and depth == 0 and not quoted:
            yield "".join(current).strip()
            current = []
            continue
        current.append(char)
    if depth != 0 or quoted:
        raise ValueError("unbalanced parentheses or quotes")
    tail = "".join(current).strip()
    if tail:
        yield tail


def parse_literal(text: str) -> Any:
    """Interpret a PostgREST value: null/true/false, numbers, quoted or bare strings."""
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return text[1:-1]
    match text.lower():
        case "null":
            return None
        case "true":
            return True
        case "false":
            return False
    for cast in (int, float):
        try:
            return cast(text)
        except ValueError:
            pass
    return text


def parse_condition(text: str) -> ColumnFilter:
    """Parse ``column.op.value`` or ``column.not.op.value``."""
    column, _, rest = text.partition(".")
    if not column or not rest:
        raise ValueError(f"expected column.operator.value, got {text!r}")
    negate = False
    if rest.startswith("not."):
        negate = True
        rest = rest.removeprefix("not.")
    op, dot, raw = rest.partition(".")
    if not dot or op not in OPERATORS:
        raise ValueError(f"unknown operator in {text!r}")
    if op == "in":
        if not (raw.startswith("(") and raw.endswith(")")):
            raise ValueError(f"in() needs a parenthesised list, got {raw!r}")
        value: Any = [parse_literal(item) for item in split_top_level(raw[1:-1])]
    elif op in ("like", "ilike"):
        value = raw[1:-1] if len(raw) >= 2 and raw[0] == raw[-1] == '"' else raw
    else:
        value = parse_literal(raw)
    return ColumnFilter(column, op, value, negate)


def parse_or(expression: str) -> list[ColumnFilter]:
    conditions = list(split_top_level(expression))
    if not conditions:
        raise ValueError("empty expression")
    return [parse_condition(c) for c in conditions]


@dataclass(frozen=True)
class SelectClause:
    columns: tuple[str, ...] | None  # None means every column
    embeds: dict[str, tuple[str, ...] | None]


_EMBED = re.compile(r"^(\w+)\s*\((.*)\)$", re.DOTALL)


def _columns(items: list[str]) -> tuple[str, ...] | None:
    if not items or "*" in items:
        return None
    return tuple(items)


def parse_select(columns: str) -> SelectClause:
    """Parse ``"id, job_title, companies(name), application_activities(*)"``.

    Raises:
        ValueError if the clause is malformed
    """
    plain: list[str] = []
    embeds: dict[str, tuple[str, ...] | None] = {}
    for item in split_top_level(columns):
        if match := _EMBED.match(item):
            name, inner = match.groups()
            embeds[name] = _columns(list(split_top_level(inner)))
        elif re.fullmatch(r"\*|\w+", item):
            plain.append(item)
        else:
            raise ValueError(f"cannot parse select item {item!r}")
    return SelectClause(columns=_columns(plain) if plain or not embeds else None, embeds=embeds)
