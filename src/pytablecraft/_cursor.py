"""Keyset (cursor) pagination.

A cursor is the URL-safe base64 encoding of a compact JSON object mapping
sort field names to the values of the last row on the previous page.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from pytablecraft._fields import FieldResolver
from pytablecraft._sort import SortCompiler, SortSpec, SortTerm
from pytablecraft._sql import Fragment, and_, or_, sql
from pytablecraft._utils import parse_iso_value
from pytablecraft.config import ColumnType, SortDirection

if TYPE_CHECKING:
    from pytablecraft.dialect._base import Dialect

TIEBREAKER_FIELD = "id"


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    raise TypeError(f"cannot encode {type(value).__name__} in a cursor")


def encode_cursor(values: dict[str, Any]) -> str:
    payload = json.dumps(values, separators=(",", ":"), default=_json_default)
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(token: str | None) -> dict[str, Any] | None:
    """Decode a cursor token; malformed tokens decode to None."""
    if not token:
        return None
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        values = json.loads(raw.decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeError):
        return None
    return values if isinstance(values, dict) else None


@dataclass(frozen=True)
class CursorPlan:
    where: Fragment | None
    order_by: list[Fragment]
    limit: int
    sort: list[SortTerm]


def _boundary_value(term: SortTerm, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if term.field.type == ColumnType.DATE:
        parsed = parse_iso_value(value)
        return parsed if parsed is not None else value
    if term.field.type == ColumnType.NUMBER:
        try:
            return Decimal(value)
        except InvalidOperation:
            return value
    return value


def _nulls_trail(term: SortTerm, dialect: Dialect) -> bool:
    """Whether NULLs come after every value in this term's order."""
    if term.field.name == TIEBREAKER_FIELD:
        return False
    return dialect.nulls_first == term.descending


def _equal(term: SortTerm, value: Any) -> Fragment:
    if value is None:
        return sql(term.field.expression, " IS NULL")
    return sql(term.field.expression, " = ", Fragment.param(value))


def _after(term: SortTerm, value: Any, dialect: Dialect) -> list[Fragment]:
    expr = term.field.expression
    trail = _nulls_trail(term, dialect)
    if value is None:
        return [] if trail else [sql(expr, " IS NOT NULL")]
    op = " < " if term.descending else " > "
    after = [sql(expr, op, Fragment.param(value))]
    if trail:
        after.append(sql(expr, " IS NULL"))
    return after


def continuation_predicate(
    terms: list[SortTerm], boundary: dict[str, Any], dialect: Dialect
) -> Fragment | None:
    """Lexicographic OR-expansion over the sort terms.

    ``(f1 > v1) OR (f1 = v1 AND f2 > v2) OR ...`` with ``<`` for descending
    terms. Only the leading run of terms present in ``boundary`` takes
    part. NULL boundary values compare with ``IS NULL``, and NULL rows are
    placed where ``dialect`` sorts them. The ``id`` tiebreaker is taken as
    never NULL.
    """
    active: list[tuple[SortTerm, Any]] = []
    for term in terms:
        if term.field.name not in boundary:
            break
        active.append((term, _boundary_value(term, boundary[term.field.name])))
    if not active:
        return None

    branches = []
    for i, (term, value) in enumerate(active):
        equalities = [_equal(prev, prev_value) for prev, prev_value in active[:i]]
        for step in _after(term, value, dialect):
            branches.append(and_(*equalities, step))
    if not branches:
        return Fragment.text("1 = 0")
    return or_(*branches)


class CursorPagination:
    def __init__(self, resolver: FieldResolver, sort: SortCompiler) -> None:
        self.resolver = resolver
        self.sort = sort

    def effective_sort(self, requested: list[SortSpec] | tuple[SortSpec, ...]) -> list[SortTerm]:
        """Requested or default sort, completed with an ``id`` tiebreaker."""
        terms = self.sort.resolve_strict(requested)
        names = {t.field.name for t in terms}
        tiebreaker = self.resolver.resolve(TIEBREAKER_FIELD)
        if (
            TIEBREAKER_FIELD not in names
            and tiebreaker is not None
            and tiebreaker.sortable
            and tiebreaker.scalar
        ):
            direction = terms[-1].direction if terms else SortDirection.ASC
            terms.append(SortTerm(tiebreaker, direction))
        return terms

    def build(
        self,
        token: str | None,
        page_size: int,
        sort: list[SortSpec] | tuple[SortSpec, ...] = (),
    ) -> CursorPlan:
        terms = self.effective_sort(sort)
        boundary = decode_cursor(token) or {}
        return CursorPlan(
            where=continuation_predicate(terms, boundary, self.resolver.dialect),
            order_by=SortCompiler.build(terms),
            limit=page_size + 1,
            sort=terms,
        )

    @staticmethod
    def build_meta(
        rows: list[dict[str, Any]],
        page_size: int,
        sort: list[SortTerm],
        keys: dict[str, str] | None = None,
    ) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        """Trim the look-ahead row and encode the next cursor from the boundary row.

        ``keys`` maps a sort field to the row column holding its raw value,
        when that is not the field name itself.
        """
        keys = keys or {}
        has_more = len(rows) > page_size
        page = rows[:page_size] if has_more else rows
        next_cursor = None
        if has_more and page:
            last = page[-1]
            next_cursor = encode_cursor({
                t.field.name: last.get(keys.get(t.field.name, t.field.name)) for t in sort
            })
        return page, {"nextCursor": next_cursor, "pageSize": page_size}
