"""Composable SQL fragments with deferred parameter placeholders.

Fragments hold SQL text interleaved with :class:`Param` markers. Placeholders
are only written at render time, so fragments can be combined freely and the
final statement still gets consistent ``$1, $2, ...`` numbering.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from io import StringIO
from typing import TYPE_CHECKING, Any

from pytablecraft._constants import MAX_SQL_OUTPUT_LENGTH
from pytablecraft._errors import ERR_MSG_OUTPUT_TOO_LONG, QueryError

if TYPE_CHECKING:
    from pytablecraft.dialect._base import Dialect


@dataclass(frozen=True)
class Param:
    """A bound value. Never interpolated into SQL text."""

    value: Any


@dataclass(frozen=True)
class Statement:
    """A rendered SQL statement and its positional parameters."""

    sql: str
    parameters: list[Any] = field(default_factory=list)


class Fragment:
    """An immutable piece of SQL.

    ``compound`` records whether the fragment is a bare ``AND``/``OR``
    chain so that combinators know when parentheses are needed.
    """

    __slots__ = ("parts", "compound")

    def __init__(
        self, parts: tuple[str | Param, ...] = (), compound: str | None = None
    ) -> None:
        self.parts = parts
        self.compound = compound

    @classmethod
    def text(cls, sql: str) -> Fragment:
        return cls((sql,))

    @classmethod
    def param(cls, value: Any) -> Fragment:
        return cls((Param(value),))

    @property
    def parameters(self) -> list[Any]:
        return [p.value for p in self.parts if isinstance(p, Param)]

    def __add__(self, other: Fragment | str) -> Fragment:
        if isinstance(other, str):
            return Fragment(self.parts + (other,))
        return Fragment(self.parts + other.parts)

    def __radd__(self, other: str) -> Fragment:
        return Fragment((other,) + self.parts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fragment):
            return NotImplemented
        return self.parts == other.parts

    def __hash__(self) -> int:
        return hash(self.parts)

    def __repr__(self) -> str:
        return f"Fragment({self.debug_sql()!r})"

    def wrap(self) -> Fragment:
        """Return the fragment enclosed in parentheses."""
        return "(" + self + ")"

    def debug_sql(self) -> str:
        """SQL text with ``?`` in place of parameters, for logs and reprs."""
        return "".join(p if isinstance(p, str) else "?" for p in self.parts)

    def render(
        self,
        dialect: Dialect,
        *,
        inline: bool = False,
        max_output_length: int = MAX_SQL_OUTPUT_LENGTH,
    ) -> Statement:
        """Render to a statement for ``dialect``.

        With ``inline=True`` parameters are written as escaped literals,
        which is meant for debugging and tests, not for execution.
        """
        w = StringIO()
        parameters: list[Any] = []
        for part in self.parts:
            if isinstance(part, str):
                w.write(part)
            elif inline:
                dialect.write_literal(w, part.value)
            else:
                parameters.append(part.value)
                dialect.write_param_placeholder(w, len(parameters))
            if w.tell() > max_output_length:
                raise QueryError(
                    ERR_MSG_OUTPUT_TOO_LONG,
                    f"output length exceeds limit {max_output_length}",
                )
        return Statement(sql=w.getvalue(), parameters=parameters)


def sql(*pieces: str | Fragment) -> Fragment:
    """Concatenate text and fragments into one fragment."""
    parts: list[str | Param] = []
    for piece in pieces:
        if isinstance(piece, str):
            parts.append(piece)
        else:
            parts.extend(piece.parts)
    return Fragment(tuple(parts))


def join(separator: str, fragments: Iterable[Fragment]) -> Fragment:
    parts: list[str | Param] = []
    for i, frag in enumerate(fragments):
        if i > 0:
            parts.append(separator)
        parts.extend(frag.parts)
    return Fragment(tuple(parts))


def _combine(keyword: str, fragments: Iterable[Fragment | None]) -> Fragment | None:
    other = "OR" if keyword == "AND" else "AND"
    operands = []
    for frag in fragments:
        if frag is None:
            continue
        operands.append(frag.wrap() if frag.compound == other else frag)
    if not operands:
        return None
    if len(operands) == 1:
        return operands[0]
    combined = join(f" {keyword} ", operands)
    combined.compound = keyword
    return combined


def and_(*fragments: Fragment | None) -> Fragment | None:
    """AND-combine fragments, skipping ``None``; OR operands are parenthesized."""
    return _combine("AND", fragments)


def or_(*fragments: Fragment | None) -> Fragment | None:
    """OR-combine fragments, skipping ``None``; AND operands are parenthesized."""
    return _combine("OR", fragments)
