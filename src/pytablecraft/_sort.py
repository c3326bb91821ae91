"""ORDER BY resolution."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from pytablecraft._errors import ERR_MSG_NO_SORT_SOURCE, FieldError
from pytablecraft._fields import Capability, FieldResolver, ResolvedField
from pytablecraft._sql import Fragment
from pytablecraft.config import SortDirection, TableConfig

logger = logging.getLogger(__name__)


class SortSpec(Protocol):
    field: str
    direction: SortDirection


@dataclass(frozen=True)
class SortTerm:
    field: ResolvedField
    direction: SortDirection

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESC

    def to_fragment(self) -> Fragment:
        return self.field.expression + (" DESC" if self.descending else " ASC")


class SortCompiler:
    def __init__(self, config: TableConfig, resolver: FieldResolver) -> None:
        self.config = config
        self.resolver = resolver

    def _lenient(self, specs: Iterable[SortSpec]) -> list[SortTerm]:
        terms = []
        for spec in specs:
            field = self.resolver.resolve(spec.field)
            if field is None:
                logger.info("dropping sort on unknown field %r", spec.field)
                continue
            if not field.allows(Capability.SORT):
                logger.info("dropping sort on unsortable field %r", spec.field)
                continue
            terms.append(SortTerm(field, SortDirection(spec.direction)))
        return terms

    def default(self) -> list[SortTerm]:
        return self._lenient(self.config.default_sort)

    def resolve(self, sort: Iterable[SortSpec] = ()) -> list[SortTerm]:
        """Effective sort for offset mode.

        Request fields that do not resolve or cannot be sorted are dropped;
        the default sort applies when nothing is left.
        """
        return self._lenient(sort) or self.default()

    def resolve_strict(self, sort: Iterable[SortSpec] = ()) -> list[SortTerm]:
        """Effective sort for cursor mode, where every requested field must sort."""
        terms = []
        for spec in sort:
            field = self.resolver.resolve(spec.field)
            if field is None:
                raise FieldError(spec.field, ERR_MSG_NO_SORT_SOURCE)
            field = self.resolver.require(spec.field, Capability.SORT)
            terms.append(SortTerm(field, SortDirection(spec.direction)))
        return terms or self.default()

    @staticmethod
    def build(terms: Iterable[SortTerm]) -> list[Fragment]:
        return [t.to_fragment() for t in terms]
