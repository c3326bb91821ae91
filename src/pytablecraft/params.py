"""Per-request parameters and caller context."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pytablecraft.config import FilterGroup, Operator, SortDirection


@dataclass(frozen=True)
class FilterParam:
    operator: Operator = Operator.EQ
    value: Any = None


@dataclass(frozen=True)
class SortParam:
    field: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class EngineParams:
    """Parsed request parameters.

    ``cursor`` and ``page`` select mutually exclusive pagination modes;
    a cursor wins when both are present.
    """

    filters: dict[str, FilterParam | list[FilterParam]] = field(default_factory=dict)
    filter_groups: tuple[FilterGroup, ...] = ()
    where: str | None = None
    search: str | None = None
    sort: tuple[SortParam, ...] = ()
    page: int | None = None
    page_size: int | None = None
    cursor: str | None = None
    select: tuple[str, ...] | None = None
    include_deleted: bool = False

    def filter_items(self) -> list[tuple[str, FilterParam]]:
        """Flatten the filter map into ``(field, param)`` pairs."""
        items: list[tuple[str, FilterParam]] = []
        for name, value in self.filters.items():
            if isinstance(value, (list, tuple)):
                items.extend((name, p) for p in value)
            else:
                items.append((name, value))
        return items


@dataclass(frozen=True)
class UserContext:
    id: Any = None
    roles: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ()


@dataclass(frozen=True)
class EngineContext:
    tenant_id: Any = None
    user: UserContext | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def lookup(self, path: str) -> tuple[bool, Any]:
        """Resolve a dotted context path such as ``user.id``.

        Returns ``(found, value)``.
        """
        head, _, rest = path.partition(".")
        if head == "tenant_id" or head == "tenantId":
            current: Any = self.tenant_id
            found = True
        elif head == "user":
            current = self.user
            found = self.user is not None
        elif head in self.extra:
            current = self.extra[head]
            found = True
        else:
            return False, None

        for part in rest.split(".") if rest else ():
            if not found:
                break
            if isinstance(current, dict):
                found = part in current
                current = current.get(part)
            elif hasattr(current, part):
                current = getattr(current, part)
            else:
                found = False
                current = None
        return found, current
