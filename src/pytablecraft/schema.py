"""Physical table schemas for configuration checks."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ColumnSchema:
    """Schema for a single database column."""

    name: str
    type: str = "text"
    nullable: bool = True


class TableSchema:
    """Table schema with O(1) column lookup."""

    def __init__(self, name: str, columns: list[ColumnSchema]) -> None:
        self.name = name
        self._columns = list(columns)
        self._index: dict[str, ColumnSchema] = {c.name: c for c in columns}

    @property
    def columns(self) -> list[ColumnSchema]:
        return list(self._columns)

    def find_column(self, name: str) -> ColumnSchema | None:
        return self._index.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self._columns)
