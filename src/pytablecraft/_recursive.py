"""Bounded recursive tree queries."""

from __future__ import annotations

from pytablecraft._errors import ConfigError
from pytablecraft._fields import FieldResolver
from pytablecraft._operators import apply_operator
from pytablecraft._sql import Fragment, and_, sql
from pytablecraft._utils import split_qualified, validate_identifier
from pytablecraft.config import RecursiveConfig, TableConfig
from pytablecraft.dialect._features import Feature, require_feature

TREE_CTE_NAME = "tree"


class RecursiveCompiler:
    """Builds ``WITH RECURSIVE`` over the base table.

    The recursive step always carries ``depth < max_depth``, so cyclic or
    malformed parent links cannot recurse forever.
    """

    def __init__(self, config: TableConfig, resolver: FieldResolver) -> None:
        self.config = config
        self.resolver = resolver
        self.dialect = resolver.dialect

    def _physical(self, name: str) -> str:
        col = self.config.column(name)
        source = col.source if col is not None and not col.computed else name
        qualifier, column = split_qualified(source)
        if qualifier is not None and qualifier != self.config.base:
            raise ConfigError(
                f"tree key '{name}' must be a base table column",
                f"recursive key {name!r} resolves to {source!r}",
            )
        validate_identifier(column, "tree key")
        return column

    def _root_predicate(self, rc: RecursiveConfig, table: str, parent: str) -> Fragment:
        if rc.start_with is not None:
            target = self.resolver.base_column(rc.start_with.field)
            pred = apply_operator(
                rc.start_with.operator, target, rc.start_with.value, self.dialect
            )
            if pred is not None:
                return pred
        return Fragment.text(f"{table}.{parent} IS NULL")

    def build(self, scope: Fragment | None = None) -> Fragment:
        """Compile the tree query.

        ``scope`` (tenant, soft delete, backend conditions) is applied to
        both the root rows and every recursive step.
        """
        rc = self.config.recursive
        if rc is None:
            raise ConfigError(
                "table has no recursive configuration",
                f"{self.config.name!r} has no recursive config",
            )
        require_feature(self.dialect.name, Feature.RECURSIVE_CTE)
        if isinstance(rc.max_depth, bool) or not isinstance(rc.max_depth, int) or rc.max_depth < 1:
            raise ConfigError(
                "max_depth must be a positive integer",
                f"recursive max_depth={rc.max_depth!r}",
            )

        q = self.dialect.quote_identifier
        table = q(self.config.base)
        parent = q(self._physical(rc.parent_key))
        child = q(self._physical(rc.child_key))
        depth = q(rc.depth_alias)
        cte = TREE_CTE_NAME

        seed_path = Fragment()
        step_path = Fragment()
        if rc.path_alias:
            path = q(rc.path_alias)
            seed_path = sql(
                ", ", self.dialect.cast_to_text(Fragment.text(f"{table}.{child}")),
                f" AS {path}",
            )
            joined = self.dialect.string_concat(
                self.dialect.string_concat(Fragment.text(f"t.{path}"), Fragment.text("'/'")),
                self.dialect.cast_to_text(Fragment.text(f"{table}.{child}")),
            )
            step_path = sql(", ", joined, f" AS {path}")

        root = and_(self._root_predicate(rc, table, parent), scope)
        step_where = and_(Fragment.text(f"t.{depth} < {rc.max_depth}"), scope)

        return sql(
            f"WITH RECURSIVE {cte} AS (SELECT {table}.*, 0 AS {depth}", seed_path,
            f" FROM {table} WHERE ", root,
            f" UNION ALL SELECT {table}.*, t.{depth} + 1", step_path,
            f" FROM {table} INNER JOIN {cte} t ON {table}.{parent} = t.{child}",
            " WHERE ", step_where,
            f") SELECT * FROM {cte} ORDER BY {depth}, {child}",
        )
