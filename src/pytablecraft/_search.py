"""Free-text search across configured fields."""

from __future__ import annotations

from pytablecraft._fields import Capability, FieldResolver
from pytablecraft._sql import Fragment, join, or_
from pytablecraft._utils import escape_like_pattern, validate_no_null_bytes
from pytablecraft.config import SearchConfig
from pytablecraft.dialect._features import Feature, require_feature


class SearchCompiler:
    """OR-combined case-insensitive match of one term across search fields."""

    def __init__(self, config: SearchConfig | None, resolver: FieldResolver) -> None:
        self.config = config if config is not None else SearchConfig(enabled=False)
        self.resolver = resolver
        self.dialect = resolver.dialect

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled and self.config.fields)

    def _targets(self) -> list[Fragment]:
        return [
            self.resolver.require(name, Capability.SEARCH).expression
            for name in self.config.fields
        ]

    def build(self, term: str | None) -> Fragment | None:
        if not self.enabled or term is None:
            return None
        term = term.strip()
        if not term:
            return None
        validate_no_null_bytes("search", term)

        if self.config.full_text:
            return self.full_text(term)

        pattern = f"%{escape_like_pattern(term)}%"
        return or_(*(
            self.dialect.case_insensitive_like(target, Fragment.param(pattern))
            for target in self._targets()
        ))

    def full_text(self, term: str) -> Fragment:
        """``to_tsvector(...) @@ plainto_tsquery(...)`` over all fields."""
        require_feature(self.dialect.name, Feature.FULL_TEXT_SEARCH)
        document = join(
            " || ' ' || ",
            (
                "COALESCE(" + self.dialect.cast_to_text(target) + ", '')"
                for target in self._targets()
            ),
        )
        return self.dialect.full_text_match(document, term, self.config.language)
