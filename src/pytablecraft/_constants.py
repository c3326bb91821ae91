"""Resource limit and default constants for query compilation."""

DEFAULT_PAGE_SIZE = 10
"""Page size used when a request does not ask for one."""

DEFAULT_MAX_PAGE_SIZE = 100
"""Upper clamp for a requested page size."""

DEFAULT_MAX_TREE_DEPTH = 10
"""Default recursion ceiling for tree queries."""

MAX_FILTER_DEPTH = 32
"""Maximum nesting depth for filter expression groups (CWE-674 prevention)."""

MAX_SQL_OUTPUT_LENGTH = 100000
"""Maximum rendered SQL statement length."""

DEFAULT_CACHE_TTL = 60
"""Seconds a cached response stays fresh."""

DEFAULT_CACHE_MAX_ENTRIES = 1000
"""Cache capacity before the oldest entry is evicted."""

TOTAL_COUNT_ALIAS = "_totalCount"
"""Alias of the row count added to standalone aggregation selects."""

CURSOR_KEY_PREFIX = "_cursor_"
"""Alias prefix of raw sort-key columns selected for cursor encoding."""
