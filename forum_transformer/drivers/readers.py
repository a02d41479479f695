"""Source readers shared by the product drivers."""

from typing import Any, Callable, Dict, List, Optional
import logging

from ..context import RunContext
from .base import BatchHandle, BatchResult, NOT_APPLICABLE, SourceReader

logger = logging.getLogger(__name__)

Translator = Callable[[RunContext, Dict[str, Any]], Optional[Dict[str, Any]]]


def as_int(value: Any, default: int = 0) -> int:
    """Integer value of a column that may be NULL or a numeric string."""
    if value is None or value == "":
        return default
    return int(float(value))


def as_str(value: Any, default: str = "") -> str:
    return default if value is None else str(value)


class PagedReader(SourceReader):
    """
    Reads a table in primary key order, ``limit`` rows at a time.

    Without a translator the key column becomes ``id_old`` when the entity is
    tracked and is dropped otherwise, so the destination assigns new keys.
    """

    def __init__(
        self,
        table: str,
        key: str = "id",
        tracked: bool = True,
        where: str = "",
        params: Optional[Dict[str, Any]] = None,
        translate: Optional[Translator] = None,
        optional: bool = False,
    ):
        """
        Initialize the reader.

        Args:
            table: Source table
            key: Integer key the cursor follows
            tracked: Whether rows keep their old key as ``id_old``
            where: Extra SQL condition on the source rows
            params: Parameters of the extra condition
            translate: Row translation into the destination layout
            optional: Not applicable when the source lacks the table
        """
        self.table = table
        self.key = key
        self.tracked = tracked
        self.where = where
        self.params = params or {}
        self.translator = translate
        self.optional = optional

    def conditions(self, ctx: RunContext) -> List[str]:
        conditions = [f"{self.key} >= :cursor"]
        if self.where:
            conditions.append(self.where)
        return conditions

    def parameters(self, ctx: RunContext) -> Dict[str, Any]:
        return dict(self.params)

    def begin(self, ctx: RunContext, cursor: int) -> BatchResult:
        if self.optional and not ctx.source.has_table(self.table):
            return NOT_APPLICABLE
        params = self.parameters(ctx)
        params.update({"cursor": cursor, "limit": ctx.batch_size})
        rows = ctx.source.query(
            f"SELECT * FROM ::{self.table} WHERE {' AND '.join(self.conditions(ctx))} "
            f"ORDER BY {self.key} LIMIT :limit",
            params,
        )
        return BatchHandle(iter(rows), cursor, self.key)

    def translate(self, ctx: RunContext, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.translator:
            return self.translator(ctx, row)
        row = dict(row)
        old_id = row.pop(self.key)
        if self.tracked:
            row["id_old"] = old_id
        return row


class KeyWindowReader(SourceReader):
    """
    Reads tables keyed by a non-unique column, one window of key values at a time.

    The first query picks up to ``limit`` key values starting at the cursor;
    the second reads every row whose key falls in that window, so rows that
    share a key never straddle two batches.
    """

    def __init__(
        self,
        table: str,
        key: str,
        query: Optional[str] = None,
        translate: Optional[Translator] = None,
        optional: bool = False,
    ):
        self.table = table
        self.key = key
        self.query = query
        self.translator = translate
        self.optional = optional

    def begin(self, ctx: RunContext, cursor: int) -> BatchResult:
        if self.optional and not ctx.source.has_table(self.table):
            return NOT_APPLICABLE

        keys = ctx.source.fetch_column(
            f"SELECT DISTINCT {self.key} FROM ::{self.table} WHERE {self.key} >= :cursor "
            f"ORDER BY {self.key} LIMIT :limit",
            {"cursor": cursor, "limit": ctx.batch_size},
        )
        if not keys:
            return BatchHandle(iter([]), cursor, self.key)

        query = self.query or (
            f"SELECT * FROM ::{self.table} WHERE {self.key} BETWEEN :cursor AND :max ORDER BY {self.key}"
        )
        rows = ctx.source.query(query, {"cursor": cursor, "max": keys[-1]})
        return BatchHandle(iter(rows), cursor, self.key)

    def translate(self, ctx: RunContext, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.translator:
            return self.translator(ctx, row)
        return dict(row)


class FullTableReader(SourceReader):
    """Reads a whole table in one batch."""

    def __init__(self, table: str, translate: Optional[Translator] = None, optional: bool = False):
        self.table = table
        self.translator = translate
        self.optional = optional

    def begin(self, ctx: RunContext, cursor: int) -> BatchResult:
        if self.optional and not ctx.source.has_table(self.table):
            return NOT_APPLICABLE
        return BatchHandle(iter(ctx.source.query(f"SELECT * FROM ::{self.table}")), cursor)

    def translate(self, ctx: RunContext, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.translator:
            return self.translator(ctx, row)
        return dict(row)


class FixedListReader(SourceReader):
    """Hands out rows generated in process, in one batch."""

    def __init__(self, builder: Callable[[RunContext], List[Dict[str, Any]]]):
        self.builder = builder

    def begin(self, ctx: RunContext, cursor: int) -> BatchResult:
        return BatchHandle(iter(self.builder(ctx)), cursor)
