"""Old-to-new id translation through the ``id_old`` tracking columns."""

import logging
from typing import Any, Dict, Optional, Tuple

from .database import Database

logger = logging.getLogger(__name__)


class IdLookup:
    """
    Cached lookups of destination ids by source id.

    Only rows written by the current run carry a positive ``id_old``, so
    non-positive source ids never resolve.
    """

    def __init__(self, db: Database):
        self.db = db
        self._cache: Dict[Tuple[str, str, int], Optional[int]] = {}

    def new_id(self, table: str, old_id: Any, key: str = "id") -> Optional[int]:
        """
        Get the destination key of a migrated row.

        Args:
            table: Tracked destination table
            old_id: Source primary key
            key: Destination primary key column

        Returns:
            The new key, or None if the row was not migrated
        """
        if old_id is None or int(old_id) <= 0:
            return None
        cache_key = (table, key, int(old_id))
        if cache_key not in self._cache:
            self._cache[cache_key] = self.db.fetch_value(
                f"SELECT {key} FROM ::{table} WHERE id_old = :old",
                {"old": int(old_id)},
            )
        return self._cache[cache_key]


def remap_column(
    db: Database,
    table: str,
    column: str,
    ref_table: str,
    ref_key: str = "id",
    fallback: Optional[str] = None,
    where: str = "id_old > 0",
) -> int:
    """
    Rewrite a foreign key column from source ids to destination ids.

    Args:
        db: Destination database
        table: Table holding the reference
        column: Reference column, holding source ids
        ref_table: Tracked table the column points to
        ref_key: Primary key of ref_table
        fallback: SQL used when no row matches; keeps the value when None
        where: Rows to rewrite

    Returns:
        Number of updated rows
    """
    fallback = column if fallback is None else fallback
    return db.execute(
        f"UPDATE ::{table} SET {column} = COALESCE(("
        f"SELECT r.{ref_key} FROM ::{ref_table} AS r WHERE r.id_old = ::{table}.{column}"
        f"), {fallback}) WHERE {where}"
    )


def copy_username(
    db: Database,
    table: str,
    name_column: str,
    id_column: str,
    where: str = "id_old > 0",
) -> int:
    """Overwrite a denormalized username with the name of the referenced destination user."""
    return db.execute(
        f"UPDATE ::{table} SET {name_column} = COALESCE(("
        f"SELECT u.username FROM ::users AS u WHERE u.id = ::{table}.{id_column}"
        f"), {name_column}) WHERE {where} AND {id_column} > 0"
    )


def remap_self_reference(
    db: Database,
    table: str,
    column: str,
    key: str = "id",
    default: Optional[int] = None,
    where: str = "",
) -> int:
    """
    Rewrite a column that references rows of its own table.

    New ids are resolved for every row first and written by primary key
    afterwards, so a value rewritten earlier is never looked up again.

    Args:
        db: Destination database
        table: Tracked table
        column: Self-referencing column
        key: Primary key column
        default: Value for references to rows that were not migrated; kept when None
        where: Extra filter on the referencing rows

    Returns:
        Number of updated rows
    """
    condition = f"t.id_old > 0 AND t.{column} > 0"
    if where:
        condition += f" AND {where}"
    rows = db.query(
        f"SELECT t.{key} AS row_id, r.{key} AS new_id FROM ::{table} AS t "
        f"LEFT JOIN ::{table} AS r ON r.id_old = t.{column} AND r.id_old > 0 "
        f"WHERE {condition}"
    )

    updated = 0
    for row in rows:
        new_id = row["new_id"] if row["new_id"] is not None else default
        if new_id is None:
            continue
        updated += db.execute(
            f"UPDATE ::{table} SET {column} = :new WHERE {key} = :row_id",
            {"new": new_id, "row_id": row["row_id"]},
        )
    return updated


def offset_positions(db: Database, table: str, column: str = "disp_position") -> int:
    """
    Move migrated rows after the rows that were already in the destination.

    Returns:
        The offset applied, 0 if nothing was moved
    """
    offset = int(db.fetch_value(f"SELECT MAX({column}) FROM ::{table} WHERE id_old = 0") or 0)
    if offset < 1:
        return 0
    db.execute(
        f"UPDATE ::{table} SET {column} = {column} + :offset WHERE id_old > 0",
        {"offset": offset},
    )
    return offset


def discard_from(db: Database, table: str, cursor: int) -> int:
    """
    Delete the rows this run wrote for source keys from ``cursor`` on.

    Rows the destination had before the run keep ``id_old = 0`` and are never touched.

    Returns:
        Number of deleted rows
    """
    deleted = db.execute(
        f"DELETE FROM ::{table} WHERE id_old >= :cursor AND id_old > 0",
        {"cursor": cursor},
    )
    if deleted:
        logger.info(f"{table}: discarded {deleted} rows left by an interrupted batch from key {cursor}")
    return deleted
