"""Creation of the destination schema and management of tracking columns."""

import json
import logging
from typing import List, Optional

from ..exceptions import DestinationNotEmpty, TrackingColumnsPopulated
from ..models.schema import (
    DEFAULT_BBCODE,
    DEFAULT_GROUPS,
    DEFAULT_PROVIDERS,
    DEFAULT_SMILIES,
    DESTINATION_TABLES,
    FINALIZED_TABLE,
    TRACKED_TABLES,
    TRACKING_COLUMN,
    TRACKING_INDEX,
)
from .database import Database

logger = logging.getLogger(__name__)


class SchemaEvolver:
    """
    Prepares the destination database for a run and restores it afterwards.

    Handles:
    - Creating the full destination schema with its seed rows
    - Adding the ``id_old`` column and index to tracked tables
    - Recording which entities had their fix-ups committed
    - Dropping both again at the end of a run
    """

    def __init__(self, db: Database):
        self.db = db

    def create_destination_schema(self) -> List[str]:
        """
        Create every destination table and insert the default rows.

        Returns:
            Names of the created tables
        """
        existing = self.db.table_names()
        if existing:
            raise DestinationNotEmpty(existing)

        created = []
        for schema in DESTINATION_TABLES:
            self.db.create_table(schema)
            created.append(schema.name)
        logger.info(f"Created {len(created)} destination tables")

        self._seed()
        return created

    def _seed(self) -> None:
        for group in DEFAULT_GROUPS:
            self.db.insert("groups", group)

        for position, (code, image) in enumerate(DEFAULT_SMILIES):
            self.db.insert("smilies", {"sm_image": image, "sm_code": code, "sm_position": position})

        for tag, kind, parents in DEFAULT_BBCODE:
            structure = {"tag": tag, "type": kind, "parents": parents, "auto": kind == "inline"}
            self.db.insert("bbcode", {
                "bb_tag": tag,
                "bb_edit": 1,
                "bb_delete": 0,
                "bb_structure": json.dumps(structure),
            })

        for position, name in enumerate(DEFAULT_PROVIDERS):
            self.db.insert("providers", {"pr_name": name, "pr_allow": 0, "pr_pos": position})

        self.db.sync_sequence("groups", "g_id")
        logger.info("Seeded default groups, smilies, bbcode and providers")

    def tracked_tables(self) -> List[str]:
        """Tracked tables present in the destination."""
        return [t for t in TRACKED_TABLES if self.db.has_table(t)]

    def add_tracking_columns(self) -> List[str]:
        """
        Add ``id_old`` with its index to every tracked table.

        Returns:
            Tables that were changed

        Raises:
            TrackingColumnsPopulated: If a table already holds non-zero id_old values
        """
        changed = []
        for table in self.tracked_tables():
            if self.db.has_field(table, TRACKING_COLUMN.name):
                count = int(self.db.fetch_value(f"SELECT COUNT(*) FROM ::{table} WHERE id_old <> 0") or 0)
                if count:
                    raise TrackingColumnsPopulated(table, count)
            elif self.db.add_field(table, TRACKING_COLUMN):
                changed.append(table)
            self.db.add_index(table, TRACKING_INDEX, [TRACKING_COLUMN.name])

        ledger = FINALIZED_TABLE.name
        if not self.db.has_table(ledger):
            self.db.create_table(FINALIZED_TABLE)
        else:
            count = int(self.db.fetch_value(f"SELECT COUNT(*) FROM ::{ledger}") or 0)
            if count:
                raise TrackingColumnsPopulated(ledger, count)

        logger.info(f"Tracking columns added to {len(changed)} tables")
        return changed

    def drop_tracking_columns(self) -> List[str]:
        """Remove ``id_old`` and its index from every tracked table."""
        changed = []
        for table in self.tracked_tables():
            self.db.drop_index(table, TRACKING_INDEX)
            if self.db.drop_field(table, TRACKING_COLUMN.name):
                changed.append(table)
        self.db.drop_table(FINALIZED_TABLE.name)
        logger.info(f"Tracking columns dropped from {len(changed)} tables")
        return changed

    def is_finalized(self, entity: str) -> bool:
        """Whether the fix-ups of an entity were committed during this run."""
        if not self.db.has_table(FINALIZED_TABLE.name):
            return False
        count = self.db.fetch_value(
            f"SELECT COUNT(*) FROM ::{FINALIZED_TABLE.name} WHERE entity = :entity",
            {"entity": entity},
        )
        return bool(count)

    def mark_finalized(self, entity: str) -> None:
        """
        Record that an entity's fix-ups ran.

        Call inside the destination transaction of the fix-ups, so the record
        commits together with them. Without tracking the call does nothing.
        """
        if self.db.has_table(FINALIZED_TABLE.name):
            self.db.execute(
                f"INSERT INTO ::{FINALIZED_TABLE.name} (entity) VALUES (:entity)",
                {"entity": entity},
            )

    def has_tracking_columns(self, tables: Optional[List[str]] = None) -> bool:
        return any(self.db.has_field(t, TRACKING_COLUMN.name) for t in (tables or self.tracked_tables()))

    def sync_sequences(self) -> None:
        """Realign PostgreSQL sequences after rows were inserted with explicit keys."""
        for schema in DESTINATION_TABLES:
            if schema.serial_column:
                self.db.sync_sequence(schema.name, schema.serial_column)
