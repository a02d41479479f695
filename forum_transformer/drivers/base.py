"""Driver interface: detection plus per-entity reader/writer handlers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union
import logging

from ..context import RunContext
from ..models.entity import Entity
from ..models.schema import TRACKED_TABLES
from ..services.database import Database
from ..services.remap import discard_from

logger = logging.getLogger(__name__)


class IncompatibilityReason(str, Enum):
    """Why a driver rejected a database."""
    EMPTY_DATABASE = "empty_database"
    MISSING_TABLES = "missing_tables"
    NOT_RECOGNIZED = "not_recognized"  # Tables present, version marker absent or malformed
    VERSION_OUT_OF_RANGE = "version_out_of_range"


@dataclass
class Incompatibility:
    """A driver's explanation for rejecting a database."""
    driver: str
    reason: IncompatibilityReason
    message: str

    def __str__(self) -> str:
        return f"{self.driver}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"driver": self.driver, "reason": self.reason.value, "message": self.message}


@dataclass
class Detection:
    """Result of probing a database with one driver."""
    driver: str
    compatible: bool
    version: str = ""
    incompatibility: Optional[Incompatibility] = None

    @classmethod
    def ok(cls, driver: str, version: str) -> "Detection":
        return cls(driver=driver, compatible=True, version=version)

    @classmethod
    def failed(cls, driver: str, reason: IncompatibilityReason, message: str) -> "Detection":
        return cls(
            driver=driver,
            compatible=False,
            incompatibility=Incompatibility(driver, reason, message),
        )


class _NotApplicable:
    """Marker returned by begin_batch when an entity has nothing to read."""

    def __repr__(self) -> str:
        return "NOT_APPLICABLE"

    def __bool__(self) -> bool:
        return False


NOT_APPLICABLE = _NotApplicable()


class BatchHandle:
    """
    An open batch of source rows.

    ``cursor`` follows the key of the last row handed out. Handles without a
    key are read in one pass and end with the cursor at -1.
    """

    def __init__(self, rows: Iterator[Dict[str, Any]], cursor: int, key: Optional[str] = None):
        self._rows = iter(rows)
        self.cursor = cursor
        self.key = key
        self.fetched = 0

    def next_raw(self) -> Optional[Dict[str, Any]]:
        row = next(self._rows, None)
        if row is None:
            if self.key is None:
                self.cursor = -1
            return None
        self.fetched += 1
        if self.key is not None:
            self.cursor = int(row[self.key])
        return row


BatchResult = Union[BatchHandle, _NotApplicable, bool]


class SourceReader:
    """Opens batches on the source database and translates its rows."""

    def begin(self, ctx: RunContext, cursor: int) -> BatchResult:
        return NOT_APPLICABLE

    def translate(self, ctx: RunContext, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return row


class EntityWriter:
    """Writes translated rows to the destination and runs the end-of-entity fix-ups."""

    table: Optional[str] = None

    def prepare(self, ctx: RunContext, cursor: int) -> bool:
        """
        Make the destination ready for the batch starting at ``cursor``.

        A tracked table loses the rows an interrupted invocation wrote for
        that batch, so reading it again inserts each row once.
        """
        if self.table in TRACKED_TABLES:
            discard_from(ctx.destination, self.table, cursor)
        return True

    def write(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        return True

    def finalize(self, ctx: RunContext) -> bool:
        return True


class EntityHandler:
    """
    The lifecycle operations of one entity.

    A handler pairs a product specific reader with a destination writer.
    When ``table`` is given and the destination lacks it, the entity is
    not applicable.
    """

    def __init__(
        self,
        reader: Optional[SourceReader] = None,
        writer: Optional[EntityWriter] = None,
        table: Optional[str] = None,
    ):
        self.reader = reader or SourceReader()
        self.writer = writer or EntityWriter()
        self.table = table

    def _destination_ready(self, ctx: RunContext) -> bool:
        return self.table is None or ctx.destination.has_table(self.table)

    def prepare_batch(self, ctx: RunContext, cursor: int) -> bool:
        if not self._destination_ready(ctx):
            return True
        return self.writer.prepare(ctx, cursor)

    def begin_batch(self, ctx: RunContext, cursor: int) -> BatchResult:
        """Open the batch of rows whose source key is at least ``cursor``."""
        if not self._destination_ready(ctx):
            return NOT_APPLICABLE
        return self.reader.begin(ctx, cursor)

    def next_row(self, ctx: RunContext, handle: BatchHandle) -> Optional[Dict[str, Any]]:
        """Next translated row of the batch, or None when it is exhausted."""
        while True:
            raw = handle.next_raw()
            if raw is None:
                return None
            row = self.reader.translate(ctx, raw)
            if row is not None:
                return row
            ctx.skipped += 1

    def write_row(self, ctx: RunContext, row: Dict[str, Any]) -> bool:
        return self.writer.write(ctx, row)

    def finalize(self, ctx: RunContext) -> bool:
        if not self._destination_ready(ctx):
            return True
        return self.writer.finalize(ctx)


class Driver(ABC):
    """
    Base class for source product drivers.

    Subclasses declare the product type, the supported version range and
    the tables a source must have, and register one handler per entity.
    Entities without a registered handler get a no-op handler.
    """

    type_name: str = ""
    min_version: str = ""
    max_version: str = ""
    required_tables: List[str] = []

    def __init__(self):
        self.handlers: Dict[Entity, EntityHandler] = self.build_handlers()

    @abstractmethod
    def build_handlers(self) -> Dict[Entity, EntityHandler]:
        """Create the handler registry of this product."""
        pass

    @abstractmethod
    def read_version(self, db: Database) -> Optional[str]:
        """Read the version marker, or None if it is absent or malformed."""
        pass

    def handler(self, entity: Entity) -> EntityHandler:
        return self.handlers.get(entity) or EntityHandler()

    def version_in_range(self, version: str) -> bool:
        return int(self.min_version) <= int(version) <= int(self.max_version)

    def format_version(self, version: str) -> str:
        return f"rev.{version}"

    def detect(self, db: Database) -> Detection:
        """
        Check whether a database belongs to this product in a supported version.

        Args:
            db: Database to inspect

        Returns:
            Detection with the version, or with the reason it was rejected
        """
        tables = set(db.table_names())
        if not tables:
            return Detection.failed(self.type_name, IncompatibilityReason.EMPTY_DATABASE, "This database is empty")

        missing = [t for t in self.required_tables if t not in tables]
        if missing:
            return Detection.failed(
                self.type_name,
                IncompatibilityReason.MISSING_TABLES,
                f"Missing tables: {', '.join(missing)}",
            )

        version = self.read_version(db)
        if version is None:
            return Detection.failed(
                self.type_name,
                IncompatibilityReason.NOT_RECOGNIZED,
                "Version marker not found",
            )

        if not self.version_in_range(version):
            return Detection.failed(
                self.type_name,
                IncompatibilityReason.VERSION_OUT_OF_RANGE,
                f"Current version '{self.type_name}' is {self.format_version(version)}, "
                f"need {self.format_version(self.min_version)} to {self.format_version(self.max_version)}",
            )

        logger.debug(f"Detected {self.type_name} {self.format_version(version)}")
        return Detection.ok(self.type_name, version)


def config_value(db: Database, name: str) -> Optional[str]:
    """Read one value from a board's ``config`` table."""
    value = db.fetch_value("SELECT conf_value FROM ::config WHERE conf_name = :name", {"name": name})
    return None if value is None else str(value)


def revision(value: Optional[str]) -> Optional[str]:
    """Normalize an integer revision marker, None if it is not an integer."""
    if value is None:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    return str(int(value))
