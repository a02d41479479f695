"""Source product drivers and their detection."""

import logging
from typing import Dict, List, Tuple, Type

from ..exceptions import IncompatibleSourceError, UnsupportedDestination
from ..models.migration import RunMode
from ..services.database import Database
from ..services.schema_evolver import SchemaEvolver
from .base import (
    BatchHandle,
    Detection,
    Driver,
    EntityHandler,
    EntityWriter,
    Incompatibility,
    IncompatibilityReason,
    NOT_APPLICABLE,
    SourceReader,
)
from .fluxbb_visman import FluxBBVismanDriver
from .forkbb import ForkBBDriver
from .punbb import PunBBDriver

logger = logging.getLogger(__name__)

DRIVERS: Dict[str, Type[Driver]] = {
    ForkBBDriver.type_name: ForkBBDriver,
    FluxBBVismanDriver.type_name: FluxBBVismanDriver,
    PunBBDriver.type_name: PunBBDriver,
}

IDENTITY_DRIVER = ForkBBDriver.type_name


def get_driver(source_type: str) -> Driver:
    """
    Create the driver of a source product.

    Raises:
        ValueError: If no driver is registered for the type
    """
    if source_type not in DRIVERS:
        raise ValueError(f"Unknown source type: {source_type}")
    return DRIVERS[source_type]()


def detect_source(db: Database) -> Tuple[Driver, Detection]:
    """
    Find the driver that accepts a source database.

    Drivers are tried in registration order and the first compatible one wins.

    Args:
        db: Source database

    Returns:
        The matching driver and its detection result

    Raises:
        IncompatibleSourceError: If the database is empty or no driver accepts it
    """
    if db.is_empty():
        raise IncompatibleSourceError("This database is empty")

    reasons: List[Incompatibility] = []
    for source_type, driver_class in DRIVERS.items():
        driver = driver_class()
        detection = driver.detect(db)
        if detection.compatible:
            logger.info(f"Source detected as {source_type} {driver.format_version(detection.version)}")
            return driver, detection
        reasons.append(detection.incompatibility)
        logger.debug(f"{detection.incompatibility}")

    raise IncompatibleSourceError("Database belongs to unknown forum type", reasons)


def choose_run_mode(destination: Database, source_type: str, exact_copy: bool = False) -> RunMode:
    """
    Decide how the destination will be populated.

    Args:
        destination: Destination database
        source_type: Detected source product
        exact_copy: Whether source primary keys should be kept

    Returns:
        COPY or EXACT_COPY for an empty destination, MERGE for an existing ForkBB board

    Raises:
        UnsupportedDestination: If the destination is neither empty nor a
            ForkBB board, or still carries tracking columns of an earlier run
    """
    if destination.is_empty():
        if exact_copy and source_type == IDENTITY_DRIVER:
            return RunMode.EXACT_COPY
        if exact_copy:
            logger.warning(f"Exact copy is only available for {IDENTITY_DRIVER} sources, using copy")
        return RunMode.COPY

    detection = ForkBBDriver().detect(destination)
    if not detection.compatible:
        raise UnsupportedDestination(detection.incompatibility.message)

    if SchemaEvolver(destination).has_tracking_columns():
        raise UnsupportedDestination("id_old columns left over from an earlier run")

    return RunMode.MERGE


__all__ = [
    "BatchHandle",
    "Detection",
    "Driver",
    "DRIVERS",
    "EntityHandler",
    "EntityWriter",
    "ForkBBDriver",
    "FluxBBVismanDriver",
    "Incompatibility",
    "IncompatibilityReason",
    "NOT_APPLICABLE",
    "PunBBDriver",
    "SourceReader",
    "choose_run_mode",
    "detect_source",
    "get_driver",
]
