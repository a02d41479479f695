"""Data models for the forum transformer."""

from .entity import (
    Entity,
    EntityRole,
    EntitySpec,
    MIGRATION_PLAN,
    SCHEMA_SETUP_STEP,
    CLEANUP_STEP,
    END_OF_MIGRATION,
    spec_for_step,
    spec_for_entity,
    step_name,
    plan_is_ordered,
)
from .schema import (
    Column,
    ColumnType,
    TableSchema,
    DESTINATION_SCHEMA,
    TRACKED_TABLES,
)
from .migration import (
    RunMode,
    MigrationStatus,
    ConnectionSettings,
    MigrationSettings,
    MigrationConfig,
    StepResult,
    SETTINGS_TTL_SECONDS,
)

__all__ = [
    "Entity",
    "EntityRole",
    "EntitySpec",
    "MIGRATION_PLAN",
    "SCHEMA_SETUP_STEP",
    "CLEANUP_STEP",
    "END_OF_MIGRATION",
    "spec_for_step",
    "spec_for_entity",
    "step_name",
    "plan_is_ordered",
    "Column",
    "ColumnType",
    "TableSchema",
    "DESTINATION_SCHEMA",
    "TRACKED_TABLES",
    "RunMode",
    "MigrationStatus",
    "ConnectionSettings",
    "MigrationSettings",
    "MigrationConfig",
    "StepResult",
    "SETTINGS_TTL_SECONDS",
]
