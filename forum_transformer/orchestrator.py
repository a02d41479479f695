"""Migration orchestrator - advances a migration one bounded batch at a time."""

import logging
from typing import Optional, Tuple

from .context import RunContext
from .drivers import choose_run_mode, detect_source, get_driver
from .drivers.base import BatchHandle, Driver, EntityHandler, NOT_APPLICABLE
from .exceptions import ContractViolation, UnknownStep
from .models.entity import (
    CLEANUP_STEP,
    END_OF_MIGRATION,
    EntityRole,
    EntitySpec,
    SCHEMA_SETUP_STEP,
    spec_for_step,
    step_name,
)
from .models.migration import (
    ConnectionSettings,
    MigrationConfig,
    MigrationSettings,
    MigrationStatus,
    RunMode,
    StepResult,
)
from .services.database import Database
from .services.schema_evolver import SchemaEvolver
from .services.settings_store import SettingsStore

logger = logging.getLogger(__name__)


class StepOrchestrator:
    """
    Executes exactly one step of the migration plan per call.

    The orchestrator holds no progress of its own: every call receives the
    (step, cursor) pair to resume from and returns the pair to persist.
    """

    def __init__(self, ctx: RunContext, driver: Driver):
        """
        Initialize the orchestrator.

        Args:
            ctx: Databases, run mode and lookups of this invocation
            driver: Driver of the source product
        """
        self.ctx = ctx
        self.driver = driver
        self.evolver = SchemaEvolver(ctx.destination)

    def step(self, step: int, cursor: int) -> StepResult:
        """
        Run one bounded unit of work.

        Args:
            step: Position in the migration plan
            cursor: Smallest source key not yet processed at that position

        Returns:
            StepResult with the (step, cursor) pair to resume from

        Raises:
            UnknownStep: If the step is not part of the plan
            ContractViolation: If a handler reports failure
        """
        if step == SCHEMA_SETUP_STEP:
            return self._setup(cursor)
        if step == CLEANUP_STEP:
            return self._cleanup()

        spec = spec_for_step(step)
        if spec is None:
            raise UnknownStep(step)

        if spec.destination_only and self.ctx.is_merge:
            logger.info(f"Step {step} ({spec.name}): skipped in merge mode")
            return StepResult(step + 1, 0, spec.name)
        if spec.role == EntityRole.AGAIN and self.ctx.is_exact_copy:
            logger.info(f"Step {step} ({spec.name}): skipped in exact-copy mode")
            return StepResult(step + 1, 0, spec.name)

        return self._entity_step(step, cursor)

    def _setup(self, cursor: int) -> StepResult:
        if cursor == 0:
            if self.ctx.run_mode in (RunMode.COPY, RunMode.EXACT_COPY):
                self.evolver.create_destination_schema()
            return StepResult(SCHEMA_SETUP_STEP, 1, step_name(SCHEMA_SETUP_STEP))

        self.evolver.add_tracking_columns()
        return StepResult(1, 0, step_name(SCHEMA_SETUP_STEP))

    def _cleanup(self) -> StepResult:
        if self.ctx.is_exact_copy:
            self.evolver.sync_sequences()
        self.evolver.drop_tracking_columns()
        logger.info("Migration finished")
        return StepResult(END_OF_MIGRATION, 0, step_name(CLEANUP_STEP))

    def _finalize(self, spec: EntitySpec, handler: EntityHandler) -> None:
        # Fix-ups and their record commit together, so they never run twice
        with self.ctx.destination.transaction():
            if not handler.finalize(self.ctx):
                raise ContractViolation(spec.name, "finalize")
            self.evolver.mark_finalized(spec.name)

    def _entity_step(self, step: int, cursor: int) -> StepResult:
        ctx = self.ctx
        spec = spec_for_step(step)
        handler = self.driver.handler(spec.entity)
        ctx.skipped = 0

        if self.evolver.is_finalized(spec.name):
            logger.info(f"Step {step} ({spec.name}): already finalized")
            return StepResult(step + 1, 0, spec.name)

        if not handler.prepare_batch(ctx, cursor):
            raise ContractViolation(spec.name, "prepare")

        batch = handler.begin_batch(ctx, cursor)
        if batch is NOT_APPLICABLE:
            handle = BatchHandle(iter([]), cursor)
        elif not isinstance(batch, BatchHandle):
            raise ContractViolation(spec.name, "begin_batch")
        else:
            handle = batch

        processed = 0
        while True:
            row = handler.next_row(ctx, handle)
            if row is None:
                break
            if not handler.write_row(ctx, row):
                raise ContractViolation(spec.name, "write_row")
            processed += 1

        if handle.fetched == 0 or handle.cursor < 0:
            self._finalize(spec, handler)
            logger.info(f"Step {step} ({spec.name}): {processed} rows, entity finished")
            return StepResult(step + 1, 0, spec.name, processed, ctx.skipped)

        logger.info(f"Step {step} ({spec.name}): {processed} rows up to key {handle.cursor}")
        return StepResult(step, handle.cursor + 1, spec.name, processed, ctx.skipped)


class MigrationOrchestrator:
    """
    Drives persisted migration runs.

    Handles:
    - Detecting the source and choosing the run mode
    - Rebuilding the run context from saved settings on every invocation
    - Persisting the returned (step, cursor) after each confirmed step
    - Cleaning up runs that were abandoned
    """

    def __init__(self, config: MigrationConfig, store: Optional[SettingsStore] = None):
        """
        Initialize the orchestrator.

        Args:
            config: Migration configuration
            store: Settings store, created from config.state_dir when omitted
        """
        self.config = config
        self.store = store or SettingsStore(config.state_dir, config.settings_ttl)

    def _connect(self, settings: MigrationSettings) -> Tuple[Database, Database]:
        source = Database(settings.source.url, settings.source.prefix)
        destination = Database(settings.destination.url, settings.destination.prefix)
        return source, destination

    def start(self) -> MigrationSettings:
        """
        Detect the source, choose the run mode and save new run settings.

        Returns:
            Settings of the new run, positioned at step 0

        Raises:
            IncompatibleSourceError: If no driver accepts the source
            UnsupportedDestination: If the destination cannot receive the data
        """
        settings = MigrationSettings(
            source=ConnectionSettings(self.config.source_url, self.config.source_prefix),
            destination=ConnectionSettings(self.config.target_url, self.config.target_prefix),
            source_type="",
            batch_size=self.config.batch_size,
        )
        source, destination = self._connect(settings)
        try:
            driver, detection = detect_source(source)
            settings.source_type = driver.type_name
            settings.source_version = detection.version
            settings.run_mode = choose_run_mode(destination, driver.type_name, self.config.exact_copy)
        finally:
            source.dispose()
            destination.dispose()

        settings.last_message = f"{settings.source_type} {driver.format_version(settings.source_version)}, {settings.run_mode.value}"
        self.store.save(settings)
        logger.info(f"Run {settings.run_key} created: {settings.last_message}")
        return settings

    def status(self, run_key: str) -> MigrationSettings:
        return self.store.load(run_key)

    def resume_step(self, run_key: str) -> StepResult:
        """
        Load a run, execute its next step and persist the new position.

        Args:
            run_key: Key of the run

        Returns:
            Result of the executed step

        Raises:
            SettingsNotFound: If the run does not exist or has expired
        """
        settings = self.store.load(run_key)
        if settings.finished:
            return StepResult(END_OF_MIGRATION, 0, step_name(END_OF_MIGRATION))

        source, destination = self._connect(settings)
        ctx = RunContext(
            source=source,
            destination=destination,
            run_mode=settings.run_mode,
            batch_size=settings.batch_size,
        )
        ctx.resolver.renames.update(settings.username_renames)

        try:
            result = StepOrchestrator(ctx, get_driver(settings.source_type)).step(settings.step, settings.cursor)
        except Exception as e:
            logger.error(f"Step {settings.step} ({step_name(settings.step)}) failed: {e}")
            settings.status = MigrationStatus.FAILED
            settings.last_message = str(e)
            self.store.save(settings)
            raise
        finally:
            source.dispose()
            destination.dispose()

        settings.username_renames = dict(ctx.username_renames)
        settings.advance(result)
        self.store.save(settings)
        return result

    def run(self, run_key: str, max_steps: Optional[int] = None) -> MigrationSettings:
        """
        Execute steps until the run finishes or max_steps were executed.

        Returns:
            Settings after the last executed step
        """
        executed = 0
        while max_steps is None or executed < max_steps:
            result = self.resume_step(run_key)
            executed += 1
            if result.finished:
                break
        return self.store.load(run_key)

    def cleanup(self, run_key: str) -> bool:
        """
        Remove the tracking columns of an abandoned run and forget its settings.

        Returns:
            True if settings were deleted
        """
        settings = self.store.load(run_key)
        if not settings.finished:
            destination = Database(settings.destination.url, settings.destination.prefix)
            try:
                SchemaEvolver(destination).drop_tracking_columns()
            finally:
                destination.dispose()
        return self.store.delete(run_key)
