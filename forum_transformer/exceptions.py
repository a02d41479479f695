"""Exception hierarchy for the forum transformer.

All errors raised by the engine derive from ``TransformerError`` so callers
(CLI, HTTP routes) can catch one type and map subclasses to exit codes or
status codes.
"""

from typing import Any, List, Optional


class TransformerError(Exception):
    """Base exception for all forum transformer errors."""

    pass


class IncompatibleSourceError(TransformerError):
    """Raised when no registered driver accepts the source database."""

    def __init__(self, message: str, reasons: Optional[List[Any]] = None):
        self.reasons = list(reasons or [])
        details = "; ".join(str(r) for r in self.reasons)
        super().__init__(f"{message}: {details}" if details else message)


class PreconditionViolation(TransformerError):
    """Raised when the databases are not in a state the run can start from."""

    pass


class TrackingColumnsPopulated(PreconditionViolation):
    """Raised when a tracked table already holds non-zero id_old values."""

    def __init__(self, table: str, count: int):
        self.table = table
        self.count = count
        super().__init__(
            f"Table '{table}' already has {count} rows with a non-zero id_old; "
            f"a previous import was not cleaned up"
        )


class DestinationNotEmpty(PreconditionViolation):
    """Raised when a fresh schema is requested on a non-empty destination."""

    def __init__(self, tables: List[str]):
        self.tables = tables
        super().__init__(
            f"Destination already contains {len(tables)} tables, cannot create schema"
        )


class UnsupportedDestination(PreconditionViolation):
    """Raised when a non-empty destination is not a ForkBB database."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Existing table error: {reason}")


class ContractViolation(TransformerError):
    """Raised when an entity handler reports failure from a lifecycle method."""

    def __init__(self, entity: str, operation: str):
        self.entity = entity
        self.operation = operation
        super().__init__(f"The {operation} operation of '{entity}' returned false")


class CollisionLimitExceeded(TransformerError):
    """Raised when a row still collides after the maximum number of renames."""

    def __init__(self, id_old: Any, attempts: int):
        self.id_old = id_old
        self.attempts = attempts
        super().__init__(
            f"[{id_old}] still colliding after {attempts} rename attempts"
        )


class SettingsNotFound(TransformerError):
    """Raised when no persisted settings exist for a run key."""

    def __init__(self, run_key: str):
        self.run_key = run_key
        super().__init__(f"No migration settings found for run '{run_key}'")


class InvalidRunKey(TransformerError, ValueError):
    """Raised when a run key contains characters outside [A-Za-z0-9_-]."""

    def __init__(self, run_key: str):
        self.run_key = run_key
        super().__init__(f"Invalid run key: {run_key!r}")


class UnknownStep(TransformerError, ValueError):
    """Raised when a persisted step is not part of the migration plan."""

    def __init__(self, step: int):
        self.step = step
        super().__init__(f"Unknown migration step: {step}")
