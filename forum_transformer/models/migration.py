"""Migration run models: configuration, persisted settings and step results."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime
import json
import os
import uuid


SETTINGS_TTL_SECONDS = 3 * 3600

ENV_PREFIX = "FORUM_TRANSFORMER_"


class RunMode(str, Enum):
    """How the destination is populated."""
    COPY = "copy"  # Fresh schema, new ids
    MERGE = "merge"  # Existing ForkBB board, rows appended
    EXACT_COPY = "exact-copy"  # Fresh schema, ForkBB source ids preserved


class MigrationStatus(str, Enum):
    """Status of a migration run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ConnectionSettings:
    """Connection parameters for one side of a migration."""
    url: str
    prefix: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "prefix": self.prefix}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionSettings":
        return cls(url=data.get("url", ""), prefix=data.get("prefix", ""))


@dataclass
class StepResult:
    """Outcome of a single step invocation."""
    step: int
    cursor: int
    entity: str = ""
    processed: int = 0
    skipped: int = 0

    @property
    def finished(self) -> bool:
        """True once the cleanup step has run."""
        return self.step < 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "step": self.step,
            "cursor": self.cursor,
            "entity": self.entity,
            "processed": self.processed,
            "skipped": self.skipped,
            "finished": self.finished,
        }


@dataclass
class MigrationSettings:
    """
    Persisted state of one migration run.

    Holds everything a later invocation needs to resume:
    - Connection parameters of both databases
    - Detected source product and version
    - Run mode and the (step, cursor) pair to resume from
    - Usernames renamed by collision resolution
    """
    source: ConnectionSettings
    destination: ConnectionSettings
    source_type: str
    source_version: str = ""
    run_mode: RunMode = RunMode.COPY
    run_key: str = field(default_factory=lambda: uuid.uuid4().hex)
    step: int = 0
    cursor: int = 0
    batch_size: int = 100
    username_renames: Dict[str, str] = field(default_factory=dict)
    status: MigrationStatus = MigrationStatus.PENDING
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    last_message: str = ""

    @property
    def finished(self) -> bool:
        return self.step < 0

    def advance(self, result: StepResult) -> None:
        """Record the position returned by a confirmed step."""
        self.step = result.step
        self.cursor = result.cursor
        self.updated_at = datetime.utcnow()
        if result.finished:
            self.status = MigrationStatus.COMPLETED
            self.last_message = "Migration completed"
        else:
            self.status = MigrationStatus.RUNNING
            self.last_message = f"{result.entity}: {result.processed} rows"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "run_key": self.run_key,
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict(),
            "source_type": self.source_type,
            "source_version": self.source_version,
            "run_mode": self.run_mode.value,
            "step": self.step,
            "cursor": self.cursor,
            "batch_size": self.batch_size,
            "username_renames": self.username_renames,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "last_message": self.last_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationSettings":
        """Create from dictionary representation."""
        created = data.get("created_at")
        updated = data.get("updated_at")
        return cls(
            run_key=data["run_key"],
            source=ConnectionSettings.from_dict(data.get("source", {})),
            destination=ConnectionSettings.from_dict(data.get("destination", {})),
            source_type=data.get("source_type", ""),
            source_version=data.get("source_version", ""),
            run_mode=RunMode(data.get("run_mode", "copy")),
            step=int(data.get("step", 0)),
            cursor=int(data.get("cursor", 0)),
            batch_size=int(data.get("batch_size", 100)),
            username_renames=dict(data.get("username_renames", {})),
            status=MigrationStatus(data.get("status", "pending")),
            created_at=datetime.fromisoformat(created) if created else datetime.utcnow(),
            updated_at=datetime.fromisoformat(updated) if updated else datetime.utcnow(),
            last_message=data.get("last_message", ""),
        )


@dataclass
class MigrationConfig:
    """Configuration for a migration."""
    source_url: str = ""
    source_prefix: str = ""
    target_url: str = ""
    target_prefix: str = ""

    # Execution options
    batch_size: int = 100
    exact_copy: bool = False

    # State
    state_dir: str = "./data/state"
    settings_ttl: int = SETTINGS_TTL_SECONDS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_url": self.source_url,
            "source_prefix": self.source_prefix,
            "target_url": self.target_url,
            "target_prefix": self.target_prefix,
            "batch_size": self.batch_size,
            "exact_copy": self.exact_copy,
            "state_dir": self.state_dir,
            "settings_ttl": self.settings_ttl,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        return cls(
            source_url=data.get("source_url", ""),
            source_prefix=data.get("source_prefix", ""),
            target_url=data.get("target_url", ""),
            target_prefix=data.get("target_prefix", ""),
            batch_size=int(data.get("batch_size", 100)),
            exact_copy=bool(data.get("exact_copy", False)),
            state_dir=data.get("state_dir", "./data/state"),
            settings_ttl=int(data.get("settings_ttl", SETTINGS_TTL_SECONDS)),
        )

    @classmethod
    def from_json_file(cls, path: str) -> "MigrationConfig":
        """Load configuration from a JSON file."""
        with open(path) as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "MigrationConfig":
        """
        Load configuration from FORUM_TRANSFORMER_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            MigrationConfig with unset values left at their defaults
        """
        env = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        for name in ("source_url", "source_prefix", "target_url", "target_prefix", "state_dir"):
            value = env.get(ENV_PREFIX + name.upper())
            if value is not None:
                data[name] = value
        if env.get(ENV_PREFIX + "BATCH_SIZE"):
            data["batch_size"] = int(env[ENV_PREFIX + "BATCH_SIZE"])
        if env.get(ENV_PREFIX + "EXACT_COPY"):
            data["exact_copy"] = env[ENV_PREFIX + "EXACT_COPY"].lower() in ("1", "true", "yes", "on")
        return cls.from_dict(data)
