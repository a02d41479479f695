"""Per-invocation state shared by the orchestrator and entity handlers."""

from dataclasses import dataclass, field
from typing import Any, Dict

from .models.migration import RunMode
from .services.collisions import CollisionResolver
from .services.database import Database
from .services.remap import IdLookup


@dataclass
class RunContext:
    """Databases, run mode and lookups for one step invocation."""
    source: Database
    destination: Database
    run_mode: RunMode = RunMode.COPY
    batch_size: int = 100
    resolver: CollisionResolver = field(default_factory=CollisionResolver)
    lookups: Dict[str, Any] = field(default_factory=dict)  # Driver-specific values
    skipped: int = 0  # Rows dropped by writers during the current step
    ids: IdLookup = field(init=False)

    def __post_init__(self):
        self.ids = IdLookup(self.destination)

    @property
    def is_merge(self) -> bool:
        return self.run_mode == RunMode.MERGE

    @property
    def is_exact_copy(self) -> bool:
        return self.run_mode == RunMode.EXACT_COPY

    @property
    def username_renames(self) -> Dict[str, str]:
        return self.resolver.renames
