"""Pydantic models for API requests and responses."""

from typing import Dict, Optional
from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime


class RunModeEnum(str, Enum):
    COPY = "copy"
    MERGE = "merge"
    EXACT_COPY = "exact-copy"


class MigrationStatusEnum(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# Request Models
class MigrationCreate(BaseModel):
    """Connection settings of a new run; unset values come from the server configuration."""
    source_url: Optional[str] = None
    source_prefix: Optional[str] = None
    target_url: Optional[str] = None
    target_prefix: Optional[str] = None
    batch_size: Optional[int] = Field(default=None, ge=1)
    exact_copy: bool = False


# Response Models
class MigrationResponse(BaseModel):
    run_key: str
    source_type: str
    source_version: str
    run_mode: RunModeEnum
    status: MigrationStatusEnum
    step: int
    step_name: str
    cursor: int
    batch_size: int
    finished: bool
    username_renames: Dict[str, str] = Field(default_factory=dict)
    last_message: str = ""
    created_at: datetime
    updated_at: datetime


class StepResponse(BaseModel):
    run_key: str
    step: int
    cursor: int
    entity: str
    processed: int = 0
    skipped: int = 0
    finished: bool = False
