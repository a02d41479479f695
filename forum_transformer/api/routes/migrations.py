"""Migration run endpoints: create, inspect, step and delete."""

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException

from ..models import MigrationCreate, MigrationResponse, StepResponse
from ...exceptions import (
    CollisionLimitExceeded,
    ContractViolation,
    IncompatibleSourceError,
    InvalidRunKey,
    PreconditionViolation,
    SettingsNotFound,
    UnknownStep,
)
from ...models.entity import step_name
from ...models.migration import MigrationConfig, MigrationSettings
from ...orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def get_config() -> MigrationConfig:
    """Server configuration, read from FORUM_TRANSFORMER_* variables."""
    return MigrationConfig.from_env()


def to_response(settings: MigrationSettings) -> MigrationResponse:
    return MigrationResponse(
        run_key=settings.run_key,
        source_type=settings.source_type,
        source_version=settings.source_version,
        run_mode=settings.run_mode.value,
        status=settings.status.value,
        step=settings.step,
        step_name=step_name(settings.step),
        cursor=settings.cursor,
        batch_size=settings.batch_size,
        finished=settings.finished,
        username_renames=settings.username_renames,
        last_message=settings.last_message,
        created_at=settings.created_at,
        updated_at=settings.updated_at,
    )


@router.post("", response_model=MigrationResponse)
def create_migration(data: MigrationCreate, config: MigrationConfig = Depends(get_config)):
    """Detect the source and create a new run."""
    overrides = {k: v for k, v in data.model_dump().items() if v is not None}
    overrides["exact_copy"] = data.exact_copy or config.exact_copy
    run_config = replace(config, **overrides)

    if not run_config.source_url or not run_config.target_url:
        raise HTTPException(status_code=422, detail="Source and target database URLs are required")

    try:
        settings = MigrationOrchestrator(run_config).start()
    except IncompatibleSourceError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": str(e), "reasons": [r.to_dict() for r in e.reasons]},
        )
    except PreconditionViolation as e:
        raise HTTPException(status_code=409, detail=str(e))
    return to_response(settings)


@router.get("/{run_key}", response_model=MigrationResponse)
def get_migration(run_key: str, config: MigrationConfig = Depends(get_config)):
    """Get the position and status of a run."""
    try:
        return to_response(MigrationOrchestrator(config).status(run_key))
    except SettingsNotFound:
        raise HTTPException(status_code=404, detail="Migration not found")
    except InvalidRunKey as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{run_key}/step", response_model=StepResponse)
def run_step(run_key: str, config: MigrationConfig = Depends(get_config)):
    """Execute one bounded step of a run."""
    try:
        result = MigrationOrchestrator(config).resume_step(run_key)
    except SettingsNotFound:
        raise HTTPException(status_code=404, detail="Migration not found")
    except PreconditionViolation as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (InvalidRunKey, UnknownStep) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (ContractViolation, CollisionLimitExceeded, ValueError) as e:
        raise HTTPException(status_code=500, detail=str(e))

    return StepResponse(run_key=run_key, **result.to_dict())


@router.delete("/{run_key}")
def delete_migration(run_key: str, config: MigrationConfig = Depends(get_config)):
    """Drop leftover tracking columns and forget a run."""
    try:
        MigrationOrchestrator(config).cleanup(run_key)
    except SettingsNotFound:
        raise HTTPException(status_code=404, detail="Migration not found")
    except InvalidRunKey as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "deleted"}
