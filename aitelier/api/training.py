# @TASK P3-T3.4 - Training run endpoints
"""Training API: launch fine-tunes, list runs, poll and cancel them."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from aitelier.database import get_db
from aitelier.services import training_service

router = APIRouter(tags=["training"])


class TrainingLaunchRequest(BaseModel):
    created_by: str | None = None


class TrainingRunResponse(BaseModel):
    id: int
    project_id: int
    provider: str
    provider_job_id: str | None
    model_id: str | None
    base_model: str
    status: str
    config: dict
    example_count: int
    train_count: int
    val_count: int
    error: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime | None

    @classmethod
    def from_run(cls, run) -> TrainingRunResponse:
        return cls(
            id=run.id,
            project_id=run.project_id,
            provider=run.provider,
            provider_job_id=run.provider_job_id,
            model_id=run.model_id,
            base_model=run.base_model,
            status=run.status,
            config=run.config or {},
            example_count=run.example_count,
            train_count=run.train_count,
            val_count=run.val_count,
            error=run.error,
            started_at=run.started_at,
            completed_at=run.completed_at,
            created_at=run.created_at,
        )


@router.get("/projects/{project_id}/provider/models")
async def list_base_models(
    project_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    models = await training_service.list_base_models(db, project_id)
    return {"models": [m.model_dump() for m in models]}


@router.post("/projects/{project_id}/provider/validate")
async def validate_provider_key(
    project_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict[str, bool]:
    return {"valid": await training_service.check_provider_key(db, project_id)}


@router.post("/projects/{project_id}/training-runs", status_code=201)
async def launch_training(
    project_id: int,
    body: TrainingLaunchRequest | None = None,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> TrainingRunResponse:
    """Upload the current split and start a fine-tune at the provider."""
    created_by = body.created_by if body else None
    run = await training_service.launch_training(db, project_id, created_by=created_by)
    return TrainingRunResponse.from_run(run)


@router.get("/projects/{project_id}/training-runs")
async def list_training_runs(
    project_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    runs = await training_service.list_training_runs(db, project_id)
    return {"runs": [TrainingRunResponse.from_run(r) for r in runs], "total": len(runs)}


@router.post("/training-runs/{run_id}/refresh")
async def refresh_training_run(
    run_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> TrainingRunResponse:
    run = await training_service.refresh_training_status(db, run_id)
    return TrainingRunResponse.from_run(run)


@router.post("/training-runs/{run_id}/cancel")
async def cancel_training_run(
    run_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> TrainingRunResponse:
    run = await training_service.cancel_training(db, run_id)
    return TrainingRunResponse.from_run(run)
