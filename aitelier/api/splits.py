# @TASK P2-T2.5 - Train/validation split endpoints
"""Split API: prepare the split, move examples manually, dataset statistics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from aitelier.config import get_settings
from aitelier.constants import Split, StratifyMode
from aitelier.database import get_db
from aitelier.services import dataset_service, split_service

router = APIRouter(tags=["splits"])
settings = get_settings()


class SplitRequest(BaseModel):
    val_fraction: float = Field(settings.DEFAULT_VAL_FRACTION, gt=0, lt=1)
    stratify: StratifyMode = StratifyMode.RATING
    reset: bool = False


class ReassignRequest(BaseModel):
    example_ids: list[int] = Field(..., min_length=1)
    split: Split | None


@router.post("/projects/{project_id}/split")
async def prepare_split(
    project_id: int,
    body: SplitRequest | None = None,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    """Place every rated, unplaced example into train or val."""
    body = body or SplitRequest()
    plan = await split_service.prepare_split(
        db, project_id, val_fraction=body.val_fraction, stratify=body.stratify, reset=body.reset
    )
    return plan.to_dict()


@router.put("/projects/{project_id}/split/assignments")
async def reassign_examples(
    project_id: int,
    body: ReassignRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    writes = await split_service.reassign_examples(db, project_id, body.example_ids, body.split)
    return {
        "updated": [
            {"example_id": example_id, "split": split.value if split else None}
            for example_id, split in sorted(writes.items())
        ],
        "updated_count": len(writes),
    }


@router.get("/projects/{project_id}/split/stats")
async def split_stats(
    project_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    return await dataset_service.get_dataset_stats(db, project_id)
