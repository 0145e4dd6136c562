# @TASK P4-T4.2 - Blind A/B evaluation endpoints
"""Evaluation API: setup, generation, blind scoring, results and trends.

Rater-facing endpoints (items, score) only expose left/right slots; model
identity is revealed by the results endpoint.
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from aitelier.constants import MAX_SCORE, MIN_SCORE, Side
from aitelier.database import get_db
from aitelier.services.evaluation import framework

router = APIRouter(tags=["evaluation"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class EvaluationStartRequest(BaseModel):
    model_a_id: str
    model_b_id: str
    created_by: str | None = None


class EvaluationStartResponse(BaseModel):
    evaluation_run_id: int
    item_count: int
    model_ref: str
    baseline_ref: str


class ScoreRequest(BaseModel):
    preferred: Side
    left_score: int | None = Field(None, ge=MIN_SCORE, le=MAX_SCORE)
    right_score: int | None = Field(None, ge=MIN_SCORE, le=MAX_SCORE)
    scored_by: str | None = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/evaluations/setup")
async def evaluation_setup(
    project_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    data = await framework.get_setup_data(db, project_id)
    data["model_options"] = [asdict(option) for option in data["model_options"]]
    return data


@router.post("/projects/{project_id}/evaluations", status_code=201)
async def start_evaluation(
    project_id: int,
    body: EvaluationStartRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> EvaluationStartResponse:
    """Generate both models' outputs for the validation split (all or nothing)."""
    run = await framework.start_evaluation(
        db, project_id, body.model_a_id, body.model_b_id, created_by=body.created_by
    )
    return EvaluationStartResponse(
        evaluation_run_id=run.id,
        item_count=run.item_count,
        model_ref=run.model_ref,
        baseline_ref=run.baseline_ref,
    )


@router.get("/evaluations/{run_id}/items")
async def list_blind_items(
    run_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    items = await framework.get_blind_items(db, run_id)
    return {
        "items": [asdict(item) for item in items],
        "total": len(items),
        "scored": sum(1 for item in items if item.preferred_side is not None),
    }


@router.post("/evaluations/items/{item_id}/score")
async def score_item(
    item_id: int,
    body: ScoreRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    item = await framework.score_item(
        db, item_id, body.preferred, body.left_score, body.right_score, scored_by=body.scored_by
    )
    return {
        "id": item.id,
        "preferred_side": item.preferred_side,
        "left_score": item.left_score,
        "right_score": item.right_score,
    }


@router.get("/evaluations/{run_id}/results")
async def evaluation_results(
    run_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    results = await framework.get_results(db, run_id)
    return {"evaluation_run_id": run_id, **results.to_dict()}


@router.get("/projects/{project_id}/evaluations/trends")
async def evaluation_trends(
    project_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    points = await framework.get_trends(db, project_id)
    return {"trends": [asdict(point) for point in points]}
