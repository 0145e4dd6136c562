# @TASK P2-T2.4 - Example capture, rating and JSONL export endpoints
"""Examples API: add supervised pairs, rate them and download the dataset."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from aitelier.constants import MAX_SCORE, MIN_SCORE, ExampleFilter, ExampleSort
from aitelier.database import get_db
from aitelier.services import dataset_service

router = APIRouter(tags=["examples"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class ExampleCreateRequest(BaseModel):
    input: str = Field(..., min_length=1)
    output: str = Field(..., min_length=1)
    created_by: str | None = None
    metadata: dict = Field(default_factory=dict)


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    rewrite: str | None = None
    rated_by: str | None = None


class ExampleResponse(BaseModel):
    id: int
    project_id: int
    input: str
    output: str
    rewrite: str | None
    rating: int | None
    split: str | None
    created_at: datetime | None
    rated_at: datetime | None

    @classmethod
    def from_example(cls, example) -> ExampleResponse:
        return cls(
            id=example.id,
            project_id=example.project_id,
            input=example.input,
            output=example.output,
            rewrite=example.rewrite,
            rating=example.rating,
            split=example.split,
            created_at=example.created_at,
            rated_at=example.rated_at,
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/examples", status_code=201)
async def create_example(
    project_id: int,
    body: ExampleCreateRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> ExampleResponse:
    example = await dataset_service.add_example(
        db, project_id, body.input, body.output, created_by=body.created_by, metadata=body.metadata
    )
    return ExampleResponse.from_example(example)


@router.get("/projects/{project_id}/examples")
async def list_examples(
    project_id: int,
    filter: ExampleFilter = Query(ExampleFilter.UNRATED, description="Which examples to show"),  # noqa: A002, B008
    sort: ExampleSort = Query(ExampleSort.NEWEST, description="Result order"),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict:
    """The rating queue: unrated examples, newest first, unless asked otherwise."""
    examples = await dataset_service.list_examples(db, project_id, filter, sort)
    return {"examples": [ExampleResponse.from_example(e) for e in examples], "total": len(examples)}


@router.patch("/examples/{example_id}/rating")
async def rate_example(
    example_id: int,
    body: RatingRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> ExampleResponse:
    example = await dataset_service.rate_example(
        db, example_id, body.rating, rewrite=body.rewrite, rated_by=body.rated_by
    )
    return ExampleResponse.from_example(example)


@router.get("/projects/{project_id}/examples/export")
async def export_examples(
    project_id: int,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> Response:
    """Download every example of the project as JSONL, oldest first."""
    content = await dataset_service.export_dataset(db, project_id)
    return Response(
        content=content,
        media_type="application/jsonl",
        headers={"Content-Disposition": f'attachment; filename="project-{project_id}-examples.jsonl"'},
    )
