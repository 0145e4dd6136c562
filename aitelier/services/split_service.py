# @TASK P2-T2.2 - Split persistence (examples table <-> SplitPlanner)
# @TEST tests/test_split_service.py

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from aitelier.config import get_settings
from aitelier.constants import Split, StratifyMode
from aitelier.errors import NotFound
from aitelier.models import EvaluationItem, Example, Project
from aitelier.services.splitting import ExampleRecord, SplitConfig, SplitPlan, SplitPlanner

logger = logging.getLogger(__name__)


async def get_project(db: AsyncSession, project_id: int) -> Project:
    project = await db.get(Project, project_id)
    if project is None:
        raise NotFound(f"Project {project_id} not found")
    return project


async def load_split_records(db: AsyncSession, project_id: int) -> list[ExampleRecord]:
    """Load every example of a project with its lock flag.

    An example is locked once any evaluation item references it.
    """
    locked = (
        select(EvaluationItem.id).where(EvaluationItem.example_id == Example.id).exists().label("locked")
    )
    result = await db.execute(
        select(Example.id, Example.rating, Example.split, Example.created_at, locked)
        .where(Example.project_id == project_id)
        .order_by(Example.created_at, Example.id)
    )
    return [
        ExampleRecord(
            id=row.id,
            rating=row.rating,
            split=Split(row.split) if row.split else None,
            created_at=row.created_at,
            locked=bool(row.locked),
        )
        for row in result.all()
    ]


async def _write_splits(db: AsyncSession, project_id: int, changes: dict[int, Split | None]) -> None:
    """Batch-update ``examples.split``, one UPDATE per target value."""
    grouped: dict[Split | None, list[int]] = defaultdict(list)
    for example_id, split in changes.items():
        grouped[split].append(example_id)

    for split, ids in grouped.items():
        await db.execute(
            update(Example)
            .where(Example.project_id == project_id, Example.id.in_(sorted(ids)))
            .values(split=split.value if split is not None else None)
        )


async def prepare_split(
    db: AsyncSession,
    project_id: int,
    val_fraction: float | None = None,
    stratify: StratifyMode = StratifyMode.RATING,
    reset: bool = False,
) -> SplitPlan:
    """Run the planner over a project's examples and persist the new placements."""
    settings = get_settings()
    project = await get_project(db, project_id)
    config = SplitConfig(
        val_fraction=settings.DEFAULT_VAL_FRACTION if val_fraction is None else val_fraction,
        stratify=stratify,
        quality_threshold=(
            settings.DEFAULT_QUALITY_THRESHOLD if project.quality_threshold is None else project.quality_threshold
        ),
        reset=reset,
    )

    records = await load_split_records(db, project_id)
    plan = SplitPlanner(config).plan(records)

    if plan.changed:
        await _write_splits(db, project_id, plan.changed)
        await db.commit()

    logger.info(
        "Project %d split prepared: %d train, %d val, %d written",
        project_id,
        plan.train_count,
        plan.val_count,
        len(plan.changed),
    )
    return plan


async def reassign_examples(
    db: AsyncSession,
    project_id: int,
    example_ids: list[int],
    split: Split | None,
) -> dict[int, Split | None]:
    """Move explicit examples to ``split`` (or back to unassigned).

    Locked examples are rejected with ``Conflict`` and nothing is written.
    """
    await get_project(db, project_id)
    records = await load_split_records(db, project_id)
    writes = SplitPlanner.reassign(records, {example_id: split for example_id in example_ids})

    if writes:
        await _write_splits(db, project_id, writes)
        await db.commit()
    return writes
