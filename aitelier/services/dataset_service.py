# @TASK P2-T2.3 - Example rating, dataset statistics and readiness
# @TEST tests/test_dataset_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aitelier.config import get_settings
from aitelier.constants import (
    ALMOST_READY_QUALITY_COUNT,
    MAX_SCORE,
    MIN_SCORE,
    READY_QUALITY_COUNT,
    READY_TRAIN_COUNT,
    READY_VAL_COUNT,
    ExampleFilter,
    ExampleSort,
    Split,
    TrainingStatus,
)
from aitelier.errors import NotFound, PreconditionFailed
from aitelier.models import Example, TrainingRun
from aitelier.services.export_service import format_dataset_jsonl
from aitelier.services.split_service import get_project
from aitelier.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class Readiness:
    status: str  # "ready" | "almost" | "not_ready"
    needed: list[str] = field(default_factory=list)


def assess_readiness(quality_count: int, train_count: int, val_count: int) -> Readiness:
    """Decide whether a project has enough data to launch a fine-tune."""
    has_quality = quality_count >= READY_QUALITY_COUNT
    has_train = train_count >= READY_TRAIN_COUNT
    has_val = val_count >= READY_VAL_COUNT

    if has_quality and has_train and has_val:
        return Readiness(status="ready")

    needed = []
    if not has_quality:
        needed.append(f"{READY_QUALITY_COUNT - quality_count} more quality examples")
    if not has_train:
        needed.append(f"{READY_TRAIN_COUNT - train_count} more in train split")
    if not has_val:
        needed.append(f"{READY_VAL_COUNT - val_count} more in val split")

    if quality_count >= ALMOST_READY_QUALITY_COUNT or (train_count > 0 and val_count > 0):
        return Readiness(status="almost", needed=needed)
    return Readiness(status="not_ready", needed=needed)


def summarize_examples(examples, quality_threshold: int) -> dict:
    """Rating distribution (1-10) with per-split counts, plus overall split stats."""
    distribution = {r: {"rating": r, "count": 0, "train_count": 0, "val_count": 0} for r in range(1, 11)}
    train_count = val_count = unassigned_count = rated_count = quality_count = 0

    for example in examples:
        if example.split == Split.TRAIN:
            train_count += 1
        elif example.split == Split.VAL:
            val_count += 1
        else:
            unassigned_count += 1

        if example.rating is None:
            continue
        rated_count += 1
        if example.rating >= quality_threshold:
            quality_count += 1

        entry = distribution[example.rating]
        entry["count"] += 1
        if example.split == Split.TRAIN:
            entry["train_count"] += 1
        elif example.split == Split.VAL:
            entry["val_count"] += 1

    readiness = assess_readiness(quality_count, train_count, val_count)
    return {
        "total_examples": train_count + val_count + unassigned_count,
        "rated_count": rated_count,
        "quality_count": quality_count,
        "distribution": list(distribution.values()),
        "split_stats": {
            "train_count": train_count,
            "val_count": val_count,
            "unassigned_count": unassigned_count,
        },
        "readiness": {"status": readiness.status, "needed": readiness.needed},
    }


def _quality_threshold(project) -> int:
    if project.quality_threshold is None:
        return get_settings().DEFAULT_QUALITY_THRESHOLD
    return project.quality_threshold


async def get_dataset_stats(db: AsyncSession, project_id: int) -> dict:
    """Example statistics plus the number of fine-tunes that completed."""
    project = await get_project(db, project_id)
    result = await db.execute(select(Example.rating, Example.split).where(Example.project_id == project_id))
    stats = summarize_examples(result.all(), _quality_threshold(project))
    stats["models_trained"] = (
        await db.scalar(
            select(func.count())
            .select_from(TrainingRun)
            .where(TrainingRun.project_id == project_id, TrainingRun.status == TrainingStatus.COMPLETED)
        )
        or 0
    )
    return stats


_SORT_ORDER = {
    ExampleSort.NEWEST: (Example.created_at.desc(), Example.id.desc()),
    ExampleSort.OLDEST: (Example.created_at.asc(), Example.id.asc()),
    ExampleSort.RATING_ASC: (Example.rating.asc().nulls_last(), Example.id.asc()),
    ExampleSort.RATING_DESC: (Example.rating.desc().nulls_last(), Example.id.desc()),
    ExampleSort.RANDOM: (func.random(),),
}


async def list_examples(
    db: AsyncSession,
    project_id: int,
    example_filter: ExampleFilter | str = ExampleFilter.UNRATED,
    sort: ExampleSort | str = ExampleSort.NEWEST,
) -> list[Example]:
    """Examples for the rating queue.

    ``below-threshold`` compares against the project's quality threshold;
    ``needs-rewrite`` is every rated example that has no rewrite yet. Rating
    sorts put unrated examples last.

    Raises:
        NotFound: Unknown project.
        PreconditionFailed: Unknown filter or sort.
    """
    try:
        example_filter = ExampleFilter(example_filter)
        sort = ExampleSort(sort)
    except ValueError as exc:
        raise PreconditionFailed(str(exc)) from None

    project = await get_project(db, project_id)
    query = select(Example).where(Example.project_id == project_id)
    if example_filter == ExampleFilter.UNRATED:
        query = query.where(Example.rating.is_(None))
    elif example_filter == ExampleFilter.BELOW_THRESHOLD:
        query = query.where(Example.rating.is_not(None), Example.rating < _quality_threshold(project))
    elif example_filter == ExampleFilter.NEEDS_REWRITE:
        query = query.where(Example.rating.is_not(None), Example.rewrite.is_(None))

    result = await db.execute(query.order_by(*_SORT_ORDER[sort]))
    return list(result.scalars().all())


async def add_example(
    db: AsyncSession,
    project_id: int,
    input_text: str,
    output_text: str,
    created_by: str | None = None,
    metadata: dict | None = None,
) -> Example:
    await get_project(db, project_id)
    example = Example(
        project_id=project_id,
        input=input_text,
        output=output_text,
        created_by=created_by,
        metadata_=metadata or {},
    )
    db.add(example)
    await db.commit()
    await db.refresh(example)
    return example


async def rate_example(
    db: AsyncSession,
    example_id: int,
    rating: int,
    rewrite: str | None = None,
    rated_by: str | None = None,
) -> Example:
    """Record a 1-10 rating; ``rewrite`` is only touched when given."""
    if not MIN_SCORE <= rating <= MAX_SCORE:
        raise PreconditionFailed(f"Rating must be between {MIN_SCORE} and {MAX_SCORE}")

    example = await db.get(Example, example_id)
    if example is None:
        raise NotFound(f"Example {example_id} not found")

    example.rating = rating
    example.rated_by = rated_by
    example.rated_at = utcnow()
    if rewrite is not None:
        example.rewrite = rewrite

    await db.commit()
    await db.refresh(example)
    logger.info("Example %d rated %d", example_id, rating)
    return example


async def export_dataset(db: AsyncSession, project_id: int) -> str:
    await get_project(db, project_id)
    result = await db.execute(
        select(Example).where(Example.project_id == project_id).order_by(Example.created_at, Example.id)
    )
    return format_dataset_jsonl(result.scalars().all())
