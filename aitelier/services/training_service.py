# @TASK P3-T3.3 - Fine-tune launch and status polling
# @TEST tests/test_training_service.py

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aitelier.constants import DEFAULT_TRAINING_CONFIG, TERMINAL_TRAINING_STATUSES, Split, TrainingStatus
from aitelier.errors import Conflict, NotFound, PreconditionFailed
from aitelier.models import Example, TrainingRun
from aitelier.providers import FineTuneProvider, ProviderError, get_provider
from aitelier.providers.schemas import FineTuneConfig
from aitelier.services.export_service import format_training_jsonl
from aitelier.services.split_service import get_project
from aitelier.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def _provider_for(project, provider: FineTuneProvider | None) -> tuple[FineTuneProvider, bool]:
    """Return ``(provider, owned)``; owned providers must be closed by the caller."""
    if provider is not None:
        return provider, False
    try:
        return get_provider(project), True
    except ProviderError as exc:
        raise PreconditionFailed(exc.message) from exc


async def list_base_models(db: AsyncSession, project_id: int, provider: FineTuneProvider | None = None) -> list:
    """Chat models the project's provider can fine-tune, recommended first."""
    project = await get_project(db, project_id)
    provider, owned = _provider_for(project, provider)
    try:
        return await provider.list_models()
    finally:
        if owned:
            await provider.aclose()


async def check_provider_key(db: AsyncSession, project_id: int, provider: FineTuneProvider | None = None) -> bool:
    project = await get_project(db, project_id)
    try:
        provider, owned = _provider_for(project, provider)
    except PreconditionFailed:
        return False
    try:
        return await provider.validate_api_key()
    finally:
        if owned:
            await provider.aclose()


async def _get_run(db: AsyncSession, run_id: int) -> TrainingRun:
    run = await db.get(TrainingRun, run_id)
    if run is None:
        raise NotFound(f"Training run {run_id} not found")
    return run


async def list_training_runs(db: AsyncSession, project_id: int) -> list[TrainingRun]:
    await get_project(db, project_id)
    result = await db.execute(
        select(TrainingRun)
        .where(TrainingRun.project_id == project_id)
        .order_by(TrainingRun.created_at.desc(), TrainingRun.id.desc())
    )
    return list(result.scalars().all())


async def launch_training(
    db: AsyncSession,
    project_id: int,
    created_by: str | None = None,
    provider: FineTuneProvider | None = None,
) -> TrainingRun:
    """Upload the train/val splits and start a fine-tune job.

    The run is committed as ``uploading`` before any provider call so a
    failure can be recorded on it. On provider failure the run is marked
    ``failed`` and the error re-raised.
    """
    project = await get_project(db, project_id)

    result = await db.execute(
        select(Example)
        .where(Example.project_id == project_id, Example.split.is_not(None))
        .order_by(Example.created_at, Example.id)
    )
    examples = result.scalars().all()
    train = [e for e in examples if e.split == Split.TRAIN]
    val = [e for e in examples if e.split == Split.VAL]
    if not train:
        raise PreconditionFailed("no training examples; prepare the split first")

    provider, owned = _provider_for(project, provider)
    config = {**DEFAULT_TRAINING_CONFIG, **(project.training_config or {})}

    run = TrainingRun(
        project_id=project_id,
        provider=project.provider,
        base_model=project.base_model,
        status=TrainingStatus.UPLOADING,
        config=config,
        example_count=len(train) + len(val),
        train_count=len(train),
        val_count=len(val),
        created_by=created_by,
    )
    db.add(run)
    await db.commit()
    await db.refresh(run)

    try:
        training_file = await provider.upload_file(
            format_training_jsonl(train, project.system_prompt), filename=f"run-{run.id}-train.jsonl"
        )
        validation_file = None
        if val:
            validation_file = await provider.upload_file(
                format_training_jsonl(val, project.system_prompt), filename=f"run-{run.id}-val.jsonl"
            )
        job_id = await provider.create_fine_tune_job(
            FineTuneConfig.from_project_config(project.base_model, training_file, config, validation_file)
        )
    except ProviderError as exc:
        logger.exception("Training run %s failed to launch", run.id)
        run.status = TrainingStatus.FAILED
        run.error = exc.message
        run.completed_at = utcnow()
        await db.commit()
        raise
    finally:
        if owned:
            await provider.aclose()

    run.provider_job_id = job_id
    run.status = TrainingStatus.QUEUED
    run.started_at = utcnow()
    await db.commit()
    await db.refresh(run)

    logger.info(
        "Training run %s queued as %s (%d train / %d val)", run.id, job_id, run.train_count, run.val_count
    )
    return run


async def refresh_training_status(
    db: AsyncSession,
    run_id: int,
    provider: FineTuneProvider | None = None,
) -> TrainingRun:
    """Poll the provider for a non-terminal run and record its new state."""
    run = await _get_run(db, run_id)
    if run.status in TERMINAL_TRAINING_STATUSES or not run.provider_job_id:
        return run

    project = await get_project(db, run.project_id)
    provider, owned = _provider_for(project, provider)
    try:
        job = await provider.get_job_status(run.provider_job_id)
    finally:
        if owned:
            await provider.aclose()

    if job.status == run.status:
        return run

    logger.info("Training run %d: %s -> %s (%s)", run.id, run.status, job.status, job.raw_status)
    run.status = job.status
    if job.status == TrainingStatus.COMPLETED:
        run.model_id = job.model_id
        run.completed_at = utcnow()
    elif job.status in TERMINAL_TRAINING_STATUSES:
        run.error = job.error
        run.completed_at = utcnow()

    await db.commit()
    await db.refresh(run)
    return run


async def cancel_training(
    db: AsyncSession,
    run_id: int,
    provider: FineTuneProvider | None = None,
) -> TrainingRun:
    run = await _get_run(db, run_id)
    if run.status in TERMINAL_TRAINING_STATUSES:
        raise Conflict(f"Training run {run_id} is already {run.status}")

    if run.provider_job_id:
        project = await get_project(db, run.project_id)
        provider, owned = _provider_for(project, provider)
        try:
            await provider.cancel_job(run.provider_job_id)
        finally:
            if owned:
                await provider.aclose()

    run.status = TrainingStatus.CANCELLED
    run.completed_at = utcnow()
    await db.commit()
    await db.refresh(run)
    logger.info("Training run %d cancelled", run.id)
    return run
