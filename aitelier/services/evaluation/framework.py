"""Evaluation orchestrator: resolves model options, generates paired outputs,
stores blind comparison items, records rater verdicts and reports."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aitelier.config import get_settings
from aitelier.constants import BASELINE_OPTION_ID, ModelOptionType, Side, Split, TrainingStatus
from aitelier.errors import NotFound, PreconditionFailed, UpstreamGenerationFailed
from aitelier.models import EvaluationItem, EvaluationRun, Example, TrainingRun
from aitelier.providers import CompletionProvider, ProviderError, get_provider
from aitelier.services.evaluation.report import EvaluationResults, ReportGenerator, TrendPoint
from aitelier.services.evaluation.scorer import AutoScorer
from aitelier.services.split_service import get_project
from aitelier.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelOption:
    id: str
    label: str
    type: ModelOptionType
    model_id: str
    training_run_id: int | None = None


@dataclass(frozen=True)
class GeneratedPair:
    example_id: int
    model_output: str
    baseline_output: str


@dataclass
class BlindItem:
    """What a rater sees: two anonymous outputs and their own verdict, if any."""

    id: int
    example_id: int
    input: str
    left_output: str
    right_output: str
    preferred_side: Side | None
    left_score: int | None
    right_score: int | None


def build_model_options(base_model: str, completed_runs: Sequence) -> list[ModelOption]:
    """Baseline first, then completed fine-tunes newest first as ``Version N``.

    ``completed_runs`` must already be ordered newest first.
    """
    options = [
        ModelOption(
            id=BASELINE_OPTION_ID,
            label=f"Baseline ({base_model})",
            type=ModelOptionType.BASELINE,
            model_id=base_model,
        )
    ]
    for index, run in enumerate(completed_runs):
        version = len(completed_runs) - index
        options.append(
            ModelOption(
                id=str(run.id),
                label=f"Version {version} ({run.model_id[:20]}...)",
                type=ModelOptionType.FINE_TUNED,
                model_id=run.model_id,
                training_run_id=run.id,
            )
        )
    return options


def resolve_pair(options: Sequence[ModelOption], model_a_id: str, model_b_id: str) -> tuple[ModelOption, ModelOption]:
    """Return ``(model, baseline)`` for two selected option ids.

    The fine-tuned side plays "model"; when both or neither are fine-tuned,
    option A does.
    """
    by_id = {option.id: option for option in options}
    for option_id in (model_a_id, model_b_id):
        if str(option_id) not in by_id:
            raise NotFound(f"Unknown model option {option_id!r}")

    option_a, option_b = by_id[str(model_a_id)], by_id[str(model_b_id)]
    if option_a.model_id == option_b.model_id:
        raise PreconditionFailed("models must differ")

    if option_a.type == ModelOptionType.BASELINE and option_b.type == ModelOptionType.FINE_TUNED:
        return option_b, option_a
    return option_a, option_b


class EvaluationEngine:
    """Generate paired completions for validation examples.

    Calls run concurrently under ``max_concurrency``. Generation is
    all-or-nothing: the first failing call cancels the rest and nothing is
    returned.
    """

    def __init__(self, provider: CompletionProvider, max_concurrency: int | None = None):
        self.provider = provider
        self.max_concurrency = max_concurrency or get_settings().EVAL_MAX_CONCURRENCY

    async def generate(
        self,
        examples: Sequence,
        model_ref: str,
        baseline_ref: str,
        system_prompt: str | None = None,
    ) -> list[GeneratedPair]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def complete(example, model: str) -> str:
            async with semaphore:
                try:
                    return await self.provider.generate(model, system_prompt, example.input)
                except ProviderError as exc:
                    raise UpstreamGenerationFailed(
                        f"Failed to generate output for example {example.id}: {exc.message}",
                        example_id=example.id,
                    ) from exc

        tasks = []
        for example in examples:
            tasks.append(asyncio.create_task(complete(example, model_ref)))
            tasks.append(asyncio.create_task(complete(example, baseline_ref)))

        try:
            outputs = await asyncio.gather(*tasks)
        except Exception:
            spent = sum(1 for t in tasks if t.done() and not t.cancelled() and t.exception() is None)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.exception(
                "Evaluation generation aborted after %d/%d completions (%s vs %s)",
                spent,
                len(tasks),
                model_ref,
                baseline_ref,
            )
            raise

        return [
            GeneratedPair(example_id=example.id, model_output=outputs[2 * i], baseline_output=outputs[2 * i + 1])
            for i, example in enumerate(examples)
        ]


# ----------------------------------------------------------------------
# Persistence-backed operations
# ----------------------------------------------------------------------


async def _completed_runs(db: AsyncSession, project_id: int) -> list[TrainingRun]:
    result = await db.execute(
        select(TrainingRun)
        .where(
            TrainingRun.project_id == project_id,
            TrainingRun.status == TrainingStatus.COMPLETED,
            TrainingRun.model_id.is_not(None),
        )
        .order_by(TrainingRun.created_at.desc(), TrainingRun.id.desc())
    )
    return list(result.scalars().all())


async def get_setup_data(db: AsyncSession, project_id: int) -> dict:
    """Model options and validation set size for the evaluation setup screen."""
    project = await get_project(db, project_id)
    runs = await _completed_runs(db, project_id)
    val_count = await db.scalar(
        select(func.count()).select_from(Example).where(Example.project_id == project_id, Example.split == Split.VAL)
    )
    return {
        "model_options": build_model_options(project.base_model, runs),
        "val_example_count": val_count or 0,
        "base_model": project.base_model,
        "system_prompt": project.system_prompt,
    }


async def start_evaluation(
    db: AsyncSession,
    project_id: int,
    model_a_id: str,
    model_b_id: str,
    created_by: str | None = None,
    provider: CompletionProvider | None = None,
) -> EvaluationRun:
    """Generate outputs from both models on the validation split and store them.

    Nothing is written unless every completion succeeds.

    Raises:
        NotFound: Unknown project or model option.
        PreconditionFailed: No validation examples, identical models or no API key.
        UpstreamGenerationFailed: A completion call failed.
    """
    project = await get_project(db, project_id)

    result = await db.execute(
        select(Example)
        .where(Example.project_id == project_id, Example.split == Split.VAL)
        .order_by(Example.created_at, Example.id)
    )
    examples = list(result.scalars().all())
    if not examples:
        raise PreconditionFailed("no validation examples")

    options = build_model_options(project.base_model, await _completed_runs(db, project_id))
    model, baseline = resolve_pair(options, model_a_id, model_b_id)

    owns_provider = provider is None
    if owns_provider:
        try:
            provider = get_provider(project)
        except ProviderError as exc:
            raise PreconditionFailed(exc.message) from exc

    try:
        pairs = await EvaluationEngine(provider).generate(
            examples, model.model_id, baseline.model_id, project.system_prompt
        )
    finally:
        if owns_provider:
            await provider.aclose()

    run = EvaluationRun(
        project_id=project_id,
        training_run_id=model.training_run_id or baseline.training_run_id,
        model_ref=model.model_id,
        baseline_ref=baseline.model_id,
        system_prompt=project.system_prompt,
        side_salt=get_settings().SIDE_ASSIGNMENT_SALT,
        item_count=len(pairs),
        created_by=created_by,
        items=[
            EvaluationItem(
                example_id=pair.example_id,
                model_output=pair.model_output,
                baseline_output=pair.baseline_output,
            )
            for pair in pairs
        ],
    )
    db.add(run)
    await db.commit()
    await db.refresh(run)

    logger.info(
        "Evaluation run %s created for project %d: %s vs %s, %d items",
        run.id,
        project_id,
        model.model_id,
        baseline.model_id,
        len(pairs),
    )
    return run


async def _get_run(db: AsyncSession, run_id: int) -> EvaluationRun:
    run = await db.get(EvaluationRun, run_id)
    if run is None:
        raise NotFound(f"Evaluation run {run_id} not found")
    return run


def to_blind_item(scorer: AutoScorer, item, input_text: str = "") -> BlindItem:
    left_output, right_output = scorer.arrange(item.id, item.model_output, item.baseline_output)
    left_model = scorer.left_is_model(item.id)
    left_score, right_score = (
        (item.model_score, item.baseline_score) if left_model else (item.baseline_score, item.model_score)
    )
    return BlindItem(
        id=item.id,
        example_id=item.example_id,
        input=input_text,
        left_output=left_output,
        right_output=right_output,
        preferred_side=scorer.side_of(item.id, item.preferred),
        left_score=left_score,
        right_score=right_score,
    )


async def get_blind_items(db: AsyncSession, run_id: int) -> list[BlindItem]:
    run = await _get_run(db, run_id)
    result = await db.execute(
        select(EvaluationItem, Example.input)
        .join(Example, Example.id == EvaluationItem.example_id)
        .where(EvaluationItem.evaluation_run_id == run_id)
        .order_by(EvaluationItem.id)
    )
    scorer = AutoScorer(run.side_salt)
    return [to_blind_item(scorer, item, input_text) for item, input_text in result.all()]


async def score_item(
    db: AsyncSession,
    item_id: int,
    side: Side | str,
    left_score: int | None = None,
    right_score: int | None = None,
    scored_by: str | None = None,
) -> BlindItem:
    """Record a rater verdict. Every write replaces the previous one entirely."""
    row = (
        await db.execute(
            select(EvaluationItem, EvaluationRun.side_salt)
            .join(EvaluationRun, EvaluationRun.id == EvaluationItem.evaluation_run_id)
            .where(EvaluationItem.id == item_id)
        )
    ).first()
    if row is None:
        raise NotFound(f"Evaluation item {item_id} not found")

    item, side_salt = row
    scorer = AutoScorer(side_salt)
    write = scorer.translate(item.id, side, left_score, right_score)
    item.preferred = write.preferred
    item.model_score = write.model_score
    item.baseline_score = write.baseline_score
    item.scored_by = scored_by
    item.scored_at = utcnow()

    await db.commit()
    await db.refresh(item)
    logger.info("Evaluation item %d scored: %s", item_id, write.preferred)
    return to_blind_item(scorer, item)


async def get_results(db: AsyncSession, run_id: int) -> EvaluationResults:
    await _get_run(db, run_id)
    result = await db.execute(
        select(EvaluationItem).where(EvaluationItem.evaluation_run_id == run_id).order_by(EvaluationItem.id)
    )
    return ReportGenerator.aggregate(result.scalars().all())


async def get_trends(db: AsyncSession, project_id: int) -> list[TrendPoint]:
    """One trend point per evaluation run of the project, oldest first."""
    await get_project(db, project_id)
    runs = (
        await db.execute(
            select(EvaluationRun.id)
            .where(EvaluationRun.project_id == project_id)
            .order_by(EvaluationRun.created_at, EvaluationRun.id)
        )
    ).scalars().all()
    if not runs:
        return []

    items = (
        await db.execute(
            select(EvaluationItem).where(EvaluationItem.evaluation_run_id.in_(runs)).order_by(EvaluationItem.id)
        )
    ).scalars().all()

    by_run: dict[int, list[EvaluationItem]] = defaultdict(list)
    for item in items:
        by_run[item.evaluation_run_id].append(item)
    return ReportGenerator.trends((run_id, by_run[run_id]) for run_id in runs)
