"""Result aggregation for blind evaluation runs."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, field

from aitelier.constants import PROMISING_WIN_RATE, SHIP_IT_WIN_RATE, Preference, Verdict

logger = logging.getLogger(__name__)


@dataclass
class ItemBreakdown:
    id: int
    example_id: int
    preferred: str | None
    model_score: int | None
    baseline_score: int | None
    model_output: str
    baseline_output: str


@dataclass
class EvaluationResults:
    """Aggregate over one run's items.

    Averages and rates are ``None`` (undefined) when nothing contributes to
    them, which is distinct from a genuine zero.
    """

    total: int = 0
    scored_count: int = 0
    model_wins: int = 0
    baseline_wins: int = 0
    ties: int = 0
    avg_model_score: float | None = None
    avg_baseline_score: float | None = None
    model_win_rate: float | None = None
    baseline_win_rate: float | None = None
    tie_rate: float | None = None
    verdict: Verdict | None = None
    items: list[ItemBreakdown] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TrendPoint:
    version: int
    evaluation_run_id: int
    model_win_rate: float | None
    avg_model_score: float | None
    avg_baseline_score: float | None
    scored_count: int


def _mean(values: Sequence[int]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def _percent(count: int, total: int) -> float | None:
    if not total:
        return None
    return round(count / total * 100, 1)


def verdict_for(model_win_rate: float | None) -> Verdict | None:
    if model_win_rate is None:
        return None
    if model_win_rate >= SHIP_IT_WIN_RATE:
        return Verdict.SHIP_IT
    if model_win_rate >= PROMISING_WIN_RATE:
        return Verdict.PROMISING
    return Verdict.NEED_MORE_DATA


class ReportGenerator:
    """Reduce evaluation items into results and historical trends."""

    @staticmethod
    def aggregate(items: Iterable) -> EvaluationResults:
        """Count wins/losses/ties and average the 1-10 scores.

        Rates use the scored items as denominator; unscored items only count
        toward ``total``.
        """
        items = list(items)
        results = EvaluationResults(total=len(items))

        model_scores: list[int] = []
        baseline_scores: list[int] = []
        for item in items:
            if item.preferred == Preference.MODEL:
                results.model_wins += 1
            elif item.preferred == Preference.BASELINE:
                results.baseline_wins += 1
            elif item.preferred == Preference.TIE:
                results.ties += 1

            if item.model_score is not None:
                model_scores.append(item.model_score)
            if item.baseline_score is not None:
                baseline_scores.append(item.baseline_score)

            results.items.append(
                ItemBreakdown(
                    id=item.id,
                    example_id=item.example_id,
                    preferred=item.preferred,
                    model_score=item.model_score,
                    baseline_score=item.baseline_score,
                    model_output=item.model_output,
                    baseline_output=item.baseline_output,
                )
            )

        results.scored_count = results.model_wins + results.baseline_wins + results.ties
        results.avg_model_score = _mean(model_scores)
        results.avg_baseline_score = _mean(baseline_scores)
        results.model_win_rate = _percent(results.model_wins, results.scored_count)
        results.baseline_win_rate = _percent(results.baseline_wins, results.scored_count)
        results.tie_rate = _percent(results.ties, results.scored_count)
        results.verdict = verdict_for(results.model_win_rate)
        return results

    @staticmethod
    def trends(runs: Iterable[tuple[int, Iterable]]) -> list[TrendPoint]:
        """One point per run, in the order given (oldest first).

        Args:
            runs: ``(evaluation_run_id, items)`` pairs ordered by creation time.
        """
        points = []
        for version, (run_id, items) in enumerate(runs, start=1):
            results = ReportGenerator.aggregate(items)
            points.append(
                TrendPoint(
                    version=version,
                    evaluation_run_id=run_id,
                    model_win_rate=results.model_win_rate,
                    avg_model_score=results.avg_model_score,
                    avg_baseline_score=results.avg_baseline_score,
                    scored_count=results.scored_count,
                )
            )
        return points
