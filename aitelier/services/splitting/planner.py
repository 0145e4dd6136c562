# @TASK P2-T2.1 - Deterministic stratified train/val planner
# @TEST tests/test_split_planner.py
"""Train/validation split planning for rated examples.

The planner is a pure function over example records: it never touches the
database.  Callers load ``ExampleRecord`` rows, run :meth:`SplitPlanner.plan`
and persist ``SplitPlan.changed``.

Rules:

- Only rated examples are eligible.  Unrated examples never receive a split.
- Locked examples (already referenced by an evaluation item) keep their split
  and only count toward the train/val bookkeeping.
- A normal run is incremental: examples that already have a split stay where
  they are and only unassigned examples are placed.  ``reset=True`` re-places
  every unlocked eligible example.
- Within each bucket the validation target is ``round_half_up(total * p)``;
  the pool, ordered by creation time, receives the missing validation slots at
  evenly spaced positions so repeated runs give the same answer.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from aitelier.constants import Split, StratifyMode
from aitelier.errors import Conflict, NotFound, PreconditionFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExampleRecord:
    """The slice of an example the planner needs."""

    id: int
    rating: int | None
    split: Split | None
    created_at: datetime
    locked: bool = False

    @property
    def eligible(self) -> bool:
        return self.rating is not None


@dataclass
class SplitConfig:
    """Configuration for a planning pass."""

    val_fraction: float = 0.2
    stratify: StratifyMode = StratifyMode.RATING
    quality_threshold: int = 8
    reset: bool = False

    def __post_init__(self):
        if not 0 < self.val_fraction < 1:
            raise PreconditionFailed("val_fraction must be between 0 and 1 (exclusive)")
        self.stratify = StratifyMode(self.stratify)


@dataclass
class BucketSummary:
    train: int = 0
    val: int = 0
    placed: int = 0  # examples assigned by this pass

    def to_dict(self) -> dict:
        return {"train": self.train, "val": self.val, "placed": self.placed}


@dataclass
class SplitPlan:
    """Result of a planning pass.

    ``assignments`` holds the final split of every eligible example, locked
    and kept ones included.  ``changed`` only holds the examples whose split
    differs from the input and therefore need a write.
    """

    assignments: dict[int, Split] = field(default_factory=dict)
    changed: dict[int, Split] = field(default_factory=dict)
    by_bucket: dict[str, BucketSummary] = field(default_factory=dict)
    locked_count: int = 0
    unrated_count: int = 0
    nothing_to_split: bool = False

    @property
    def train_count(self) -> int:
        return sum(1 for s in self.assignments.values() if s == Split.TRAIN)

    @property
    def val_count(self) -> int:
        return sum(1 for s in self.assignments.values() if s == Split.VAL)

    @property
    def val_ratio(self) -> float:
        total = len(self.assignments)
        return self.val_count / total if total else 0.0

    def to_dict(self) -> dict:
        return {
            "train_count": self.train_count,
            "val_count": self.val_count,
            "changed_count": len(self.changed),
            "locked_count": self.locked_count,
            "unrated_count": self.unrated_count,
            "nothing_to_split": self.nothing_to_split,
            "by_bucket": {k: v.to_dict() for k, v in sorted(self.by_bucket.items())},
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (Python's round() is banker's)."""
    return math.floor(value + 0.5)


def val_positions(pool_size: int, val_slots: int) -> set[int]:
    """Evenly spaced indices in ``range(pool_size)`` that go to validation.

    With ``pool_size * p`` integral this is ``0, 1/p, 2/p, ...``.
    """
    if val_slots <= 0 or pool_size <= 0:
        return set()
    val_slots = min(val_slots, pool_size)
    return {(j * pool_size) // val_slots for j in range(val_slots)}


class SplitPlanner:
    """Assign rated examples to ``train`` or ``val``."""

    def __init__(self, config: SplitConfig | None = None):
        self.config = config or SplitConfig()

    def bucket_key(self, rating: int) -> str:
        if self.config.stratify == StratifyMode.RATING:
            return f"rating_{rating}"
        if self.config.stratify == StratifyMode.QUALITY:
            return "quality" if rating >= self.config.quality_threshold else "non_quality"
        return "all"

    def plan(self, records: Iterable[ExampleRecord]) -> SplitPlan:
        records = list(records)
        plan = SplitPlan()

        eligible = [r for r in records if r.eligible]
        plan.unrated_count = len(records) - len(eligible)
        if not eligible:
            plan.nothing_to_split = True
            logger.info("Nothing to split: %d examples, none rated", len(records))
            return plan

        pools: dict[str, list[ExampleRecord]] = {}
        for record in eligible:
            key = self.bucket_key(record.rating)
            bucket = plan.by_bucket.setdefault(key, BucketSummary())

            keeps_split = record.split is not None and (record.locked or not self.config.reset)
            if keeps_split:
                plan.assignments[record.id] = Split(record.split)
                if record.split == Split.VAL:
                    bucket.val += 1
                else:
                    bucket.train += 1
                if record.locked:
                    plan.locked_count += 1
                continue

            pools.setdefault(key, []).append(record)

        for key, pool in pools.items():
            bucket = plan.by_bucket[key]
            pool.sort(key=lambda r: (r.created_at, r.id))

            total = bucket.train + bucket.val + len(pool)
            target_val = round_half_up(total * self.config.val_fraction)
            val_slots = max(0, min(target_val - bucket.val, len(pool)))
            positions = val_positions(len(pool), val_slots)

            for index, record in enumerate(pool):
                split = Split.VAL if index in positions else Split.TRAIN
                plan.assignments[record.id] = split
                if record.split != split:
                    plan.changed[record.id] = split
                if split == Split.VAL:
                    bucket.val += 1
                else:
                    bucket.train += 1
                bucket.placed += 1

        logger.info(
            "Split plan: train=%d val=%d changed=%d locked=%d buckets=%d reset=%s",
            plan.train_count,
            plan.val_count,
            len(plan.changed),
            plan.locked_count,
            len(plan.by_bucket),
            self.config.reset,
        )
        return plan

    @staticmethod
    def reassign(records: Iterable[ExampleRecord], targets: dict[int, Split | None]) -> dict[int, Split | None]:
        """Validate a manual split change and return the writes it needs.

        Raises:
            NotFound: A target id is not among ``records``.
            Conflict: A locked example would change split.  Nothing is
                returned for the other ids either.
            PreconditionFailed: An unrated example would be placed in a split.
        """
        by_id = {r.id: r for r in records}

        missing = sorted(set(targets) - set(by_id))
        if missing:
            raise NotFound(f"Examples not found in project: {missing}")

        locked = sorted(
            example_id
            for example_id, split in targets.items()
            if by_id[example_id].locked and by_id[example_id].split != split
        )
        if locked:
            raise Conflict(
                f"Examples {locked} are referenced by an evaluation and their split is locked",
                ids=locked,
            )

        unrated = sorted(
            example_id for example_id, split in targets.items() if split is not None and not by_id[example_id].eligible
        )
        if unrated:
            raise PreconditionFailed(f"Unrated examples cannot be placed in a split: {unrated}")

        return {
            example_id: (Split(split) if split is not None else None)
            for example_id, split in targets.items()
            if by_id[example_id].split != split
        }
