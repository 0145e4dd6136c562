from enum import StrEnum


class Split(StrEnum):
    TRAIN = "train"
    VAL = "val"


class StratifyMode(StrEnum):
    RATING = "rating"  # one bucket per rating value
    QUALITY = "quality"  # quality / non-quality around the project threshold
    NONE = "none"


class ExampleFilter(StrEnum):
    """Which examples the rating queue shows."""

    UNRATED = "unrated"
    ALL = "all"
    BELOW_THRESHOLD = "below-threshold"
    NEEDS_REWRITE = "needs-rewrite"


class ExampleSort(StrEnum):
    NEWEST = "newest"
    OLDEST = "oldest"
    RATING_ASC = "rating-asc"
    RATING_DESC = "rating-desc"
    RANDOM = "random"


class TrainingStatus(StrEnum):
    PENDING = "pending"
    UPLOADING = "uploading"
    QUEUED = "queued"
    TRAINING = "training"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_TRAINING_STATUSES: frozenset[str] = frozenset(
    {TrainingStatus.COMPLETED, TrainingStatus.FAILED, TrainingStatus.CANCELLED}
)


class Preference(StrEnum):
    MODEL = "model"
    BASELINE = "baseline"
    TIE = "tie"


class Side(StrEnum):
    """Presentation slot a rater picks in the blind comparison view."""

    LEFT = "left"
    RIGHT = "right"
    TIE = "tie"


class Verdict(StrEnum):
    SHIP_IT = "ship_it"
    PROMISING = "promising"
    NEED_MORE_DATA = "need_more_data"


class ModelOptionType(StrEnum):
    BASELINE = "baseline"
    FINE_TUNED = "fine-tuned"


BASELINE_OPTION_ID = "baseline"

MIN_SCORE = 1
MAX_SCORE = 10

# Readiness thresholds for launching a fine-tune
READY_QUALITY_COUNT = 20
ALMOST_READY_QUALITY_COUNT = 10
READY_TRAIN_COUNT = 10
READY_VAL_COUNT = 2

# Model win rate (percent) needed for each verdict
SHIP_IT_WIN_RATE = 60.0
PROMISING_WIN_RATE = 45.0

DEFAULT_TRAINING_CONFIG: dict = {
    "epochs": 3,
    "batch_size": 4,
    "learning_rate": 1e-5,
    "lora_r": 16,
    "lora_alpha": 32,
    "lora_dropout": 0.05,
}
