"""Blind side assignment and rater-input translation."""

import hashlib
import logging
from dataclasses import dataclass

from aitelier.constants import MAX_SCORE, MIN_SCORE, Preference, Side
from aitelier.errors import PreconditionFailed

logger = logging.getLogger(__name__)


def is_left_model(item_id: int, salt: str) -> bool:
    """Whether the fine-tuned output is shown on the left for this item.

    Lowest bit of SHA-256 over ``"{salt}:{item_id}"``: the same item always
    gets the same arrangement, neighbouring ids are independent.
    """
    digest = hashlib.sha256(f"{salt}:{item_id}".encode()).digest()
    return digest[-1] & 1 == 1


@dataclass(frozen=True)
class ScoreWrite:
    preferred: Preference
    model_score: int | None
    baseline_score: int | None


def _check_score(value: int | None, label: str) -> None:
    if value is not None and not MIN_SCORE <= value <= MAX_SCORE:
        raise PreconditionFailed(f"{label} must be between {MIN_SCORE} and {MAX_SCORE}")


class AutoScorer:
    """Translate left/right rater input into model/baseline fields."""

    def __init__(self, salt: str):
        self.salt = salt

    def left_is_model(self, item_id: int) -> bool:
        return is_left_model(item_id, self.salt)

    def arrange(self, item_id: int, model_output: str, baseline_output: str) -> tuple[str, str]:
        """Return ``(left_output, right_output)`` for display."""
        if self.left_is_model(item_id):
            return model_output, baseline_output
        return baseline_output, model_output

    def side_of(self, item_id: int, preferred: Preference | str | None) -> Side | None:
        """Inverse of :meth:`translate` for showing a stored verdict back to raters."""
        if preferred is None:
            return None
        if preferred == Preference.TIE:
            return Side.TIE
        model_side = Side.LEFT if self.left_is_model(item_id) else Side.RIGHT
        if preferred == Preference.MODEL:
            return model_side
        return Side.RIGHT if model_side == Side.LEFT else Side.LEFT

    def translate(
        self,
        item_id: int,
        side: Side | str,
        left_score: int | None = None,
        right_score: int | None = None,
    ) -> ScoreWrite:
        try:
            side = Side(side)
        except ValueError:
            raise PreconditionFailed(f"side must be one of: {', '.join(s.value for s in Side)}") from None
        _check_score(left_score, "left_score")
        _check_score(right_score, "right_score")

        left_model = self.left_is_model(item_id)
        model_score, baseline_score = (left_score, right_score) if left_model else (right_score, left_score)

        if side == Side.TIE:
            preferred = Preference.TIE
        elif (side == Side.LEFT) == left_model:
            preferred = Preference.MODEL
        else:
            preferred = Preference.BASELINE

        return ScoreWrite(preferred=preferred, model_score=model_score, baseline_score=baseline_score)
