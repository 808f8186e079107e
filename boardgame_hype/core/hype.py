# ===== IMPORTS & DEPENDENCIES =====
import math
import time
from typing import Iterable, Optional, Tuple

from boardgame_hype.config import (
    HYPE_DECAY_LAMBDA, HYPE_SCORE_FLOOR, HYPE_SCORE_CEILING, MS_PER_DAY,
    HYPE_TIERS, HYPE_COLD, HYPE_BLAZING
)
from boardgame_hype.models.game import HypeEvent

# ===== CORE BUSINESS LOGIC =====
def now_ms() -> int:
    return int(time.time() * 1000)


def calculate_hype_score(
    hype_events: Optional[Iterable[HypeEvent]],
    now: Optional[int] = None,
    floor: Optional[float] = HYPE_SCORE_FLOOR,
    ceiling: Optional[float] = HYPE_SCORE_CEILING,
    decay: float = HYPE_DECAY_LAMBDA
) -> float:
    """
    Sums direction * exp(-decay * days_since) over every event, clamps to [floor, ceiling]
    and rounds to 2 decimals. With the default decay a single hype halves in about 35 days.
    Pass ceiling=None for the unbounded variant.
    """
    if not hype_events:
        return 0.0

    now = now_ms() if now is None else now
    score = 0.0
    for event in hype_events:
        days_since = (now - event['timestamp']) / MS_PER_DAY
        score += event['direction'] * math.exp(-decay * days_since)

    if floor is not None:
        score = max(floor, score)
    if ceiling is not None:
        score = min(ceiling, score)
    return round(score, 2)


def hype_tier(score: float) -> Tuple[str, str]:
    """Returns (label, color) for a score using fixed ascending thresholds."""
    if score <= 0:
        return HYPE_COLD
    for upper_bound, label, color in HYPE_TIERS:
        if score < upper_bound:
            return label, color
    return HYPE_BLAZING


def hype_label(score: float) -> str:
    return hype_tier(score)[0]


def hype_color(score: float) -> str:
    return hype_tier(score)[1]
