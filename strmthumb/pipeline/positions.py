import math
import random
from typing import Optional, Union

START_MAX_SECONDS = 5.0
START_FRACTION = 0.05
END_FRACTION = 0.95
AUTO_RANGE = (0.10, 0.90)


def compute_offset(
    position: Union[str, float],
    duration: float,
    rng: Optional[random.Random] = None,
) -> float:
    """Returns the extraction offset in seconds for a position policy.

    start  -> min(5s, 5% of duration)
    middle -> 50%
    end    -> 95%
    auto   -> uniform random point strictly between 10% and 90%
    number -> explicit seconds, clamped to [0, 95% of duration]
    """
    if not math.isfinite(duration) or duration <= 0:
        raise ValueError(f"Duration must be positive, got {duration!r}")

    if isinstance(position, (int, float)) and not isinstance(position, bool):
        return min(max(float(position), 0.0), duration * END_FRACTION)

    if position == "start":
        return min(START_MAX_SECONDS, duration * START_FRACTION)
    if position == "middle":
        return duration * 0.5
    if position == "end":
        return duration * END_FRACTION
    if position == "auto":
        rng = rng or random
        low, high = AUTO_RANGE
        fraction = rng.uniform(low, high)
        # uniform() may return an endpoint
        while not low < fraction < high:
            fraction = rng.uniform(low, high)
        return duration * fraction

    raise ValueError(f"Unsupported position: {position!r}")
