"""Frecency scoring.

Frecency = frequency_weight x recency_weight

Recency decays in steps with the age of the most recent run; frequency is
logarithmic so that very frequent commands do not dominate.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

FOUR_HOURS = timedelta(hours=4)
ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(days=7)
ONE_MONTH = timedelta(days=30)

# (upper bound on age, weight), checked in order
RECENCY_BUCKETS: list[tuple[timedelta, int]] = [
    (FOUR_HOURS, 100),
    (ONE_DAY, 70),
    (ONE_WEEK, 50),
    (ONE_MONTH, 30),
]
OLDEST_WEIGHT = 10


def parse_timestamp(timestamp: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware datetime, or None."""
    if not timestamp:
        return None
    value = timestamp.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def recency_weight(timestamp: str | None, now: datetime | None = None) -> int:
    then = parse_timestamp(timestamp)
    if then is None:
        return OLDEST_WEIGHT

    age = (now or datetime.now(timezone.utc)) - then
    for bound, weight in RECENCY_BUCKETS:
        if age < bound:
            return weight
    return OLDEST_WEIGHT


def frequency_weight(frequency: int) -> float:
    return 1 + math.log10(max(1, frequency))


def frecency_score(frequency: int, most_recent: str | None, now: datetime | None = None) -> float:
    return frequency_weight(frequency) * recency_weight(most_recent, now)
