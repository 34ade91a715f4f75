"""
Deterministic sample usage export, for trying the dashboard without real data.
"""

import random
from datetime import datetime, timedelta
from typing import Optional

from copilot_usage.core.filters import utc_now
from copilot_usage.storage.models import REQUIRED_COLUMNS

SAMPLE_MODELS = (
    "gpt-4o",
    "gpt-4.1",
    "gpt-4.1-mini",
    "claude-sonnet-4",
    "gemini-2.5-pro",
    "o3-mini",
)

SAMPLE_QUOTAS = (300, 300, 300, 1000)


def generate_sample_csv(
    users: int = 12,
    days: int = 45,
    seed: int = 42,
    end: Optional[datetime] = None,
) -> str:
    """Build a usage export with random but reproducible activity.

    Args:
        users: Number of distinct users
        days: Number of days of history, ending at ``end``
        seed: Random seed
        end: Last day of history; defaults to now

    Returns:
        CSV text with the standard header
    """
    if users <= 0 or days <= 0:
        raise ValueError("users and days must be > 0")

    rng = random.Random(seed)
    end = (end or utc_now()).replace(microsecond=0)
    start = end - timedelta(days=days)

    lines = [",".join(REQUIRED_COLUMNS)]
    for index in range(users):
        user = f"user{index + 1:02d}"
        quota = rng.choice(SAMPLE_QUOTAS)
        used = 0
        for _ in range(rng.randint(max(days // 2, 1), days * 2)):
            timestamp = start + timedelta(seconds=rng.randint(0, days * 86400))
            requests = rng.randint(1, 12)
            used += requests
            lines.append(",".join((
                timestamp.strftime("%Y-%m-%dT%H:%M:%SZ"),
                user,
                rng.choice(SAMPLE_MODELS),
                str(requests),
                "TRUE" if used > quota else "FALSE",
                str(quota),
            )))
    return "\n".join(lines) + "\n"
