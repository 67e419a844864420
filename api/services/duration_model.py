"""
Duration Model — on-site shoot time from property size.

Step function that mirrors how shoots are quoted:
  - < 1500 sqft → 60 min
  - < 2500 sqft → 75 min
  - < 3500 sqft → 90 min
  - < 5000 sqft → 105 min
  - otherwise   → 120 min

Unknown size is treated as DEFAULT_PROPERTY_SQFT.
"""

from __future__ import annotations

DEFAULT_PROPERTY_SQFT = 2000

# (exclusive upper bound in sqft, minutes)
SERVICE_BANDS: tuple[tuple[float, int], ...] = (
    (1500, 60),
    (2500, 75),
    (3500, 90),
    (5000, 105),
)
MAX_SERVICE_MINUTES = 120


def estimate_service_minutes(property_size_sqft: float | None) -> int:
    """Expected on-site minutes for a property of the given size."""
    sqft = DEFAULT_PROPERTY_SQFT if property_size_sqft is None else property_size_sqft
    for upper_bound, minutes in SERVICE_BANDS:
        if sqft < upper_bound:
            return minutes
    return MAX_SERVICE_MINUTES
