"""Fixed city coordinates served by the ``/land-points`` route."""
from __future__ import annotations
from typing import List, Optional, Tuple

import numpy as np

LAND_COORDS: Tuple[Tuple[float, float], ...] = (
    (34.05, -118.24),   # Los Angeles
    (48.85, 2.35),      # Paris
    (-33.87, 151.21),   # Sydney
    (40.71, -74.00),    # New York
    (35.68, 139.69),    # Tokyo
    (-23.55, -46.63),   # Sao Paulo
    (55.75, 37.61),     # Moscow
    (19.43, -99.13),    # Mexico City
    (28.61, 77.20),     # Delhi
    (-1.29, 36.82),     # Nairobi
    (31.23, 121.47),    # Shanghai
    (52.52, 13.40),     # Berlin
    (51.50, -0.12),     # London
    (37.77, -122.42),   # San Francisco
)

SAMPLE_SIZE = 5


def sample_land_points(rng: Optional[np.random.Generator] = None, k: int = SAMPLE_SIZE) -> List[Tuple[float, float]]:
    """k distinct (lat, lng) pairs drawn without replacement from LAND_COORDS."""
    rng = rng if rng is not None else np.random.default_rng()
    idx = rng.choice(len(LAND_COORDS), size=k, replace=False)
    return [LAND_COORDS[int(i)] for i in idx]
