"""Small numeric helpers: index sorting and Gaussian random matrices."""

from __future__ import annotations

import math
import random
from typing import Optional, Sequence

import numpy as np


def sorti(values: Sequence) -> list[int]:
    """Return the indices that put ``values`` in ascending order."""
    return sorted(range(len(values)), key=values.__getitem__)


def randn_matrix(
    height: int, width: int, rng: Optional[random.Random] = None
) -> np.ndarray:
    """Return a matrix of standard normal deviates (polar Box-Muller)."""
    rng = rng if rng is not None else random.Random()
    out = np.zeros((height, width), dtype=float)
    for i in range(height):
        for j in range(0, width, 2):
            while True:
                v1 = 2.0 * rng.random() - 1.0
                v2 = 2.0 * rng.random() - 1.0
                rsq = v1 * v1 + v2 * v2
                if 0.0 < rsq < 1.0:
                    break
            factor = math.sqrt(-2.0 * math.log(rsq) / rsq)
            out[i, j] = v1 * factor
            if j + 1 < width:
                out[i, j + 1] = v2 * factor
    return out