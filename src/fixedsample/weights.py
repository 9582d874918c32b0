"""Random priorities for weighted reservoir sampling."""

from __future__ import annotations

import random
import secrets
from typing import Any, Optional

from .utils import derive_seed


class WeightAssigner:
    """Draw an independent uniform priority in ``[0, 1)`` for every element occurrence.

    The priority never looks at the element itself, so duplicated values get
    independent draws and the outcome does not depend on arrival order. The
    generator is owned by the assigner; ``seed=None`` picks a fresh root seed
    from the OS instead of touching the global ``random`` state.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed: int = secrets.randbits(64) if seed is None else seed
        self.random = random.Random(self.seed)

    def assign(self, element: Any) -> float:
        return self.random.random()

    def spawn(self, index: int) -> "WeightAssigner":
        """Child assigner for partition ``index``; same root seed and index, same draws."""
        return WeightAssigner(derive_seed(self.seed, index))

    def __repr__(self):
        return f"{self.__class__.__name__}(seed={self.seed})"
