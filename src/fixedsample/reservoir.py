"""Bounded top-k-by-priority accumulator.

A :class:`Reservoir` keeps the ``capacity`` highest-priority
:class:`WeightedItem` instances it has ever been offered, either directly or
through merged reservoirs. Because every occurrence carries its own uniform
random priority, the survivors form a uniform random sample of the occurrences,
and since "top k of a union" does not care how the union was bracketed, merging
partial reservoirs in any tree order gives the same result as a single pass.

Storage is a min-heap keyed by priority, so the eviction candidate is always
``heap[0]`` and the heap never grows beyond ``capacity``.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Optional

from .errors import check_size
from .weights import WeightAssigner

logger = logging.getLogger(__name__)


@dataclass(order=True, frozen=True)
class WeightedItem:
    """An element occurrence tagged with its sampling priority; ordered by priority only."""

    priority: float
    value: Any = field(
        compare=False,
    )


class Reservoir:
    """Holds up to ``capacity`` items with the highest priorities seen so far."""

    def __init__(self, capacity: int):
        self.capacity = check_size(capacity, "capacity")
        self.heap: List[WeightedItem] = []
        self.seen = 0  # occurrences that flowed in, directly or via merges

    def add(self, value: Any, assigner: WeightAssigner) -> "Reservoir":
        """Tag ``value`` with a fresh priority and offer it."""
        return self.offer(WeightedItem(assigner.assign(value), value))

    def offer(self, item: WeightedItem) -> "Reservoir":
        """Keep ``item`` if it ranks among the top ``capacity`` priorities."""
        self.seen += 1
        if len(self.heap) < self.capacity:
            heapq.heappush(self.heap, item)
        elif self.heap and item.priority > self.heap[0].priority:
            heapq.heapreplace(self.heap, item)
        return self

    def merge(self, other: "Reservoir") -> "Reservoir":
        """Return a new reservoir with the top items of ``self`` and ``other``."""
        return Reservoir.merged((self, other))

    @classmethod
    def merged(cls, reservoirs: Iterable["Reservoir"], capacity: Optional[int] = None) -> "Reservoir":
        """Merge any number of reservoirs into a fresh one; inputs are left untouched."""
        reservoirs = list(reservoirs)
        capacities = {r.capacity for r in reservoirs}
        if capacity is not None:
            capacities.add(capacity)
        if len(capacities) != 1:
            raise ValueError(f"cannot merge reservoirs of capacities {sorted(capacities)}")

        result = cls(capacities.pop())
        pooled = itertools.chain.from_iterable(r.heap for r in reservoirs)
        result.heap = heapq.nlargest(result.capacity, pooled)
        heapq.heapify(result.heap)
        result.seen = sum(r.seen for r in reservoirs)
        logger.debug(
            "merged %d reservoirs: kept %d of %d seen",
            len(reservoirs),
            len(result.heap),
            result.seen,
        )
        return result

    def items(self) -> List[WeightedItem]:
        return list(self.heap)

    def values(self) -> List[Any]:
        return [item.value for item in self.heap]

    @property
    def size(self) -> int:
        return len(self.heap)

    def is_empty(self) -> bool:
        return not self.heap

    def __len__(self):
        return len(self.heap)

    def __iter__(self) -> Iterator[WeightedItem]:
        return iter(self.heap)

    def __repr__(self):
        return f"{self.__class__.__name__}(capacity={self.capacity}, size={self.size}, seen={self.seen})"
