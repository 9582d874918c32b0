"""Combine functions and the ``Sample`` transform family.

A :class:`CombineFn` is the unit a host pipeline tree-reduces across workers:

* ``create_accumulator()`` – a fresh, empty partial result.
* ``add_input(accumulator, element)`` – fold one element in and return the accumulator.
* ``merge_accumulators(accumulators)`` – combine partial results into a new one.
* ``extract_output(accumulator)`` – turn the final accumulator into the output.

The host is free to partition the input however it likes and to merge in any
order, so ``merge_accumulators`` must be associative and commutative.
"""

from __future__ import annotations

import abc
import itertools
import logging
from typing import Any, Iterable, List, Optional

from .errors import InvalidArgumentError, check_size
from .reservoir import Reservoir
from .weights import WeightAssigner

logger = logging.getLogger(__name__)


class CombineFn(abc.ABC):
    """Associative, commutative aggregation over an arbitrarily partitioned input."""

    @abc.abstractmethod
    def create_accumulator(self):
        pass

    @abc.abstractmethod
    def add_input(self, accumulator, element):
        pass

    @abc.abstractmethod
    def merge_accumulators(self, accumulators: Iterable):
        pass

    @abc.abstractmethod
    def extract_output(self, accumulator):
        pass

    def add_inputs(self, accumulator, elements: Iterable):
        for element in elements:
            accumulator = self.add_input(accumulator, element)
        return accumulator

    def fork(self, index: int) -> "CombineFn":
        """Return the instance that should accumulate partition ``index``.

        Stateless fns can share one instance; fns holding per-partition state
        (such as a random generator) return an independent copy.
        """
        return self

    def signature(self) -> str:
        """Identify this fn and its parameters; used to key checkpointed accumulators."""
        return self.__class__.__name__

    def apply(self, elements: Iterable):
        """Run the whole combine over ``elements`` as a single partition."""
        fn = self.fork(0)
        return fn.extract_output(fn.add_inputs(fn.create_accumulator(), elements))


class FixedSizeSampleFn(CombineFn):
    """Uniform random sample of ``size`` element occurrences, kept in a :class:`Reservoir`.

    Each occurrence gets an independent random priority from ``weights`` and the
    ``size`` highest priorities survive, so the result is a uniformly random
    ``size``-subset of the input occurrences (or all of them when there are fewer).
    """

    def __init__(self, size: int, seed: Optional[int] = None, weights: Optional[WeightAssigner] = None):
        self.size = check_size(size)
        if seed is not None and weights is not None:
            raise InvalidArgumentError("pass either seed or weights, not both")
        self.weights = WeightAssigner(seed) if weights is None else weights

    def create_accumulator(self) -> Reservoir:
        return Reservoir(self.size)

    def add_input(self, accumulator: Reservoir, element) -> Reservoir:
        return accumulator.add(element, self.weights)

    def merge_accumulators(self, accumulators: Iterable[Reservoir]) -> Reservoir:
        return Reservoir.merged(accumulators, capacity=self.size)

    def extract_output(self, accumulator: Reservoir) -> List[Any]:
        return accumulator.values()

    def fork(self, index: int) -> "FixedSizeSampleFn":
        return type(self)(self.size, weights=self.weights.spawn(index))

    def signature(self) -> str:
        return f"{self.__class__.__name__}/size={self.size}/seed={self.weights.seed}"


class SampleAnyFn(CombineFn):
    """Up to ``limit`` arbitrary elements; no randomness, just the first ones offered."""

    def __init__(self, limit: int):
        self.limit = check_size(limit, "limit")

    def create_accumulator(self) -> List[Any]:
        return []

    def add_input(self, accumulator: List[Any], element) -> List[Any]:
        if len(accumulator) < self.limit:
            accumulator.append(element)
        return accumulator

    def merge_accumulators(self, accumulators: Iterable[List[Any]]) -> List[Any]:
        return list(itertools.islice(itertools.chain.from_iterable(accumulators), self.limit))

    def extract_output(self, accumulator: List[Any]) -> List[Any]:
        return list(accumulator)

    def signature(self) -> str:
        return f"{self.__class__.__name__}/limit={self.limit}"


class CombineGlobally:
    """Transform that reduces a whole collection to exactly one output with ``fn``."""

    def __init__(self, fn: CombineFn, name: Optional[str] = None):
        if not isinstance(fn, CombineFn):
            raise TypeError(f"expected a CombineFn, got {type(fn).__name__}")
        self.fn = fn
        self.name = fn.__class__.__name__ if name is None else name

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name!r})"


class Sample:
    """Factories for the sampling transforms."""

    @staticmethod
    def fixed_size_globally(size: int, seed: Optional[int] = None) -> CombineGlobally:
        """Uniform random sample of ``size`` elements from the whole collection.

        Raises :class:`InvalidArgumentError` right away when ``size`` is negative.
        """
        return CombineGlobally(FixedSizeSampleFn(size, seed=seed), name=f"FixedSizeGlobally({size})")

    @staticmethod
    def any(limit: int) -> CombineGlobally:
        """Up to ``limit`` elements of the collection, with no randomness guarantee."""
        return CombineGlobally(SampleAnyFn(limit), name=f"Any({limit})")
