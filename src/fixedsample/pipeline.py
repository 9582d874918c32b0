"""Local runner that drives a :class:`~fixedsample.combiners.CombineFn` end to end.

The module defines:

* :class:`PipelineOptions` – validated, immutable runner configuration.
* :class:`Pipeline` – cuts the input into bundles, accumulates each bundle on a
  thread pool, tree-merges the partial accumulators and extracts one output.
* :class:`BundleCheckpoint` – RocksDB-backed store of bundle accumulators.
* :class:`BundleCancellation` – abandons a run when SIGINT is received.

Execution overview:

* Bundles are consecutive ``bundle_size`` slices of the input, numbered from 0.
  Bundle ``i`` is accumulated by ``fn.fork(i)``, so per-bundle state (random
  generators in particular) depends only on the fn and the bundle index. A
  retried bundle therefore reproduces the same accumulator.
* At most ``2 * max_workers`` bundles are held in memory at once; the driver
  collects finished accumulators in bundle order before reading further input.
* Partial accumulators are merged ``fanout`` at a time, level by level, in bundle
  order. Together with the per-bundle forking this makes the result independent
  of thread timing.
* With a ``workspace`` every bundle accumulator is checkpointed in a RocksDB
  archive keyed by a content digest, and a re-run over the same input reuses it.
"""

import itertools
import logging
import os
import signal
import threading
import time
from collections import deque
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional

import blinker
import dill
from pydantic import BaseModel, ConfigDict, Field
from rocksdict import Rdict, WriteOptions
from rocksdict.rocksdict import AccessType

from .combiners import CombineFn, CombineGlobally
from .utils import content_digest, retry, stage_timer

logger = logging.getLogger(__name__)


class PipelineOptions(BaseModel):
    """Runner configuration; invalid values fail with ``pydantic.ValidationError``."""

    model_config = ConfigDict(frozen=True)

    bundle_size: int = Field(default=1000, ge=1)
    max_workers: Optional[int] = Field(default=None, ge=1)
    fanout: int = Field(default=2, ge=2)
    max_attempts: int = Field(default=1, ge=1)
    workspace: Optional[Path] = None


interrupted = blinker.signal("interrupted")


def install_sigint_relay():
    """Relay SIGINT into ``interrupted`` ahead of whatever handler was installed before."""
    previous = signal.getsignal(signal.SIGINT)

    def relay(signum, frame):
        logger.info("SIGINT received; cancelling outstanding bundles")
        interrupted.send()
        if callable(previous):
            previous(signum, frame)

    signal.signal(signal.SIGINT, relay)
    return relay


install_sigint_relay()


class BundleCancellation(AbstractContextManager):
    """Cancels queued bundles of one run when ``interrupted`` fires.

    The executor stops accepting work and drops its queue; the driver notices
    through :meth:`check` and abandons the run, discarding every partial
    accumulator it holds.
    """

    def __init__(self, executor: ThreadPoolExecutor):
        self.executor = executor
        self.cancelled = threading.Event()

    def handler(self, sender):
        self.cancelled.set()
        self.executor.shutdown(wait=False, cancel_futures=True)

    def check(self, in_flight: int):
        if self.cancelled.is_set():
            logger.warning("run interrupted; discarding %d in-flight bundles", in_flight)
            raise CancelledError(f"run interrupted with {in_flight} bundles in flight")

    def __enter__(self):
        interrupted.connect(self.handler)
        return self

    def __exit__(self, typ, value, traceback):
        interrupted.disconnect(self.handler)
        return False


class BundleCheckpoint:
    """Bundle accumulators of one transform persisted in a RocksDB archive.

    Keys digest the fn signature (seed included), the bundle index and the
    bundle's elements by position, so a hit only ever returns an accumulator
    built from exactly the same bundle by an identically configured fn.
    Values are serialized with dill and written synchronously.
    """

    def __init__(self, path: Path):
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self.store = Rdict(str(path), access_type=AccessType.read_write())
        self.store.set_dumps(dill.dumps)
        self.store.set_loads(dill.loads)
        wo = WriteOptions()
        wo.sync = True
        self.store.set_write_options(write_opt=wo)
        self.hits = 0
        self.writes = 0

    @staticmethod
    def key(fn: CombineFn, index: int, bundle: List[Any]) -> str:
        return content_digest((fn.signature(), index, list(enumerate(bundle))))

    def lookup(self, key: str):
        """Return the stored accumulator for ``key``, or ``None`` on a miss."""
        if key not in self.store:
            return None
        self.hits += 1
        return self.store[key]

    def save(self, key: str, accumulator):
        if key not in self.store:
            self.store[key] = accumulator
            self.writes += 1

    def close(self):
        logger.info("closing checkpoint %s: %d hits, %d bundles written", self.path, self.hits, self.writes)
        self.store.close()


def bundles(elements: Iterable, size: int) -> Iterator[List[Any]]:
    """Yield consecutive lists of at most ``size`` elements."""
    iterator = iter(elements)
    while bundle := list(itertools.islice(iterator, size)):
        yield bundle


def completed(value) -> Future:
    future = Future()
    future.set_result(value)
    return future


def describe_bundle(fn, index, bundle):
    return f"bundle {index} ({len(bundle)} elements)"


class Pipeline:
    """Applies combine transforms to in-memory or streamed collections."""

    def __init__(self, options: Optional[PipelineOptions] = None, **overrides):
        if options is None:
            options = PipelineOptions(**overrides)
        elif overrides:
            options = PipelineOptions(**{**options.model_dump(), **overrides})
        self.options = options
        self.max_workers = options.max_workers or min(32, (os.cpu_count() or 1) + 4)
        self.checkpoint: Optional[BundleCheckpoint] = None

        self.workspace = options.workspace
        if self.workspace is not None:
            self.workspace.mkdir(parents=True, exist_ok=True)

    def apply(self, transform: CombineGlobally, elements: Iterable) -> List[Any]:
        """Run ``transform`` over ``elements``; the result holds exactly one output."""
        fn = transform.fn
        logger.info("applying %s with %s", transform, self.options)
        start = time.perf_counter()
        try:
            if self.workspace is not None:
                self.checkpoint = BundleCheckpoint(self.workspace.joinpath(transform.name))
            with (
                ThreadPoolExecutor(self.max_workers) as executor,
                BundleCancellation(executor) as cancellation,
            ):
                with stage_timer(f"{transform.name} accumulate", logger=logger):
                    accumulators = self.accumulate_all(fn, elements, executor, cancellation)
                with stage_timer(f"{transform.name} merge", logger=logger):
                    accumulator = self.merge_tree(fn, accumulators, executor)
            output = fn.extract_output(accumulator)
        finally:
            if self.checkpoint is not None:
                self.checkpoint.close()
                self.checkpoint = None

        logger.info(
            "%s finished: %d bundles in %.4f seconds",
            transform,
            len(accumulators),
            time.perf_counter() - start,
        )
        return [output]

    def accumulate_all(
        self,
        fn: CombineFn,
        elements: Iterable,
        executor: ThreadPoolExecutor,
        cancellation: BundleCancellation,
    ) -> List[Any]:
        """Accumulate every bundle, returning the partial results in bundle order."""
        accumulate = retry(self.options.max_attempts, describe=describe_bundle)(self.accumulate)
        checkpoint = self.checkpoint
        window = 2 * self.max_workers
        pending = deque()
        accumulators = []

        def collect(future, index, key):
            accumulator = future.result()
            if checkpoint is not None:
                checkpoint.save(key, accumulator)
            logger.debug("bundle %d accumulated", index)
            accumulators.append(accumulator)

        for index, bundle in enumerate(bundles(elements, self.options.bundle_size)):
            cancellation.check(len(pending))
            key = cached = None
            if checkpoint is not None:
                key = checkpoint.key(fn, index, bundle)
                cached = checkpoint.lookup(key)
            if cached is not None:
                logger.debug("checkpoint hit for bundle %d: %s", index, key)
                future = completed(cached)
            else:
                try:
                    future = executor.submit(accumulate, fn, index, bundle)
                except RuntimeError:
                    # executor shut down between the check above and this submit
                    cancellation.check(len(pending))
                    raise
            pending.append((future, index, key))
            while len(pending) > window:
                collect(*pending.popleft())

        while pending:
            cancellation.check(len(pending))
            collect(*pending.popleft())
        return accumulators

    @staticmethod
    def accumulate(fn: CombineFn, index: int, bundle: List[Any]):
        """Fold one bundle into a fresh accumulator of ``fn.fork(index)``."""
        partition_fn = fn.fork(index)
        return partition_fn.add_inputs(partition_fn.create_accumulator(), bundle)

    def merge_tree(self, fn: CombineFn, accumulators: List[Any], executor: ThreadPoolExecutor):
        """Merge ``fanout`` accumulators at a time until a single one remains."""
        if not accumulators:
            return fn.create_accumulator()

        fanout = self.options.fanout
        level = 0
        while len(accumulators) > 1:
            groups = [accumulators[i: i + fanout] for i in range(0, len(accumulators), fanout)]
            logger.debug("merge level %d: %d accumulators in %d groups", level, len(accumulators), len(groups))
            accumulators = list(executor.map(fn.merge_accumulators, groups))
            level += 1
        return accumulators[0]
