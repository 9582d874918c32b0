"""Mergeable fixed-size sampling for partitioned data pipelines.

The package exposes these user-facing modules:

* ``fixedsample.weights`` – :class:`~fixedsample.weights.WeightAssigner`, the
  seedable source of per-occurrence random priorities.
* ``fixedsample.reservoir`` – :class:`~fixedsample.reservoir.Reservoir`, a
  bounded top-k-by-priority accumulator that merges associatively.
* ``fixedsample.combiners`` – the :class:`~fixedsample.combiners.CombineFn`
  contract plus the ready-made sampling combiners and the ``Sample`` factory.
* ``fixedsample.pipeline`` – a local runner that bundles an input, accumulates
  bundles on a thread pool and tree-merges the partial results.

Public API exposed at import time:

* ``__version__`` – package version string.
* ``__author__`` – package author string.
* ``get_version()`` – helper returning ``__version__`` without importing the
  runtime modules.
"""

__version__ = "0.1.0"
__author__ = "Xiubo Zhang"


def get_version() -> str:
    """Return the version of the package."""
    return __version__
