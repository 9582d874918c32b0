import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).parents[1] / "src"))

from fixedsample.pipeline import Pipeline  # noqa: E402


@pytest.fixture
def make_pipeline():
    """
    Returns a factory building a fresh Pipeline per call. Small bundles make
    even short inputs span several bundles and merge levels.
    """

    def _make(**overrides) -> Pipeline:
        overrides.setdefault("bundle_size", 2)
        overrides.setdefault("max_workers", 2)
        return Pipeline(**overrides)

    return _make


@pytest.fixture
def run_transform(make_pipeline):
    """Apply a transform and unwrap the single output entry."""

    def _run(transform, elements, **overrides):
        result = make_pipeline(**overrides).apply(transform, elements)
        assert len(result) == 1
        return result[0]

    return _run
