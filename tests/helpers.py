"""Shared assertions for sample outputs.

Sampling itself never orders elements; only these checks sort, so the elements
used in tests must be comparable.
"""

from collections import Counter

EMPTY = []
DATA = [1, 2, 3, 4, 5]
REPEATED_DATA = [1, 1, 2, 2, 3, 3, 4, 4, 5, 5]


def verify_correct_sample(expected_size, expected):
    """Return a checker asserting a sample has ``expected_size`` elements drawn from ``expected``.

    Membership respects multiplicity: a value may appear in the sample at most
    as many times as it appears in ``expected``.
    """
    expected = sorted(expected)

    def check(actual):
        actual = sorted(actual)
        assert len(actual) == expected_size, f"Invalid sample size: {actual}"

        i = 0  # index into expected
        for value in actual:
            while i < len(expected) and expected[i] != value:
                i += 1
            assert i < len(expected), f"Invalid sample: {','.join(map(str, actual))}"
            i += 1  # don't match the same occurrence again

    return check


def inclusion_rates(samples, population):
    """Fraction of samples containing each value of ``population``."""
    counts = Counter()
    for sample in samples:
        counts.update(set(sample))
    return {value: counts[value] / len(samples) for value in population}
