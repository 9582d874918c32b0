"""Configuration errors raised before any data flows."""


class InvalidArgumentError(ValueError):
    """Raised when a transform is configured with an unusable parameter."""


def check_size(value, argument: str = "size") -> int:
    """Validate a sample size or capacity: a non-negative ``int``, bools excluded."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{argument} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidArgumentError(f"{argument} must be >= 0, got {value}")
    return value
