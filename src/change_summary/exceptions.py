# src/change_summary/exceptions.py
"""Errors raised by the change summary pipeline."""


class ShapeMismatch(ValueError):
    """Reconstructed grid geometry disagrees with the source geometry."""

    def __init__(self, stage, expected, actual):
        self.stage = stage
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(
            f"{stage}: expected grid shape {self.expected}, got {self.actual}"
        )

    def __reduce__(self):
        return self.__class__, (self.stage, self.expected, self.actual)


class CoordinateLookupError(LookupError):
    """A query coordinate could not be resolved to a grid cell."""

    def __init__(self, label, reason):
        self.label = label
        self.reason = reason
        super().__init__(f"Query point '{label}': {reason}")

    def __reduce__(self):
        return self.__class__, (self.label, self.reason)


class WorkerFailure(RuntimeError):
    """Per-pixel work failed inside the worker pool; the batch is discarded."""

    def __init__(self, start, stop, error):
        self.start = start
        self.stop = stop
        self.error = error
        super().__init__(
            f"Worker failed on pixels [{start}, {stop}): "
            f"{type(error).__name__}: {error}"
        )

    def __reduce__(self):
        return self.__class__, (self.start, self.stop, self.error)
