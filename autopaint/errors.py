class AutoPaintError(Exception):
    """Base class for errors raised by the auto-paint planner."""


class UnknownAlgorithmError(AutoPaintError, ValueError):
    """Raised when an optimizer algorithm selector is not recognised."""

    def __init__(self, algorithm):
        self.algorithm = algorithm
        super().__init__(f"Unknown algorithm: {algorithm!r}")


class WorkerError(AutoPaintError):
    """A computation failed inside the worker process."""

    def __init__(self, request_id: int, message: str):
        self.request_id = request_id
        super().__init__(f"Request {request_id} failed: {message}")
