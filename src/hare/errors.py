"""Exceptions raised by the dispatcher.

Per-message problems never escape the dispatch loop; only a lost queue
connection (or bad configuration at startup) reaches the caller.
"""


class HareError(Exception):
    """Base class for all dispatcher errors."""


class ConfigurationError(HareError):
    """Settings are missing or invalid."""


class QueueConnectionError(HareError):
    """The queue transport failed; the dispatch loop cannot continue."""


class InvocationError(HareError):
    """A handler script could not be started.

    A script that runs and exits non-zero is not an InvocationError.
    """

    def __init__(self, path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
