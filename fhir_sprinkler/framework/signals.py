"""Exceptions signalling the outcome of a test case."""


class TestFailed(Exception):
    """Raised by a test case when an assertion does not hold."""

    __test__ = False


class TestSkipped(Exception):
    """Raised by a test case that cannot run against the server."""

    __test__ = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message
        super().__init__(*(() if message is None else (message,)))


class CaseDispatchError(Exception):
    """Raised when a case procedure cannot be invoked.

    The underlying exception is chained as ``__cause__``.
    """
