"""Models for test case results."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, TypeAlias

TestOutcome: TypeAlias = Literal["success", "fail", "skipped"]


@dataclass(frozen=True, kw_only=True)
class TestError:
    """Failure detail attached to a result that did not succeed.

    When the failure came from a server interaction, ``status`` holds the HTTP
    status and ``diagnostics`` the issues of the returned OperationOutcome.
    """

    __test__ = False

    message: str | None
    exception_type: str
    status: int | None = None
    diagnostics: Sequence[str] = ()


@dataclass(frozen=True, kw_only=True)
class TestResult:
    """Result of a single test case invocation."""

    __test__ = False

    category: str
    code: str
    title: str
    outcome: TestOutcome
    duration: float = 0.0
    error: TestError | None = None

    @property
    def message(self) -> str | None:
        """Message of the attached error, if any."""
        return self.error.message if self.error else None
