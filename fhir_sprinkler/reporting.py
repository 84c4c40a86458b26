"""Aggregation and streaming of test results."""

import logging
from collections.abc import Callable, Iterator, Sequence
from typing import TypeAlias
from dataclasses import dataclass, field

from fhir_sprinkler.models.result import TestOutcome, TestResult

log = logging.getLogger(__name__)

ResultObserver: TypeAlias = Callable[[TestResult], None]

OUTCOME_LABELS = {
    "success": "SUCCESS",
    "fail": "FAILED",
    "skipped": "SKIPPED",
}


@dataclass(kw_only=True)
class TestResults:
    """Append-only, ordered collection of results of a run.

    Observers are notified synchronously on every added result, in
    subscription order.
    """

    __test__ = False

    observers: list[ResultObserver] = field(default_factory=list)
    _results: list[TestResult] = field(default_factory=list, repr=False)

    def subscribe(self, observer: ResultObserver) -> None:
        """Register an observer for results added from now on."""
        self.observers.append(observer)

    def add(self, result: TestResult) -> None:
        """Store a result and forward it to every observer."""
        self._results.append(result)
        for observer in self.observers:
            observer(result)

    def __iter__(self) -> Iterator[TestResult]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    @property
    def results(self) -> Sequence[TestResult]:
        """Snapshot of the results added so far."""
        return tuple(self._results)

    def count(self, outcome: TestOutcome) -> int:
        """Number of results with the given outcome."""
        return sum(1 for result in self._results if result.outcome == outcome)

    @property
    def has_failures(self) -> bool:
        """Whether any result failed."""
        return any(result.outcome == "fail" for result in self._results)


@dataclass(kw_only=True)
class ResultLogger:
    """Observer that logs every result with running counters."""

    logger: logging.Logger = field(default=log)
    _counts: dict[str, int] = field(
        default_factory=lambda: dict.fromkeys(OUTCOME_LABELS, 0), repr=False
    )

    def __call__(self, result: TestResult) -> None:
        self._counts[result.outcome] += 1
        self.logger.info(
            "%s/%s %s: %s",
            result.category,
            result.code,
            result.title,
            OUTCOME_LABELS[result.outcome],
        )
        if result.error is not None:
            if result.error.message:
                self.logger.info("  Message: %s", result.error.message)
            for diagnostic in result.error.diagnostics:
                self.logger.info("  Diagnostics: %s", diagnostic)
        self.logger.info(
            "  Passed: %d, failed: %d, skipped: %d",
            self._counts["success"],
            self._counts["fail"],
            self._counts["skipped"],
        )
