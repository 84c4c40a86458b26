"""Sequential execution of discovered test modules against one server."""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from fhir_sprinkler.client import FhirClient, FhirOperationError
from fhir_sprinkler.discovery import DiscoveredModule, TestCase
from fhir_sprinkler.fixtures import FixtureProvider
from fhir_sprinkler.framework.declarations import SprinklerModule
from fhir_sprinkler.framework.signals import CaseDispatchError, TestSkipped
from fhir_sprinkler.models.result import TestError, TestOutcome, TestResult
from fhir_sprinkler.prerequisites import ResourcePrerequisiteHandler
from fhir_sprinkler.registry import ModuleRegistry
from fhir_sprinkler.reporting import TestResults

log = logging.getLogger(__name__)

INITIALIZATION_CATEGORY = "Initialization"
SUPPRESSED_MESSAGE = "module initialization failed"


def unwrap(exc: BaseException) -> BaseException:
    """Strip dispatch wrappers to reach the exception raised by the case."""
    while isinstance(exc, CaseDispatchError) and exc.__cause__ is not None:
        exc = exc.__cause__
    return exc


def classify(exc: BaseException | None) -> TestOutcome:
    """Map the exception a case raised, if any, to its outcome."""
    match exc:
        case None:
            return "success"
        case TestSkipped():
            return "skipped"
        case _:
            return "fail"


def _operation_error_of(exc: BaseException) -> FhirOperationError | None:
    """Find the server interaction failure behind an exception, if any."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, FhirOperationError):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


def error_of(exc: BaseException) -> TestError:
    """Build the error detail of a result from the exception a case raised."""
    if isinstance(exc, TestSkipped):
        message = exc.message
    else:
        message = str(exc) or None
    operation_error = _operation_error_of(exc)
    return TestError(
        message=message,
        exception_type=type(exc).__name__,
        status=operation_error.status if operation_error else None,
        diagnostics=operation_error.diagnostics if operation_error else (),
    )


@dataclass(kw_only=True)
class TestRunner:
    """Runs discovered modules one case at a time through a shared client.

    Every selected case produces exactly one result, except the cases of a
    module whose initialization did not succeed: those produce nothing, or
    skipped results when ``report_suppressed_cases`` is set.
    """

    __test__ = False

    client: FhirClient
    results: TestResults = field(default_factory=TestResults)
    registry: ModuleRegistry = field(default_factory=ModuleRegistry)
    fixtures: FixtureProvider = field(default_factory=FixtureProvider.default)
    report_suppressed_cases: bool = False

    async def run(self, modules: Sequence[DiscoveredModule]) -> TestResults:
        """Run every module in order and return the aggregated results.

        Raises:
            Exception: Errors constructing a module instance abort the run

        """
        for module in modules:
            await self.run_module(module)
        return self.results

    async def run_module(self, module: DiscoveredModule) -> None:
        """Run the initialization and then every case of one module."""
        if not module.cases:
            return

        instance = self.registry.get_or_create(module.module_type)
        if isinstance(instance, SprinklerModule):
            instance.bind(self.client, fixtures=self.fixtures)

        log.info("Running module %s (%d case(s))", module.name, len(module.cases))

        if module.initializer is not None:
            init_result = await self._run_case(
                INITIALIZATION_CATEGORY, instance, module.initializer
            )
            if init_result.outcome != "success":
                log.error(
                    "Initialization of module %s failed: %s",
                    module.name,
                    init_result.message,
                )
                self.results.add(init_result)
                if self.report_suppressed_cases:
                    for case in module.cases:
                        self.results.add(self._suppressed(module.name, case))
                return

        for case in module.cases:
            self.results.add(await self._run_case(module.name, instance, case))

    async def _run_case(
        self, category: str, instance: object, case: TestCase
    ) -> TestResult:
        """Invoke one case with its prerequisites and classify the outcome."""
        handler = ResourcePrerequisiteHandler(
            client=self.client, fixtures=self.fixtures
        )
        raised: BaseException | None = None
        start = time.perf_counter()
        try:
            prerequisites = case.procedure.prerequisites
            if prerequisites:
                created = [r async for r in handler.handle(prerequisites)]
                if isinstance(instance, SprinklerModule):
                    instance.prerequisites = created
            await case.procedure.invoke(instance)
        except Exception as e:
            raised = unwrap(e)
        finally:
            if isinstance(instance, SprinklerModule):
                instance.prerequisites = ()
            await handler.cleanup()
        duration = time.perf_counter() - start

        result = TestResult(
            category=category,
            code=case.descriptor.code,
            title=case.descriptor.title,
            outcome=classify(raised),
            duration=duration,
            error=error_of(raised) if raised is not None else None,
        )
        log.info(
            "Test completed: code=%s outcome=%s duration=%.2fs",
            result.code,
            result.outcome,
            result.duration,
        )
        return result

    def _suppressed(self, category: str, case: TestCase) -> TestResult:
        return TestResult(
            category=category,
            code=case.descriptor.code,
            title=case.descriptor.title,
            outcome="skipped",
            error=TestError(
                message=SUPPRESSED_MESSAGE,
                exception_type=TestSkipped.__name__,
            ),
        )
