"""Discovery of test modules and test cases from loadable sources."""

import importlib
import inspect
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from importlib.metadata import entry_points
from types import ModuleType
from typing import Any

from fhir_sprinkler.fixtures import FixtureProvider
from fhir_sprinkler.framework.declarations import (
    DYNAMIC_TEST_ATTR,
    INITIALIZE_ATTR,
    TEST_ATTR,
    CaseProcedure,
    module_descriptor_of,
)
from fhir_sprinkler.models.descriptor import TestCaseDescriptor, TestModuleDescriptor

log = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "fhir_sprinkler.testsets"

INITIALIZATION_TITLE = "Module initialization"


class DiscoveryError(Exception):
    """Raised when test sources cannot be loaded or enumerated."""


@dataclass(frozen=True, kw_only=True)
class TestCase:
    """A selected test case: its descriptor and the procedure to invoke."""

    __test__ = False

    descriptor: TestCaseDescriptor
    procedure: CaseProcedure


@dataclass(frozen=True, kw_only=True)
class DiscoveredModule:
    """A test module with its selected cases in execution order."""

    module_type: type
    descriptor: TestModuleDescriptor
    cases: Sequence[TestCase]
    initializer: TestCase | None = None

    @property
    def name(self) -> str:
        """Category name of the module."""
        return self.descriptor.name


def load_source(source: str | ModuleType) -> ModuleType:
    """Load a test source by entry point name or importable module name.

    Args:
        source: Name registered in the ``fhir_sprinkler.testsets`` entry point
            group, dotted module name, or an already imported module

    Returns:
        The loaded module

    Raises:
        DiscoveryError: If the source cannot be loaded

    """
    if isinstance(source, ModuleType):
        return source

    entries = entry_points(group=ENTRY_POINT_GROUP)
    for entry in entries:
        if entry.name == source:
            try:
                loaded = entry.load()
            except Exception as e:
                raise DiscoveryError(f"Failed to load test set '{source}': {e}") from e
            if not isinstance(loaded, ModuleType):
                raise DiscoveryError(
                    f"Test set '{source}' does not reference a module: {loaded!r}"
                )
            return loaded

    try:
        return importlib.import_module(source)
    except Exception as e:
        available = [entry.name for entry in entries]
        raise DiscoveryError(
            f"Test source '{source}' not found. Available test sets: {available}"
        ) from e


def module_types(source: ModuleType) -> Sequence[type]:
    """Test module classes of a source in declaration order.

    A source declaring ``__all__`` contributes the listed classes in that
    order; otherwise the classes defined in the source itself, in definition
    order.
    """
    names: Iterable[str]
    if (exported := getattr(source, "__all__", None)) is not None:
        names = exported
    else:
        names = [
            name
            for name, value in vars(source).items()
            if inspect.isclass(value) and value.__module__ == source.__name__
        ]
    found: list[type] = []
    for name in names:
        value = getattr(source, name, None)
        if inspect.isclass(value) and module_descriptor_of(value) is not None:
            found.append(value)
    return found


def _functions_of(module_type: type) -> Sequence[Callable[..., Any]]:
    """Functions of a class and its bases in declaration order.

    Inherited functions keep the position where the base class declared
    them, also when a subclass overrides them.
    """
    merged: dict[str, Any] = {}
    for klass in reversed(module_type.__mro__):
        merged.update(vars(klass))
    return [value for value in merged.values() if inspect.isfunction(value)]


def _matches(code: str, code_filter: Sequence[str] | None) -> bool:
    if not code_filter:
        return True
    upper = code.upper()
    return any(upper.startswith(prefix.upper()) for prefix in code_filter)


def _names_module(name: str, code_filter: Sequence[str] | None) -> bool:
    """Whether a filter entry selects the whole module by its name."""
    lowered = name.lower()
    return any(entry.lower() == lowered for entry in code_filter or ())


def _descriptor_of(module_type: type, procedure: CaseProcedure) -> TestCaseDescriptor:
    try:
        return procedure.descriptor
    except (KeyError, IndexError, ValueError) as e:
        raise DiscoveryError(
            f"Invalid case template in {module_type.__qualname__}: {e!r}"
        ) from e


def _initializer_of(functions: Sequence[Callable[..., Any]]) -> TestCase | None:
    for function in functions:
        if getattr(function, INITIALIZE_ATTR, False):
            doc = inspect.getdoc(function)
            title = doc.splitlines()[0] if doc else INITIALIZATION_TITLE
            return TestCase(
                descriptor=TestCaseDescriptor(code=function.__name__, title=title),
                procedure=CaseProcedure(function=function),
            )
    return None


def _procedures_of(
    module_type: type,
    descriptor: TestModuleDescriptor,
    functions: Sequence[Callable[..., Any]],
    fixtures: FixtureProvider | None,
) -> Iterable[CaseProcedure]:
    if descriptor.generator is None:
        return [
            CaseProcedure(function=function)
            for function in functions
            if hasattr(function, TEST_ATTR) or hasattr(function, DYNAMIC_TEST_ATTR)
        ]
    try:
        return list(descriptor.generator(fixtures or FixtureProvider.default()))
    except Exception as e:
        raise DiscoveryError(
            f"Test generator of {module_type.__qualname__} failed: {e}"
        ) from e


def discover_module(
    module_type: type,
    code_filter: Sequence[str] | None = None,
    *,
    fixtures: FixtureProvider | None = None,
) -> DiscoveredModule | None:
    """Enumerate the selected cases of one module type.

    A filter entry equal to the module name, ignoring case, selects every
    case of the module; other entries select cases by code prefix.

    Returns:
        The module with its cases, or None when it is not a test module or
        no case matches the filter

    Raises:
        DiscoveryError: If a generator fails or a case template is invalid

    """
    descriptor = module_descriptor_of(module_type)
    if descriptor is None:
        return None
    functions = _functions_of(module_type)
    procedures = _procedures_of(module_type, descriptor, functions, fixtures)
    whole_module = _names_module(descriptor.name, code_filter)
    cases: list[TestCase] = []
    for procedure in procedures:
        case_descriptor = _descriptor_of(module_type, procedure)
        if whole_module or _matches(case_descriptor.code, code_filter):
            cases.append(TestCase(descriptor=case_descriptor, procedure=procedure))
    if not cases:
        return None
    return DiscoveredModule(
        module_type=module_type,
        descriptor=descriptor,
        cases=cases,
        initializer=_initializer_of(functions),
    )


def discover(
    sources: Sequence[str | ModuleType],
    code_filter: Sequence[str] | None = None,
    *,
    fixtures: FixtureProvider | None = None,
) -> Sequence[DiscoveredModule]:
    """Enumerate test modules and their selected cases.

    Args:
        sources: Test sources, see ``load_source``
        code_filter: Case-insensitive code prefixes or module names; empty
            selects all cases
        fixtures: Fixture set passed to dynamic test generators

    Returns:
        Modules in source order, each with its cases in declaration order.
        Modules without a selected case are omitted.

    Raises:
        DiscoveryError: If any source cannot be loaded or a generator fails

    """
    loaded = [load_source(source) for source in sources]

    discovered: list[DiscoveredModule] = []
    seen: set[type] = set()
    for source in loaded:
        for module_type in module_types(source):
            if module_type in seen:
                continue
            seen.add(module_type)
            if (
                module := discover_module(module_type, code_filter, fixtures=fixtures)
            ) is not None:
                discovered.append(module)

    log.info(
        "Discovered %d case(s) in %d module(s)",
        sum(len(module.cases) for module in discovered),
        len(discovered),
    )
    return discovered
