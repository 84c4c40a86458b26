"""Decorators and base class for declaring test modules and test cases.

Decorators only attach descriptor data to classes and functions; discovery
reads it back when assembling a run.

Example::

    @sprinkler_module("Read")
    class ReadTest(SprinklerModule):
        @sprinkler_test("RD01", "Read a Patient")
        async def read_patient(self) -> None:
            ...
"""

import inspect
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from fhir_sprinkler.framework.signals import CaseDispatchError
from fhir_sprinkler.models.descriptor import (
    DynamicTestGenerator,
    PrerequisiteSpec,
    TestCaseDescriptor,
    TestModuleDescriptor,
)

if TYPE_CHECKING:
    from fhir_sprinkler.client import FhirClient, Resource
    from fhir_sprinkler.fixtures import FixtureProvider

MODULE_ATTR = "__sprinkler_module__"
TEST_ATTR = "__sprinkler_test__"
DYNAMIC_TEST_ATTR = "__sprinkler_dynamic_test__"
INITIALIZE_ATTR = "__sprinkler_initialize__"
PREREQUISITES_ATTR = "__sprinkler_prerequisites__"

C = TypeVar("C", bound=type)
F = TypeVar("F", bound=Callable[..., Any])


class SprinklerModule:
    """Base class of test modules.

    One instance exists per module type and run. The engine binds the shared
    client before the first procedure of the module runs; resources created
    for the prerequisites of the running case are exposed in
    ``prerequisites``.
    """

    client: "FhirClient"
    fixtures: "FixtureProvider"
    prerequisites: Sequence["Resource"] = ()

    def bind(self, client: "FhirClient", *, fixtures: "FixtureProvider") -> None:
        """Attach the shared client and fixture set to this instance."""
        self.client = client
        self.fixtures = fixtures


def sprinkler_module(
    name: str, *, generator: DynamicTestGenerator | None = None
) -> Callable[[C], C]:
    """Declare a class as a test module with the given category name.

    Args:
        name: Category label reported with every result of the module
        generator: Makes the module dynamic; called once at discovery time
            with the fixture set, it yields the module's case procedures

    """

    def decorate(cls: C) -> C:
        setattr(cls, MODULE_ATTR, TestModuleDescriptor(name=name, generator=generator))
        return cls

    return decorate


def sprinkler_test(code: str, title: str) -> Callable[[F], F]:
    """Declare a method as a test case."""

    def decorate(function: F) -> F:
        setattr(function, TEST_ATTR, TestCaseDescriptor(code=code, title=title))
        return function

    return decorate


def dynamic_test(
    code_template: str, title_template: str
) -> Callable[[F], F]:
    """Declare a generic test case whose code and title take type names.

    Placeholders use ``str.format`` positional syntax, e.g. ``"ADR{0}"``;
    literal braces are doubled.
    """

    def decorate(function: F) -> F:
        descriptor = TestCaseDescriptor(code=code_template, title=title_template)
        setattr(function, DYNAMIC_TEST_ATTR, descriptor)
        return function

    return decorate


def module_initialize(function: F) -> F:
    """Mark the method that initializes a module before its cases run."""
    setattr(function, INITIALIZE_ATTR, True)
    return function


def resource_prerequisite(
    *, file: str | None = None, resource_type: str | None = None
) -> Callable[[F], F]:
    """Declare a resource that must exist on the server while a case runs.

    Stacked decorators keep their top-to-bottom order.
    """
    spec = PrerequisiteSpec(resource_file=file, resource_type=resource_type)

    def decorate(function: F) -> F:
        specs: list[PrerequisiteSpec] = list(getattr(function, PREREQUISITES_ATTR, ()))
        # Decorators apply bottom-up, prepend to restore declaration order.
        specs.insert(0, spec)
        setattr(function, PREREQUISITES_ATTR, tuple(specs))
        return function

    return decorate


def module_descriptor_of(cls: type) -> TestModuleDescriptor | None:
    """Return the descriptor declared on the class itself, not inherited."""
    descriptor = cls.__dict__.get(MODULE_ATTR)
    return descriptor if isinstance(descriptor, TestModuleDescriptor) else None


@dataclass(frozen=True, kw_only=True)
class CaseProcedure:
    """A test method of a module, with type arguments for generic cases."""

    function: Callable[..., Any]
    type_args: Sequence[str] = field(default=())

    @property
    def descriptor(self) -> TestCaseDescriptor:
        """Case descriptor with type names substituted for generic cases."""
        dynamic = getattr(self.function, DYNAMIC_TEST_ATTR, None)
        if isinstance(dynamic, TestCaseDescriptor):
            return dynamic.substitute(self.type_args)
        static = getattr(self.function, TEST_ATTR, None)
        if isinstance(static, TestCaseDescriptor):
            return static
        name = getattr(self.function, "__name__", repr(self.function))
        title = _first_doc_line(self.function) or name
        return TestCaseDescriptor(code=name, title=title)

    @property
    def prerequisites(self) -> Sequence[PrerequisiteSpec]:
        """Prerequisites declared on the procedure."""
        return tuple(getattr(self.function, PREREQUISITES_ATTR, ()))

    async def invoke(self, instance: object) -> None:
        """Call the procedure on a module instance and await it if needed.

        Raises:
            CaseDispatchError: If the procedure cannot be bound to its type
                arguments
            Exception: Whatever the procedure raises, unchanged

        """
        bound = self.function.__get__(instance, type(instance))
        try:
            inspect.signature(bound).bind(*self.type_args)
        except TypeError as e:
            raise CaseDispatchError(
                f"Cannot invoke {self.descriptor.code}: {e}"
            ) from e
        result = bound(*self.type_args)
        if inspect.isawaitable(result):
            await result


def _first_doc_line(function: Callable[..., Any]) -> str | None:
    doc = inspect.getdoc(function)
    if not doc:
        return None
    return doc.strip().splitlines()[0]
