"""Descriptors declaring test modules, test cases and their prerequisites."""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from fhir_sprinkler.fixtures import FixtureProvider
    from fhir_sprinkler.framework.declarations import CaseProcedure

DynamicTestGenerator: TypeAlias = Callable[["FixtureProvider"], Iterable["CaseProcedure"]]


@dataclass(frozen=True, kw_only=True)
class TestCaseDescriptor:
    """Code and title identifying one test case.

    Both may be templates with positional placeholders (``"ADR{0}"``) that are
    filled with type names when a generic case is instantiated.
    """

    __test__ = False

    code: str
    title: str

    def substitute(self, type_names: Sequence[str]) -> "TestCaseDescriptor":
        """Return the descriptor with type names substituted into code and title."""
        if not type_names:
            return self
        return TestCaseDescriptor(
            code=self.code.format(*type_names),
            title=self.title.format(*type_names),
        )


@dataclass(frozen=True, kw_only=True)
class TestModuleDescriptor:
    """Category name of a test module and, for dynamic modules, its generator."""

    __test__ = False

    name: str
    generator: DynamicTestGenerator | None = None

    @property
    def is_dynamic(self) -> bool:
        """Whether the test cases are produced by a generator at discovery time."""
        return self.generator is not None


@dataclass(frozen=True, kw_only=True)
class PrerequisiteSpec:
    """Fixture resource that must exist on the server before a test case runs.

    Exactly one of ``resource_file`` (a fixture name) or ``resource_type``
    (synthesized from the fixture set) is given.
    """

    resource_file: str | None = None
    resource_type: str | None = None

    def __post_init__(self) -> None:
        """Validate that exactly one resource source is declared."""
        if (self.resource_file is None) == (self.resource_type is None):
            raise ValueError(
                "A prerequisite needs exactly one of resource_file or resource_type"
            )
