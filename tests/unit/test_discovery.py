"""Tests for test discovery."""

import json
from pathlib import Path
from types import ModuleType

import pytest

from fhir_sprinkler.discovery import (
    INITIALIZATION_TITLE,
    DiscoveryError,
    discover,
    discover_module,
    load_source,
    module_types,
)
from fhir_sprinkler.fixtures import FixtureProvider
from fhir_sprinkler.framework import (
    CaseProcedure,
    SprinklerModule,
    dynamic_test,
    module_initialize,
    sprinkler_module,
    sprinkler_test,
)
from fhir_sprinkler.testset import ReadTest
from fhir_sprinkler.testset.all_resources import AllResourcesTest


@sprinkler_module("First")
class FirstModule(SprinklerModule):
    @module_initialize
    async def setup(self) -> None:
        pass

    @sprinkler_test("FI02", "Declared first")
    async def declared_first(self) -> None:
        pass

    @sprinkler_test("FI01", "Declared second")
    async def declared_second(self) -> None:
        pass

    async def helper(self) -> None:
        pass


@sprinkler_module("Second")
class SecondModule(SprinklerModule):
    @module_initialize
    async def prepare(self) -> None:
        """Prepare shared resources"""

    @sprinkler_test("SE01", "Only case")
    async def only_case(self) -> None:
        pass


@sprinkler_module("Inheriting")
class InheritingModule(FirstModule):
    @sprinkler_test("FI01", "Overridden")
    async def declared_second(self) -> None:
        pass

    @sprinkler_test("IH01", "Own case")
    async def own_case(self) -> None:
        pass


class NotAModule:
    pass


def fake_source(*classes: type, name: str = "fake_tests") -> ModuleType:
    """Create an in-memory test source exporting the given classes."""
    source = ModuleType(name)
    for cls in classes:
        setattr(source, cls.__name__, cls)
    source.__all__ = [cls.__name__ for cls in classes]  # type: ignore[attr-defined]
    return source


def case_codes(module_type: type, code_filter: list[str] | None = None) -> list[str]:
    """Codes of the discovered cases of a module type."""
    module = discover_module(module_type, code_filter)
    assert module is not None
    return [case.descriptor.code for case in module.cases]


class TestDiscoverModule:
    """Tests for discover_module."""

    def test_keeps_declaration_order(self) -> None:
        """Lists cases in declaration order, not by code."""
        assert case_codes(FirstModule) == ["FI02", "FI01"]

    def test_inherited_cases_keep_base_position(self) -> None:
        """Places inherited and overridden cases where the base declared them."""
        assert case_codes(InheritingModule) == ["FI02", "FI01", "IH01"]

        module = discover_module(InheritingModule)
        assert module is not None
        assert module.cases[1].descriptor.title == "Overridden"

    @pytest.mark.parametrize(
        ("code_filter", "expected"),
        [
            (["fi01"], ["FI01"]),
            (["FI"], ["FI02", "FI01"]),
            (["xx", "Fi02"], ["FI02"]),
            ([], ["FI02", "FI01"]),
        ],
    )
    def test_filters_by_case_insensitive_prefix(
        self, code_filter: list[str], expected: list[str]
    ) -> None:
        """Selects cases whose code starts with any of the prefixes."""
        assert case_codes(FirstModule, code_filter) == expected

    @pytest.mark.parametrize("code_filter", [["first"], ["FIRST"], ["xx", "First"]])
    def test_module_name_selects_all_cases(self, code_filter: list[str]) -> None:
        """Selects every case when an entry equals the module name."""
        assert case_codes(FirstModule, code_filter) == ["FI02", "FI01"]

    def test_partial_module_name_is_a_code_prefix(self) -> None:
        """Treats a partial module name as a code prefix only."""
        assert discover_module(FirstModule, ["firs"]) is None

    def test_no_match_omits_module(self) -> None:
        """Returns None when no case matches."""
        assert discover_module(FirstModule, ["RD"]) is None

    def test_not_a_module(self) -> None:
        """Ignores classes without module declaration."""
        assert discover_module(NotAModule) is None

    def test_initializer_defaults(self) -> None:
        """Uses the function name as code and a default title."""
        module = discover_module(FirstModule)

        assert module is not None
        assert module.initializer is not None
        assert module.initializer.descriptor.code == "setup"
        assert module.initializer.descriptor.title == INITIALIZATION_TITLE

    def test_initializer_title_from_docstring(self) -> None:
        """Uses the first doc line as initialization title."""
        module = discover_module(SecondModule)

        assert module is not None
        assert module.initializer is not None
        assert module.initializer.descriptor.title == "Prepare shared resources"

    def test_initializer_is_not_a_case(self) -> None:
        """Does not list the initialization among the cases."""
        assert "setup" not in case_codes(FirstModule)


class TestDynamicModules:
    """Tests for modules whose cases come from a generator."""

    @pytest.fixture
    def fixtures(self, tmp_path: Path) -> FixtureProvider:
        """Create a fixture set with three resource types."""
        examples = {
            "a-patient.json": {"resourceType": "Patient", "id": "p"},
            "b-observation.json": {"resourceType": "Observation", "id": "o"},
            "c-binary.json": {"resourceType": "Binary", "id": "b"},
            "d-patient.json": {"resourceType": "Patient", "id": "q"},
        }
        for name, resource in examples.items():
            (tmp_path / name).write_text(json.dumps(resource))
        return FixtureProvider.from_path(tmp_path)

    def test_one_case_per_resource_type(self, fixtures: FixtureProvider) -> None:
        """Instantiates the generic case once per distinct type."""
        module = discover_module(AllResourcesTest, fixtures=fixtures)

        assert module is not None
        assert [case.descriptor.code for case in module.cases] == [
            "ADRPatient",
            "ADRObservation",
            "ADRBinary",
        ]
        assert module.cases[1].descriptor.title == (
            "Create read update delete on Observation"
        )
        assert module.cases[1].procedure.type_args == ("Observation",)

    def test_filter_applies_to_substituted_codes(
        self, fixtures: FixtureProvider
    ) -> None:
        """Matches the filter against the generated codes."""
        module = discover_module(AllResourcesTest, ["adrobs"], fixtures=fixtures)

        assert module is not None
        assert [case.descriptor.code for case in module.cases] == ["ADRObservation"]

    def test_generator_errors_raise_discovery_error(self) -> None:
        """Reports failing generators."""

        def broken(_: FixtureProvider) -> list[CaseProcedure]:
            raise OSError("fixtures unavailable")

        @sprinkler_module("Broken", generator=broken)
        class BrokenModule(SprinklerModule):
            pass

        with pytest.raises(DiscoveryError, match="fixtures unavailable"):
            discover_module(BrokenModule)

    def test_invalid_title_template_raises_discovery_error(self) -> None:
        """Reports dynamic titles whose placeholders cannot be filled."""

        def one_case(_: FixtureProvider) -> list[CaseProcedure]:
            return [
                CaseProcedure(
                    function=TemplatedModule.some_case, type_args=("Patient",)
                )
            ]

        @sprinkler_module("Templated", generator=one_case)
        class TemplatedModule(SprinklerModule):
            @dynamic_test("TM{0}", "Uses {resource} braces")
            async def some_case(self, resource_type: str) -> None:
                pass

        with pytest.raises(DiscoveryError, match="Invalid case template"):
            discover_module(TemplatedModule)


class TestSources:
    """Tests for loading sources."""

    def test_module_types_follow_all(self) -> None:
        """Lists exported module classes in __all__ order."""
        source = fake_source(SecondModule, NotAModule, FirstModule)

        assert module_types(source) == [SecondModule, FirstModule]

    def test_module_types_without_all(self) -> None:
        """Lists classes defined in the source itself."""
        source = load_source("fhir_sprinkler.testset.read")

        assert module_types(source) == [ReadTest]

    def test_loads_entry_point(self) -> None:
        """Loads the packaged test set by entry point name."""
        source = load_source("default")

        assert source.__name__ == "fhir_sprinkler.testset"

    def test_unknown_source_lists_available_sets(self) -> None:
        """Raises with the available test sets."""
        with pytest.raises(DiscoveryError, match="Available test sets: .*default"):
            load_source("no_such_testset_module")


class TestDiscover:
    """Tests for discover."""

    def test_modules_in_source_order(self) -> None:
        """Keeps source order and drops duplicates."""
        first = fake_source(SecondModule, FirstModule, name="first_source")
        second = fake_source(FirstModule, InheritingModule, name="second_source")

        modules = discover([first, second])

        assert [module.name for module in modules] == ["Second", "First", "Inheriting"]

    def test_omits_modules_without_selected_cases(self) -> None:
        """Drops modules whose cases are all filtered out."""
        modules = discover([fake_source(SecondModule, FirstModule)], ["se"])

        assert [module.name for module in modules] == ["Second"]

    def test_failed_source_aborts_discovery(self) -> None:
        """Raises before any module is discovered."""
        with pytest.raises(DiscoveryError):
            discover([fake_source(FirstModule), "no_such_testset_module"])

    def test_packaged_module_by_name(self) -> None:
        """Selects a built-in module by its name."""
        modules = discover(["default"], ["history", "rd01"])

        assert [module.name for module in modules] == ["Read", "History"]
        assert [case.descriptor.code for case in modules[0].cases] == ["RD01"]
        assert [case.descriptor.code for case in modules[1].cases] == [
            "HI01",
            "HI02",
            "HI03",
            "HI04",
            "HI05",
            "HI06",
            "HI07",
            "HI08",
            "HI09",
            "HI11",
        ]

    def test_packaged_test_set(self) -> None:
        """Discovers the built-in modules in their declared order."""
        modules = discover(["default"], ["RD", "CT"])

        assert [module.name for module in modules] == ["Read", "ContentType"]
        content_type = modules[1]
        assert [case.descriptor.code for case in content_type.cases] == [
            "CT05",
            "CT01",
            "CT02",
            "CT03",
            "CT04",
        ]
