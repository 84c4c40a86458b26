"""Tests for test module declarations."""

from unittest.mock import Mock

import pytest

from fhir_sprinkler.client import FhirClient
from fhir_sprinkler.fixtures import FixtureProvider
from fhir_sprinkler.framework import (
    CaseDispatchError,
    CaseProcedure,
    SprinklerModule,
    dynamic_test,
    module_initialize,
    resource_prerequisite,
    sprinkler_module,
    sprinkler_test,
)
from fhir_sprinkler.framework.declarations import (
    INITIALIZE_ATTR,
    module_descriptor_of,
)
from fhir_sprinkler.models.descriptor import PrerequisiteSpec, TestCaseDescriptor


@sprinkler_module("Sample")
class SampleModule(SprinklerModule):
    def __init__(self) -> None:
        self.received: list[str] = []

    @module_initialize
    async def initialize(self) -> None:
        pass

    @sprinkler_test("SA01", "Static case")
    async def static_case(self) -> None:
        self.received.append("static")

    @dynamic_test("SA{0}", "Generic case for {0}")
    def generic_case(self, resource_type: str) -> None:
        self.received.append(resource_type)

    @sprinkler_test("SA02", "With prerequisites")
    @resource_prerequisite(resource_type="Patient")
    @resource_prerequisite(file="organization-example.json")
    async def with_prerequisites(self) -> None:
        pass

    async def undecorated(self) -> None:
        """Check something undeclared.

        Longer description.
        """


class Derived(SampleModule):
    pass


class TestSprinklerModule:
    """Tests for module declarations."""

    def test_declares_module_descriptor(self) -> None:
        """Attaches the category name to the class."""
        descriptor = module_descriptor_of(SampleModule)

        assert descriptor is not None
        assert descriptor.name == "Sample"
        assert not descriptor.is_dynamic

    def test_descriptor_is_not_inherited(self) -> None:
        """Subclasses are not test modules unless declared themselves."""
        assert module_descriptor_of(Derived) is None

    def test_marks_initializer(self) -> None:
        """Marks the initialization method."""
        assert getattr(SampleModule.initialize, INITIALIZE_ATTR) is True

    def test_bind_attaches_client(self) -> None:
        """Binds the shared client and fixture set."""
        client = Mock(spec=FhirClient)
        fixtures = FixtureProvider.default()
        module = SampleModule()

        module.bind(client, fixtures=fixtures)

        assert module.client is client
        assert module.fixtures is fixtures
        assert module.prerequisites == ()

    def test_bind_requires_fixtures(self) -> None:
        """Rejects a bind without a fixture set."""
        with pytest.raises(TypeError):
            SampleModule().bind(Mock(spec=FhirClient))  # type: ignore[call-arg]


class TestCaseProcedure:
    """Tests for CaseProcedure."""

    def test_static_descriptor(self) -> None:
        """Uses the declared code and title."""
        procedure = CaseProcedure(function=SampleModule.static_case)

        assert procedure.descriptor == TestCaseDescriptor(
            code="SA01", title="Static case"
        )

    def test_dynamic_descriptor_is_substituted(self) -> None:
        """Substitutes the type arguments into a generic descriptor."""
        procedure = CaseProcedure(
            function=SampleModule.generic_case, type_args=("Observation",)
        )

        assert procedure.descriptor == TestCaseDescriptor(
            code="SAObservation", title="Generic case for Observation"
        )

    def test_undeclared_descriptor_uses_function_name(self) -> None:
        """Falls back to the function name and first doc line."""
        procedure = CaseProcedure(function=SampleModule.undecorated)

        assert procedure.descriptor == TestCaseDescriptor(
            code="undecorated", title="Check something undeclared."
        )

    def test_prerequisites_keep_declaration_order(self) -> None:
        """Lists stacked prerequisites top to bottom."""
        procedure = CaseProcedure(function=SampleModule.with_prerequisites)

        assert procedure.prerequisites == (
            PrerequisiteSpec(resource_type="Patient"),
            PrerequisiteSpec(resource_file="organization-example.json"),
        )

    def test_prerequisites_default_to_empty(self) -> None:
        """Cases without prerequisites have none."""
        assert CaseProcedure(function=SampleModule.static_case).prerequisites == ()

    async def test_invokes_async_procedure(self) -> None:
        """Awaits coroutine procedures."""
        module = SampleModule()

        await CaseProcedure(function=SampleModule.static_case).invoke(module)

        assert module.received == ["static"]

    async def test_invokes_sync_procedure_with_type_args(self) -> None:
        """Passes type arguments to plain procedures."""
        module = SampleModule()
        procedure = CaseProcedure(
            function=SampleModule.generic_case, type_args=("Patient",)
        )

        await procedure.invoke(module)

        assert module.received == ["Patient"]

    async def test_signature_mismatch_raises_dispatch_error(self) -> None:
        """Wraps binding errors so the cause can be reported."""
        procedure = CaseProcedure(function=SampleModule.static_case, type_args=("x",))

        with pytest.raises(CaseDispatchError) as exc_info:
            await procedure.invoke(SampleModule())

        assert isinstance(exc_info.value.__cause__, TypeError)

    async def test_procedure_errors_propagate_unchanged(self) -> None:
        """Does not wrap errors raised by the procedure itself."""

        async def broken(self: object) -> None:
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await CaseProcedure(function=broken).invoke(SampleModule())
