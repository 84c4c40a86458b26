"""Conformance statement tests."""

from fhir_sprinkler.client import Resource
from fhir_sprinkler.framework import SprinklerModule, sprinkler_module, sprinkler_test
from fhir_sprinkler.framework import asserts

CONFORMANCE_TYPES = frozenset({"Conformance", "CapabilityStatement"})


@sprinkler_module("Conformance")
class ConformanceTest(SprinklerModule):
    def _check_conformance(self, conformance: Resource | None) -> None:
        asserts.valid_resource_content_type_present(self.client)
        asserts.content_location_valid_if_present(self.client)
        if conformance is not None and conformance.get("resourceType") not in (
            CONFORMANCE_TYPES
        ):
            resource_type = conformance.get("resourceType")
            asserts.fail(f"Expected a conformance statement, got {resource_type}")

    @sprinkler_test("CN01", "Request conformance on /metadata")
    async def conformance_using_metadata(self) -> None:
        conformance = await self.client.conformance()

        self._check_conformance(conformance)

    @sprinkler_test("CN02", "Request conformance using OPTIONS")
    async def conformance_using_options(self) -> None:
        conformance = await self.client.conformance(use_options_verb=True)

        self._check_conformance(conformance)
