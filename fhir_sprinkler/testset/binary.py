"""Binary resource tests."""

import base64
from typing import Any

from fhir_sprinkler.client import Resource, ResourceIdentity
from fhir_sprinkler.framework import (
    SprinklerModule,
    module_initialize,
    sprinkler_module,
    sprinkler_test,
)
from fhir_sprinkler.framework import asserts
from fhir_sprinkler.testset.builders import identity_of


def content_of(binary: dict[str, Any] | None) -> bytes:
    """Decoded content of a Binary resource."""
    if not binary or not binary.get("content"):
        return b""
    return base64.b64decode(binary["content"])


@sprinkler_module("Binary")
class BinaryTest(SprinklerModule):
    """Create, read as xml and json, update and delete of a Binary."""

    def __init__(self) -> None:
        self.reference: Resource = {}
        self.identity: ResourceIdentity | None = None

    @module_initialize
    async def initialize(self) -> None:
        """Load the reference binary."""
        self.reference = self.fixtures.synthesize("Binary")

    def _check_binary(self, received: Resource | None) -> None:
        if received is None:
            asserts.fail("Server did not return the binary")
        asserts.is_true(
            self.reference.get("contentType") == received.get("contentType"),
            "ContentType of the received binary is not correct",
        )
        expected, actual = content_of(self.reference), content_of(received)
        if len(expected) != len(actual):
            asserts.fail("Binary data returned has a different size")
        if expected != actual:
            asserts.fail("Binary data returned differs from original")

    @sprinkler_test("BI01", "Create a binary")
    async def create_binary(self) -> None:
        self.client.preferred_format = "json"
        self.client.return_full_resource = True

        received = await self.client.create(self.reference)

        asserts.location_present_and_valid(self.client)
        self._check_binary(received)
        self.identity = identity_of(self.client, received).without_version()

    @sprinkler_test("BI02", "Read binary as xml")
    async def read_binary_as_xml(self) -> None:
        asserts.skip_when(self.identity is None)
        self.client.preferred_format = "xml"
        self.client.use_format_param = True

        await self.client.read(str(self.identity))

        asserts.resource_response_conforms_to(self.client, "xml")
        asserts.body_not_empty(self.client)

    @sprinkler_test("BI03", "Read binary as json")
    async def read_binary_as_json(self) -> None:
        asserts.skip_when(self.identity is None)
        self.client.preferred_format = "json"
        self.client.use_format_param = False

        received = await self.client.read(str(self.identity))

        asserts.resource_response_conforms_to(self.client, "json")
        self._check_binary(received)
        if received is not None:
            self.reference = received

    @sprinkler_test(
        "BI04",
        "Update binary - This might fail because the documentation is not clear "
        "if FHIR servers should accept binaries in a resource envelope.",
    )
    async def update_binary(self) -> None:
        asserts.skip_when(self.identity is None or not self.reference.get("id"))
        reversed_content = content_of(self.reference)[::-1]
        self.reference = {
            **self.reference,
            "content": base64.b64encode(reversed_content).decode("ascii"),
        }

        received = await self.client.update(self.reference)

        self._check_binary(received)

    @sprinkler_test("BI05", "Delete binary")
    async def delete_binary(self) -> None:
        asserts.skip_when(self.identity is None)
        location = str(self.identity)

        await self.client.delete(location)

        await asserts.fails(self.client, lambda: self.client.read(location), 410)
