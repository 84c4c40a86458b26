"""Read interaction tests."""

from fhir_sprinkler.framework import SprinklerModule, sprinkler_module, sprinkler_test
from fhir_sprinkler.framework import asserts
from fhir_sprinkler.testset.builders import create_and_locate, new_patient


@sprinkler_module("Read")
class ReadTest(SprinklerModule):
    """Reads of existing, missing and malformed resource ids."""

    @sprinkler_test("RD01", "Result headers on normal read")
    async def read_created_patient(self) -> None:
        _, identity = await create_and_locate(
            self.client, new_patient("Emerald", "Caro")
        )

        await self.client.read(str(identity.without_version()))

        asserts.http_ok(self.client)
        asserts.valid_resource_content_type_present(self.client)
        asserts.last_modified_present(self.client)
        asserts.content_location_present_and_valid(self.client)

    @sprinkler_test("RD02", "Read non-existing resource id")
    async def read_non_existing_resource(self) -> None:
        await asserts.fails(
            self.client, lambda: self.client.read("Patient/3141592unlikely"), 404
        )

    @sprinkler_test("RD03", "Read bad formatted resource id")
    async def read_bad_formatted_resource_id(self) -> None:
        await asserts.fails(
            self.client,
            lambda: self.client.read("Patient/ID-may-not-contain-CAPITALS"),
            404,
        )
