"""Content negotiation tests using the Accept header and the _format parameter."""

from fhir_sprinkler.client import ResourceFormat
from fhir_sprinkler.framework import SprinklerModule, sprinkler_module, sprinkler_test
from fhir_sprinkler.framework import asserts
from fhir_sprinkler.testset.builders import create_and_locate, new_patient


@sprinkler_module("ContentType")
class ContentTypeTest(SprinklerModule):
    """Reads of one patient in xml and json.

    CT05 creates the patient and is declared first so it runs first.
    """

    def __init__(self) -> None:
        self.location: str | None = None

    @sprinkler_test("CT05", "Adding a patient")
    async def add_patient(self) -> None:
        self.client.return_full_resource = True
        _, identity = await create_and_locate(
            self.client, new_patient("Bach", "Johan", "Sebastian")
        )
        self.location = str(identity.without_version())

    async def _read_as(self, fmt: ResourceFormat, use_format_param: bool) -> None:
        if self.location is None:
            asserts.skip("no patient was created")
        self.client.preferred_format = fmt
        self.client.use_format_param = use_format_param

        await self.client.read(self.location)

        asserts.resource_response_conforms_to(self.client, fmt)

    @sprinkler_test("CT01", "request xml using accept")
    async def xml_accept(self) -> None:
        await self._read_as("xml", use_format_param=False)

    @sprinkler_test("CT02", "request xml using _format")
    async def xml_format(self) -> None:
        await self._read_as("xml", use_format_param=True)

    @sprinkler_test("CT03", "request json using accept")
    async def json_accept(self) -> None:
        await self._read_as("json", use_format_param=False)

    @sprinkler_test("CT04", "request json using _format")
    async def json_format(self) -> None:
        await self._read_as("json", use_format_param=True)
