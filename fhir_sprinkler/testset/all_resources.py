"""Create, read, update and delete of every resource type in the fixture set."""

from collections.abc import Iterator

from fhir_sprinkler.fixtures import FixtureProvider
from fhir_sprinkler.framework import (
    CaseProcedure,
    SprinklerModule,
    dynamic_test,
    sprinkler_module,
)
from fhir_sprinkler.framework import asserts
from fhir_sprinkler.testset.builders import identity_of, with_extension

SPRINKLER_EXTENSION = "http://fhir.furore.com/extensions/sprinkler"


def all_resource_types(fixtures: FixtureProvider) -> Iterator[CaseProcedure]:
    """One generic case per resource type present in the fixture set."""
    for resource_type in fixtures.resource_types():
        yield CaseProcedure(
            function=AllResourcesTest.test_some_resource,
            type_args=(resource_type,),
        )


@sprinkler_module("All Resources", generator=all_resource_types)
class AllResourcesTest(SprinklerModule):
    async def _attempt(self, resource_type: str, errors: list[str]) -> None:
        example = self.fixtures.synthesize(resource_type)
        try:
            created = await self.client.create(example)
            identity = identity_of(self.client, created).without_version()
        except Exception as e:
            errors.append(f"Creation of {resource_type} failed: {e}")
            return

        location = str(identity)
        try:
            current = await self.client.read(location)
        except Exception as e:
            errors.append(f"Cannot read {resource_type}: {e}")
            return

        try:
            updated = with_extension(
                {**(current or example), "id": identity.id},
                SPRINKLER_EXTENSION,
                valueCode="unsure",
            )
            await self.client.update(updated)
        except Exception as e:
            errors.append(f"Update of {resource_type} failed: {e}")

        try:
            await self.client.delete(location)
            await asserts.fails(self.client, lambda: self.client.read(location), 410)
        except Exception as e:
            errors.append(f"Deletion of {resource_type} failed: {e}")

    @dynamic_test("ADR{0}", "Create read update delete on {0}")
    async def test_some_resource(self, resource_type: str) -> None:
        if self.fixtures.first_of_type(resource_type) is None:
            asserts.skip(f"No test data for resource of type {resource_type}")

        errors: list[str] = []
        await self._attempt(resource_type, errors)
        if errors:
            asserts.fail("\n".join(errors))
