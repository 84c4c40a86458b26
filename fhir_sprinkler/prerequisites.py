"""Creation and cleanup of resources a test case depends on."""

import logging
from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass, field

from fhir_sprinkler.client import FhirClient, Resource, ResourceIdentity
from fhir_sprinkler.fixtures import FixtureProvider
from fhir_sprinkler.models.descriptor import PrerequisiteSpec

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class CleanupOutcome:
    """Result of deleting one prerequisite resource."""

    location: str
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the resource was deleted."""
        return self.error is None


@dataclass(kw_only=True)
class ResourcePrerequisiteHandler:
    """Creates the prerequisites of one case and removes them afterwards."""

    client: FhirClient
    fixtures: FixtureProvider
    _created: list[ResourceIdentity] = field(default_factory=list, repr=False)

    def source_resource(self, spec: PrerequisiteSpec) -> Resource:
        """Resource to create for a prerequisite."""
        if spec.resource_file is not None:
            return self.fixtures.load(spec.resource_file)
        if spec.resource_type is not None:
            return self.fixtures.synthesize(spec.resource_type)
        raise ValueError("A prerequisite needs a resource file or a resource type")

    async def handle(
        self, specs: Sequence[PrerequisiteSpec]
    ) -> AsyncGenerator[Resource, None]:
        """Create every prerequisite in order and yield the stored resources.

        Creation errors propagate; resources created up to that point are
        still removed by ``cleanup()``.
        """
        for spec in specs:
            resource = self.source_resource(spec)
            created = await self.client.create(resource)
            identity = ResourceIdentity.of(created)
            if identity is None and self.client.last_result is not None:
                identity = ResourceIdentity.parse(self.client.last_result.location)
            if identity is not None:
                self._created.append(identity.without_version())
            log.debug("Created prerequisite %s", identity)
            yield created if created is not None else resource

    async def cleanup(self) -> Sequence[CleanupOutcome]:
        """Delete created resources, most recent first. Never raises."""
        outcomes: list[CleanupOutcome] = []
        while self._created:
            identity = self._created.pop()
            try:
                await self.client.delete(identity)
            except Exception as e:
                log.warning("Failed to delete prerequisite %s: %s", identity, e)
                outcomes.append(CleanupOutcome(location=str(identity), error=e))
            else:
                outcomes.append(CleanupOutcome(location=str(identity)))
        return outcomes
