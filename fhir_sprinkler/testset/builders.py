"""Resource builders and bundle helpers shared by the built-in test modules."""

from collections.abc import Mapping
from typing import Any

from fhir_sprinkler.client import Bundle, FhirClient, Resource, ResourceIdentity
from fhir_sprinkler.framework import asserts


def new_patient(family: str, *given: str) -> Resource:
    """Minimal Patient with one official name."""
    return {
        "resourceType": "Patient",
        "name": [{"use": "official", "family": [family], "given": list(given)}],
    }


def with_telecom(resource: Resource, system: str, value: str) -> Resource:
    """Copy of the resource with a telecom contact point appended."""
    telecom = [*resource.get("telecom", ()), {"system": system, "value": value}]
    return {**resource, "telecom": telecom}


def with_extension(resource: Resource, url: str, **value: Any) -> Resource:
    """Copy of the resource with an extension appended."""
    extension = [*resource.get("extension", ()), {"url": url, **value}]
    return {**resource, "extension": extension}


def identity_of(
    client: FhirClient, resource: Mapping[str, Any] | None
) -> ResourceIdentity:
    """Identity of a stored resource, from its body or the Location header.

    Raises:
        TestFailed: If neither carries an id

    """
    if (identity := ResourceIdentity.of(resource)) is not None:
        return identity
    location = client.last_result.location if client.last_result else None
    if (identity := ResourceIdentity.parse(location)) is not None:
        return identity
    asserts.fail("Server did not return the identity of the stored resource")


async def create_and_locate(
    client: FhirClient, resource: Resource
) -> tuple[Resource | None, ResourceIdentity]:
    """Create a resource and return it with its identity."""
    created = await asserts.succeeds(client, lambda: client.create(resource))
    return created, identity_of(client, created)


def resources_of_type(bundle: Bundle, resource_type: str) -> list[Resource]:
    """Resources of one type carried by a bundle."""
    return [r for r in bundle.resources() if r.get("resourceType") == resource_type]


def contains_resource(bundle: Bundle, resource_id: str | None) -> bool:
    """Whether a bundle carries a resource with the given id."""
    return any(r.get("id") == resource_id for r in bundle.resources())


def family_names(patient: Mapping[str, Any]) -> list[str]:
    """Family names of a patient; DSTU2 family elements are lists."""
    names: list[str] = []
    for name in patient.get("name") or ():
        family = name.get("family") or []
        names.extend([family] if isinstance(family, str) else family)
    return names
