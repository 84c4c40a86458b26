"""Create, update and delete interaction tests on a patient."""

import random
from collections.abc import Mapping
from typing import Any

from fhir_sprinkler.client import Resource, ResourceFormat, ResourceIdentity
from fhir_sprinkler.framework import SprinklerModule, sprinkler_module, sprinkler_test
from fhir_sprinkler.framework import asserts
from fhir_sprinkler.testset.builders import (
    create_and_locate,
    identity_of,
    new_patient,
    with_telecom,
)

QUALIFIER_EXTENSION = "http://hl7.org/fhir/Profile/iso-21090#qualifier"
UPDATE_URL = "http://www.nu.nl"


def with_contact(
    resource: Resource, family: str, given: str, qualifier: str
) -> Resource:
    """Copy of a patient with a contact whose name carries a qualifier."""
    contact = {
        "name": {
            "family": [family],
            "given": [given],
            "extension": [{"url": QUALIFIER_EXTENSION, "valueCode": qualifier}],
        },
        "address": [
            {
                "city": "Grand Prairie",
                "state": "Texas",
                "country": "United States",
            }
        ],
    }
    return {**resource, "contact": [contact, *resource.get("contact", ())]}


def qualifiers_of(patient: Mapping[str, Any] | None) -> list[str]:
    """Qualifier codes on the name of the first contact of a patient."""
    contacts = (patient or {}).get("contact") or []
    if not contacts:
        return []
    name = contacts[0].get("name") or {}
    return [
        extension.get("valueCode")
        for extension in name.get("extension", ())
        if extension.get("url") == QUALIFIER_EXTENSION
    ]


@sprinkler_module("CRUD")
class CreateUpdateDeleteTest(SprinklerModule):
    """Create in both formats, create with a client-assigned id, update and delete.

    CR05 to CR07 work on the patient CR03 stores under its own id.
    """

    def __init__(self) -> None:
        self.crud_id: str | None = None

    def _require_location(self) -> str:
        """Location of the patient created with a client-assigned id."""
        if self.crud_id is None:
            asserts.skip("no patient was created with a client-assigned id")
        return f"Patient/{self.crud_id}"

    async def _create_patient(self, fmt: ResourceFormat) -> None:
        self.client.preferred_format = fmt
        self.client.use_format_param = False
        patient = self.fixtures.synthesize("Patient")

        created = await asserts.succeeds(
            self.client, lambda: self.client.create(patient)
        )

        asserts.location_present_and_valid(self.client)
        asserts.content_location_valid_if_present(self.client)
        identity_of(self.client, created)

    @sprinkler_test("CR01", "create a patient using xml")
    async def create_patient_using_xml(self) -> None:
        await self._create_patient("xml")

    @sprinkler_test("CR02", "create a patient using json")
    async def create_patient_using_json(self) -> None:
        await self._create_patient("json")

    @sprinkler_test("CR03", "create a patient using client-assigned id")
    async def create_patient_using_client_assigned_id(self) -> None:
        self.client.preferred_format = "json"
        crud_id = f"sprink{random.randint(0, 2**31)}"
        patient = with_contact(
            {**self.fixtures.synthesize("Patient"), "id": crud_id},
            "Cornett",
            "Amanda",
            "AC",
        )

        stored = await asserts.succeeds(
            self.client, lambda: self.client.update(patient)
        )

        asserts.status_code(self.client, 200, 201)
        asserts.content_location_valid_if_present(self.client)
        identity = ResourceIdentity.of(stored) or ResourceIdentity.parse(
            asserts.last_result(self.client).location
        )
        if identity is not None and identity.id != crud_id:
            asserts.fail("Server refused to honor client-assigned id")
        self.crud_id = crud_id

    @sprinkler_test("CR04", "Create a patient with an extension")
    async def create_patient_with_extension(self) -> None:
        self.client.preferred_format = "json"
        selena = with_contact(
            new_patient("Gomez", "Selena"), "Cornett", "Amanda", "AC"
        )

        _, identity = await create_and_locate(self.client, selena)
        location = str(identity.without_version())
        read = await self.client.read(location)

        qualifiers = qualifiers_of(read)
        if not qualifiers:
            asserts.fail(f"Extensions have disappeared on resource {location}")
        if "AC" not in qualifiers:
            asserts.fail(
                "Resource extension was not persisted on created resource "
                f"{identity.id}"
            )

    @sprinkler_test("CR05", "update that patient (no extensions altered)")
    async def update_patient_without_extensions(self) -> None:
        location = self._require_location()
        self.client.preferred_format = "json"
        current = await self.client.read(location)

        updated = with_telecom(
            {**(current or {}), "id": self.crud_id}, "url", UPDATE_URL
        )
        await self.client.update(updated)
        read = await self.client.read(location)

        telecom = (read or {}).get("telecom", ())
        if not any(
            contact.get("system") == "url" and contact.get("value") == UPDATE_URL
            for contact in telecom
        ):
            asserts.fail(f"Resource {location} unchanged after update")

    @sprinkler_test("CR06", "update that person again (alter extensions)")
    async def update_patient_and_extensions(self) -> None:
        location = self._require_location()
        self.client.preferred_format = "json"
        current = await self.client.read(location)
        if not qualifiers_of(current):
            asserts.fail(f"Extensions have disappeared on resource {location}")
        updated: Resource = {**(current or {}), "id": self.crud_id}

        contacts = [dict(contact) for contact in updated["contact"]]
        name = dict(contacts[0]["name"])
        extensions = [
            {**extension, "valueCode": "NB"}
            if extension.get("url") == QUALIFIER_EXTENSION
            else extension
            for extension in name.get("extension", ())
        ]
        extensions.append({"url": QUALIFIER_EXTENSION, "valueCode": "AC"})
        contacts[0] = {**contacts[0], "name": {**name, "extension": extensions}}
        await self.client.update({**updated, "contact": contacts})

        qualifiers = qualifiers_of(await self.client.read(location))
        if not qualifiers:
            asserts.fail(f"Extensions have disappeared on resource {location}")
        if "NB" not in qualifiers:
            asserts.fail(
                f"Resource extension update was not persisted on resource {location}"
            )
        if "AC" not in qualifiers:
            asserts.fail(
                f"Resource extension addition was not persisted on resource {location}"
            )

    @sprinkler_test("CR07", "delete that person")
    async def delete_patient(self) -> None:
        location = self._require_location()

        await self.client.delete(location)

        await asserts.fails(self.client, lambda: self.client.read(location), 410)

    @sprinkler_test("CR08", "deletion of a non-existing resource")
    async def delete_non_existing_patient(self) -> None:
        location = f"Patient/sprink{random.randint(0, 2**31)}"

        await asserts.fails(self.client, lambda: self.client.delete(location), 404)
