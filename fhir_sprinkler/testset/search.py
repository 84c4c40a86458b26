"""Search interaction tests on Patient, Condition and Observation."""

import random

from fhir_sprinkler.client import Bundle, Resource
from fhir_sprinkler.framework import SprinklerModule, sprinkler_module, sprinkler_test
from fhir_sprinkler.framework import asserts
from fhir_sprinkler.testset.builders import (
    contains_resource,
    create_and_locate,
    family_names,
    new_patient,
    resources_of_type,
)

PAGE_SIZE = 10
# Upper bound on pages followed when collecting a paged search result.
MAX_PAGES = 50


def new_observation(value: float) -> Resource:
    """Preliminary glucose observation with a quantity in mg."""
    return {
        "resourceType": "Observation",
        "status": "preliminary",
        "code": {"coding": [{"system": "http://loinc.org", "code": "2164-2"}]},
        "valueQuantity": {
            "value": value,
            "system": "http://unitsofmeasure.org",
            "code": "mg",
            "unit": "miligram",
        },
        "bodySite": {
            "coding": [{"system": "http://snomed.info/sct", "code": "182756003"}]
        },
    }


@sprinkler_module("Search")
class SearchTest(SprinklerModule):
    """Searches by type, by name, by reference, by quantity and with modifiers."""

    def __init__(self) -> None:
        self.all_patients: Bundle | None = None

    async def _search(
        self,
        resource_type: str,
        criteria: dict[str, str] | None = None,
        page_size: int | None = None,
    ) -> Bundle:
        self.client.preferred_format = "json"
        self.client.use_format_param = False
        try:
            return await self.client.search(resource_type, criteria, page_size)
        except ValueError:
            # Bodies that do not parse as a bundle are reported by content type.
            asserts.valid_bundle_content_type_present(self.client)
            raise

    async def _create_observation(self, value: float) -> str:
        _, identity = await create_and_locate(self.client, new_observation(value))
        return identity.id

    @sprinkler_test("SE01", "Search resource type without criteria")
    async def search_without_criteria(self) -> None:
        result = await self._search("Patient", page_size=PAGE_SIZE)

        asserts.entry_ids_present(result)
        if not result.entry:
            asserts.fail("search did not return any results")
        if len(result.entry) > PAGE_SIZE:
            asserts.fail("search returned more patients than specified in _count")
        if not resources_of_type(result, "Patient"):
            asserts.fail("search returned entries other than patient")
        self.all_patients = result

    @sprinkler_test("SE02", "Search on non-existing resource")
    async def search_non_existing_resource(self) -> None:
        await asserts.fails(
            self.client,
            lambda: self.client.search("Nonexistingnonpatientresource"),
            404,
        )

    @sprinkler_test("SE03", "Search patient resource on partial familyname")
    async def search_on_partial_family_name(self) -> None:
        if self.all_patients is None:
            asserts.skip("no patients were found without criteria")
        long_names = [
            name
            for patient in resources_of_type(self.all_patients, "Patient")
            for name in family_names(patient)
            if len(name) > 5
        ]
        if not long_names:
            asserts.skip("no family name of more than five characters found")
        prefix = long_names[0][:3]

        result = await self._search("Patient", {"family": prefix})

        asserts.entry_ids_present(result)
        if not result.entry:
            asserts.fail("search did not return any results")
        asserts.all_resources(
            result,
            lambda patient: any(
                prefix.lower() in name.lower() for name in family_names(patient)
            ),
            "search result contains patients that do not match the criterium",
        )

    @sprinkler_test("SE04", "Search patient resource on given name")
    async def search_on_given_name(self) -> None:
        await create_and_locate(self.client, new_patient("Adams", "Fester"))

        result = await self._search("Patient", {"given": "Fester"})

        asserts.is_true(
            any(
                "Adams" in family_names(patient)
                for patient in resources_of_type(result, "Patient")
            ),
            "Patient was not found with given name",
        )

    @sprinkler_test("SE05", "Search condition by subject (patient) reference")
    async def search_condition_by_patient_reference(self) -> None:
        family = f"Sprinkler{random.randint(0, 2**31)}"
        identifier = f"sprink-{random.randint(0, 2**31)}"
        patient = {
            **new_patient(family, "Condition"),
            "identifier": [{"system": "urn:sprinkler", "value": identifier}],
        }
        _, patient_identity = await create_and_locate(self.client, patient)
        reference = str(patient_identity.without_version())
        await create_and_locate(
            self.client,
            {
                "resourceType": "Condition",
                "subject": {"reference": reference},
                "code": {"text": "Sprinkler test condition"},
                "verificationStatus": "confirmed",
            },
        )

        for criteria, description in [
            ({"subject": reference}, "subject="),
            ({"subject:Patient": reference}, "subject:Patient="),
            ({"subject._id": patient_identity.id}, "subject._id="),
        ]:
            result = await self._search("Condition", criteria)
            asserts.entry_ids_present(result)
            asserts.correct_number_of_results(
                1,
                len(resources_of_type(result, "Condition")),
                f"conditions for this patient (using {description})",
            )

        result = await self._search("Condition", {"subject.name": family})
        asserts.entry_ids_present(result)
        if not result.entry:
            asserts.fail("failed to find any conditions (using subject.name)")

        result = await self._search("Condition", {"subject.identifier": identifier})
        if not result.entry:
            asserts.fail("failed to find any conditions (using subject.identifier)")

    @sprinkler_test("SE06", "Search with includes")
    async def search_with_includes(self) -> None:
        result = await self._search("Condition", {"_include": "Condition.subject"})

        asserts.is_true(
            bool(resources_of_type(result, "Patient")),
            "Search Conditions with _include=Condition.subject should have patients",
        )

    @sprinkler_test("SE21", "Search for quantity (in observation) - precision tests")
    async def search_quantity_precision(self) -> None:
        id0 = await self._create_observation(4.12345)
        id1 = await self._create_observation(4.12346)
        id2 = await self._create_observation(4.12349)

        result = await self._search("Observation", {"value-quantity": "4.1234||mg"})

        asserts.is_true(
            contains_resource(result, id0),
            "Search on quantity value 4.1234 should return 4.12345",
        )
        asserts.is_true(
            not contains_resource(result, id1),
            "Search on quantity value 4.1234 should not return 4.12346",
        )
        asserts.is_true(
            not contains_resource(result, id2),
            "Search on quantity value 4.1234 should not return 4.12349",
        )

    @sprinkler_test("SE22", "Search for quantity (in observation) - operators")
    async def search_quantity_greater(self) -> None:
        id0 = await self._create_observation(4.12)
        id1 = await self._create_observation(5.12)
        id2 = await self._create_observation(6.12)

        result = await self._search("Observation", {"value-quantity": ">5||mg"})

        asserts.is_true(
            not contains_resource(result, id0),
            "Search greater than quantity should not return lesser value.",
        )
        asserts.is_true(
            contains_resource(result, id1),
            "Search greater than quantity should return greater value",
        )
        asserts.is_true(
            contains_resource(result, id2),
            "Search greater than quantity should return greater value",
        )

    @sprinkler_test("SE23", "Search with quantifier :missing, on Patient.gender.")
    async def search_gender_missing(self) -> None:
        criteria = {"family": "BROOKS"}
        patients: list[Resource] = []
        page: Bundle | None = await self._search("Patient", criteria)
        for _ in range(MAX_PAGES):
            if page is None or not (found := resources_of_type(page, "Patient")):
                break
            patients.extend(found)
            page = await self.client.continue_page(page)
        without_gender = [patient for patient in patients if not patient.get("gender")]

        result = await self._search(
            "Patient", {"gender:missing": "true", **criteria}, page_size=500
        )

        asserts.correct_number_of_results(
            len(without_gender),
            len(resources_of_type(result, "Patient")),
            "Expected {0} patients without gender, but got {1}.",
        )

    @sprinkler_test("SE24", "Search with non-existing parameter.")
    async def search_non_existing_parameter(self) -> None:
        all_patients = await self._search("Patient")

        result = await self._search("Patient", {"noparam": "nonsense"})

        asserts.correct_number_of_results(
            len(resources_of_type(all_patients, "Patient")),
            len(resources_of_type(result, "Patient")),
            "Expected all patients ({0}) since the only search parameter is "
            "non-existing, but got {1}.",
        )

    @sprinkler_test("SE25", "Search with malformed parameter.")
    async def search_malformed_parameter(self) -> None:
        await asserts.fails(
            self.client, lambda: self.client.search("Patient", {"...": "test"}), 400
        )
