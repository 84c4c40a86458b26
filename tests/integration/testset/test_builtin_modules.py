"""Integration tests for the built-in modules against a mocked server."""

import json
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from aioresponses import aioresponses as aioresponses_cls
from yarl import URL

from fhir_sprinkler.client import FhirClient
from fhir_sprinkler.config import RunConfig
from fhir_sprinkler.discovery import discover_module
from fhir_sprinkler.engine import TestRunner
from fhir_sprinkler.fixtures import FixtureProvider
from fhir_sprinkler.models.result import TestResult
from fhir_sprinkler.testing.payloads import (
    FHIR_JSON,
    FHIR_XML,
    conformance,
    operation_outcome,
    patient,
    resource_headers,
)
from fhir_sprinkler.testset import (
    AllResourcesTest,
    BinaryTest,
    ConformanceTest,
    ContentTypeTest,
    TagTest,
    ValidationTest,
)

BASE_URL = "http://fhir.test"


@pytest.fixture
async def client(aioresponses: aioresponses_cls) -> AsyncGenerator[FhirClient, None]:
    """Create client with managed session."""
    async with FhirClient.from_config(RunConfig(server_url=BASE_URL)) as impl:
        yield impl


async def run_module(
    client: FhirClient,
    module_type: type,
    *codes: str,
    fixtures: FixtureProvider | None = None,
) -> list[TestResult]:
    """Run the selected cases of a module."""
    fixtures = fixtures or FixtureProvider.default()
    module = discover_module(module_type, list(codes), fixtures=fixtures)
    assert module is not None
    runner = TestRunner(client=client, fixtures=fixtures)
    return list(await runner.run([module]))


def outcomes(results: list[TestResult]) -> dict[str, str]:
    """Outcomes by case code."""
    return {result.code: result.outcome for result in results}


class TestConformance:
    """Tests for the Conformance module."""

    async def test_compliant_server(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Accepts statements from metadata and OPTIONS."""
        aioresponses.get(
            f"{BASE_URL}/metadata", payload=conformance(), content_type=FHIR_JSON
        )
        aioresponses.add(
            BASE_URL, "OPTIONS", payload=conformance(), content_type=FHIR_JSON
        )

        results = await run_module(client, ConformanceTest)

        assert outcomes(results) == {"CN01": "success", "CN02": "success"}

    async def test_wrong_resource(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Fails when metadata returns another resource."""
        aioresponses.get(
            f"{BASE_URL}/metadata", payload=patient(), content_type=FHIR_JSON
        )

        (result,) = await run_module(client, ConformanceTest, "CN01")

        assert result.outcome == "fail"
        assert result.message == "Expected a conformance statement, got Patient"


class TestValidation:
    """Tests for the Validation module."""

    async def test_accepting_server_fails_invalid_cases(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Passes the valid patient and fails every accepted invalid one."""
        aioresponses.post(
            f"{BASE_URL}/Patient/$validate",
            payload=operation_outcome("All OK", severity="information"),
            repeat=True,
        )

        results = await run_module(client, ValidationTest)

        assert outcomes(results) == {
            "VA01": "success",
            "VA02": "fail",
            "VA03": "fail",
            "VA04": "fail",
            "VA05": "fail",
            "VA06": "fail",
            "VA07": "fail",
        }
        assert results[1].message == (
            "Server accepted invalid resource with 'unofficial' as a value for "
            "Patient.name.use"
        )

    async def test_rejecting_server(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Passes invalid cases rejected with an error outcome."""
        aioresponses.post(
            f"{BASE_URL}/Patient/$validate",
            status=422,
            payload=operation_outcome("Invalid"),
            repeat=True,
        )

        results = await run_module(client, ValidationTest, "VA01", "VA02", "VA07")

        assert outcomes(results) == {
            "VA01": "fail",
            "VA02": "success",
            "VA07": "success",
        }

    async def test_posts_fixture_as_parameter(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Sends the fixture patient in a Parameters resource."""
        url = f"{BASE_URL}/Patient/$validate"
        aioresponses.post(url, payload=operation_outcome("OK", severity="information"))

        await run_module(client, ValidationTest, "VA01")

        request = aioresponses.requests[("POST", URL(url))][0]
        body = json.loads(request.kwargs["data"])
        assert body["resourceType"] == "Parameters"
        assert body["parameter"][0]["name"] == "resource"
        assert body["parameter"][0]["resource"]["resourceType"] == "Patient"


class TestContentType:
    """Tests for the ContentType module."""

    async def test_negotiates_formats(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Reads the created patient in the requested formats."""
        aioresponses.post(
            f"{BASE_URL}/Patient",
            status=201,
            payload=patient(),
            headers=resource_headers(f"{BASE_URL}/Patient/1/_history/1"),
        )
        aioresponses.get(
            f"{BASE_URL}/Patient/1", body=b"<Patient/>", content_type=FHIR_XML
        )
        aioresponses.get(
            f"{BASE_URL}/Patient/1?_format=xml",
            body=b"<Patient/>",
            content_type=FHIR_XML,
        )
        aioresponses.get(
            f"{BASE_URL}/Patient/1", payload=patient(), content_type=FHIR_JSON
        )
        aioresponses.get(
            f"{BASE_URL}/Patient/1?_format=json",
            payload=patient(),
            content_type=FHIR_JSON,
        )

        results = await run_module(client, ContentTypeTest)

        assert [result.code for result in results] == [
            "CT05",
            "CT01",
            "CT02",
            "CT03",
            "CT04",
        ]
        assert all(result.outcome == "success" for result in results)

    async def test_wrong_format(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Fails when json is returned for an xml request."""
        aioresponses.post(f"{BASE_URL}/Patient", status=201, payload=patient())
        aioresponses.get(
            f"{BASE_URL}/Patient/1", payload=patient(), content_type=FHIR_JSON
        )

        results = await run_module(client, ContentTypeTest, "CT05", "CT01")

        assert outcomes(results) == {"CT05": "success", "CT01": "fail"}
        assert results[1].message == (
            "application/fhir+json is not acceptable when expecting xml"
        )

    async def test_skips_without_patient(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Skips reads when no patient was created."""
        results = await run_module(client, ContentTypeTest, "CT03")

        assert outcomes(results) == {"CT03": "skipped"}
        assert results[0].message == "no patient was created"


class TestBinary:
    """Tests for the Binary module."""

    async def test_create_and_delete(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Creates the reference binary and checks that it is gone after delete."""
        reference = FixtureProvider.default().synthesize("Binary")
        aioresponses.post(
            f"{BASE_URL}/Binary",
            status=201,
            payload={**reference, "id": "b1", "meta": {"versionId": "1"}},
            headers={"Location": f"{BASE_URL}/Binary/b1/_history/1"},
        )
        aioresponses.delete(f"{BASE_URL}/Binary/b1", status=204)
        aioresponses.get(f"{BASE_URL}/Binary/b1", status=410)

        results = await run_module(client, BinaryTest, "BI01", "BI05")

        assert outcomes(results) == {"BI01": "success", "BI05": "success"}

    async def test_changed_content(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Fails when the stored content differs from the original."""
        reference = FixtureProvider.default().synthesize("Binary")
        aioresponses.post(
            f"{BASE_URL}/Binary",
            status=201,
            payload={**reference, "id": "b1", "content": "AAAA"},
            headers={"Location": f"{BASE_URL}/Binary/b1/_history/1"},
        )

        (result,) = await run_module(client, BinaryTest, "BI01")

        assert result.outcome == "fail"
        assert result.message == "Binary data returned has a different size"

    async def test_later_cases_skip_without_binary(self, client: FhirClient) -> None:
        """Skips reads when the binary was not created."""
        results = await run_module(client, BinaryTest, "BI02", "BI03")

        assert outcomes(results) == {"BI02": "skipped", "BI03": "skipped"}


class TestTags:
    """Tests for the Tags module."""

    async def test_non_existing_resources(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Expects 404 for reads and $meta of a missing resource."""
        aioresponses.get(f"{BASE_URL}/Patient/nonexisting", status=404)
        aioresponses.get(f"{BASE_URL}/Patient/nonexisting/$meta", status=404)

        results = await run_module(client, TagTest, "TA02")

        assert outcomes(results) == {"TA02": "success"}

    async def test_create_and_read_tags(
        self, client: FhirClient, aioresponses: aioresponses_cls
    ) -> None:
        """Finds the tag on the created, read and version-read patient."""
        tagged = patient(
            tags=[{"system": "http://readtag.hl7.nl", "code": "readTagTest"}]
        )
        aioresponses.post(f"{BASE_URL}/Patient", status=201, payload=tagged)
        aioresponses.get(f"{BASE_URL}/Patient/1", payload=tagged)
        aioresponses.get(f"{BASE_URL}/Patient/1/_history/1", payload=tagged)

        results = await run_module(client, TagTest, "TA01")

        assert outcomes(results) == {"TA01": "success"}

    async def test_dependent_cases_skip(self, client: FhirClient) -> None:
        """Skips cases that need the tagged patient of TA01."""
        results = await run_module(client, TagTest, "TA03", "TA09")

        assert outcomes(results) == {"TA03": "skipped", "TA09": "skipped"}


class TestAllResources:
    """Tests for the dynamic All Resources module."""

    @pytest.fixture
    def fixtures(self, tmp_path: Path) -> FixtureProvider:
        """Create a fixture set with one patient."""
        (tmp_path / "patient.json").write_text(
            json.dumps({"resourceType": "Patient", "id": "example", "active": True})
        )
        return FixtureProvider.from_path(tmp_path)

    async def test_crud_cycle(
        self,
        client: FhirClient,
        aioresponses: aioresponses_cls,
        fixtures: FixtureProvider,
    ) -> None:
        """Creates, reads, updates and deletes a resource of the type."""
        aioresponses.post(f"{BASE_URL}/Patient", status=201, payload=patient())
        aioresponses.get(f"{BASE_URL}/Patient/1", payload=patient())
        aioresponses.put(f"{BASE_URL}/Patient/1", payload=patient(version_id="2"))
        aioresponses.delete(f"{BASE_URL}/Patient/1", status=204)
        aioresponses.get(f"{BASE_URL}/Patient/1", status=410)

        results = await run_module(client, AllResourcesTest, fixtures=fixtures)

        assert outcomes(results) == {"ADRPatient": "success"}
        assert results[0].title == "Create read update delete on Patient"

    async def test_collects_errors(
        self,
        client: FhirClient,
        aioresponses: aioresponses_cls,
        fixtures: FixtureProvider,
    ) -> None:
        """Reports the failed steps of the cycle in one message."""
        aioresponses.post(f"{BASE_URL}/Patient", status=201, payload=patient())
        aioresponses.get(f"{BASE_URL}/Patient/1", payload=patient())
        aioresponses.put(f"{BASE_URL}/Patient/1", status=405)
        aioresponses.delete(f"{BASE_URL}/Patient/1", status=405)

        (result,) = await run_module(client, AllResourcesTest, fixtures=fixtures)

        assert result.outcome == "fail"
        assert result.message is not None
        assert "Update of Patient failed" in result.message
        assert "Deletion of Patient failed" in result.message

    async def test_failed_creation(
        self,
        client: FhirClient,
        aioresponses: aioresponses_cls,
        fixtures: FixtureProvider,
    ) -> None:
        """Stops the cycle when the resource cannot be created."""
        aioresponses.post(f"{BASE_URL}/Patient", status=400)

        (result,) = await run_module(client, AllResourcesTest, fixtures=fixtures)

        assert result.outcome == "fail"
        assert result.message is not None
        assert result.message.startswith("Creation of Patient failed")
