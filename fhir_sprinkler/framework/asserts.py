"""Assertions used by test cases.

Every check raises ``TestFailed`` when it does not hold, and ``skip`` raises
``TestSkipped``. Header checks inspect ``client.last_result``.
"""

from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime
from typing import Any, NoReturn, TypeVar

from fhir_sprinkler.client import (
    Bundle,
    FhirClient,
    FhirOperationError,
    LastResult,
    Resource,
    ResourceFormat,
    ResourceIdentity,
)
from fhir_sprinkler.client.formats import (
    format_from_content_type,
    is_valid_bundle_content_type,
    is_valid_resource_content_type,
    media_type,
)
from fhir_sprinkler.framework.signals import TestFailed, TestSkipped

T = TypeVar("T")


def fail(message: str) -> NoReturn:
    """Fail the running test case."""
    raise TestFailed(message)


def skip(message: str | None = None) -> NoReturn:
    """Skip the running test case."""
    raise TestSkipped(message)


def skip_when(condition: bool, message: str | None = None) -> None:
    """Skip the running test case if the condition holds."""
    if condition:
        skip(message)


def is_true(condition: bool, message: str) -> None:
    """Fail with the message unless the condition holds."""
    if not condition:
        fail(message)


def last_result(client: FhirClient) -> LastResult:
    """Return the last interaction of the client, failing if there was none."""
    if client.last_result is None:
        fail("No interaction with the server took place")
    return client.last_result


def http_ok(client: FhirClient) -> None:
    """Check that the last response had status 200."""
    status = last_result(client).status
    if status != 200:
        fail(f"Got status code {status}. Did you install the standard test-set?")


def status_code(client: FhirClient, *expected: int) -> None:
    """Check that the last response status is one of the expected ones."""
    status = last_result(client).status
    if status not in expected:
        fail(
            f"Received http result {status} is not one of the expected statuses "
            f"{', '.join(map(str, expected))}"
        )


def content_type_present(client: FhirClient) -> None:
    """Check that the last response carried a Content-Type header."""
    if not last_result(client).content_type:
        fail("Mandatory Content-Type header missing")


def valid_resource_content_type_present(client: FhirClient) -> None:
    """Check that the last response declared a FHIR resource content type."""
    content_type_present(client)
    content_type = last_result(client).content_type
    if not is_valid_resource_content_type(content_type):
        fail(f"Expected xml or json content type, but received {content_type}")


def valid_bundle_content_type_present(client: FhirClient) -> None:
    """Check that the last response declared a FHIR bundle content type."""
    content_type_present(client)
    content_type = last_result(client).content_type
    if not is_valid_bundle_content_type(content_type):
        fail(f"Expected xml or json bundle content type, but received {content_type}")


def resource_response_conforms_to(client: FhirClient, fmt: ResourceFormat) -> None:
    """Check that the last response is a resource in the given format."""
    valid_resource_content_type_present(client)
    content_type = last_result(client).content_type
    if format_from_content_type(content_type) != fmt:
        fail(f"{media_type(content_type)} is not acceptable when expecting {fmt}")


def body_not_empty(client: FhirClient) -> None:
    """Check that the last response had a body."""
    if not last_result(client).body:
        fail("Body is empty")


def last_modified_present(client: FhirClient) -> None:
    """Check that the last response carried a Last-Modified header."""
    if last_result(client).last_modified is None:
        fail("Mandatory Last-Modified header missing")


def content_location_valid_if_present(client: FhirClient) -> None:
    """Check that Content-Location, if sent, is a version-specific url."""
    content_location = last_result(client).content_location
    if content_location is None:
        return
    identity = ResourceIdentity.parse(content_location)
    if identity is None:
        fail("Content-Location does not have an id in it")
    if not identity.has_version:
        fail("Content-Location is not a version-specific url")


def content_location_present_and_valid(client: FhirClient) -> None:
    """Check that Content-Location is present and version-specific."""
    if last_result(client).content_location is None:
        fail("Mandatory Content-Location header missing")
    content_location_valid_if_present(client)


def location_present_and_valid(client: FhirClient) -> None:
    """Check that Location is present and version-specific."""
    location = last_result(client).location
    if location is None:
        fail("Mandatory Location header missing")
    identity = ResourceIdentity.parse(location)
    if identity is None:
        fail("Location does not have an id in it")
    if not identity.has_version:
        fail("Location is not a version-specific url")


async def succeeds(client: FhirClient, call: Callable[[], Awaitable[T]]) -> T:
    """Await a client call and fail the case if the server rejects it."""
    try:
        return await call()
    except FhirOperationError as e:
        raise TestFailed(f"Call failed (http result {e.status})") from e


async def fails(
    client: FhirClient,
    call: Callable[[], Awaitable[Any]],
    expected: int | Iterable[int] | None = None,
) -> FhirOperationError:
    """Await a client call that the server is expected to reject.

    Args:
        client: Client performing the call
        call: Zero-argument coroutine function performing the interaction
        expected: Status or statuses the rejection must have

    Returns:
        The raised error, to inspect the returned OperationOutcome

    Raises:
        TestFailed: If the call succeeds or fails with another status

    """
    try:
        await call()
    except FhirOperationError as e:
        allowed = {expected} if isinstance(expected, int) else set(expected or ())
        if allowed and e.status not in allowed:
            expected_text = ", ".join(str(status) for status in sorted(allowed))
            fail(f"Expected http result {expected_text} but got {e.status}")
        return e
    fail(f"Unexpected success result ({last_result(client).status})")


def minimum_entries(bundle: Bundle, minimum: int) -> None:
    """Check that the bundle has at least the given number of entries."""
    if len(bundle.entry) < minimum:
        fail(
            f"Bundle should contain at least {minimum} entries, "
            f"found {len(bundle.entry)}"
        )


def maximum_entries(bundle: Bundle, maximum: int) -> None:
    """Check that the bundle has at most the given number of entries."""
    if len(bundle.entry) > maximum:
        fail(
            f"Bundle should contain at most {maximum} entries, "
            f"found {len(bundle.entry)}"
        )


def bundle_empty(bundle: Bundle) -> None:
    """Check that the bundle has no entries."""
    if bundle.entry:
        fail(f"Bundle should be empty, found {len(bundle.entry)} entries")


def all_entries(bundle: Bundle, predicate: Callable[[Any], bool], message: str) -> None:
    """Check a condition on every entry of the bundle."""
    if not all(predicate(entry) for entry in bundle.entry):
        fail(message)


def all_resources(
    bundle: Bundle, predicate: Callable[[Resource], bool], message: str
) -> None:
    """Check a condition on every resource carried by the bundle."""
    if not all(predicate(resource) for resource in bundle.resources()):
        fail(message)


def entry_ids_present(bundle: Bundle) -> None:
    """Check that every resource of the bundle carries id or version information."""
    all_resources(
        bundle,
        lambda r: bool(r.get("id") or (r.get("meta") or {}).get("versionId")),
        "Some id/versionId's in the bundle are null",
    )


def contains_all_versions(bundle: Bundle, versions: Iterable[str | None]) -> None:
    """Check that every version id appears among the bundle resources."""
    found = {(r.get("meta") or {}).get("versionId") for r in bundle.resources()}
    missing = [version for version in versions if version not in found]
    if missing:
        fail(f"Bundle is missing versions {', '.join(map(str, missing))}")


def last_updated(resource: Mapping[str, Any]) -> datetime | None:
    """Parse ``meta.lastUpdated`` of a resource."""
    value = (resource.get("meta") or {}).get("lastUpdated")
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def resources_in_reverse_order(bundle: Bundle) -> None:
    """Check that resources are sorted by ``meta.lastUpdated``, newest first."""
    instants = [
        instant
        for resource in bundle.resources()
        if (instant := last_updated(resource)) is not None
    ]
    if any(earlier < later for earlier, later in zip(instants, instants[1:])):
        fail("Resources are not in reverse chronological order")


def correct_number_of_results(expected: int, actual: int, message: str = "") -> None:
    """Check a result count; ``message`` may use ``{0}`` and ``{1}`` for both."""
    detail = message.format(expected, actual)
    if actual < expected:
        fail(f"Too little results: {detail}")
    if actual > expected:
        fail(f"Too many results: {detail}")
