"""Payload helpers for FHIR server responses in tests."""

from collections.abc import Mapping, Sequence
from typing import Any

FHIR_JSON = "application/fhir+json; charset=utf-8"
FHIR_XML = "application/fhir+xml; charset=utf-8"


def patient(
    *,
    patient_id: str = "1",
    version_id: str | None = "1",
    family: str = "Chalmers",
    given: Sequence[str] = ("Peter",),
    last_updated: str = "2099-01-01T12:00:00Z",
    tags: Sequence[Mapping[str, str]] = (),
) -> dict[str, Any]:
    """Create a Patient payload as stored by a server."""
    meta: dict[str, Any] = {"lastUpdated": last_updated}
    if version_id is not None:
        meta["versionId"] = version_id
    if tags:
        meta["tag"] = [dict(t) for t in tags]
    return {
        "resourceType": "Patient",
        "id": patient_id,
        "meta": meta,
        "name": [{"use": "official", "family": [family], "given": list(given)}],
    }


def operation_outcome(
    *diagnostics: str, severity: str = "error", code: str = "processing"
) -> dict[str, Any]:
    """Create an OperationOutcome payload with one issue per diagnostic."""
    return {
        "resourceType": "OperationOutcome",
        "issue": [
            {"severity": severity, "code": code, "diagnostics": text}
            for text in diagnostics
        ],
    }


def history_entry(
    resource: Mapping[str, Any],
    *,
    base_url: str = "http://fhir.test",
    method: str = "PUT",
) -> dict[str, Any]:
    """Create a history bundle entry for a stored resource version."""
    location = f"{resource['resourceType']}/{resource['id']}"
    return {
        "fullUrl": f"{base_url}/{location}",
        "resource": dict(resource),
        "request": {"method": method, "url": location},
    }


def bundle(
    *,
    bundle_type: str = "history",
    entries: Sequence[Mapping[str, Any]] = (),
    links: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Create a Bundle payload."""
    return {
        "resourceType": "Bundle",
        "type": bundle_type,
        "total": len(entries),
        "link": [{"relation": rel, "url": url} for rel, url in (links or {}).items()],
        "entry": [dict(entry) for entry in entries],
    }


def conformance(*, fhir_version: str = "1.0.2") -> dict[str, Any]:
    """Create a Conformance payload."""
    return {
        "resourceType": "Conformance",
        "status": "active",
        "date": "2099-01-01",
        "fhirVersion": fhir_version,
        "kind": "instance",
        "format": ["json", "xml"],
        "rest": [{"mode": "server"}],
    }


def resource_headers(
    location: str | None = None,
    *,
    content_type: str = FHIR_JSON,
    last_modified: str | None = "Thu, 01 Jan 2099 12:00:00 GMT",
) -> dict[str, str]:
    """Create response headers of a resource interaction."""
    headers = {"Content-Type": content_type}
    if location is not None:
        headers["Location"] = location
        headers["Content-Location"] = location
    if last_modified is not None:
        headers["Last-Modified"] = last_modified
    return headers
