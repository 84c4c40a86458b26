"""Content negotiation helpers for FHIR resource formats."""

from collections.abc import Mapping
from typing import Literal, TypeAlias

ResourceFormat: TypeAlias = Literal["json", "xml"]

MIME_TYPES: Mapping[ResourceFormat, str] = {
    "json": "application/fhir+json",
    "xml": "application/fhir+xml",
}

# Older servers still answer with the DSTU1/DSTU2 media types.
_FORMAT_BY_MEDIA_TYPE: Mapping[str, ResourceFormat] = {
    "application/fhir+json": "json",
    "application/json+fhir": "json",
    "application/json": "json",
    "application/fhir+xml": "xml",
    "application/xml+fhir": "xml",
    "application/xml": "xml",
    "text/xml": "xml",
}


def media_type(content_type: str | None) -> str | None:
    """Strip parameters from a Content-Type header value."""
    if not content_type:
        return None
    return content_type.split(";", 1)[0].strip().lower()


def format_from_content_type(content_type: str | None) -> ResourceFormat | None:
    """Map a Content-Type header value to a resource format."""
    mime = media_type(content_type)
    if mime is None:
        return None
    return _FORMAT_BY_MEDIA_TYPE.get(mime)


def is_valid_resource_content_type(content_type: str | None) -> bool:
    """Check that a Content-Type denotes a FHIR xml or json resource."""
    return format_from_content_type(content_type) is not None


def is_valid_bundle_content_type(content_type: str | None) -> bool:
    """Check that a Content-Type denotes a FHIR bundle.

    Since DSTU2 bundles are resources and share their media types.
    """
    return is_valid_resource_content_type(content_type)
