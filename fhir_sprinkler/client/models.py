"""Models for FHIR wire payloads and response metadata."""

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from pydantic import Field, ValidationError

from fhir_sprinkler.client.formats import format_from_content_type
from fhir_sprinkler.models.base import Model

Resource: TypeAlias = dict[str, Any]

_IDENTITY_PATTERN = re.compile(
    r"(?:^|/)(?P<type>[A-Z][A-Za-z]+)/(?P<id>[A-Za-z0-9\-.]{1,64})"
    r"(?:/_history/(?P<version>[A-Za-z0-9\-.]{1,64}))?/?$"
)


class OperationOutcomeIssue(Model):
    """A single issue of an OperationOutcome."""

    severity: str
    code: str
    diagnostics: str | None = None
    details: Mapping[str, Any] | None = None


class OperationOutcome(Model):
    """Structured diagnostics returned by a FHIR server."""

    resource_type: Literal["OperationOutcome"] = Field(
        default="OperationOutcome", alias="resourceType"
    )
    issue: Sequence[OperationOutcomeIssue] = ()

    def diagnostics(self) -> Sequence[str]:
        """Human readable text of every issue, skipping stack traces."""
        messages: list[str] = []
        for issue in self.issue:
            text = issue.diagnostics or (issue.details or {}).get("text")
            if text and not text.startswith("Stack"):
                messages.append(text)
        return messages

    def has_errors(self) -> bool:
        """Whether any issue has error or fatal severity."""
        return any(issue.severity in {"error", "fatal"} for issue in self.issue)


class BundleLink(Model):
    """Navigation link of a bundle."""

    relation: str
    url: str


class BundleEntry(Model):
    """Entry of a bundle; the resource stays a plain mapping."""

    full_url: str | None = Field(default=None, alias="fullUrl")
    resource: Resource | None = None
    request: Mapping[str, Any] | None = None
    response: Mapping[str, Any] | None = None


class Bundle(Model):
    """Search or history result bundle."""

    resource_type: Literal["Bundle"] = Field(default="Bundle", alias="resourceType")
    type: str
    total: int | None = None
    link: Sequence[BundleLink] = ()
    entry: Sequence[BundleEntry] = ()

    def link_url(self, relation: str) -> str | None:
        """Return the URL of the link with the given relation."""
        for link in self.link:
            if link.relation == relation:
                return link.url
        return None

    def resources(self) -> Sequence[Resource]:
        """Resources of all entries that carry one (deletions do not)."""
        return [entry.resource for entry in self.entry if entry.resource is not None]


@dataclass(frozen=True, kw_only=True)
class ResourceIdentity:
    """Type, id and optional version of a resource reference."""

    resource_type: str
    id: str
    version_id: str | None = None

    @classmethod
    def parse(cls, reference: str | None) -> "ResourceIdentity | None":
        """Parse ``[base/]Type/id[/_history/vid]``; return None if it does not match."""
        if not reference:
            return None
        path = reference.split("?", 1)[0].split("#", 1)[0]
        match = _IDENTITY_PATTERN.search(path)
        if match is None:
            return None
        return cls(
            resource_type=match["type"],
            id=match["id"],
            version_id=match["version"],
        )

    @classmethod
    def of(cls, resource: Mapping[str, Any] | None) -> "ResourceIdentity | None":
        """Build the identity from the resourceType, id and meta.versionId elements."""
        if not resource or not resource.get("id"):
            return None
        meta = resource.get("meta") or {}
        return cls(
            resource_type=resource["resourceType"],
            id=resource["id"],
            version_id=meta.get("versionId"),
        )

    @property
    def has_version(self) -> bool:
        """Whether this is a version-specific reference."""
        return self.version_id is not None

    def without_version(self) -> "ResourceIdentity":
        """Return the identity of the current version."""
        return ResourceIdentity(resource_type=self.resource_type, id=self.id)

    def __str__(self) -> str:
        """Relative reference, e.g. ``Patient/1/_history/2``."""
        if self.version_id is None:
            return f"{self.resource_type}/{self.id}"
        return f"{self.resource_type}/{self.id}/_history/{self.version_id}"


@dataclass(frozen=True, kw_only=True)
class LastResult:
    """Status, headers and raw body of the most recent HTTP interaction."""

    method: str
    url: str
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        """Return a header value, or None when it is absent or empty.

        Names match case-insensitively.
        """
        if (value := self.headers.get(name)) is None:
            lowered = name.lower()
            value = next(
                (v for k, v in self.headers.items() if k.lower() == lowered), None
            )
        return value or None

    @property
    def content_type(self) -> str | None:
        """Content-Type header."""
        return self.header("Content-Type")

    @property
    def content_location(self) -> str | None:
        """Content-Location header."""
        return self.header("Content-Location")

    @property
    def location(self) -> str | None:
        """Location header."""
        return self.header("Location")

    @property
    def last_modified(self) -> str | None:
        """Last-Modified header."""
        return self.header("Last-Modified")

    @property
    def etag(self) -> str | None:
        """ETag header."""
        return self.header("ETag")

    def resource(self) -> Resource | None:
        """Parse the body as a JSON resource; non-JSON bodies yield None."""
        if not self.body or format_from_content_type(self.content_type) != "json":
            return None
        data = json.loads(self.body)
        return data if isinstance(data, dict) else None

    def operation_outcome(self) -> OperationOutcome | None:
        """Return the OperationOutcome carried by the body, if any."""
        try:
            data = self.resource()
        except ValueError:
            return None
        if data is None or data.get("resourceType") != "OperationOutcome":
            return None
        try:
            return OperationOutcome.model_validate(data)
        except ValidationError:
            return None
