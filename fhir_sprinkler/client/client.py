"""Asynchronous FHIR REST client shared by all test cases of a run."""

import json
import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import aiohttp
from yarl import URL

from fhir_sprinkler.client.formats import MIME_TYPES, ResourceFormat
from fhir_sprinkler.client.models import (
    Bundle,
    LastResult,
    OperationOutcome,
    Resource,
    ResourceIdentity,
)

if TYPE_CHECKING:
    from fhir_sprinkler.config import RunConfig

log = logging.getLogger(__name__)


class FhirOperationError(Exception):
    """Raised when the server answers an interaction with a non-2xx status."""

    def __init__(
        self,
        method: str,
        url: str,
        status: int,
        outcome: OperationOutcome | None = None,
    ) -> None:
        self.method = method
        self.url = url
        self.status = status
        self.outcome = outcome
        message = f"{method} {url} failed with status {status}"
        if outcome is not None and (diagnostics := outcome.diagnostics()):
            message = f"{message}: {'; '.join(diagnostics)}"
        super().__init__(message)

    @property
    def diagnostics(self) -> tuple[str, ...]:
        """Issue texts of the returned OperationOutcome, if any."""
        if self.outcome is None:
            return ()
        return tuple(self.outcome.diagnostics())


@dataclass(kw_only=True)
class FhirClient:
    """FHIR client bound to one server endpoint.

    The client is shared by every test case of a run. Changing
    ``preferred_format`` or ``use_format_param`` affects all later requests.
    ``last_result`` always reflects the most recent HTTP interaction, including
    failed ones.
    """

    base_url: URL
    session: aiohttp.ClientSession = field(repr=False)
    preferred_format: ResourceFormat = "json"
    use_format_param: bool = False
    return_full_resource: bool = True
    last_result: LastResult | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Normalize the endpoint so that relative paths append to it."""
        self.base_url = URL(str(self.base_url).rstrip("/"))

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: "RunConfig"
    ) -> AsyncGenerator["FhirClient", None]:
        """Create client with managed session lifecycle."""
        headers: dict[str, str] = {}
        if config.auth_token is not None:
            headers["Authorization"] = f"Bearer {config.auth_token.get_secret_value()}"
        timeout = aiohttp.ClientTimeout(total=config.timeout)
        async with aiohttp.ClientSession(headers=headers, timeout=timeout) as session:
            yield cls(
                base_url=URL(config.server_url),
                session=session,
                preferred_format=config.preferred_format,
                use_format_param=config.use_format_param,
                return_full_resource=config.return_full_resource,
            )

    def url_for(self, location: str | URL) -> URL:
        """Resolve an absolute URL or a path relative to the endpoint."""
        url = URL(str(location))
        if url.is_absolute():
            return url
        path = str(location).lstrip("/")
        if not path:
            return self.base_url
        return URL(f"{self.base_url}/{path}")

    async def _request(
        self,
        method: str,
        location: str | URL,
        *,
        params: Mapping[str, str] | None = None,
        body: Resource | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> LastResult:
        """Send a request, record ``last_result`` and raise on non-2xx status."""
        url = self.url_for(location)
        query: dict[str, str] = dict(params or {})
        if self.use_format_param:
            query["_format"] = self.preferred_format
        if query:
            url = url.update_query(query)

        request_headers = {"Accept": MIME_TYPES[self.preferred_format]}
        if body is not None:
            request_headers["Content-Type"] = f"{MIME_TYPES['json']}; charset=utf-8"
        request_headers.update(headers or {})

        data = json.dumps(body).encode() if body is not None else None

        log.debug("%s %s", method, url)
        async with self.session.request(
            method, url, data=data, headers=request_headers
        ) as response:
            content = await response.read()
            result = LastResult(
                method=method,
                url=str(url),
                status=response.status,
                headers=dict(response.headers),
                body=content,
            )

        self.last_result = result
        if not 200 <= result.status < 300:
            raise FhirOperationError(
                method, str(url), result.status, result.operation_outcome()
            )
        return result

    def _resource_of(self, result: LastResult) -> Resource | None:
        """Parse the response body, tolerating non-JSON content."""
        try:
            return result.resource()
        except ValueError:
            log.debug("Response body of %s %s is not JSON", result.method, result.url)
            return None

    def _bundle_of(self, result: LastResult) -> Bundle:
        """Parse the response body as a bundle."""
        data = self._resource_of(result)
        if data is None:
            raise ValueError(
                f"Response of {result.method} {result.url} is not a bundle"
            )
        return Bundle.model_validate(data)

    def _prefer(self) -> dict[str, str]:
        """Prefer header asking for the full resource or a minimal response."""
        if self.return_full_resource:
            return {"Prefer": "return=representation"}
        return {"Prefer": "return=minimal"}

    async def create(self, resource: Resource) -> Resource | None:
        """Create a resource with POST to its type endpoint.

        Args:
            resource: Resource to create; ``resourceType`` selects the endpoint

        Returns:
            The stored resource as returned by the server. When the body is
            empty but a Location header is present, the resource is read back
            unless full resources were not requested.

        Raises:
            FhirOperationError: If the server rejects the interaction

        """
        result = await self._request(
            "POST", resource["resourceType"], body=resource, headers=self._prefer()
        )
        if (created := self._resource_of(result)) is not None:
            return created
        if not self.return_full_resource or result.location is None:
            return None
        created = await self.read(result.location)
        # Keep the headers of the create interaction for the caller.
        self.last_result = result
        return created

    async def read(self, location: str, id: str | None = None) -> Resource | None:
        """Read a resource by location, or by type and id.

        Args:
            location: Relative or absolute location, or a resource type when
                ``id`` is given
            id: Logical id of the resource

        Returns:
            The resource, or None when the body is not JSON

        """
        if id is not None:
            location = f"{location}/{id}"
        result = await self._request("GET", location)
        return self._resource_of(result)

    async def update(
        self, resource: Resource, version_aware: bool = False
    ) -> Resource | None:
        """Update a resource with PUT to its location.

        Args:
            resource: Resource with ``id``; ``meta.versionId`` is sent as
                If-Match when ``version_aware`` is set
            version_aware: Whether to perform a version-aware update

        Returns:
            The updated resource, or None when the server returned no body

        """
        identity = ResourceIdentity.of(resource)
        if identity is None:
            raise ValueError("Cannot update a resource without id")
        headers = self._prefer()
        if version_aware and identity.version_id is not None:
            headers["If-Match"] = f'W/"{identity.version_id}"'
        result = await self._request(
            "PUT", str(identity.without_version()), body=resource, headers=headers
        )
        return self._resource_of(result)

    async def delete(self, target: Resource | ResourceIdentity | str) -> None:
        """Delete a resource given the resource, its identity or its location."""
        match target:
            case ResourceIdentity():
                location = str(target.without_version())
            case str():
                location = target
            case _:
                identity = ResourceIdentity.of(target)
                if identity is None:
                    raise ValueError("Cannot delete a resource without id")
                location = str(identity.without_version())
        await self._request("DELETE", location)

    async def search(
        self,
        resource_type: str,
        criteria: Mapping[str, str] | None = None,
        page_size: int | None = None,
    ) -> Bundle:
        """Search resources of a type.

        Args:
            resource_type: Type to search
            criteria: Search parameters, e.g. ``{"_tag": "..."}``
            page_size: Value for ``_count``

        Returns:
            The search result bundle

        """
        params = dict(criteria or {})
        if page_size is not None:
            params["_count"] = str(page_size)
        result = await self._request("GET", resource_type, params=params)
        return self._bundle_of(result)

    async def history(
        self,
        location: str | None = None,
        since: datetime | None = None,
        page_size: int | None = None,
    ) -> Bundle:
        """Fetch history of a resource, a resource type or the whole system.

        Args:
            location: ``Type/id``, ``Type`` or None for system history
            since: Only return versions updated after this instant
            page_size: Value for ``_count``

        Returns:
            The history bundle

        """
        path = "_history" if not location else f"{location.rstrip('/')}/_history"
        params: dict[str, str] = {}
        if since is not None:
            params["_since"] = since.isoformat()
        if page_size is not None:
            params["_count"] = str(page_size)
        result = await self._request("GET", path, params=params)
        return self._bundle_of(result)

    async def operation(
        self,
        location: str | None,
        name: str,
        parameters: Resource | None = None,
    ) -> Resource | None:
        """Invoke a named operation, e.g. ``$validate`` or ``$meta``.

        Args:
            location: ``Type/id``, ``Type`` or None for a system-level operation
            name: Operation name without the leading ``$``
            parameters: Parameters resource posted as body; GET when omitted

        Returns:
            The returned resource, usually Parameters or OperationOutcome

        """
        path = f"${name}" if not location else f"{location.rstrip('/')}/${name}"
        method = "GET" if parameters is None else "POST"
        result = await self._request(method, path, body=parameters)
        return self._resource_of(result)

    async def conformance(self, use_options_verb: bool = False) -> Resource | None:
        """Fetch the server conformance statement via ``metadata`` or OPTIONS."""
        if use_options_verb:
            result = await self._request("OPTIONS", "")
        else:
            result = await self._request("GET", "metadata")
        return self._resource_of(result)

    async def continue_page(
        self, bundle: Bundle, relation: str = "next"
    ) -> Bundle | None:
        """Follow a paging link of a bundle; None when the link is absent."""
        url = bundle.link_url(relation)
        if url is None:
            return None
        result = await self._request("GET", url)
        return self._bundle_of(result)


def params_resource(**values: Any) -> Resource:
    """Build a Parameters resource from keyword values.

    Mappings with ``resourceType`` become ``resource`` parameters; other
    values become ``valueString``.
    """
    parameter: list[dict[str, Any]] = []
    for name, value in values.items():
        if isinstance(value, Mapping) and "resourceType" in value:
            parameter.append({"name": name, "resource": dict(value)})
        elif isinstance(value, Mapping):
            parameter.append({"name": name, **value})
        else:
            parameter.append({"name": name, "valueString": str(value)})
    return {"resourceType": "Parameters", "parameter": parameter}
