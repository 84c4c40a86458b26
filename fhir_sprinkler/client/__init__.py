"""FHIR REST client used by test modules."""

from fhir_sprinkler.client.client import FhirClient, FhirOperationError, params_resource
from fhir_sprinkler.client.formats import ResourceFormat
from fhir_sprinkler.client.models import (
    Bundle,
    LastResult,
    OperationOutcome,
    Resource,
    ResourceIdentity,
)

__all__ = [
    "Bundle",
    "FhirClient",
    "FhirOperationError",
    "LastResult",
    "OperationOutcome",
    "Resource",
    "ResourceFormat",
    "ResourceIdentity",
    "params_resource",
]
