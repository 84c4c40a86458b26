"""Base model configuration for FHIR wire payloads."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Base model with standard configuration.

    FHIR uses camelCase element names, so fields declare aliases and may be
    populated by either name.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)
