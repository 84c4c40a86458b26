"""Configuration of a test run."""

from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr

from fhir_sprinkler.client.formats import ResourceFormat


class RunConfig(BaseModel):
    """Configuration of a test run against one FHIR server."""

    server_url: str
    auth_token: SecretStr | None = None
    preferred_format: ResourceFormat = "json"
    use_format_param: bool = False
    return_full_resource: bool = True
    timeout: float = Field(default=30, gt=0)
    sources: Sequence[str] = ("default",)
    # Directory or zip archive of JSON examples; the packaged set when unset
    fixtures_path: Path | None = None
    # Emit suppressed cases as skipped when a module initialization fails
    report_suppressed_cases: bool = False
