"""Example resources used to build prerequisites and generic test cases."""

import json
import logging
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass
from importlib.resources import files
from importlib.resources.abc import Traversable
from pathlib import Path

from fhir_sprinkler.client import Resource

log = logging.getLogger(__name__)

DEFAULT_PACKAGE = "fhir_sprinkler.testset"
DEFAULT_DIRECTORY = "resources"


class FixtureNotFoundError(Exception):
    """Raised when a fixture resource does not exist in the fixture set."""


@dataclass(frozen=True, kw_only=True)
class FixtureProvider:
    """Read-only set of JSON example resources.

    The set is a directory tree or a zip archive; top-level ``*.json`` files
    are the examples, subdirectories hold named fixtures for specific tests
    (e.g. ``validation/patient-invalid.json``).
    """

    root: Traversable

    @classmethod
    def default(cls) -> "FixtureProvider":
        """Fixture set packaged with the built-in test set."""
        return cls(root=files(DEFAULT_PACKAGE) / DEFAULT_DIRECTORY)

    @classmethod
    def from_path(cls, path: Path) -> "FixtureProvider":
        """Fixture set from a directory or a ``.zip`` archive.

        Raises:
            FixtureNotFoundError: If the path does not exist

        """
        if not path.exists():
            raise FixtureNotFoundError(f"Fixture path does not exist: {path}")
        if path.is_file() and path.suffix == ".zip":
            return cls(root=zipfile.Path(path))
        return cls(root=path)

    def _locate(self, name: str) -> Traversable:
        node = self.root
        for part in name.strip("/").split("/"):
            node = node / part
        return node

    def load(self, name: str) -> Resource:
        """Load a fixture by file name, relative to the fixture root.

        Raises:
            FixtureNotFoundError: If no such fixture exists

        """
        node = self._locate(name)
        if not node.is_file():
            raise FixtureNotFoundError(f"Fixture '{name}' not found")
        resource: Resource = json.loads(node.read_text(encoding="utf-8"))
        return resource

    def resources(self) -> Sequence[Resource]:
        """All top-level examples, ordered by file name."""
        nodes = sorted(
            (
                node
                for node in self.root.iterdir()
                if node.is_file() and node.name.endswith(".json")
            ),
            key=lambda node: node.name,
        )
        examples: list[Resource] = []
        for node in nodes:
            resource = json.loads(node.read_text(encoding="utf-8"))
            if isinstance(resource, dict) and "resourceType" in resource:
                examples.append(resource)
            else:
                log.warning("Ignoring fixture without resourceType: %s", node.name)
        return examples

    def resource_types(self) -> Sequence[str]:
        """Distinct resource types of the examples, in first-seen order."""
        return list(dict.fromkeys(r["resourceType"] for r in self.resources()))

    def first_of_type(self, resource_type: str) -> Resource | None:
        """First example of the given type, if any."""
        for resource in self.resources():
            if resource["resourceType"] == resource_type:
                return resource
        return None

    def synthesize(self, resource_type: str) -> Resource:
        """Example resource of a type for creation on a server.

        Uses the first example of the type without its server-assigned
        elements, or a minimal ``{"resourceType": type}``.
        """
        example = self.first_of_type(resource_type)
        if example is None:
            return {"resourceType": resource_type}
        return {
            key: value for key, value in example.items() if key not in {"id", "meta"}
        }
