"""Declaration surface for writing test modules."""

from fhir_sprinkler.framework.declarations import (
    CaseProcedure,
    SprinklerModule,
    dynamic_test,
    module_initialize,
    resource_prerequisite,
    sprinkler_module,
    sprinkler_test,
)
from fhir_sprinkler.framework.signals import CaseDispatchError, TestFailed, TestSkipped

__all__ = [
    "CaseDispatchError",
    "CaseProcedure",
    "SprinklerModule",
    "TestFailed",
    "TestSkipped",
    "dynamic_test",
    "module_initialize",
    "resource_prerequisite",
    "sprinkler_module",
    "sprinkler_test",
]
