"""Registry of test module instances for a run."""

import logging
from dataclasses import dataclass, field
from typing import TypeVar

log = logging.getLogger(__name__)

M = TypeVar("M")


@dataclass(kw_only=True)
class ModuleRegistry:
    """Lazily creates one instance per module type and reuses it.

    State a module keeps between its cases (e.g. resources created by its
    initialization) lives on that instance until ``clear()``.
    """

    _instances: dict[type, object] = field(default_factory=dict, repr=False)

    def get_or_create(self, module_type: type[M]) -> M:
        """Return the cached instance, constructing it on first access.

        Raises:
            Exception: Whatever the module constructor raises

        """
        if (instance := self._instances.get(module_type)) is None:
            log.debug("Creating instance of %s", module_type.__qualname__)
            instance = module_type()
            self._instances[module_type] = instance
        return instance  # type: ignore[return-value]

    def clear(self) -> None:
        """Drop every cached instance."""
        self._instances.clear()

    def __len__(self) -> int:
        return len(self._instances)

    def __contains__(self, module_type: object) -> bool:
        return module_type in self._instances
