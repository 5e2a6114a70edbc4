# MIT License (see LICENSE)
"""
Error taxonomy for the simulation.

    CoolingSimError
    ├── ConfigurationError   invalid setup, raised before any step runs
    ├── NumericalError       NaN/Inf in force or integration
    ├── InvalidEntity        use of an identifier that is not alive
    └── ResourceExhaustion   source output truncated by the atom cap

ResourceExhaustion is also a RuntimeWarning so it can be issued through
``warnings.warn`` and filtered like any other warning category.
"""
from __future__ import annotations

from typing import Iterable


class CoolingSimError(Exception):
    """Base class for all errors raised by cooling_sim."""


class ConfigurationError(CoolingSimError):
    """
    Invalid simulation setup (geometry, rates, missing grid file, ...).

    Attributes:
        component: Name of the offending configuration component, if known.
    """

    def __init__(self, message: str, component: str | None = None) -> None:
        self.component = component
        if component:
            message = f"[{component}] {message}"
        super().__init__(message)


class NumericalError(CoolingSimError):
    """
    Non-finite value produced by a force system or the integrator.

    Attributes:
        step: Step index at which the value appeared.
        atom_id: Identifier of the affected atom, or None if not atom-specific.
        stage: Pipeline stage that produced the value.
    """

    def __init__(
        self,
        message: str,
        step: int | None = None,
        atom_id: int | None = None,
        stage: str | None = None,
    ) -> None:
        self.step = step
        self.atom_id = atom_id
        self.stage = stage
        super().__init__(message)


class InvalidEntity(CoolingSimError):
    """
    Access to an identifier that was never allocated or is already destroyed.

    Always a programming error (scheduler or dependency bug).
    """

    def __init__(self, ids: Iterable[int], message: str | None = None) -> None:
        self.ids = [int(i) for i in ids]
        shown = self.ids[:8]
        more = "" if len(self.ids) <= 8 else f" (+{len(self.ids) - 8} more)"
        super().__init__(message or f"invalid entity id(s): {shown}{more}")


class ResourceExhaustion(CoolingSimError, RuntimeWarning):
    """Source output was truncated because the configured atom cap was reached."""
