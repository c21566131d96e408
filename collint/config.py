"""
Configuration objects for the collocation integrator and its driver.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

import casadi as ca

from collint.constants import (
    DEFAULT_COLLOCATION_DEGREE,
    DEFAULT_COLLOCATION_SCHEME,
    DEFAULT_FINITE_ELEMENTS,
    DEFAULT_ROOTFINDER,
    DEFAULT_ROOTFINDER_ABSTOL,
    DEFAULT_ROOTFINDER_MAX_ITER,
    OPTION_COLLOCATION_SCHEME,
    OPTION_INTERPOLATION_ORDER,
)
from collint.errors import ConfigurationError
from collint.registry import available_schemes, has_scheme


@dataclass(frozen=True)
class CollocationConfig:
    """Interpolation degree and collocation-point family of one integrator."""

    degree: int = DEFAULT_COLLOCATION_DEGREE
    scheme: str = DEFAULT_COLLOCATION_SCHEME

    def __post_init__(self):
        """Validate collocation settings."""
        # bool is an int subclass but never a meaningful degree
        if isinstance(self.degree, bool) or not isinstance(self.degree, int):
            raise ConfigurationError(
                f"Collocation degree must be an integer, got {self.degree!r}",
            )
        if self.degree < 1:
            raise ConfigurationError(
                f"Collocation degree must be at least 1, got {self.degree}",
            )
        if not has_scheme(self.scheme):
            raise ConfigurationError(
                f"Unknown collocation scheme '{self.scheme}'. "
                f"Available schemes: {available_schemes()}",
            )

    @classmethod
    def from_options(cls, options: dict[str, Any] | None = None) -> CollocationConfig:
        """
        Build a config from host integrator options.

        Args:
            options: Option dictionary
                - interpolation_order: Order of the interpolating polynomials
                - collocation_scheme: Collocation scheme, e.g. radau|legendre
        """
        options = dict(options or {})
        unknown = set(options) - {OPTION_INTERPOLATION_ORDER, OPTION_COLLOCATION_SCHEME}
        if unknown:
            raise ConfigurationError(f"Unknown collocation options: {sorted(unknown)}")
        return cls(
            degree=options.get(OPTION_INTERPOLATION_ORDER, DEFAULT_COLLOCATION_DEGREE),
            scheme=options.get(OPTION_COLLOCATION_SCHEME, DEFAULT_COLLOCATION_SCHEME),
        )

    def to_options(self) -> dict[str, Any]:
        return {
            OPTION_INTERPOLATION_ORDER: self.degree,
            OPTION_COLLOCATION_SCHEME: self.scheme,
        }

    def with_changes(self, **kwargs: Any) -> CollocationConfig:
        """Return a validated copy with some fields replaced."""
        return replace(self, **kwargs)


def _default_rootfinder_options() -> dict[str, Any]:
    return {
        "abstol": DEFAULT_ROOTFINDER_ABSTOL,
        "max_iter": DEFAULT_ROOTFINDER_MAX_ITER,
    }


@dataclass
class DriverSettings:
    """Settings for the fixed-step driver loop."""

    number_of_finite_elements: int = DEFAULT_FINITE_ELEMENTS
    rootfinder: str = DEFAULT_ROOTFINDER
    rootfinder_options: dict[str, Any] = field(default_factory=_default_rootfinder_options)

    def __post_init__(self):
        """Validate driver settings."""
        if self.number_of_finite_elements < 1:
            raise ConfigurationError("Number of finite elements must be at least 1")
        if not ca.has_rootfinder(self.rootfinder):
            raise ConfigurationError(f"Rootfinder plugin '{self.rootfinder}' is not available")
