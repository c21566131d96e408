"""
Scheme and integrator registries.

Two static registries live here:

- collocation schemes: a scheme name maps to an abscissae generator, a callable
  returning the ``degree`` collocation points of the scheme on (0, 1];
- integrator plugins: a plugin name maps to a constructor closure, so a driver
  can select an integrator by name.

Built-in schemes are registered when this module is imported. The
``collocation`` plugin registers itself when ``collint.integrator`` is
imported.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import casadi as ca

from collint.constants import BUILTIN_COLLOCATION_SCHEMES
from collint.errors import ConfigurationError
from collint.logging import get_logger

log = get_logger(__name__)

AbscissaeGenerator = Callable[[int], list[float]]
IntegratorCreator = Callable[..., Any]

_SCHEMES: dict[str, AbscissaeGenerator] = {}
_INTEGRATORS: dict[str, IntegratorCreator] = {}


def register_scheme(name: str, generator: AbscissaeGenerator) -> None:
    """Register an abscissae generator under ``name``, replacing any previous one."""
    if name in _SCHEMES:
        log.warning(f"Replacing collocation scheme '{name}'")
    _SCHEMES[name] = generator
    log.debug(f"Registered collocation scheme '{name}'")


def get_scheme(name: str) -> AbscissaeGenerator:
    """Return the abscissae generator registered under ``name``."""
    try:
        return _SCHEMES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown collocation scheme '{name}'. "
            f"Available schemes: {available_schemes()}",
        ) from None


def has_scheme(name: str) -> bool:
    return name in _SCHEMES


def available_schemes() -> list[str]:
    return sorted(_SCHEMES)


def register_integrator(name: str, creator: IntegratorCreator) -> None:
    """Register an integrator constructor under a plugin name."""
    _INTEGRATORS[name] = creator
    log.debug(f"Registered integrator plugin '{name}'")


def available_integrators() -> list[str]:
    return sorted(_INTEGRATORS)


def create_integrator(
    plugin: str,
    name: str,
    dae: Any,
    rdae: Any = None,
    options: dict[str, Any] | None = None,
) -> Any:
    """
    Construct an integrator by plugin name.

    Args:
        plugin: Registered plugin name, e.g. ``"collocation"``.
        name: Name given to the integrator instance.
        dae: Forward DAE (CasADi Function or expression dict).
        rdae: Optional backward DAE.
        options: Plugin options, e.g. ``{"interpolation_order": 3}``.
    """
    try:
        creator = _INTEGRATORS[plugin]
    except KeyError:
        raise ConfigurationError(
            f"Unknown integrator plugin '{plugin}'. "
            f"Available plugins: {available_integrators()}",
        ) from None
    return creator(name, dae, rdae, options or {})


def _casadi_points(scheme: str) -> AbscissaeGenerator:
    def generator(degree: int) -> list[float]:
        return list(ca.collocation_points(degree, scheme))

    return generator


for _scheme in BUILTIN_COLLOCATION_SCHEMES:
    register_scheme(_scheme, _casadi_points(_scheme))
