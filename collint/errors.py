"""Exceptions raised while building a collocation integrator.

Every error here is detected once, at construction, and is fatal to that
construction. Nonlinear convergence failures are not part of this taxonomy;
they surface through the rootfinder's own error channel.
"""

from __future__ import annotations


class CollocationError(Exception):
    """Base class for collocation build errors."""


class ConfigurationError(CollocationError, ValueError):
    """Invalid degree, unknown scheme or plugin, or malformed options/state."""


class BasisDegenerateError(CollocationError, ValueError):
    """Abscissae are not distinct or not ordered; the Lagrange basis is undefined."""


class DimensionMismatchError(CollocationError, ValueError):
    """A DAE function does not match the expected signature or sizes."""
