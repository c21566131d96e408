"""Polynomial basis and collocation coefficient derivation."""

from __future__ import annotations

from .basis import collocation_abscissae, lagrange_basis
from .coefficients import CoefficientTable, continuity_weights, derive_coefficients

__all__ = [
    "CoefficientTable",
    "collocation_abscissae",
    "continuity_weights",
    "derive_coefficients",
    "lagrange_basis",
]
