"""
Collocation coefficient tables.

For a Lagrange basis ``p_0 .. p_d`` over the abscissae ``a_0 = 0, a_1 .. a_d``:

- ``C[j, r] = p_j'(a_r)`` expresses the state derivative at ``a_r`` as a
  linear combination of the stage values (boundary included);
- ``D[j] = p_j(1)`` maps stage values to the state at the interval end;
- ``B[j] = int_0^1 p_j`` integrates quadratures over the interval.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import numpy as np

from collint.config import CollocationConfig
from collint.logging import get_logger
from collint.numerical.basis import collocation_abscissae, lagrange_basis

log = get_logger(__name__)


@dataclass(frozen=True)
class CoefficientTable:
    """Collocation (C), continuity (D) and quadrature (B) coefficients."""

    config: CollocationConfig
    abscissae: np.ndarray
    C: np.ndarray
    D: np.ndarray
    B: np.ndarray

    @property
    def degree(self) -> int:
        return self.config.degree

    @property
    def scheme(self) -> str:
        return self.config.scheme


def continuity_weights(basis: list[np.poly1d]) -> np.ndarray:
    """Evaluate every basis polynomial at the interval end."""
    return np.array([p(1.0) for p in basis])


@lru_cache(maxsize=None)
def derive_coefficients(config: CollocationConfig) -> CoefficientTable:
    """Calculate collocation coefficients (B, C, D) for ``config``."""
    deg = config.degree
    tau = collocation_abscissae(deg, config.scheme)
    basis = lagrange_basis(tau)

    # Coefficients of the collocation equation
    C = np.zeros((deg + 1, deg + 1))

    # Coefficients of the continuity equation
    D = np.zeros(deg + 1)

    # Coefficients of the quadrature function
    B = np.zeros(deg + 1)

    for j, p in enumerate(basis):
        # Radau places the last collocation point on the interval end
        if config.scheme == "radau":
            D[j] = 1.0 if j == deg else 0.0
        else:
            D[j] = p(1.0)

        pder = np.polyder(p)
        for r in range(deg + 1):
            C[j, r] = pder(tau[r])

        pint = np.polyint(p)
        B[j] = pint(1.0) - pint(0.0)

    for array in (tau, C, D, B):
        array.setflags(write=False)

    log.debug(f"Derived collocation coefficients: {config.scheme}, degree {deg}")
    return CoefficientTable(config=config, abscissae=tau, C=C, D=D, B=B)
