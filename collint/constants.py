"""Constants used across collint.

Pure configuration constants (defaults, option names, format tags) are raw
values. Numerical tolerances carry a short note on where they apply.
"""

from __future__ import annotations

# =============================================================================
# Collocation Defaults
# =============================================================================

DEFAULT_COLLOCATION_DEGREE: int = 3
DEFAULT_COLLOCATION_SCHEME: str = "radau"

# Schemes registered at import time; see collint.registry
BUILTIN_COLLOCATION_SCHEMES: tuple[str, ...] = (
    "radau",
    "legendre",
)

# Host option names understood by CollocationConfig.from_options
OPTION_INTERPOLATION_ORDER: str = "interpolation_order"
OPTION_COLLOCATION_SCHEME: str = "collocation_scheme"


# =============================================================================
# DAE Signatures
# =============================================================================

DAE_INPUTS: tuple[str, ...] = ("t", "x", "z", "p", "u")
DAE_OUTPUTS: tuple[str, ...] = ("ode", "alg", "quad")

RDAE_INPUTS: tuple[str, ...] = ("t", "x", "z", "p", "u", "rx", "rz", "rp")
RDAE_OUTPUTS: tuple[str, ...] = ("rode", "ralg", "rquad", "uquad")

# Step function signatures
FSTEP_INPUTS: tuple[str, ...] = ("t0", "h", "x0", "p", "u", "v")
FSTEP_OUTPUTS: tuple[str, ...] = ("xf", "vf", "qf")

BSTEP_INPUTS: tuple[str, ...] = ("t0", "h", "x0", "p", "u", "v", "rx0", "rp", "rv")
BSTEP_OUTPUTS: tuple[str, ...] = ("rxf", "rvf", "rqf", "uqf")


# =============================================================================
# Serialization
# =============================================================================

SERIALIZATION_CLASS_TAG: str = "Collocation"
SERIALIZATION_FORMAT_VERSION: int = 1


# =============================================================================
# Driver / Rootfinder Defaults
# =============================================================================

DEFAULT_FINITE_ELEMENTS: int = 20
DEFAULT_ROOTFINDER: str = "newton"

# Newton residual tolerance; well below the discretization error of any
# supported degree on unit-scale problems
DEFAULT_ROOTFINDER_ABSTOL: float = 1e-12
DEFAULT_ROOTFINDER_MAX_ITER: int = 50
