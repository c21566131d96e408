"""collint: fixed-step collocation integrator for DAEs built on CasADi."""
from __future__ import annotations

from collint.config import CollocationConfig, DriverSettings
from collint.dae import DaeFunction, normalize_dae, reverse_dae
from collint.driver import BackwardResult, FixedStepDriver, ForwardResult
from collint.errors import (
    BasisDegenerateError,
    CollocationError,
    ConfigurationError,
    DimensionMismatchError,
)
from collint.integrator import (
    AdjointStep,
    CollocationIntegrator,
    NoAdjointStep,
    StepFunctions,
    StepMemory,
    build,
)
from collint.logging import get_logger
from collint.numerical import CoefficientTable, derive_coefficients
from collint.registry import (
    available_integrators,
    available_schemes,
    create_integrator,
    register_integrator,
    register_scheme,
)

__version__ = "0.1.0"

log = get_logger(__name__)

__all__ = [
    "AdjointStep",
    "BackwardResult",
    "BasisDegenerateError",
    "CoefficientTable",
    "CollocationConfig",
    "CollocationError",
    "CollocationIntegrator",
    "ConfigurationError",
    "DaeFunction",
    "DimensionMismatchError",
    "DriverSettings",
    "FixedStepDriver",
    "ForwardResult",
    "NoAdjointStep",
    "StepFunctions",
    "StepMemory",
    "available_integrators",
    "available_schemes",
    "build",
    "create_integrator",
    "derive_coefficients",
    "normalize_dae",
    "register_integrator",
    "register_scheme",
    "reverse_dae",
]
