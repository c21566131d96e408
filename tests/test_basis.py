"""
Tests for collocation abscissae and the Lagrange basis.
"""

import math

import numpy as np
import pytest
from scipy.special import roots_legendre

from collint import registry
from collint.errors import BasisDegenerateError, ConfigurationError
from collint.numerical.basis import collocation_abscissae, lagrange_basis


class TestCollocationAbscissae:
    """Abscissae of the built-in schemes."""

    def test_starts_at_zero(self):
        tau = collocation_abscissae(3, "radau")
        assert tau[0] == 0.0
        assert len(tau) == 4

    def test_radau_degree_three_points(self):
        tau = collocation_abscissae(3, "radau")
        expected = [0.0, (4 - math.sqrt(6)) / 10, (4 + math.sqrt(6)) / 10, 1.0]
        np.testing.assert_allclose(tau, expected, atol=1e-12)

    def test_radau_last_point_is_interval_end(self):
        for degree in range(1, 6):
            assert collocation_abscissae(degree, "radau")[-1] == pytest.approx(1.0, abs=1e-15)

    @pytest.mark.parametrize("degree", [1, 2, 3, 4, 5])
    def test_legendre_matches_shifted_gauss_roots(self, degree):
        roots, _ = roots_legendre(degree)
        expected = np.sort((roots + 1.0) / 2.0)
        tau = collocation_abscissae(degree, "legendre")
        np.testing.assert_allclose(tau[1:], expected, atol=1e-12)

    @pytest.mark.parametrize("scheme", ["radau", "legendre"])
    def test_strictly_increasing(self, scheme):
        tau = collocation_abscissae(5, scheme)
        assert np.all(np.diff(tau) > 0)

    def test_unknown_scheme(self):
        with pytest.raises(ConfigurationError, match="Unknown collocation scheme"):
            collocation_abscissae(3, "chebyshev")

    def test_generator_refusal_is_configuration_error(self, monkeypatch):
        def refuse(degree):
            raise RuntimeError("order not tabulated")

        monkeypatch.setitem(registry._SCHEMES, "refusing", refuse)
        with pytest.raises(ConfigurationError, match="cannot generate"):
            collocation_abscissae(2, "refusing")

    def test_point_at_interval_start_is_degenerate(self, monkeypatch):
        # Lobatto-style points include 0, which coincides with the boundary
        monkeypatch.setitem(registry._SCHEMES, "with_start", lambda d: [0.0, 1.0])
        with pytest.raises(BasisDegenerateError):
            collocation_abscissae(2, "with_start")

    def test_repeated_points_are_degenerate(self, monkeypatch):
        monkeypatch.setitem(registry._SCHEMES, "repeated", lambda d: [0.5, 0.5])
        with pytest.raises(BasisDegenerateError, match="strictly increasing"):
            collocation_abscissae(2, "repeated")

    def test_wrong_point_count_is_degenerate(self, monkeypatch):
        monkeypatch.setitem(registry._SCHEMES, "short", lambda d: [0.5])
        with pytest.raises(BasisDegenerateError, match="produced 1 points"):
            collocation_abscissae(2, "short")


class TestLagrangeBasis:
    """Lagrange polynomial construction."""

    def test_kronecker_property(self):
        tau = collocation_abscissae(4, "legendre")
        basis = lagrange_basis(tau)
        values = np.array([[p(a) for a in tau] for p in basis])
        np.testing.assert_allclose(values, np.eye(len(tau)), atol=1e-12)

    def test_polynomial_degree(self):
        tau = collocation_abscissae(3, "radau")
        for p in lagrange_basis(tau):
            assert p.order == 3

    def test_partition_of_unity(self):
        tau = collocation_abscissae(3, "radau")
        basis = lagrange_basis(tau)
        for x in np.linspace(0.0, 1.0, 7):
            assert sum(p(x) for p in basis) == pytest.approx(1.0, abs=1e-12)

    def test_coincident_abscissae(self):
        with pytest.raises(BasisDegenerateError, match="distinct"):
            lagrange_basis([0.0, 0.5, 0.5, 1.0])
