"""
Tests for DAE normalization and reverse-mode derivation.
"""

import casadi as ca
import numpy as np
import pytest

from collint.constants import DAE_INPUTS, DAE_OUTPUTS, RDAE_INPUTS, RDAE_OUTPUTS
from collint.dae import align_backward, normalize_dae, reverse_dae
from collint.errors import DimensionMismatchError


class TestNormalizeDae:
    def test_full_signature_from_partial_function(self, decay_dae):
        f = normalize_dae(decay_dae)
        assert tuple(f.function.name_in()) == DAE_INPUTS
        assert tuple(f.function.name_out()) == DAE_OUTPUTS
        assert f.shape_in("t") == (1, 1)
        assert f.numel_in("z") == 0
        assert f.numel_in("u") == 0
        assert f.numel_out("alg") == 0
        assert f.numel_out("quad") == 1

    def test_evaluates_like_the_source_function(self, decay_dae):
        f = normalize_dae(decay_dae)
        ode, alg, quad = f(0.0, 2.0, ca.DM(0, 1), 3.0, ca.DM(0, 1))
        assert float(ode) == pytest.approx(-6.0)
        assert float(quad) == pytest.approx(2.0)
        assert alg.numel() == 0

    def test_from_expression_dict(self):
        x = ca.SX.sym("x", 2)
        z = ca.SX.sym("z")
        f = normalize_dae({"x": x, "z": z, "ode": ca.vertcat(x[1], -z), "alg": z - x[0]})
        assert f.shape_in("x") == (2, 1)
        assert f.numel_in("z") == 1
        assert f.numel_out("quad") == 0

    def test_matrix_valued_state_keeps_shape(self):
        x = ca.MX.sym("x", 2, 2)
        fn = ca.Function("m", [x], [ca.vec(-x)], ["x"], ["ode"])
        f = normalize_dae(fn)
        assert f.shape_out("ode") == (2, 2)

    def test_unknown_input_name(self):
        x = ca.MX.sym("x")
        w = ca.MX.sym("w")
        fn = ca.Function("bad", [x, w], [x + w], ["x", "w"], ["ode"])
        with pytest.raises(DimensionMismatchError, match="unexpected inputs"):
            normalize_dae(fn)

    def test_unknown_dict_entry(self):
        x = ca.SX.sym("x")
        with pytest.raises(DimensionMismatchError, match="Unknown DAE entries"):
            normalize_dae({"x": x, "ode": -x, "rhs": x})

    def test_ode_size_must_match_state(self):
        x = ca.MX.sym("x", 2)
        fn = ca.Function("bad", [x], [x[0]], ["x"], ["ode"])
        with pytest.raises(DimensionMismatchError, match="'ode' has 1 elements"):
            normalize_dae(fn)

    def test_alg_size_must_match_algebraic(self):
        x = ca.MX.sym("x")
        z = ca.MX.sym("z", 2)
        fn = ca.Function("bad", [x, z], [-x, z[0]], ["x", "z"], ["ode", "alg"])
        with pytest.raises(DimensionMismatchError, match="'alg'"):
            normalize_dae(fn)

    def test_rejects_other_types(self):
        with pytest.raises(DimensionMismatchError, match="casadi.Function or a dict"):
            normalize_dae(lambda x: -x)

    def test_rejects_wrong_kind(self, decay_dae):
        f = normalize_dae(decay_dae)
        with pytest.raises(DimensionMismatchError, match="Expected a backward DAE"):
            normalize_dae(f, "backward")

    def test_backward_signature(self):
        rx = ca.MX.sym("rx")
        x = ca.MX.sym("x")
        fn = ca.Function("g", [x, rx], [x * rx], ["x", "rx"], ["rode"])
        g = normalize_dae(fn, "backward")
        assert tuple(g.function.name_in()) == RDAE_INPUTS
        assert tuple(g.function.name_out()) == RDAE_OUTPUTS


class TestReverseDae:
    def test_outputs_are_vector_jacobian_products(self, semi_explicit_dae):
        f = normalize_dae(semi_explicit_dae)
        g = reverse_dae(f)

        point = {"t": 0.3, "x": [0.5, -0.3], "z": 1.25, "p": 0.7, "u": 0.2}
        seeds = {"rx": [1.0, -2.0], "rz": 0.4, "rp": [0.5, 1.5]}
        res = g.function.call({**point, **seeds})

        # Jacobians of the stacked outputs with respect to each input
        args = {n: ca.MX.sym(n, f.function.sparsity_in(n)) for n in DAE_INPUTS}
        out = ca.vertcat(*f(*(args[n] for n in DAE_INPUTS)))
        seed = np.concatenate([seeds["rx"], [seeds["rz"]], seeds["rp"]])
        for name, rname in [("x", "rode"), ("z", "ralg"), ("p", "rquad"), ("u", "uquad")]:
            jac = ca.Function("dae_jac", [args[n] for n in DAE_INPUTS], [ca.jacobian(out, args[name])])
            J = np.array(jac(*(point[n] for n in DAE_INPUTS)))
            np.testing.assert_allclose(
                np.array(res[rname]).ravel(), J.T @ seed, rtol=1e-12, atol=1e-12,
            )

    def test_shapes_follow_forward(self, semi_explicit_dae):
        g = reverse_dae(normalize_dae(semi_explicit_dae))
        assert g.shape_in("rx") == (2, 1)
        assert g.shape_in("rz") == (1, 1)
        assert g.shape_in("rp") == (2, 1)
        assert g.shape_out("uquad") == (1, 1)


class TestAlignBackward:
    def test_backward_without_control_is_widened(self, semi_explicit_dae):
        f = normalize_dae(semi_explicit_dae)
        x = ca.MX.sym("x", 2)
        rx = ca.MX.sym("rx", 2)
        fn = ca.Function("g", [x, rx], [-rx], ["x", "rx"], ["rode"])
        g = align_backward(f, normalize_dae(fn, "backward"))
        assert g.shape_in("u") == (1, 1)
        assert g.shape_in("z") == (1, 1)
        assert g.shape_in("rx") == (2, 1)

    def test_state_shape_mismatch(self, semi_explicit_dae):
        f = normalize_dae(semi_explicit_dae)
        x = ca.MX.sym("x", 3)
        rx = ca.MX.sym("rx", 3)
        fn = ca.Function("g", [x, rx], [-rx], ["x", "rx"], ["rode"])
        with pytest.raises(DimensionMismatchError, match="input 'x'"):
            align_backward(f, normalize_dae(fn, "backward"))

    def test_rp_must_match_quadrature(self, semi_explicit_dae):
        f = normalize_dae(semi_explicit_dae)
        rx = ca.MX.sym("rx", 2)
        rp = ca.MX.sym("rp", 3)
        fn = ca.Function("g", [rx, rp], [-rx], ["rx", "rp"], ["rode"])
        with pytest.raises(DimensionMismatchError, match="'rp'"):
            align_backward(f, normalize_dae(fn, "backward"))
