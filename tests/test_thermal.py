import contextlib
import io
import unittest

import numpy

import base
from betheansatz import SolverNonConvergence, ThermalSolver, softplus, string_asymptotes
from betheansatz.thermal import thermal_kernels


class SoftplusTests(unittest.TestCase):
    def test_zero_temperature(self):
        energy = numpy.array([-2.0, 0.0, 3.0])
        numpy.testing.assert_array_equal(softplus(energy, 0.0), [0.0, 0.0, 3.0])

    def test_finite_temperature(self):
        T = 0.1
        self.assertAlmostEqual(softplus(0.0, T), T * numpy.log(2.0), places=15)
        # no overflow far from the crossover
        self.assertAlmostEqual(softplus(1000.0, T), 1000.0, places=10)
        self.assertEqual(softplus(-1000.0, T), 0.0)


class StringAsymptoteTests(unittest.TestCase):
    def test_zero_bias(self):
        T = 0.7
        numpy.testing.assert_allclose(string_asymptotes(5, 0.0, T),
                                      2.0 * T * numpy.log(numpy.arange(2, 8)), rtol=1e-14)

    def test_tower_identity(self):
        # eta_n^2 = (1 + eta_{n-1})(1 + eta_{n+1}) with eta_0 = 0
        T = 0.5
        eta = numpy.expm1(string_asymptotes(6, -0.3, T) / T)
        one_plus = numpy.concatenate([[1.0], 1.0 + eta])
        numpy.testing.assert_allclose(eta[:-1]**2, one_plus[:-2] * one_plus[2:], rtol=1e-10)

    def test_sign_of_bias(self):
        numpy.testing.assert_array_equal(string_asymptotes(4, -0.8, 0.3),
                                         string_asymptotes(4, 0.8, 0.3))

    def test_low_temperature(self):
        # T ln(1 + eta_n) -> 2 n |mu| once |mu| / T is large
        limits = string_asymptotes(4, -10.0, 1e-3)
        self.assertTrue(numpy.all(numpy.isfinite(limits)))
        numpy.testing.assert_allclose(limits, 20.0 * numpy.arange(1, 6), rtol=1e-12)


class ThermalKernelTests(unittest.TestCase):
    def setUp(self):
        self.grounded = base.solved()
        self.kernels = thermal_kernels(self.grounded)

    def test_built_once(self):
        self.assertIs(thermal_kernels(self.grounded), self.kernels)

    def test_shapes(self):
        K, L = base.MESH_K, base.MESH_LAMBDA
        self.assertEqual(self.kernels.spin.shape, (L, L))
        self.assertEqual(self.kernels.closure.shape, (L, L))
        self.assertEqual(self.kernels.charge.shape, (K, L))
        self.assertEqual(self.kernels.coupling.shape, (K, L))
        self.assertEqual(self.kernels.driving.shape, (L, K))

    def test_kernel_weights(self):
        # int s = 1/2; a_1 loses its tails outside the rapidity window
        centre = base.MESH_LAMBDA // 2
        cutoff = self.grounded.lambda_mesh.points[-1]
        self.assertAlmostEqual(self.kernels.spin[centre].sum(), 0.5, places=8)
        self.assertAlmostEqual(self.kernels.closure[centre].sum(),
                               2.0 / numpy.pi * numpy.arctan(cutoff / (0.25 * base.U)), places=5)

    def test_half_filled_densities(self):
        # one electron per site, half of them spin down
        self.assertAlmostEqual(self.kernels.charge_density.sum(), 1.0, places=10)
        self.assertAlmostEqual(self.kernels.spin_density.sum(), 0.5, places=6)
        self.assertTrue(numpy.all(self.kernels.charge_density > 0.0))

    def test_ground_energy(self):
        g = self.grounded
        expected = g.k_mesh.integrate(g.kappa) / (2.0 * numpy.pi)
        self.assertAlmostEqual(self.kernels.ground_energy, expected, places=14)


class ThermalSolverTests(unittest.TestCase):
    def setUp(self):
        self.grounded = base.solved()
        self.solver = ThermalSolver(self.grounded)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            self.solver.solve(0.5, 0.1)
        with self.assertRaises(ValueError):
            self.solver.solve(-0.5, -0.1)
        with self.assertRaises(ValueError):
            ThermalSolver(self.grounded, strings=0)

    def test_finite_temperature_state(self):
        state = self.solver.solve(-1.0, 0.5)
        self.assertEqual((state.mu, state.T), (-1.0, 0.5))
        self.assertEqual(state.kappa.shape, (base.MESH_K,))
        self.assertEqual(state.epsilon.shape, (10, base.MESH_LAMBDA))
        self.assertEqual(state.epsilon_prime.shape, (10, base.MESH_LAMBDA))
        self.assertEqual(state.iterations, len(state.residuals))
        self.assertLess(state.residuals[-1], 1e-10)
        self.assertTrue(numpy.all(numpy.isfinite(state.epsilon)))

    def test_zero_temperature_in_gap(self):
        # the band stays full: kappa shifts rigidly by -mu and eps_1 is the half-filled one
        g = self.grounded
        state = self.solver.solve(-0.3, 0.0)
        self.assertIsNone(state.epsilon_prime)
        numpy.testing.assert_allclose(state.kappa, g.kappa + 0.3, rtol=0, atol=1e-7)
        numpy.testing.assert_allclose(state.epsilon[0], g.epsilon, rtol=0, atol=1e-7)
        self.assertTrue(numpy.all(state.epsilon[1:] == 0.0))

    def test_zero_temperature_doped(self):
        # holes open a Fermi sea: kappa changes sign inside the zone
        state = self.solver.solve(-2.5, 0.0)
        self.assertTrue(numpy.any(state.kappa > 0.0))
        self.assertTrue(numpy.any(state.kappa < 0.0))

    def test_iteration_cap(self):
        solver = ThermalSolver(self.grounded, max_iterations=2)
        with self.assertRaises(SolverNonConvergence):
            solver.solve(-1.0, 0.5)

    def test_verbose(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            ThermalSolver(self.grounded, strings=4, verbose=True).solve(0.0, 1.0)
        self.assertIn("Iteration No. 0", out.getvalue())


if __name__ == '__main__':
    unittest.main()
