"""
Dressed energies of the 1D Hubbard model away from half filling and T = 0.

At T > 0 the string hypothesis, written with the s kernel, couples the
charge function zeta(k), the spin strings eta_n(lam) and the k-lambda
strings eta'_n(lam), n = 1 .. strings:

    ln zeta(k) = kappa(k)/T + s * ln[(1 + eta'_1)/(1 + eta_1)] (sin k)
    ln eta_1   = s * ln(1 + eta_2)  - int dk cos k s(lam - sin k) ln(1 + 1/zeta(k))
    ln eta'_1  = s * ln(1 + eta'_2) - int dk cos k s(lam - sin k) ln(1 + zeta(k))
    ln eta_n   = s * ln[(1 + eta_{n-1})(1 + eta_{n+1})]          (same for eta'_n)

kappa is the half-filled charge dressed energy of the Grounded state. The
towers obey lim ln eta_n / n = 0 and lim ln eta'_n / n = 2|mu|/T, and are
solved for T ln(...).

At T = 0 and mu <= 0 the k-lambda strings are empty, the spin strings
n >= 2 vanish, and what is left is

    kappa(k) = kappa_0(k) - mu + int dlam a_1(sin k - lam) (eps - eps_0)(lam)
    eps(lam) = int dk cos k s(lam - sin k) min(kappa(k), 0)

with kappa_0, eps_0 the half-filled solution.
"""
import functools
from dataclasses import dataclass, field

import numpy as np

from .grounded import iterate
from .models import HubbardModel, a_kernel, s_kernel


def softplus(energy, T):
    """T ln(1 + e^{energy/T}), equal to max(energy, 0) at T = 0."""
    if T == 0.0:
        return np.maximum(energy, 0.0)
    return T * np.logaddexp(0.0, energy / T)


def string_asymptotes(total, bias, T):
    """
    T ln(1 + eta_n) far out on the rapidity axis, for n = 1 .. total + 1.

    The constant solution of a string tower with lim ln eta_n / n = 2|bias|/T
    is 1 + eta_n = [sinh((n + 1) x) / sinh x]^2 with x = |bias|/T.

    Args:
        total (int): Number of strings kept
        bias (float): mu for the k-lambda strings, the magnetic field for spin strings
        T (float): Temperature, T > 0

    Returns:
        numpy.ndarray: Shape (total + 1,)
    """
    n = np.arange(1, total + 2, dtype=float)
    x = abs(bias) / T
    if x == 0.0:
        return 2.0 * T * np.log(n + 1.0)
    return 2.0 * T * (n * x + np.log(-np.expm1(-2.0 * (n + 1.0) * x)) - np.log(-np.expm1(-2.0 * x)))


def _inverse_softplus(values, T):
    # energy e with softplus(e, T) = values, for values > 0
    return values + T * np.log(-np.expm1(-values / T))


@dataclass(frozen=True, eq=False)
class ThermalKernels:
    """
    Mesh matrices shared by every (mu, T) point of one Grounded state.

    Attributes:
        spin: s(lam_i - lam_j) w_j, shape (L, L)
        closure: a_1(lam_i - lam_j) w_j, shape (L, L)
        charge: s(sin k_i - lam_j) w_j, shape (K, L)
        coupling: a_1(sin k_i - lam_j) w_j, shape (K, L)
        driving: cos k_j s(lam_i - sin k_j) w_j, shape (L, K)
        charge_density: rho0(k) w_k, the half-filled charge density times the k weights
        spin_density: sigma0(lam) w_lam
        ground_energy: int dk/2pi kappa(k), the half-filled ground-state energy
    """
    spin: np.ndarray
    closure: np.ndarray
    charge: np.ndarray
    coupling: np.ndarray
    driving: np.ndarray
    charge_density: np.ndarray
    spin_density: np.ndarray
    ground_energy: float

    @classmethod
    def from_grounded(cls, grounded):
        U = grounded.U
        bz_volume = HubbardModel(U).get_bz_volume()
        lam = grounded.lambda_mesh.points
        w = grounded.lambda_mesh.weights
        k = grounded.k_mesh.points
        wk = grounded.k_mesh.weights
        sin_k = np.sin(k)
        cos_k = np.cos(k)

        # cosh overflows for small U far from the diagonal, where s is zero
        with np.errstate(over='ignore'):
            spin = s_kernel(lam[:, np.newaxis] - lam[np.newaxis, :], U) * w
            charge = s_kernel(sin_k[:, np.newaxis] - lam[np.newaxis, :], U) * w
            driving = s_kernel(lam[:, np.newaxis] - sin_k[np.newaxis, :], U) * (cos_k * wk)

        closure = a_kernel(lam[:, np.newaxis] - lam[np.newaxis, :], 1, U) * w
        coupling = a_kernel(sin_k[:, np.newaxis] - lam[np.newaxis, :], 1, U) * w
        rho0 = 1.0 / bz_volume + cos_k * (coupling @ grounded.sigma0)

        return cls(spin=spin,
                   closure=closure,
                   charge=charge,
                   coupling=coupling,
                   driving=driving,
                   charge_density=rho0 * wk,
                   spin_density=grounded.sigma0 * w,
                   ground_energy=grounded.k_mesh.integrate(grounded.kappa) / bz_volume)


@functools.lru_cache(maxsize=8)
def thermal_kernels(grounded):
    """ThermalKernels of a Grounded state, built once per state."""
    return ThermalKernels.from_grounded(grounded)


@dataclass(frozen=True, eq=False)
class ThermalState:
    """
    Converged T ln(...) functions at one (mu, T), mu <= 0.

    Attributes:
        mu, T: The point the equations were solved at
        kappa: T ln zeta on the k mesh
        epsilon: T ln eta_n on the lambda mesh, shape (strings, L)
        epsilon_prime: T ln eta'_n on the lambda mesh, shape (strings, L); None at T = 0
        residuals: Successive fixed-point residuals
    """
    mu: float
    T: float
    kappa: np.ndarray
    epsilon: np.ndarray
    epsilon_prime: np.ndarray = None
    residuals: tuple = field(default=())

    @property
    def iterations(self):
        return len(self.residuals)


class _Hierarchy:
    """The string equations at one (mu, T > 0) as a map on a flat vector."""

    def __init__(self, kernels, kappa, strings, mu, T):
        self.kernels = kernels
        self.kappa = kappa
        self.strings = strings
        self.T = T
        # iterate on O(1) numbers at high temperature
        self.scale = max(T, 1.0)
        self.spin_limits = string_asymptotes(strings, 0.0, T)
        self.charge_limits = string_asymptotes(strings, mu, T)
        self.shape = (2, strings, kernels.spin.shape[0])

    def pack(self, kappa, epsilon, epsilon_prime):
        return np.concatenate([kappa, epsilon.ravel(), epsilon_prime.ravel()]) / self.scale

    def unpack(self, x):
        x = x * self.scale
        size = len(self.kappa)
        towers = x[size:].reshape(self.shape)
        return x[:size], towers[0], towers[1]

    def initial(self, epsilon_ground, mu):
        lam_total = self.shape[2]
        limits = _inverse_softplus(self.spin_limits[:self.strings], self.T)
        epsilon = np.tile(limits[:, np.newaxis], (1, lam_total))
        epsilon[0] += epsilon_ground
        limits = _inverse_softplus(self.charge_limits[:self.strings], self.T)
        epsilon_prime = np.tile(limits[:, np.newaxis], (1, lam_total))
        return self.pack(self.kappa - mu, epsilon, epsilon_prime)

    def _tower(self, P, limits):
        """s * [P_{n-1} + P_{n+1}] with P_0 = 0, for P_n = T ln(1 + eta_n) tending to limits[n - 1]."""
        n = self.strings
        values = np.zeros_like(P)
        values[1:] += P[:-1]
        values[:-1] += P[1:]
        # the string above the last follows the decaying large-n mode
        values[-1] += limits[n] + self.kernels.closure @ (P[-1] - limits[n - 1])

        far = np.zeros(n)
        far[1:] += limits[:n - 1]
        far += limits[1:n + 1]
        # the remainder decays on the mesh; the constant convolves with int s = 1/2
        return (values - far[:, np.newaxis]) @ self.kernels.spin.T + 0.5 * far[:, np.newaxis]

    def step(self, x):
        kappa, epsilon, epsilon_prime = self.unpack(x)
        T = self.T
        P = softplus(epsilon, T)
        P_prime = softplus(epsilon_prime, T)

        far = self.charge_limits[0] - self.spin_limits[0]
        new_kappa = self.kappa + self.kernels.charge @ (P_prime[0] - P[0] - far) + 0.5 * far

        new_epsilon = self._tower(P, self.spin_limits)
        new_epsilon[0] -= self.kernels.driving @ softplus(-kappa, T)

        new_epsilon_prime = self._tower(P_prime, self.charge_limits)
        new_epsilon_prime[0] -= self.kernels.driving @ softplus(kappa, T)

        return self.pack(new_kappa, new_epsilon, new_epsilon_prime)


class ThermalSolver:
    """Solves the dressed-energy equations at (mu <= 0, T) on the meshes of a Grounded state."""

    NAME = "Thermal"

    def __init__(self, grounded, strings=10, mixing=0.5, tolerance=1e-10, max_iterations=2000,
                 history=5, verbose=False):
        """
        Args:
            grounded (Grounded): Half-filled dressed energies and meshes
            strings (int): Spin and k-lambda strings kept in each tower
            mixing (float): Linear mixing weight of the iteration
            tolerance (float): Max-norm fixed-point residual at which to stop
            max_iterations (int): Iteration cap
            history (int): Anderson acceleration depth, 0 for plain mixing
            verbose (bool): Print iteration progress
        """
        if strings < 1:
            raise ValueError(f"strings must be at least 1, got {strings}")
        self.grounded = grounded
        self.strings = int(strings)
        self.mixing = mixing
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.history = history
        self.verbose = verbose
        self.kernels = thermal_kernels(grounded)

    def solve(self, mu, T):
        """
        Converge the dressed energies at one point below or at half filling.

        Args:
            mu (float): Chemical potential, mu <= 0
            T (float): Temperature, T >= 0

        Returns:
            ThermalState

        Raises:
            SolverNonConvergence: if the iteration diverges or hits its cap
        """
        if mu > 0:
            raise ValueError(f"dressed energies are solved for mu <= 0, got {mu}")
        if T < 0:
            raise ValueError(f"T must be non-negative, got {T}")
        if T == 0.0:
            return self._solve_ground_state(mu)

        hierarchy = _Hierarchy(self.kernels, self.grounded.kappa, self.strings, mu, T)
        x, residuals = self._iterate(hierarchy.step, hierarchy.initial(self.grounded.epsilon, mu))
        kappa, epsilon, epsilon_prime = hierarchy.unpack(x)
        return ThermalState(mu=mu, T=T, kappa=kappa, epsilon=epsilon,
                            epsilon_prime=epsilon_prime, residuals=tuple(residuals))

    def _solve_ground_state(self, mu):
        g = self.grounded
        kernels = self.kernels

        def step(kappa):
            epsilon = kernels.driving @ np.minimum(kappa, 0.0)
            return g.kappa - mu + kernels.coupling @ (epsilon - g.epsilon)

        kappa, residuals = self._iterate(step, g.kappa - mu)
        epsilon = np.zeros((self.strings, len(g.epsilon)))
        epsilon[0] = kernels.driving @ np.minimum(kappa, 0.0)
        return ThermalState(mu=mu, T=0.0, kappa=kappa, epsilon=epsilon,
                            residuals=tuple(residuals))

    def _iterate(self, step, initial):
        return iterate(
            step, initial,
            mixing=self.mixing,
            tolerance=self.tolerance,
            max_iterations=self.max_iterations,
            history=self.history,
            callback=self._report if self.verbose else None,
        )

    def _report(self, iteration, residual):
        if iteration % 10 == 0:
            print(f"  Iteration No. {iteration}, Maximal difference: {residual:.3e}")
