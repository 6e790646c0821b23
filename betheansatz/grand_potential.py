"""
Grand potential per site of the 1D Hubbard model,

    H = -sum (c+_i c_{i+1} + h.c.) + U sum n_up n_down - (mu + U/2) N,

so that mu = 0 is half filling and the empty lattice has Omega = 0.
"""
import numpy as np

from .thermal import ThermalSolver, softplus, thermal_kernels


LN2 = np.log(2.0)


def high_temperature_limit(grounded, T):
    """Leading large-T behaviour -T (ln 2 int rho0 + ln 4 int sigma0) = -T ln 4."""
    kernels = thermal_kernels(grounded)
    return -T * (LN2 * kernels.charge_density.sum() + 2.0 * LN2 * kernels.spin_density.sum())


class GrandPotential:
    """
    Grand potential per site at one (mu, T) point:

        Omega = E0 - mu - int dk rho0(k) T ln(1 + zeta(k))
                        - int dlam sigma0(lam) T ln(1 + eta_1(lam))

    with E0 = int dk/2pi kappa(k) the half-filled ground-state energy and
    zeta, eta_1 solved from the string hierarchy at -|mu|. Particle-hole
    symmetry, Omega(mu) = Omega(-mu) - 2 mu, covers mu > 0. At T = 0 and
    inside the Mott gap this is int dk/2pi min(0, kappa - mu).

    The Grounded state is only read.
    """

    NAME = "Grand Potential"

    def __init__(self, grounded, mu, T, strings=10, mixing=0.5, tolerance=1e-10,
                 max_iterations=2000):
        """
        Args:
            grounded (Grounded): Converged dressed energies shared across the grid
            mu (float): Chemical potential, measured from half filling
            T (float): Temperature, T >= 0
            strings (int): Strings kept in each tower of the hierarchy

        The remaining arguments go to ThermalSolver.
        """
        mu = float(mu)
        T = float(T)
        if not np.isfinite(mu):
            raise ValueError(f"mu must be finite, got {mu}")
        if not np.isfinite(T) or T < 0:
            raise ValueError(f"T must be finite and non-negative, got {T}")
        self.grounded = grounded
        self.mu = mu
        self.T = T
        self.solver = ThermalSolver(grounded, strings=strings, mixing=mixing,
                                    tolerance=tolerance, max_iterations=max_iterations)
        self._state = None

    @property
    def kernels(self):
        return self.solver.kernels

    @property
    def state(self):
        """ThermalState at (-|mu|, T), solved on first use."""
        if self._state is None:
            self._state = self.solver.solve(-abs(self.mu), self.T)
        return self._state

    def charge_part(self):
        return -float(np.dot(self.kernels.charge_density, softplus(self.state.kappa, self.T)))

    def spin_part(self):
        return -float(np.dot(self.kernels.spin_density, softplus(self.state.epsilon[0], self.T)))

    def __call__(self):
        """
        Evaluate Omega(mu, T).

        Returns:
            float: The grand potential per site

        Raises:
            SolverNonConvergence: if the string hierarchy does not converge
            FloatingPointError: if the result is not finite
        """
        omega = self.kernels.ground_energy - self.mu + self.charge_part() + self.spin_part()
        if not np.isfinite(omega):
            raise FloatingPointError(
                f"Non-finite grand potential at mu={self.mu}, T={self.T}: {omega}")
        return omega


def ground_state_potential(grounded, mu, **kwargs):
    """
    Zero-temperature limit of the grand potential.

    Inside the Mott gap this is int dk/2pi min(0, kappa - mu); outside it the
    Fermi points of the partly filled band come out of the T = 0 hierarchy.

    Args:
        grounded (Grounded): Converged dressed energies
        mu (float): Chemical potential

    Returns:
        float: Omega(mu, T = 0)
    """
    return GrandPotential(grounded, mu, 0.0, **kwargs)()
