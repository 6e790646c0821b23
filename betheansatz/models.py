from dataclasses import dataclass
from enum import Enum

import numpy as np


ONE_OVER_2PI = 0.5 / np.pi


class KernelMode(Enum):
    """Which closed form `sigma_zero_integrand` evaluates."""
    SIGMAZERO = "sigmazero"
    KAPPA0 = "kappa0"


@dataclass(frozen=True)
class KernelParams:
    """
    Fixed parameters of a kernel integrand.

    Attributes:
        U: Interaction strength (U > 0)
        reference: lambda for SIGMAZERO, k for KAPPA0
        mode: KernelMode selecting the closed form
    """
    U: float
    reference: float
    mode: KernelMode = KernelMode.SIGMAZERO

    @property
    def factor1(self):
        return 1.0 / self.U

    @property
    def factor2(self):
        return 2.0 * np.pi / self.U


def s_kernel(y, U):
    """s(y) = (1/U) / cosh(2 pi y / U), normalised to 1/2 over the real line."""
    return (1.0 / U) / np.cosh((2.0 * np.pi / U) * y)


def a_kernel(y, n, U):
    """
    Lorentzian kernel a_n(y) = (1/2pi) 2nu / ((nu)^2 + y^2) with u = U/4.

    Args:
        y: Argument (scalar or array)
        n (int): String length
        U (float): Interaction strength

    Returns:
        a_n(y), same shape as y
    """
    nu = 0.25 * n * U
    return ONE_OVER_2PI * 2.0 * nu / (nu * nu + np.square(y))


def real_sqrt_part(lam, U):
    """Re sqrt(1 - (lam - iU/4)^2), written in real arithmetic."""
    a = 1.0 + 0.0625 * U * U - lam * lam
    b = 0.5 * U * lam
    tmp = a + np.sqrt(a * a + b * b)
    return np.sqrt(0.5 * tmp)


def bare_spin_energy(lam, U):
    """
    Driving term of the half-filled spin dressed-energy equation,
    eps0(lam) = -2 int dk cos^2 k a_1(sin k - lam) = 4u - 4 Re sqrt(1 - (lam - iu)^2).
    """
    return U - 4.0 * real_sqrt_part(lam, U)


def sigma_zero_integrand(x, params):
    """
    Pure integrand for the SIGMAZERO and KAPPA0 integrals.

    For SIGMAZERO the variable x is k and the result is
    (1/2pi) s(reference - sin k). For KAPPA0 the variable x is lambda,
    reference is k, and the result is s(lambda - sin k) Re sqrt(1 - (lambda - iu)^2).

    Args:
        x (float): Integration variable
        params (KernelParams): Fixed parameters

    Returns:
        float: Integrand value
    """
    if params.mode is KernelMode.SIGMAZERO:
        return ONE_OVER_2PI * _s(params.reference - np.sin(x), params)
    return _s(x - np.sin(params.reference), params) * real_sqrt_part(x, params.U)


def _s(y, params):
    return params.factor1 / np.cosh(params.factor2 * y)


class HubbardModel:
    """One-dimensional Hubbard chain with unit hopping at half filling."""

    NAME = "1D Hubbard"
    INTEGRATION_LIMITS = (-np.pi, np.pi)

    def __init__(self, U=4.0):
        """
        Initializes the model.

        Args:
            U: On-site interaction strength
        """
        if not U > 0:
            raise ValueError(f"U must be positive, got {U}")
        self.U = float(U)
        self.u = 0.25 * self.U

    def epsilon(self, k):
        """Bare charge dispersion -2 cos k - 2u (mu measured from half filling)."""
        return -2.0 * np.cos(k) - 2.0 * self.u

    def spin_driving_term(self, lam):
        """Bare spin dressed energy on the rapidity axis."""
        return bare_spin_energy(lam, self.U)

    def get_bz_volume(self):
        """Length of the Brillouin zone."""
        k_min, k_max = self.INTEGRATION_LIMITS
        return k_max - k_min


class SigmaZero:
    """Integrals of the s kernel over the Brillouin zone and the rapidity axis."""

    def __init__(self, U, integrator):
        """
        Args:
            U (float): Interaction strength
            integrator: IntegrationManager used for every quadrature
        """
        self.U = float(U)
        self.integrator = integrator

    def __call__(self, lam):
        """sigma0(lam) = int_{-pi}^{pi} dk/2pi s(lam - sin k)."""
        params = KernelParams(self.U, float(lam), KernelMode.SIGMAZERO)
        pts = (-np.pi, np.pi)
        return self.integrator.integrate(sigma_zero_integrand, pts, args=(params,))

    def kappa0_part(self, k):
        """int dlam s(lam - sin k) Re sqrt(1 - (lam - iu)^2) over the real line."""
        params = KernelParams(self.U, float(k), KernelMode.KAPPA0)
        # cosh overflows far out on the real line, where s is zero anyway
        with np.errstate(over='ignore'):
            return self.integrator.integrate(sigma_zero_integrand, args=(params,))
