"""
Self-consistent dressed energies of the half-filled 1D Hubbard model.

The spin dressed energy eps(lam) solves

    eps(lam) = eps0(lam) - int dlam' a_2(lam - lam') eps(lam')

on a truncated rapidity mesh. It is found by mixed fixed-point iteration;
the charge dressed energy kappa(k) and the spin rapidity density
sigma0(lam) follow from the converged eps by mesh summation and quadrature.
"""
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .errors import SolverNonConvergence
from .models import HubbardModel, SigmaZero, a_kernel
from .utils import IntegrationManager


def _read_only(values):
    array = np.array(values, dtype=float)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class Mesh:
    """Quadrature nodes and weights over a bounded domain."""
    points: np.ndarray
    weights: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'points', _read_only(self.points))
        object.__setattr__(self, 'weights', _read_only(self.weights))
        if self.points.shape != self.weights.shape:
            raise ValueError("points and weights must have the same shape")

    def __len__(self):
        return len(self.points)

    def integrate(self, values):
        """Weighted sum of samples taken on the mesh points."""
        return float(np.dot(self.weights, values))

    @classmethod
    def periodic(cls, total, lower=-np.pi, upper=np.pi):
        """Uniform periodic mesh on [lower, upper) with equal weights."""
        if total < 2:
            raise ValueError(f"mesh needs at least 2 points, got {total}")
        points = np.linspace(lower, upper, total, endpoint=False)
        weights = np.full(total, (upper - lower) / total)
        return cls(points, weights)

    @classmethod
    def trapezoid(cls, total, cutoff):
        """Closed mesh on [-cutoff, cutoff] with trapezoid weights."""
        if total < 2:
            raise ValueError(f"mesh needs at least 2 points, got {total}")
        points = np.linspace(-cutoff, cutoff, total)
        h = points[1] - points[0]
        weights = np.full(total, h)
        weights[0] = weights[-1] = 0.5 * h
        return cls(points, weights)


def default_lambda_cutoff(U):
    """Rapidity cutoff beyond which eps(lam) ~ exp(-pi |lam| / 2u) is negligible."""
    return max(5.0, 1.0 + 5.0 * U)


def _anderson_mix(inputs, outputs, mixing):
    """Anderson update from the last iterates x_i and their images g(x_i)."""
    x_last = inputs[-1]
    simple = (1.0 - mixing) * x_last + mixing * outputs[-1]
    if len(inputs) < 2:
        return simple

    X = np.asarray(inputs)
    R = np.asarray(outputs) - X
    dX = np.diff(X, axis=0)
    dR = np.diff(R, axis=0)

    gram = dR @ dR.T
    gram[np.diag_indices_from(gram)] += 1e-10 * (np.trace(gram) or 1.0)
    try:
        theta = np.linalg.solve(gram, dR @ R[-1])
    except np.linalg.LinAlgError:
        return simple

    optimal = x_last + R[-1] - theta @ (dX + dR)
    # half of the plain step keeps a bad extrapolation from running away
    return 0.5 * optimal + 0.5 * simple


def iterate(step, initial, mixing=0.5, tolerance=1e-12, max_iterations=500, history=0,
            callback=None):
    """
    Find x = step(x) by mixed Picard iteration, Anderson accelerated when history > 0.

    Args:
        step: Callable mapping an iterate to its image, arrays of shape (n,)
        initial: Starting iterate
        mixing (float): Weight of the image in the plain update, 0 < mixing <= 1
        tolerance (float): Max-norm of step(x) - x at which to stop
        max_iterations (int): Iteration cap
        history (int): Number of past iterates used by the Anderson update
        callback: Optional callable(iteration, residual)

    Returns:
        tuple: (solution, residuals) where residuals[i] is max |step(x) - x| at iteration i

    Raises:
        SolverNonConvergence: if the iterates diverge or the cap is reached first
    """
    if not 0.0 < mixing <= 1.0:
        raise ValueError(f"mixing must lie in (0, 1], got {mixing}")

    x = np.array(initial, dtype=float)
    inputs, outputs = [], []
    residuals = []

    for iteration in range(max_iterations):
        image = step(x)
        residual = float(np.max(np.abs(image - x)))
        residuals.append(residual)

        if callback is not None:
            callback(iteration, residual)

        if not np.isfinite(residual):
            raise SolverNonConvergence(
                f"Iteration diverged at step {iteration}", residuals)

        if residual < tolerance:
            return image, residuals

        if history > 0:
            inputs.append(x)
            outputs.append(image)
            del inputs[:-history], outputs[:-history]
            x = _anderson_mix(inputs, outputs, mixing)
        else:
            x = (1.0 - mixing) * x + mixing * image

    raise SolverNonConvergence(
        f"No fixed point within {max_iterations} iterations "
        f"(last difference {residuals[-1]:.3e}, tolerance {tolerance:.1e})", residuals)


def fixed_point_iteration(bare, kernel, mixing=0.5, tolerance=1e-12, max_iterations=500,
                          initial=None, callback=None):
    """
    Solve x = bare + kernel @ x by linearly mixed Picard iteration.

    Args:
        bare: Driving term, shape (n,)
        kernel: Discretized integral operator (weights included), shape (n, n)
        initial: Starting iterate, defaults to bare

    The remaining arguments are those of iterate().
    """
    bare = np.asarray(bare, dtype=float)
    return iterate(lambda x: bare + kernel @ x,
                   bare if initial is None else initial,
                   mixing=mixing,
                   tolerance=tolerance,
                   max_iterations=max_iterations,
                   callback=callback)


@dataclass(frozen=True, eq=False)
class Grounded:
    """
    Converged half-filled dressed energies. Read-only once published.

    Attributes:
        U: Interaction strength
        k_mesh: Mesh on the Brillouin zone
        lambda_mesh: Mesh on the truncated rapidity axis
        epsilon: Spin dressed energy on lambda_mesh
        kappa: Charge dressed energy (mu = 0) on k_mesh
        sigma0: Spin rapidity density on lambda_mesh
        iterations: Number of fixed-point iterations used
        residuals: Successive fixed-point residuals
    """
    U: float
    k_mesh: Mesh
    lambda_mesh: Mesh
    epsilon: np.ndarray
    kappa: np.ndarray
    sigma0: np.ndarray
    iterations: int = 0
    residuals: tuple = field(default=())

    def __post_init__(self):
        for name in ('epsilon', 'kappa', 'sigma0'):
            object.__setattr__(self, name, _read_only(getattr(self, name)))
        object.__setattr__(self, 'residuals', tuple(self.residuals))
        if self.epsilon.shape != self.lambda_mesh.points.shape:
            raise ValueError("epsilon must be sampled on the lambda mesh")
        if self.sigma0.shape != self.lambda_mesh.points.shape:
            raise ValueError("sigma0 must be sampled on the lambda mesh")
        if self.kappa.shape != self.k_mesh.points.shape:
            raise ValueError("kappa must be sampled on the k mesh")

    def kappa0_reference(self, integrator=None):
        """Closed form -2 cos k - 4 int dlam s(lam - sin k) Re sqrt(1 - (lam - iu)^2) on the k mesh."""
        sigma_zero = SigmaZero(self.U, integrator or IntegrationManager())
        k = self.k_mesh.points
        return np.array([-2.0 * np.cos(kk) - 4.0 * sigma_zero.kappa0_part(kk) for kk in k])


class SolverState(Enum):
    UNSOLVED = "unsolved"
    SOLVED = "solved"


class GroundedSolver:
    """Builds a Grounded state for one interaction strength and pair of mesh sizes."""

    NAME = "Grounded"

    def __init__(self, U, mesh_k_total, mesh_lambda_total, integrator=None, lambda_cutoff=None,
                 tolerance=1e-12, max_iterations=500, mixing=0.5, verbose=False):
        self.model = HubbardModel(U)
        self.mesh_k_total = int(mesh_k_total)
        self.mesh_lambda_total = int(mesh_lambda_total)
        self.integrator = integrator or IntegrationManager()
        self.lambda_cutoff = lambda_cutoff or default_lambda_cutoff(self.model.U)
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.mixing = mixing
        self.verbose = verbose

        self.state = SolverState.UNSOLVED
        self._grounded = None

    @property
    def U(self):
        return self.model.U

    def solve(self):
        """
        Run the self-consistency loop and publish the Grounded state.

        Returns:
            Grounded: The converged state; later calls return the same object

        Raises:
            SolverNonConvergence: if the fixed-point loop hits its cap
            IntegrationNonConvergence: if a sigma0 quadrature fails
        """
        if self.state is SolverState.SOLVED:
            return self._grounded

        if self.verbose:
            print(f"--- Solving {self.model.NAME} dressed energies for U = {self.U} ---")

        k_mesh = Mesh.periodic(self.mesh_k_total, *self.model.INTEGRATION_LIMITS)
        lambda_mesh = Mesh.trapezoid(self.mesh_lambda_total, self.lambda_cutoff)
        lam = lambda_mesh.points

        bare = self.model.spin_driving_term(lam)
        kernel = -a_kernel(lam[:, np.newaxis] - lam[np.newaxis, :], 2, self.U) * lambda_mesh.weights

        epsilon, residuals = fixed_point_iteration(
            bare, kernel,
            mixing=self.mixing,
            tolerance=self.tolerance,
            max_iterations=self.max_iterations,
            callback=self._report if self.verbose else None,
        )

        if self.verbose:
            print(f"Convergence reached after {len(residuals)} iterations")

        k = k_mesh.points
        a1 = a_kernel(np.sin(k)[:, np.newaxis] - lam[np.newaxis, :], 1, self.U)
        kappa = self.model.epsilon(k) + a1 @ (lambda_mesh.weights * epsilon)

        sigma_zero = SigmaZero(self.U, self.integrator)
        sigma0 = np.array([sigma_zero(x) for x in lam])

        self._grounded = Grounded(
            U=self.U,
            k_mesh=k_mesh,
            lambda_mesh=lambda_mesh,
            epsilon=epsilon,
            kappa=kappa,
            sigma0=sigma0,
            iterations=len(residuals),
            residuals=residuals,
        )
        self.state = SolverState.SOLVED
        return self._grounded

    def _report(self, iteration, residual):
        if iteration % 10 == 0:
            print(f"  Iteration No. {iteration}, Maximal difference: {residual:.3e}")
