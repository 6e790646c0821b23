"""
Bethe-Ansatz package for the thermodynamics of the one-dimensional Hubbard model.
"""

from .errors import BetheAnsatzError, ConfigurationError, IntegrationNonConvergence, \
                   SolverNonConvergence, LogFileWarning
from .models import KernelMode, KernelParams, HubbardModel, SigmaZero, \
                   sigma_zero_integrand, s_kernel, a_kernel, bare_spin_energy
from .utils import IntegrationManager, format_matrix, save_results_to_txt, \
                  save_results_to_dataframe, plot_grand_potential
from .grounded import Mesh, Grounded, GroundedSolver, fixed_point_iteration, iterate
from .thermal import ThermalKernels, ThermalSolver, ThermalState, softplus, string_asymptotes
from .grand_potential import GrandPotential, ground_state_potential, high_temperature_limit
from .grid import GridDriver, partition
from .config import Parameters

__all__ = [
    # Errors
    'BetheAnsatzError', 'ConfigurationError', 'IntegrationNonConvergence',
    'SolverNonConvergence', 'LogFileWarning',

    # Kernels and model
    'KernelMode', 'KernelParams', 'HubbardModel', 'SigmaZero',
    'sigma_zero_integrand', 's_kernel', 'a_kernel', 'bare_spin_energy',

    # Solvers
    'Mesh', 'Grounded', 'GroundedSolver', 'fixed_point_iteration', 'iterate',
    'ThermalKernels', 'ThermalSolver', 'ThermalState', 'softplus', 'string_asymptotes',
    'GrandPotential', 'ground_state_potential', 'high_temperature_limit',
    'GridDriver', 'partition',

    # Configuration
    'Parameters',

    # Utilities
    'IntegrationManager',
    'format_matrix',
    'save_results_to_txt',
    'save_results_to_dataframe',
    'plot_grand_potential'
]
