import numpy as np
import matplotlib.pyplot as plt
import pandas as pd
import os
from scipy.integrate import quad

from .errors import IntegrationNonConvergence


# Set a nice style for the plots
plt.style.use('seaborn-v0_8-whitegrid')


class IntegrationManager:
    """A wrapper to manage global precision settings for integration."""

    def __init__(self, epsabs=1e-10, epsrel=1e-10, limit=200):
        """
        Initialize the integration manager.

        Args:
            epsabs (float): Absolute tolerance for integration
            epsrel (float): Relative tolerance for integration
            limit (int): Maximum number of adaptive subintervals
        """
        self.epsabs = epsabs
        self.epsrel = epsrel
        self.limit = limit

    def quad(self, func, a, b, args=(), **kwargs):
        """
        Wrapper for scipy.integrate.quad with pre-set precision.

        Args:
            func: Function to integrate
            a, b: Integration limits
            args: Additional arguments for the function
            **kwargs: Additional keyword arguments

        Returns:
            tuple: (result, error_estimate)
        """
        kwargs.setdefault('limit', self.limit)
        return quad(func, a, b, args=args, epsabs=self.epsabs, epsrel=self.epsrel, **kwargs)

    def integrate(self, func, pts=None, args=()):
        """
        Integrate func over an interval, failing loudly on non-convergence.

        Args:
            func: Function to integrate, called as func(x, *args)
            pts: None for the whole real line, otherwise a sequence whose
                 first and last entries are the interval ends and whose
                 interior entries are known break points
            args: Additional arguments for the function

        Returns:
            float: The integral

        Raises:
            IntegrationNonConvergence: if quad reports a failure
        """
        if pts is None:
            a, b = -np.inf, np.inf
            interior = None
        else:
            if len(pts) < 2:
                raise ValueError("pts needs at least the two interval ends")
            a, b = pts[0], pts[-1]
            interior = list(pts[1:-1]) or None

        result = self.quad(func, a, b, args=args, points=interior, full_output=1)
        if len(result) > 3:
            value, abserr, _, message = result[:4]
            raise IntegrationNonConvergence(
                f"quad over [{a}, {b}] did not converge "
                f"(value={value:.6e}, abserr={abserr:.3e}): {message}")
        return result[0]


def format_matrix(matrix, precision=6):
    """
    Serializes a result matrix row by row, values separated by spaces.

    Args:
        matrix: 2D array, one row per temperature
        precision (int): Significant digits per value

    Returns:
        str: One line per row, newline terminated
    """
    lines = []
    for row in np.atleast_2d(matrix):
        lines.append(" ".join(f"{value:.{precision}g}" for value in row))
    return "\n".join(lines) + "\n"


def save_results_to_txt(filename, data, header, precision=16):
    """
    Saves human-readable results to a text file.

    Args:
        filename (str): Output file path
        data (dict): Results with 'temperatures', 'mus' and 'omega'
        header (str): Header text for the file
        precision (int): Significant digits per value
    """
    with open(filename, 'w') as f:
        f.write(f"{header}\n=========================\n")
        f.write("# T " + " ".join(f"mu={mu:g}" for mu in data['mus']) + "\n")
        for t, row in zip(data['temperatures'], data['omega']):
            f.write(f"{t:g} " + " ".join(f"{value:.{precision}g}" for value in row) + "\n")

    print(f"Results successfully saved to '{filename}'")


def save_results_to_dataframe(filename, data, header):
    """
    Saves results to a machine-friendly CSV file using Pandas, one row per
    (T, mu) grid point.

    Args:
        filename (str): Output CSV file path
        data (dict): Results with 'temperatures', 'mus' and 'omega'
        header (str): Header text for documentation
    """
    omega = np.asarray(data['omega'])
    if omega.size == 0:
        print("No data to save.")
        return

    print(f"Processing results for: {header}")

    t_grid, mu_grid = np.meshgrid(data['temperatures'], data['mus'], indexing='ij')
    df = pd.DataFrame({
        'T': t_grid.ravel(),
        'mu': mu_grid.ravel(),
        'omega': omega.ravel(),
    })

    df.to_csv(filename, index=False)
    print(f"Results successfully saved to '{filename}' in CSV format.")


def plot_grand_potential(data, model, filename):
    """
    Plots Omega(mu) at every temperature of the grid.

    Args:
        data (dict): Results with 'temperatures', 'mus' and 'omega'
        model: Physical model instance
        filename (str): Output image path
    """
    fig, axes = plt.subplots(1, 2, figsize=(14, 6))
    fig.suptitle(f'{model.NAME} Grand Potential (U={model.U})', fontsize=16)

    mus = np.asarray(data['mus'])
    temperatures = np.asarray(data['temperatures'])
    omega = np.asarray(data['omega'])

    for t, row in zip(temperatures, omega):
        axes[0].plot(mus, row, 'o-', label=f'T={t:g}')
    axes[0].set_title(r'$\Omega$ vs. $\mu$')
    axes[0].set_xlabel(r'$\mu$')
    axes[0].set_ylabel(r'$\Omega$')

    for mu, column in zip(mus, omega.T):
        axes[1].plot(temperatures, column, 's-', label=rf'$\mu$={mu:g}')
    axes[1].set_title(r'$\Omega$ vs. T')
    axes[1].set_xlabel('T')

    for ax in axes:
        ax.grid(True, which="both", ls="--")
        ax.legend()

    plt.tight_layout(rect=[0, 0.03, 1, 0.95])
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)
    plt.savefig(filename)
    print(f"Plot saved to: {filename}")
    plt.close(fig)
