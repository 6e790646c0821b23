"""
Command-line interface for grand-potential scans of the 1D Hubbard model.

Usage:
    betheansatz -f input.json -t 4 -p 8
    python -m betheansatz.main -f input.json --csv data/omega.csv --plot figs/omega.png

The result matrix is printed to standard output, one row per temperature,
values separated by spaces.
"""

import argparse
import os
import sys
import time

from .config import Parameters
from .errors import BetheAnsatzError, ConfigurationError
from .grid import GridDriver
from .grounded import GroundedSolver
from .models import HubbardModel
from .utils import IntegrationManager, format_matrix, save_results_to_txt, \
                   save_results_to_dataframe, plot_grand_potential


def build_parser():
    parser = argparse.ArgumentParser(
        description="Compute the grand potential of the 1D Hubbard model on a (T, mu) grid.")
    parser.add_argument('-f', '--input', type=str, required=True,
                        help='JSON parameter file.')
    parser.add_argument('-t', '--threads', type=int, default=None,
                        help='Number of worker threads (overrides the input file).')
    parser.add_argument('-p', '--precision', type=int, default=6,
                        help='Significant digits of the printed values.')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Print solver and grid progress.')
    parser.add_argument('--txt', type=str, default=None,
                        help='Also save a labelled text table to this path.')
    parser.add_argument('--csv', type=str, default=None,
                        help='Also save a (T, mu, omega) CSV file to this path.')
    parser.add_argument('--plot', type=str, default=None,
                        help='Also save a plot of Omega to this path.')
    return parser


def load_parameters(args):
    """Parameters from the input file, with command-line overrides applied."""
    parameters = Parameters.from_json(args.input)
    if args.threads is not None:
        parameters = parameters.with_threads(args.threads)
    if args.precision < 1:
        raise ConfigurationError(f"precision must be at least 1 (got {args.precision})")
    return parameters


def run(parameters, verbose=False):
    """
    Solve once, then scan the grid.

    Returns:
        dict: 'temperatures', 'mus' and the 'omega' matrix
    """
    solver = GroundedSolver(
        parameters.U,
        parameters.mesh_k_total,
        parameters.mesh_lambda_total,
        integrator=IntegrationManager(),
        lambda_cutoff=parameters.lambda_cutoff,
        tolerance=parameters.tolerance,
        max_iterations=parameters.max_iterations,
        mixing=parameters.mixing,
        verbose=verbose,
    )
    grounded = solver.solve()

    driver = GridDriver(grounded, parameters, verbose=verbose)
    omega = driver.run()
    return {"temperatures": driver.temperatures, "mus": driver.mus, "omega": omega}


def main(argv=None):
    """Main execution function."""

    # --- 1. Parse arguments and parameters ---
    parser = build_parser()
    args = parser.parse_args(argv)
    start_time = time.time()

    try:
        parameters = load_parameters(args)
    except ConfigurationError as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 2

    # --- 2. Solve and scan ---
    try:
        results = run(parameters, verbose=args.verbose)
    except (BetheAnsatzError, FloatingPointError) as e:
        print(f"{parser.prog}: run aborted: {e}", file=sys.stderr)
        return 1

    # --- 3. Print and save ---
    sys.stdout.write(format_matrix(results["omega"], args.precision))

    header = (f"{HubbardModel.NAME} grand potential\n"
              f"Params: U={parameters.U}, K={parameters.mesh_k_total}, L={parameters.mesh_lambda_total}")
    for path in (args.txt, args.csv):
        directory = os.path.dirname(path) if path else ''
        if directory:
            os.makedirs(directory, exist_ok=True)
    if args.txt:
        save_results_to_txt(args.txt, results, header)
    if args.csv:
        save_results_to_dataframe(args.csv, results, header)
    if args.plot:
        plot_grand_potential(results, HubbardModel(parameters.U), args.plot)

    # --- 4. Finish ---
    if args.verbose:
        elapsed_time = time.time() - start_time
        print(f"Total Elapsed Time: {elapsed_time:.4f} s")
    return 0


if __name__ == '__main__':
    sys.exit(main())
