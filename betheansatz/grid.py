import os
import re
import warnings
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from .errors import LogFileWarning
from .grand_potential import GrandPotential


def partition(total, workers):
    """
    Split range(total) into `workers` contiguous blocks.

    The first total % workers blocks hold one extra item; blocks are empty
    when there are more workers than items.

    Args:
        total (int): Number of items
        workers (int): Number of blocks

    Returns:
        list: One range per worker, disjoint and covering range(total)
    """
    if total < 0:
        raise ValueError(f"total must be non-negative, got {total}")
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")

    size, extra = divmod(total, workers)
    blocks = []
    start = 0
    for index in range(workers):
        stop = start + size + (1 if index < extra else 0)
        blocks.append(range(start, stop))
        start = stop
    return blocks


def log_filename(log_root, index):
    return f"{log_root}{index}.txt"


def remove_stale_logs(log_root):
    """
    Delete f"{log_root}{n}.txt" files left over by a previous run.

    Returns:
        list: Paths that were removed
    """
    directory, prefix = os.path.split(log_root)
    directory = directory or '.'
    if not os.path.isdir(directory):
        return []

    pattern = re.compile(re.escape(prefix) + r"\d+\.txt")
    removed = []
    for name in sorted(os.listdir(directory)):
        if pattern.fullmatch(name):
            path = os.path.join(directory, name)
            os.remove(path)
            removed.append(path)
    return removed


class _WorkerLog:
    """Append-only log of one worker; failures are reported once, then ignored."""

    def __init__(self, path):
        self.path = path
        self.handle = None
        self.failed = False
        if path is None:
            return
        try:
            self.handle = open(path, 'a')
        except OSError as e:
            self._fail(e)

    def _fail(self, error):
        self.failed = True
        warnings.warn(f"Cannot write worker log '{self.path}': {error}", LogFileWarning)

    def write(self, line):
        if self.handle is None or self.failed:
            return
        try:
            self.handle.write(line + "\n")
        except OSError as e:
            self._fail(e)

    def close(self):
        if self.handle is None:
            return
        try:
            self.handle.close()
        except OSError as e:
            if not self.failed:
                self._fail(e)


class GridDriver:
    """Evaluates Omega(mu, T) over the parameter grid with a pool of worker threads."""

    NAME = "Grid Driver"

    def __init__(self, grounded, parameters, threads=None, verbose=False):
        """
        Args:
            grounded (Grounded): Solved dressed energies, shared read-only by all workers
            parameters (Parameters): Grid axes, string-hierarchy settings and log root
            threads (int): Worker count; defaults to parameters.threads
            verbose (bool): Print progress per worker block
        """
        self.grounded = grounded
        self.parameters = parameters
        self.threads = parameters.threads if threads is None else int(threads)
        if self.threads < 1:
            raise ValueError(f"threads must be at least 1, got {self.threads}")
        self.verbose = verbose

        self.temperatures = parameters.temperatures()
        self.mus = parameters.chemical_potentials()

    @property
    def log_root(self):
        return self.parameters.log_root

    @property
    def thermal_options(self):
        p = self.parameters
        return dict(strings=p.strings, mixing=p.mixing,
                    tolerance=p.thermal_tolerance, max_iterations=p.thermal_max_iterations)

    def run(self):
        """
        Fill the (temperature, mu) result matrix.

        Returns:
            numpy.ndarray: Omega values, shape (temperature_total, mu_total)

        Raises:
            Any numeric error raised by a worker aborts the whole run.
        """
        if self.log_root is not None:
            for path in remove_stale_logs(self.log_root):
                if self.verbose:
                    print(f"Removed stale log '{path}'")

        result = np.empty((len(self.temperatures), len(self.mus)))
        blocks = partition(len(self.temperatures), self.threads)

        if self.verbose:
            print(f"--- Running {self.NAME}: {result.shape[0]}x{result.shape[1]} points "
                  f"on {self.threads} thread(s) ---")

        with ThreadPoolExecutor(max_workers=self.threads) as executor:
            futures = [
                executor.submit(self._run_block, index, rows, result)
                for index, rows in enumerate(blocks) if len(rows) > 0
            ]
            for future in futures:
                future.result()

        return result

    def _run_block(self, index, rows, result):
        path = None if self.log_root is None else log_filename(self.log_root, index)
        log = _WorkerLog(path)
        try:
            for i in rows:
                t = self.temperatures[i]
                for j, mu in enumerate(self.mus):
                    omega = GrandPotential(self.grounded, mu, t, **self.thermal_options)()
                    result[i, j] = omega
                    log.write(f"{t:.16g} {mu:.16g} {omega:.16g}")
        finally:
            log.close()

        if self.verbose:
            print(f"Worker {index}: rows {rows.start}..{rows.stop - 1} done")
        return rows
