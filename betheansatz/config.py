"""
Run parameters for the grand-potential grid and their JSON input file.

Example input file:

    {
        "U": 4.0,
        "temperature_begin": 0.1, "temperature_step": 0.1, "temperature_total": 5,
        "mu_begin": -2.0, "mu_step": 1.0, "mu_total": 3,
        "mesh_k_total": 200, "mesh_lambda_total": 2000,
        "threads": 2, "log_root": "runs/omega"
    }
"""
import json
from dataclasses import dataclass, fields, replace
from typing import Optional

import numpy as np

from .errors import ConfigurationError


REQUIRED_KEYS = (
    'U',
    'temperature_begin', 'temperature_step', 'temperature_total',
    'mu_begin', 'mu_step', 'mu_total',
)


@dataclass(frozen=True)
class Parameters:
    """
    Validated, immutable description of one run.

    Attributes:
        U: On-site interaction strength
        temperature_begin, temperature_step, temperature_total: Temperature axis
        mu_begin, mu_step, mu_total: Chemical potential axis
        mesh_k_total: Points of the Brillouin-zone mesh
        mesh_lambda_total: Points of the rapidity mesh
        threads: Number of grid workers
        log_root: Per-worker logs go to f"{log_root}{index}.txt"; None disables them
        lambda_cutoff: Rapidity cutoff, None picks one from U
        tolerance: Fixed-point tolerance of the dressed-energy solve
        max_iterations: Iteration cap of the dressed-energy solve
        mixing: Linear mixing weight of the dressed-energy and string-hierarchy solves
        strings: Strings kept in each tower of the finite-temperature hierarchy
        thermal_tolerance: Fixed-point tolerance of the string hierarchy at each grid point
        thermal_max_iterations: Iteration cap of the string hierarchy
    """
    U: float
    temperature_begin: float
    temperature_step: float
    temperature_total: int
    mu_begin: float
    mu_step: float
    mu_total: int
    mesh_k_total: int = 1000
    mesh_lambda_total: int = 2000
    threads: int = 1
    log_root: Optional[str] = None
    lambda_cutoff: Optional[float] = None
    tolerance: float = 1e-12
    max_iterations: int = 500
    mixing: float = 0.5
    strings: int = 10
    thermal_tolerance: float = 1e-10
    thermal_max_iterations: int = 2000

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Raise ConfigurationError describing every invalid field at once."""
        problems = []

        if not self.U > 0:
            problems.append(f"U must be positive (got {self.U})")
        if self.temperature_total <= 0:
            problems.append(f"temperature_total must be positive (got {self.temperature_total})")
        if not self.temperature_step > 0:
            problems.append(f"temperature_step must be positive (got {self.temperature_step})")
        if not self.temperature_begin >= 0:
            problems.append(f"temperature_begin must be non-negative (got {self.temperature_begin})")
        if self.mu_total <= 0:
            problems.append(f"mu_total must be positive (got {self.mu_total})")
        if not self.mu_step > 0:
            problems.append(f"mu_step must be positive (got {self.mu_step})")
        if self.mesh_k_total < 2:
            problems.append(f"mesh_k_total must be at least 2 (got {self.mesh_k_total})")
        if self.mesh_lambda_total < 2:
            problems.append(f"mesh_lambda_total must be at least 2 (got {self.mesh_lambda_total})")
        if self.threads < 1:
            problems.append(f"threads must be at least 1 (got {self.threads})")
        if self.lambda_cutoff is not None and not self.lambda_cutoff > 0:
            problems.append(f"lambda_cutoff must be positive (got {self.lambda_cutoff})")
        if not self.tolerance > 0:
            problems.append(f"tolerance must be positive (got {self.tolerance})")
        if self.max_iterations < 1:
            problems.append(f"max_iterations must be at least 1 (got {self.max_iterations})")
        if not 0.0 < self.mixing <= 1.0:
            problems.append(f"mixing must lie in (0, 1] (got {self.mixing})")
        if self.strings < 1:
            problems.append(f"strings must be at least 1 (got {self.strings})")
        if not self.thermal_tolerance > 0:
            problems.append(f"thermal_tolerance must be positive (got {self.thermal_tolerance})")
        if self.thermal_max_iterations < 1:
            problems.append(
                f"thermal_max_iterations must be at least 1 (got {self.thermal_max_iterations})")

        if problems:
            raise ConfigurationError("Invalid parameters: " + "; ".join(problems))

    def temperatures(self):
        return self.temperature_begin + self.temperature_step * np.arange(self.temperature_total)

    def chemical_potentials(self):
        return self.mu_begin + self.mu_step * np.arange(self.mu_total)

    def with_threads(self, threads):
        """Copy with a different worker count (command-line override)."""
        return replace(self, threads=threads)

    @classmethod
    def from_dict(cls, values):
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(values) - set(known))
        if unknown:
            raise ConfigurationError(f"Unknown parameters: {', '.join(unknown)}")
        missing = [key for key in REQUIRED_KEYS if key not in values]
        if missing:
            raise ConfigurationError(f"Missing required parameters: {', '.join(missing)}")

        converted = {}
        for key, value in values.items():
            converted[key] = _convert(key, value, known[key].type)
        return cls(**converted)

    @classmethod
    def from_json(cls, path):
        """Read parameters from a JSON object file."""
        try:
            with open(path) as f:
                values = json.load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read input file '{path}': {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Input file '{path}' is not valid JSON: {e}") from e

        if not isinstance(values, dict):
            raise ConfigurationError(f"Input file '{path}' must hold a JSON object")
        return cls.from_dict(values)


def _convert(key, value, annotation):
    if value is None:
        if annotation in (int, float):
            raise ConfigurationError(f"{key} must not be null")
        return None
    try:
        if annotation is int or annotation == Optional[int]:
            if isinstance(value, bool) or float(value) != int(value):
                raise ValueError
            return int(value)
        if annotation is float or annotation == Optional[float]:
            if isinstance(value, bool):
                raise ValueError
            return float(value)
        if annotation == Optional[str]:
            return str(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} has invalid value {value!r}") from None
    return value
