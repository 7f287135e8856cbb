"""
Immutable configuration records.

Params holds physical constants and the forcing/constitutive strategies;
SolverParams configures the velocity solve; TimesteppingParams and
OutputParams configure a Simulation; InitialConditions seeds a Model.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .forcing import FloatingMeltMassBalance, MassBalance, as_mass_balance
from .physics import (G, RHO_ICE, RHO_OCEAN, Friction, GlenFlowLaw, Rheology,
                      WeertmanFriction)


@dataclass(frozen=True, eq=False)
class Params:
    """
    Physical parameters.

    Units are meters, years and Pa throughout. ``accumulation_rate`` is a
    scalar, an (nx, ny) array, a function f(x, y) or f(x, y, t), or a
    MassBalance instance. ``flow_law`` and ``sliding_law`` are the strategies
    the solver uses: ``rheology`` and ``friction`` when given, otherwise
    built from the Glen and Weertman coefficients.
    """

    gravity: float = G
    density_ice: float = RHO_ICE
    density_ocean: float = RHO_OCEAN
    sea_level: float = 0.0
    accumulation_rate: Any = 0.0
    basal_melt_rate: float = 0.0
    default_thickness: float = 100.0
    glen_a: float = 1.0e-18
    glen_n: float = 3.0
    glen_reg_strain_rate: float = 1.0e-5
    weertman_c: float = 1.0e4
    weertman_m: float = 3.0
    weertman_reg_speed: float = 1.0e-5
    rheology: Optional[Rheology] = None
    friction: Optional[Friction] = None
    flow_law: Rheology = field(init=False, repr=False)
    sliding_law: Friction = field(init=False, repr=False)
    mass_balance: MassBalance = field(init=False, repr=False)

    def __post_init__(self):
        if self.gravity <= 0:
            raise ValueError(f"gravity must be positive, got {self.gravity}")
        if self.density_ice <= 0 or self.density_ocean <= 0:
            raise ValueError("densities must be positive")
        if self.density_ice >= self.density_ocean:
            raise ValueError(
                f"density_ice ({self.density_ice}) must be below "
                f"density_ocean ({self.density_ocean}) for ice to float"
            )
        if self.default_thickness < 0:
            raise ValueError(f"default_thickness must be >= 0, got {self.default_thickness}")

        flow_law = self.rheology
        if flow_law is None:
            flow_law = GlenFlowLaw(self.glen_a, self.glen_n, self.glen_reg_strain_rate)
        sliding_law = self.friction
        if sliding_law is None:
            sliding_law = WeertmanFriction(
                self.weertman_c, self.weertman_m, self.weertman_reg_speed)
        object.__setattr__(self, "flow_law", flow_law)
        object.__setattr__(self, "sliding_law", sliding_law)

        mass_balance = as_mass_balance(self.accumulation_rate)
        if self.basal_melt_rate != 0.0:
            mass_balance = mass_balance + FloatingMeltMassBalance(self.basal_melt_rate)
        object.__setattr__(self, "mass_balance", mass_balance)

    @property
    def density_ratio(self):
        """rho_ice / rho_ocean."""
        return self.density_ice / self.density_ocean


@dataclass(frozen=True)
class SolverParams:
    """
    Velocity solver configuration.

    Parameters
    ----------
    tol : float
        Relative velocity change at which the Picard iteration stops
    max_iter : int
        Picard iteration budget; exceeding it raises NonConvergence
    relaxation : float
        Under-relaxation of the velocity update, in (0, 1]
    linear_solver : str
        "direct" (sparse LU) or "cg" (Jacobi-preconditioned conjugate gradient)
    linear_tol : float
        Relative residual tolerance for "cg"
    linear_max_iter : int, optional
        Iteration cap for "cg" (SciPy default when None)
    """

    tol: float = 1e-5
    max_iter: int = 200
    relaxation: float = 1.0
    linear_solver: str = "direct"
    linear_tol: float = 1e-10
    linear_max_iter: Optional[int] = None

    def __post_init__(self):
        if self.tol <= 0:
            raise ValueError(f"tol must be positive, got {self.tol}")
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")
        if not 0.0 < self.relaxation <= 1.0:
            raise ValueError(f"relaxation must be in (0, 1], got {self.relaxation}")
        if self.linear_solver not in ("direct", "cg"):
            raise ValueError(f"unknown linear_solver '{self.linear_solver}'")


@dataclass(frozen=True)
class TimesteppingParams:
    """
    Time stepping configuration.

    Parameters
    ----------
    dt : float
        Time step (years), > 0
    end_time : float
        Time at which the run stops, >= start_time
    start_time : float
        Clock value of step n_iter0 (non-zero for restarts)
    n_iter0 : int
        Step counter at start_time
    cfl : float
        Courant number bound used by the stability check
    check_stability : bool
        Raise UnstableStep when dt exceeds the CFL bound
    """

    dt: float
    end_time: float
    start_time: float = 0.0
    n_iter0: int = 0
    cfl: float = 1.0
    check_stability: bool = True

    def __post_init__(self):
        if not (math.isfinite(self.dt) and self.dt > 0):
            raise ValueError(f"dt must be positive and finite, got {self.dt}")
        if not self.end_time >= self.start_time:
            raise ValueError(
                f"end_time ({self.end_time}) must be >= start_time ({self.start_time})"
            )
        if self.n_iter0 < 0:
            raise ValueError(f"n_iter0 must be >= 0, got {self.n_iter0}")
        if self.cfl <= 0:
            raise ValueError(f"cfl must be positive, got {self.cfl}")


@dataclass(frozen=True, eq=False)
class OutputParams:
    """
    Output configuration.

    Parameters
    ----------
    outputs : mapping
        Output name -> Field Store entry, given either as a key ("h",
        "gh.s", "gu.u") or as the array itself (model.fields.gh.h)
    output_freq : float
        Simulated time between output events; inf disables output
    output_path : str or Path
        Directory receiving one file per output event
    prefix : str
        File name prefix
    on_error : str
        "raise" (default) aborts the run on IOFailure, "warn" logs it and
        marks the run as degraded
    asynchronous : bool
        Write files on a background thread
    include_restart : bool
        Store the restart group (h, u, v) in every file
    """

    outputs: Mapping[str, Any] = field(default_factory=dict)
    output_freq: float = math.inf
    output_path: Any = "."
    prefix: str = "outfile"
    on_error: str = "raise"
    asynchronous: bool = True
    include_restart: bool = True

    def __post_init__(self):
        if not self.output_freq > 0:
            raise ValueError(f"output_freq must be positive, got {self.output_freq}")
        if self.on_error not in ("raise", "warn"):
            raise ValueError(f"on_error must be 'raise' or 'warn', got '{self.on_error}'")
        object.__setattr__(self, "outputs", dict(self.outputs))

    @property
    def enabled(self):
        return math.isfinite(self.output_freq) and bool(self.outputs)


@dataclass(frozen=True, eq=False)
class InitialConditions:
    """
    Initial state of a Model.

    Thickness may be a scalar, an (nx, ny) array or a function f(x, y);
    when omitted Params.default_thickness is used. Velocities are optional
    warm starts on the u (nx+1, ny) and v (nx, ny+1) grids.
    """

    initial_thickness: Any = None
    initial_u_veloc: Any = None
    initial_v_veloc: Any = None
