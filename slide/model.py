"""
Core model API.

Provides the Model class that binds a grid, physical parameters and the
field store, and exposes the diagnose ("update state") operation.
"""

import logging

import numpy as np

from .errors import InvalidState, ShapeMismatch
from .fields import Fields, as_grid_array
from .params import InitialConditions, Params, SolverParams
from .physics import update_geometry
from .solver import VelocitySolver

logger = logging.getLogger(__name__)


class Model:
    """
    Shallow shelf approximation ice flow model.

    Owns the mutable state (the field store); grid and parameters are
    shared read-only.

    Parameters
    ----------
    grid : Grid
        Model grid
    bed_elevation : float, array_like or callable
        Bed elevation (m): a scalar, an (nx, ny) array or a function f(x, y)
        of cell-center coordinates
    params : Params, optional
        Physical parameters
    initial_conditions : InitialConditions, optional
        Initial thickness and velocity warm starts. Defaults to a uniform
        Params.default_thickness
    solver_params : SolverParams, optional
        Velocity solver controls

    Examples
    --------
    >>> grid = Grid(nx=150, ny=2, dx=12000.0, dy=12000.0)
    >>> model = Model(grid=grid, bed_elevation=lambda x, y: 720 - 778.5 * x / 750e3,
    ...               params=Params(accumulation_rate=0.3))
    >>> info = update_state(model)
    >>> bool(model.fields.gh.grounded[-1, 0])
    False
    """

    def __init__(self, grid, bed_elevation, params=None, initial_conditions=None,
                 solver_params=None):
        self.grid = grid
        self.params = params if params is not None else Params()
        self.solver_params = solver_params if solver_params is not None else SolverParams()
        initial_conditions = initial_conditions or InitialConditions()

        self.fields = Fields(grid)
        gh = self.fields.gh

        gh.b[...] = as_grid_array(bed_elevation, grid, "bed_elevation")
        if not np.all(np.isfinite(gh.b)):
            raise InvalidState("bed_elevation must be finite everywhere")

        thickness = initial_conditions.initial_thickness
        if thickness is None:
            thickness = self.params.default_thickness
        self.set_thickness(as_grid_array(thickness, grid, "initial_thickness"))

        if initial_conditions.initial_u_veloc is not None:
            self.fields.gu.u[...] = as_grid_array(
                initial_conditions.initial_u_veloc, grid, "initial_u_veloc", grid.u_shape)
        if initial_conditions.initial_v_veloc is not None:
            self.fields.gv.v[...] = as_grid_array(
                initial_conditions.initial_v_veloc, grid, "initial_v_veloc", grid.v_shape)

        self.params.mass_balance.validate(grid)

        self.velocity_solver = VelocitySolver(grid, self.params, self.solver_params)
        self.velocity_is_current = False
        self.last_solve = None

        self.update_geometry()

    def __repr__(self):
        return f"Model(grid={self.grid!r}, volume={self.volume():.4g} m^3)"

    def set_thickness(self, h):
        """
        Replace the ice thickness (in place) and mark the velocity stale.

        Raises
        ------
        ShapeMismatch
            If h does not have the grid's cell-centered shape
        InvalidState
            If h is negative or not finite anywhere
        """
        h = np.asarray(h, dtype=float)
        if h.shape != self.grid.shape:
            raise ShapeMismatch("thickness", self.grid.shape, h.shape)
        if not np.all(np.isfinite(h)):
            raise InvalidState("thickness must be finite everywhere")
        if np.any(h < 0.0):
            raise InvalidState(f"thickness must be >= 0, minimum is {h.min()}")
        self.fields.gh.h[...] = h
        self.velocity_is_current = False

    def update_geometry(self):
        """Recompute surface, base, flotation and ice masks from h and b."""
        update_geometry(self.fields.gh, self.params)

    def update_state(self):
        """
        Diagnose the model: refresh geometry and solve for the velocity.

        Idempotent: calling it again without changing the thickness yields
        the same fields to within the solver tolerance.

        Returns
        -------
        SolveInfo

        Raises
        ------
        InvalidState
            If the thickness or bed violate the solver's preconditions
        NonConvergence
            If the velocity iteration does not converge
        """
        info = self.velocity_solver.solve(self.fields)
        self.last_solve = info
        self.velocity_is_current = True
        gh = self.fields.gh
        logger.info(
            f"Diagnosed state in {info.iterations} Picard iterations: "
            f"max speed {float(gh.speed.max(initial=0.0)):.4g} m/yr, "
            f"{int(gh.grounded[gh.ice].sum())} grounded / "
            f"{int((~gh.grounded[gh.ice]).sum())} floating ice cells"
        )
        return info

    def refresh_diagnostics(self):
        """
        Recompute geometry and frozen coefficients from the stored velocity.

        Used after a restart, where the velocity is read from disk and a new
        solve would only reproduce it.
        """
        solver = self.velocity_solver
        solver.check_state(self.fields)
        self.update_geometry()
        active_u, active_v = solver.active_faces(self.fields.gh.ice)
        taud_u, taud_v = solver.driving_stress(self.fields.gh)
        U = np.concatenate([self.fields.gu.u.ravel(), self.fields.gv.v.ravel()])
        solver.store(self.fields, U, active_u, active_v, taud_u, taud_v)
        self.velocity_is_current = True

    # Diagnostics

    def volume(self):
        """Total ice volume (m^3)."""
        return float(self.fields.gh.h.sum() * self.grid.cell_area)

    def volume_above_flotation(self):
        """Ice volume above flotation over grounded cells (m^3)."""
        gh = self.fields.gh
        haf = np.where(gh.grounded, np.maximum(gh.haf, 0.0), 0.0)
        return float(haf.sum() * self.grid.cell_area)

    def grounded_area(self):
        """Area of grounded ice (m^2)."""
        gh = self.fields.gh
        return float((gh.grounded & gh.ice).sum() * self.grid.cell_area)


def update_state(model):
    """Diagnose a model in place (see Model.update_state)."""
    return model.update_state()
