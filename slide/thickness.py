"""
Thickness evolution (prognostic step).

Explicit first-order upwind finite-volume update of

    dh/dt = a - div(h U)

with a non-negativity floor. Ice entering the domain from outside is not
allowed: the thickness beyond the domain edge is zero.
"""

import logging
from dataclasses import dataclass

import numpy as np

from .errors import UnstableStep

logger = logging.getLogger(__name__)


@dataclass
class StepInfo:
    """Diagnostics of one thickness update."""

    dt: float
    courant: float
    clamped_volume: float
    outflux: float


def face_fluxes(grid, h, u, v):
    """
    Upwind thickness fluxes on the u- and v-faces (m^2/yr).

    Parameters
    ----------
    grid : Grid
        Model grid
    h : ndarray
        Thickness (nx, ny)
    u, v : ndarray
        Face velocities (nx+1, ny) and (nx, ny+1)

    Returns
    -------
    q_u, q_v : ndarray
        Fluxes on the u- and v-faces
    """
    hx = np.pad(h, [(1, 1), (0, 0)])
    hy = np.pad(h, [(0, 0), (1, 1)])
    q_u = np.where(u > 0, u * hx[:-1], u * hx[1:])
    q_v = np.where(v > 0, v * hy[:, :-1], v * hy[:, 1:])
    return q_u, q_v


def flux_divergence(grid, q_u, q_v):
    """Cell-centered divergence of face fluxes."""
    return (np.diff(q_u, axis=0) / grid.dx) + (np.diff(q_v, axis=1) / grid.dy)


def boundary_outflux(grid, q_u, q_v):
    """Net ice volume flux leaving the domain (m^3/yr, positive outwards)."""
    out_x = (q_u[-1, :].sum() - q_u[0, :].sum()) * grid.dy
    out_y = (q_v[:, -1].sum() - q_v[:, 0].sum()) * grid.dx
    return float(out_x + out_y)


def courant_number(grid, u, v, dt):
    return dt * (np.max(np.abs(u), initial=0.0) / grid.dx
                 + np.max(np.abs(v), initial=0.0) / grid.dy)


def max_stable_dt(grid, u, v, cfl=1.0):
    """
    Largest time step satisfying the CFL bound of the upwind scheme.

    Returns inf for a motionless velocity field.
    """
    rate = courant_number(grid, u, v, 1.0)
    if rate == 0.0:
        return np.inf
    return cfl / rate


class ThicknessEvolution:
    """
    Advance ice thickness by one time step.

    Only h (and the dhdt / mass_balance diagnostics) are written; surface,
    mask and velocity are refreshed by the next diagnose.

    Parameters
    ----------
    grid : Grid
        Model grid
    params : Params
        Physical parameters (provides the mass-balance strategy)
    cfl : float
        Courant number bound (default 1.0)
    check_stability : bool
        Raise UnstableStep when dt exceeds the bound (default True)
    """

    def __init__(self, grid, params, cfl=1.0, check_stability=True):
        self.grid = grid
        self.params = params
        self.cfl = cfl
        self.check_stability = check_stability

    def step(self, fields, dt, t=0.0):
        """
        Update fields.gh.h in place.

        Parameters
        ----------
        fields : Fields
            Field store holding a diagnosed velocity
        dt : float
            Time step (years)
        t : float
            Model time at the start of the step (for time-dependent forcing)

        Returns
        -------
        StepInfo

        Raises
        ------
        UnstableStep
            If dt violates the CFL bound or the update is not finite
        """
        grid = self.grid
        gh = fields.gh
        u, v = fields.gu.u, fields.gv.v

        courant = courant_number(grid, u, v, dt)
        if self.check_stability and courant > self.cfl:
            max_dt = max_stable_dt(grid, u, v, self.cfl)
            raise UnstableStep(
                f"dt = {dt} exceeds the CFL bound (Courant number {courant:.3f} > "
                f"{self.cfl}); largest stable dt is {max_dt:.4g}",
                dt=dt, max_dt=max_dt,
            )

        q_u, q_v = face_fluxes(grid, gh.h, u, v)
        mass_balance = self.params.mass_balance.rate(grid, fields, t)
        dhdt = mass_balance - flux_divergence(grid, q_u, q_v)

        h_new = gh.h + dt * dhdt
        if not np.all(np.isfinite(h_new)):
            raise UnstableStep(f"thickness update is not finite (dt = {dt})", dt=dt)

        clamped = float(-h_new[h_new < 0.0].sum() * grid.cell_area)
        if clamped > 0.0:
            logger.debug(f"Non-negativity floor removed {clamped:.4g} m^3 of ice")

        gh.h[...] = np.maximum(h_new, 0.0)
        gh.dhdt[...] = dhdt
        gh.mass_balance[...] = mass_balance

        return StepInfo(dt=dt, courant=float(courant), clamped_volume=clamped,
                        outflux=boundary_outflux(grid, q_u, q_v))
