"""
Shallow shelf approximation (SSA) velocity solver.

Solves the depth-integrated momentum balance

    d/dx(2 eta H (2 u_x + v_y)) + d/dy(eta H (u_y + v_x)) - beta u = rho g H s_x
    d/dy(2 eta H (2 v_y + u_x)) + d/dx(eta H (u_y + v_x)) - beta v = rho g H s_y

on the staggered grid with a Picard iteration: the effective viscosity
eta and the basal drag beta are frozen at the current velocity, the
resulting symmetric linear system is solved, and the coefficients are
recomputed until the velocity stops changing.
"""

import logging
import warnings
from dataclasses import dataclass, field

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .errors import InvalidState, NonConvergence
from .params import SolverParams
from .physics import front_pressure, update_geometry

logger = logging.getLogger(__name__)

# Derived geometry recomputed at the start of every solve
GEOMETRY_FIELDS = ("grounded", "s", "base", "ice", "haf")


@dataclass
class SolveInfo:
    """Record of one velocity solve."""

    converged: bool = False
    iterations: int = 0
    residual: float = np.inf
    history: list = field(default_factory=list)


def _first(mask):
    """Index tuple of the first True entry of mask."""
    return tuple(int(i) for i in np.argwhere(mask)[0])


def _face_driving_stress(h, s, P, ice, rho_g, spacing):
    """
    Driving stress on the faces normal to axis 0 of cell-centered fields.

    Interior faces with ice on both sides use rho g H ds/dx. Faces with ice
    on one side only (including the domain edge) are calving fronts, where
    the jump in depth-integrated hydrostatic pressure P drives the flow.
    """
    def pad(a, value):
        width = [(1, 1)] + [(0, 0)] * (a.ndim - 1)
        return np.pad(a, width, constant_values=value)

    hp, sp_, Pp, icep = pad(h, 0.0), pad(s, 0.0), pad(P, 0.0), pad(ice, False)
    h_l, h_r = hp[:-1], hp[1:]
    s_l, s_r = sp_[:-1], sp_[1:]
    P_l, P_r = Pp[:-1], Pp[1:]
    ice_l, ice_r = icep[:-1], icep[1:]

    interior = rho_g * 0.5 * (h_l + h_r) * (s_r - s_l) / spacing
    front = (P_r - P_l) / spacing
    return np.where(ice_l & ice_r, interior,
                    np.where(ice_l | ice_r, front, 0.0))


class VelocitySolver:
    """
    Picard solver for the SSA velocity field.

    Parameters
    ----------
    grid : Grid
        Model grid
    params : Params
        Physical parameters (rheology and friction strategies included)
    solver_params : SolverParams, optional
        Iteration controls

    Examples
    --------
    >>> solver = VelocitySolver(grid, Params())
    >>> info = solver.solve(fields)
    >>> info.converged
    True
    """

    def __init__(self, grid, params, solver_params=None):
        self.grid = grid
        self.params = params
        self.solver_params = solver_params or SolverParams()
        self.ops = grid.operators
        self.nu = int(np.prod(grid.u_shape))
        self.nv = int(np.prod(grid.v_shape))

    # =========================================================================
    # Preconditions and geometry
    # =========================================================================

    def check_state(self, fields):
        """Fail fast on a thickness or bed the solver cannot accept."""
        gh = fields.gh
        if not np.all(np.isfinite(gh.h)):
            raise InvalidState(f"thickness is not finite at cell {_first(~np.isfinite(gh.h))}")
        if np.any(gh.h < 0.0):
            bad = _first(gh.h < 0.0)
            raise InvalidState(f"thickness must be >= 0, found {float(gh.h[bad])} at cell {bad}")
        if not np.all(np.isfinite(gh.b)):
            raise InvalidState(f"bed elevation is not finite at cell {_first(~np.isfinite(gh.b))}")

    def active_faces(self, ice):
        """Faces carrying an unknown velocity: ice on at least one side, not held at zero."""
        ice_u = np.pad(ice, [(1, 1), (0, 0)], constant_values=False)
        ice_v = np.pad(ice, [(0, 0), (1, 1)], constant_values=False)
        active_u = (ice_u[:-1] | ice_u[1:]) & ~self.grid.u_iszero
        active_v = (ice_v[:, :-1] | ice_v[:, 1:]) & ~self.grid.v_iszero
        return active_u, active_v

    def driving_stress(self, gh):
        """Driving stress on the u- and v-faces."""
        p = self.params
        rho_g = p.density_ice * p.gravity
        P = np.where(gh.ice, front_pressure(gh.h, gh.base, p), 0.0)
        taud_u = _face_driving_stress(gh.h, gh.s, P, gh.ice, rho_g, self.grid.dx)
        taud_v = _face_driving_stress(gh.h.T, gh.s.T, P.T, gh.ice.T, rho_g,
                                      self.grid.dy).T
        return taud_u, taud_v

    # =========================================================================
    # Frozen coefficients
    # =========================================================================

    def strain_rate_sq(self, u, v):
        """Squared effective strain rate at cell centers (flattened)."""
        ops = self.ops
        exx = ops.Dx @ u
        eyy = ops.Dy @ v
        exy_corner = 0.5 * (ops.Dyu @ u + ops.Dxv @ v) * ops.interior_corner
        exy = ops.corner_to_cell @ exy_corner
        return exx**2 + eyy**2 + exx * eyy + exy**2

    def coefficients(self, gh, u, v):
        """
        Viscosity and drag frozen at the velocity (u, v).

        Returns
        -------
        dict with keys:
            eta : cell viscosity (zero outside the ice)
            etaH : depth-integrated cell viscosity
            etaH_corner : depth-integrated viscosity at corners
            beta : cell drag (zero where floating or ice-free)
            beta_u, beta_v : drag on u- and v-faces
            uc, vc, speed : cell-centered velocities
        """
        ops = self.ops
        ice = gh.ice.ravel()
        h = gh.h.ravel()

        eta = np.where(ice, self.params.flow_law.viscosity(self.strain_rate_sq(u, v)), 0.0)
        etaH = eta * h
        etaH_corner = (ops.cell_to_corner @ etaH) * ops.interior_corner

        uc = ops.u_to_cell @ u
        vc = ops.v_to_cell @ v
        speed = np.sqrt(uc**2 + vc**2)
        sliding = ice & gh.grounded.ravel()
        beta = np.where(sliding, self.params.sliding_law.drag(speed), 0.0)

        return {
            "eta": eta,
            "etaH": etaH,
            "etaH_corner": etaH_corner,
            "beta": beta,
            "beta_u": ops.cell_to_u @ beta,
            "beta_v": ops.cell_to_v @ beta,
            "uc": uc,
            "vc": vc,
            "speed": speed,
        }

    def assemble(self, coeffs):
        """
        Assemble the (negated) SSA operator with frozen coefficients.

        The result is symmetric positive semi-definite, ordered [u, v].
        """
        ops = self.ops
        W4 = sp.diags(4.0 * coeffs["etaH"])
        W2 = sp.diags(2.0 * coeffs["etaH"])
        Wk = sp.diags(coeffs["etaH_corner"])

        Kuu = (ops.Dx.T @ W4 @ ops.Dx + ops.Dyu.T @ Wk @ ops.Dyu
               + sp.diags(coeffs["beta_u"]))
        Kuv = ops.Dx.T @ W2 @ ops.Dy + ops.Dyu.T @ Wk @ ops.Dxv
        Kvv = (ops.Dy.T @ W4 @ ops.Dy + ops.Dxv.T @ Wk @ ops.Dxv
               + sp.diags(coeffs["beta_v"]))
        return sp.bmat([[Kuu, Kuv], [Kuv.T, Kvv]], format="csr")

    # =========================================================================
    # Linear and nonlinear solves
    # =========================================================================

    def _linear_solve(self, K, rhs, x0):
        sp_params = self.solver_params
        if sp_params.linear_solver == "cg":
            diag = K.diagonal()
            M = sp.diags(np.where(diag > 0, 1.0 / np.where(diag > 0, diag, 1.0), 1.0))
            x, status = spla.cg(K, rhs, x0=x0, rtol=sp_params.linear_tol,
                                maxiter=sp_params.linear_max_iter, M=M)
            if status != 0:
                raise NonConvergence(f"conjugate gradient failed (status {status})")
            return x

        with warnings.catch_warnings():
            warnings.simplefilter("error", spla.MatrixRankWarning)
            try:
                return spla.spsolve(K.tocsc(), rhs)
            except spla.MatrixRankWarning:
                raise NonConvergence(
                    "velocity system is singular; is any ice held by drag or a zero-velocity face?"
                ) from None

    def solve(self, fields):
        """
        Solve for the velocity field given the current geometry.

        Recomputes the flotation mask and surface first. Velocities and
        coefficients are written only once the iteration has converged; on
        failure the geometry is put back, leaving the Field Store as it was.

        Parameters
        ----------
        fields : Fields
            Field store; h and b are read, velocities and diagnostics written

        Returns
        -------
        SolveInfo

        Raises
        ------
        InvalidState
            If thickness is negative or non-finite, or the bed is non-finite
        NonConvergence
            If the Picard iteration does not meet the tolerance within
            max_iter iterations, or a linear solve fails
        """
        self.check_state(fields)
        gh = fields.gh
        geometry = {name: getattr(gh, name).copy() for name in GEOMETRY_FIELDS}
        update_geometry(gh, self.params)
        try:
            return self._iterate(fields)
        except NonConvergence:
            for name, value in geometry.items():
                getattr(gh, name)[...] = value
            raise

    def _iterate(self, fields):
        """Picard iteration on the current geometry; stores the result once converged."""
        gh = fields.gh
        sp_params = self.solver_params
        active_u, active_v = self.active_faces(gh.ice)
        free = np.concatenate([active_u.ravel(), active_v.ravel()])
        idx = np.flatnonzero(free)
        taud_u, taud_v = self.driving_stress(gh)
        rhs = -np.concatenate([taud_u.ravel(), taud_v.ravel()])[free]

        U = np.concatenate([fields.gu.u.ravel(), fields.gv.v.ravel()])
        U[~free] = 0.0

        info = SolveInfo()
        if not free.any():
            info.converged = True
            info.residual = 0.0
        else:
            for k in range(1, sp_params.max_iter + 1):
                coeffs = self.coefficients(gh, U[:self.nu], U[self.nu:])
                K = self.assemble(coeffs)[idx][:, idx]

                U_new = np.zeros_like(U)
                U_new[free] = self._linear_solve(K, rhs, U[free])
                if not np.all(np.isfinite(U_new)):
                    info.iterations = k
                    raise NonConvergence("velocity solve produced non-finite values", info)

                change = np.linalg.norm(U_new - U) / max(np.linalg.norm(U_new), 1e-30)
                U += sp_params.relaxation * (U_new - U)

                info.iterations = k
                info.residual = float(change)
                info.history.append(float(change))
                logger.debug(f"Picard {k}: |dU|/|U| = {change:.3e}")

                if change < sp_params.tol:
                    info.converged = True
                    break

            if not info.converged:
                raise NonConvergence(
                    f"Picard iteration did not converge in {sp_params.max_iter} "
                    f"iterations (|dU|/|U| = {info.residual:.3e}, tol = {sp_params.tol:.1e})",
                    info,
                )

        self.store(fields, U, active_u, active_v, taud_u, taud_v)
        return info

    def store(self, fields, U, active_u, active_v, taud_u, taud_v):
        """Write velocity U and the coefficients frozen at U into the field store."""
        gh, gu, gv = fields.gh, fields.gu, fields.gv
        u, v = U[:self.nu], U[self.nu:]
        coeffs = self.coefficients(gh, u, v)

        gu.u[...] = u.reshape(gu.shape)
        gv.v[...] = v.reshape(gv.shape)
        gu.beta[...] = coeffs["beta_u"].reshape(gu.shape)
        gv.beta[...] = coeffs["beta_v"].reshape(gv.shape)
        gu.taud[...] = taud_u
        gv.taud[...] = taud_v
        gu.active[...] = active_u
        gv.active[...] = active_v

        gh.eta[...] = coeffs["eta"].reshape(gh.shape)
        gh.beta[...] = coeffs["beta"].reshape(gh.shape)
        gh.u[...] = coeffs["uc"].reshape(gh.shape)
        gh.v[...] = coeffs["vc"].reshape(gh.shape)
        gh.speed[...] = coeffs["speed"].reshape(gh.shape)
