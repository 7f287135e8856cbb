"""
Staggered grid for the shallow-shelf ice flow model.

Implements a MAC (marker-and-cell) staggered grid with:
- h thickness and other scalars on cell centers: shape (nx, ny)
- u velocities on x-faces: shape (nx+1, ny)
- v velocities on y-faces: shape (nx, ny+1)
- shear quantities on cell corners: shape (nx+1, ny+1)

Arrays are indexed [i, j] with i along x and j along y.
"""

from functools import cached_property

import numpy as np

from .errors import ShapeMismatch
from .operators import Operators


def _frozen(a):
    a = np.array(a)
    a.setflags(write=False)
    return a


class Grid:
    """
    Discretized rectangular domain.

    Coordinates are derived once from (nx, ny, dx, dy, x0, y0) and are
    read-only for the lifetime of the grid.

    Parameters
    ----------
    nx, ny : int
        Number of cells in x and y (at least 1 each)
    dx, dy : float
        Cell sizes in meters
    x0, y0 : float
        Coordinates of the lower-left domain corner (default 0.0)
    u_iszero : array_like of bool, optional
        (nx+1, ny) mask of x-faces where u is held at zero. Defaults to the
        western edge, i.e. an ice divide at x = x0.
    v_iszero : array_like of bool, optional
        (nx, ny+1) mask of y-faces where v is held at zero. Defaults to the
        southern and northern edges (free-slip side walls).

    Examples
    --------
    >>> grid = Grid(nx=150, ny=2, dx=12000.0, dy=12000.0)
    >>> grid.xxh.shape
    (150, 2)
    """

    def __init__(self, nx, ny, dx, dy, x0=0.0, y0=0.0,
                 u_iszero=None, v_iszero=None):
        if int(nx) != nx or int(ny) != ny or nx < 1 or ny < 1:
            raise ValueError(f"Grid needs nx, ny >= 1, got nx={nx}, ny={ny}")
        if not (np.isfinite(dx) and np.isfinite(dy) and dx > 0 and dy > 0):
            raise ValueError(f"Grid needs positive dx, dy, got dx={dx}, dy={dy}")

        object.__setattr__(self, "_ready", False)
        self.nx = int(nx)
        self.ny = int(ny)
        self.dx = float(dx)
        self.dy = float(dy)
        self.x0 = float(x0)
        self.y0 = float(y0)

        # 1D coordinates
        self.xh = _frozen(self.x0 + (np.arange(self.nx) + 0.5) * self.dx)
        self.yh = _frozen(self.y0 + (np.arange(self.ny) + 0.5) * self.dy)
        self.xu = _frozen(self.x0 + np.arange(self.nx + 1) * self.dx)
        self.yv = _frozen(self.y0 + np.arange(self.ny + 1) * self.dy)

        # 2D coordinates on each staggering
        self.xxh, self.yyh = (_frozen(a) for a in np.meshgrid(self.xh, self.yh, indexing="ij"))
        self.xxu, self.yyu = (_frozen(a) for a in np.meshgrid(self.xu, self.yh, indexing="ij"))
        self.xxv, self.yyv = (_frozen(a) for a in np.meshgrid(self.xh, self.yv, indexing="ij"))

        self.u_iszero = _frozen(self._boundary_mask(u_iszero, "u_iszero", self.u_shape))
        self.v_iszero = _frozen(self._boundary_mask(v_iszero, "v_iszero", self.v_shape))

        object.__setattr__(self, "_ready", True)

    def __setattr__(self, name, value):
        if self._ready:
            raise AttributeError(f"Grid is immutable; cannot set '{name}'")
        object.__setattr__(self, name, value)

    def __repr__(self):
        return (f"Grid(nx={self.nx}, ny={self.ny}, dx={self.dx}, dy={self.dy}, "
                f"x0={self.x0}, y0={self.y0})")

    def _boundary_mask(self, mask, name, shape):
        if mask is None:
            mask = np.zeros(shape, dtype=bool)
            if name == "u_iszero":
                mask[0, :] = True
            else:
                mask[:, 0] = True
                mask[:, -1] = True
            return mask
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != shape:
            raise ShapeMismatch(name, shape, mask.shape)
        return mask.copy()

    @property
    def shape(self):
        """Shape of cell-centered fields."""
        return (self.nx, self.ny)

    @property
    def u_shape(self):
        return (self.nx + 1, self.ny)

    @property
    def v_shape(self):
        return (self.nx, self.ny + 1)

    @property
    def corner_shape(self):
        return (self.nx + 1, self.ny + 1)

    @property
    def cell_area(self):
        return self.dx * self.dy

    @cached_property
    def operators(self):
        """Sparse stencils and transfers for this grid (built on first use)."""
        return Operators(self.nx, self.ny, self.dx, self.dy)

    def coordinates(self, shape):
        """Return the (x, y) coordinate arrays matching a staggered shape."""
        lookup = {
            self.shape: (self.xxh, self.yyh),
            self.u_shape: (self.xxu, self.yyu),
            self.v_shape: (self.xxv, self.yyv),
        }
        try:
            return lookup[tuple(shape)]
        except KeyError:
            raise ShapeMismatch("coordinates", self.shape, shape) from None
