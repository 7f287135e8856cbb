"""
Sparse finite-difference stencils and staggered-grid transfer operators.

All operators act on fields flattened in C order, with shapes

- h-grid (cell centres): (nx, ny)
- u-grid (x-faces):      (nx+1, ny)
- v-grid (y-faces):      (nx, ny+1)
- corners:               (nx+1, ny+1)
"""

import numpy as np
import scipy.sparse as sp


def _index(shape):
    """Flat C-order index of every entry of an array of the given shape."""
    return np.arange(int(np.prod(shape))).reshape(shape)


def _coo(rows, cols, data, shape):
    rows = np.concatenate([np.ravel(r) for r in rows])
    cols = np.concatenate([np.ravel(c) for c in cols])
    data = np.concatenate([np.ravel(d) for d in data])
    return sp.csr_matrix((data, (rows, cols)), shape=shape)


def _row_normalize(m):
    """Turn a 0/1 adjacency matrix into a mean-of-neighbours operator."""
    counts = np.asarray(m.sum(axis=1)).ravel()
    scale = np.divide(1.0, counts, out=np.zeros_like(counts, dtype=float),
                      where=counts > 0)
    return sp.diags(scale) @ m


# Difference stencils

def ddx_u_to_cell(nx, ny, dx):
    """du/dx at cell centres from x-face velocities."""
    c = _index((nx, ny))
    u = _index((nx + 1, ny))
    ones = np.ones(c.shape)
    return _coo([c, c], [u[:-1], u[1:]], [-ones / dx, ones / dx],
                (c.size, u.size))


def ddy_v_to_cell(nx, ny, dy):
    """dv/dy at cell centres from y-face velocities."""
    c = _index((nx, ny))
    v = _index((nx, ny + 1))
    ones = np.ones(c.shape)
    return _coo([c, c], [v[:, :-1], v[:, 1:]], [-ones / dy, ones / dy],
                (c.size, v.size))


def ddy_u_to_corner(nx, ny, dy):
    """du/dy at interior corners (rows of domain-edge corners are empty)."""
    k = _index((nx + 1, ny + 1))
    u = _index((nx + 1, ny))
    rows = k[:, 1:-1]
    ones = np.ones(rows.shape)
    return _coo([rows, rows], [u[:, :-1], u[:, 1:]], [-ones / dy, ones / dy],
                (k.size, u.size))


def ddx_v_to_corner(nx, ny, dx):
    """dv/dx at interior corners (rows of domain-edge corners are empty)."""
    k = _index((nx + 1, ny + 1))
    v = _index((nx, ny + 1))
    rows = k[1:-1, :]
    ones = np.ones(rows.shape)
    return _coo([rows, rows], [v[:-1, :], v[1:, :]], [-ones / dx, ones / dx],
                (k.size, v.size))


# Transfer operators

def cell_to_uface(nx, ny):
    """Mean of the (one or two) cells either side of each x-face."""
    c = _index((nx, ny))
    u = _index((nx + 1, ny))
    ones = np.ones(c.shape)
    adj = _coo([u[:-1], u[1:]], [c, c], [ones, ones], (u.size, c.size))
    return _row_normalize(adj)


def cell_to_vface(nx, ny):
    """Mean of the (one or two) cells either side of each y-face."""
    c = _index((nx, ny))
    v = _index((nx, ny + 1))
    ones = np.ones(c.shape)
    adj = _coo([v[:, :-1], v[:, 1:]], [c, c], [ones, ones], (v.size, c.size))
    return _row_normalize(adj)


def cell_to_corner(nx, ny):
    """Mean of the cells touching each corner."""
    c = _index((nx, ny))
    k = _index((nx + 1, ny + 1))
    ones = np.ones(c.shape)
    adj = _coo([k[:-1, :-1], k[1:, :-1], k[:-1, 1:], k[1:, 1:]],
               [c, c, c, c], [ones] * 4, (k.size, c.size))
    return _row_normalize(adj)


def uface_to_cell(nx, ny):
    """Average x-face values onto cell centres."""
    c = _index((nx, ny))
    u = _index((nx + 1, ny))
    half = 0.5 * np.ones(c.shape)
    return _coo([c, c], [u[:-1], u[1:]], [half, half], (c.size, u.size))


def vface_to_cell(nx, ny):
    """Average y-face values onto cell centres."""
    c = _index((nx, ny))
    v = _index((nx, ny + 1))
    half = 0.5 * np.ones(c.shape)
    return _coo([c, c], [v[:, :-1], v[:, 1:]], [half, half], (c.size, v.size))


def corner_to_cell(nx, ny):
    """Average the four corners of each cell onto its centre."""
    c = _index((nx, ny))
    k = _index((nx + 1, ny + 1))
    q = 0.25 * np.ones(c.shape)
    return _coo([c, c, c, c], [k[:-1, :-1], k[1:, :-1], k[:-1, 1:], k[1:, 1:]],
                [q] * 4, (c.size, k.size))


class Operators:
    """
    Container for the sparse operators of one grid.

    Built once per Grid (see Grid.operators) and shared by the velocity
    solver and diagnostics.

    Parameters
    ----------
    nx, ny : int
        Number of cells in x and y
    dx, dy : float
        Cell sizes
    """

    def __init__(self, nx, ny, dx, dy):
        # Strain-rate stencils
        self.Dx = ddx_u_to_cell(nx, ny, dx)
        self.Dy = ddy_v_to_cell(nx, ny, dy)
        self.Dyu = ddy_u_to_corner(nx, ny, dy)
        self.Dxv = ddx_v_to_corner(nx, ny, dx)

        # Staggered transfers
        self.cell_to_u = cell_to_uface(nx, ny)
        self.cell_to_v = cell_to_vface(nx, ny)
        self.cell_to_corner = cell_to_corner(nx, ny)
        self.u_to_cell = uface_to_cell(nx, ny)
        self.v_to_cell = vface_to_cell(nx, ny)
        self.corner_to_cell = corner_to_cell(nx, ny)

        # Corners on the domain edge carry no shear stress
        interior = np.zeros((nx + 1, ny + 1), dtype=bool)
        interior[1:-1, 1:-1] = True
        self.interior_corner = interior.ravel()
