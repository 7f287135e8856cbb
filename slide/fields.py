"""
Field store: all physical quantities of a model, aligned to its grid.

Arrays are allocated once and always updated in place, so references
handed out earlier (for instance in an output mapping) stay valid.
"""

import numpy as np

from .errors import ShapeMismatch


def as_grid_array(source, grid, name, shape=None):
    """
    Resolve a field specification into a float64 array.

    Parameters
    ----------
    source : float, array_like or callable
        A scalar (broadcast), an array of exactly the target shape, or a
        function f(x, y) evaluated on the target grid's coordinates
    grid : Grid
        Grid the field lives on
    name : str
        Name used in error messages
    shape : tuple, optional
        Target staggering (default: cell centers)

    Returns
    -------
    numpy.ndarray
        New array of the target shape

    Raises
    ------
    ShapeMismatch
        If an array (or a function's result) has the wrong shape
    """
    shape = grid.shape if shape is None else tuple(shape)

    if callable(source):
        x, y = grid.coordinates(shape)
        value = np.asarray(source(x, y), dtype=float)
    else:
        value = np.asarray(source, dtype=float)

    if value.ndim == 0:
        return np.full(shape, float(value))
    if value.shape != shape:
        raise ShapeMismatch(name, shape, value.shape)
    return np.array(value, dtype=float)


class _FieldGroup:
    """Named arrays sharing one staggering."""

    _names = ()

    def __init__(self, shape):
        self.shape = shape

    def __iter__(self):
        return iter(self._names)

    def items(self):
        return ((name, getattr(self, name)) for name in self._names)


class HGridFields(_FieldGroup):
    """
    Cell-centered fields, shape (nx, ny).

    h : ice thickness
    b : bed elevation
    s : surface elevation (derived from h and b, never set directly)
    base : ice base elevation, s - h
    grounded : True where the ice (or empty cell) rests on the bed
    ice : True where h > 0
    haf : height above flotation
    eta : depth-averaged effective viscosity
    beta : basal drag coefficient (zero where floating)
    u, v, speed : velocities averaged onto cell centers
    mass_balance : last applied mass-balance rate
    dhdt : last thickness tendency
    """

    _names = ("h", "b", "s", "base", "grounded", "ice", "haf", "eta",
              "beta", "u", "v", "speed", "mass_balance", "dhdt")

    def __init__(self, shape):
        super().__init__(shape)
        self.h = np.zeros(shape)
        self.b = np.zeros(shape)
        self.s = np.zeros(shape)
        self.base = np.zeros(shape)
        self.grounded = np.zeros(shape, dtype=bool)
        self.ice = np.zeros(shape, dtype=bool)
        self.haf = np.zeros(shape)
        self.eta = np.zeros(shape)
        self.beta = np.zeros(shape)
        self.u = np.zeros(shape)
        self.v = np.zeros(shape)
        self.speed = np.zeros(shape)
        self.mass_balance = np.zeros(shape)
        self.dhdt = np.zeros(shape)


class UGridFields(_FieldGroup):
    """x-face fields, shape (nx+1, ny): velocity u, drag beta, driving stress taud."""

    _names = ("u", "beta", "taud", "active")

    def __init__(self, shape):
        super().__init__(shape)
        self.u = np.zeros(shape)
        self.beta = np.zeros(shape)
        self.taud = np.zeros(shape)
        self.active = np.zeros(shape, dtype=bool)


class VGridFields(_FieldGroup):
    """y-face fields, shape (nx, ny+1): velocity v, drag beta, driving stress taud."""

    _names = ("v", "beta", "taud", "active")

    def __init__(self, shape):
        super().__init__(shape)
        self.v = np.zeros(shape)
        self.beta = np.zeros(shape)
        self.taud = np.zeros(shape)
        self.active = np.zeros(shape, dtype=bool)


class Fields:
    """
    Field store of a model.

    Parameters
    ----------
    grid : Grid
        Grid the fields are aligned with

    Examples
    --------
    >>> fields = Fields(grid)
    >>> fields.lookup("h") is fields.gh.h
    True
    >>> fields.path_of(fields.gu.u)
    'gu.u'
    """

    groups = ("gh", "gu", "gv")

    def __init__(self, grid):
        self.gh = HGridFields(grid.shape)
        self.gu = UGridFields(grid.u_shape)
        self.gv = VGridFields(grid.v_shape)

    def __iter__(self):
        for group in self.groups:
            for name, arr in getattr(self, group).items():
                yield f"{group}.{name}", arr

    def lookup(self, key):
        """
        Return the array named by key.

        Bare names ("h", "s") refer to the cell-centered group; qualified
        names ("gu.u") select a group explicitly.
        """
        group, _, name = key.rpartition(".")
        group = group or "gh"
        if group not in self.groups or name not in getattr(self, group)._names:
            raise KeyError(f"unknown field '{key}'")
        return getattr(getattr(self, group), name)

    def path_of(self, array):
        """Qualified name of an array owned by this store, or None."""
        for path, arr in self:
            if arr is array:
                return path
        return None

    def snapshot(self):
        """Deep copy of every array, keyed by qualified name."""
        return {path: arr.copy() for path, arr in self}

    def restore(self, snapshot):
        """Copy a snapshot back into the live arrays (in place)."""
        for path, arr in self:
            if path in snapshot:
                arr[...] = snapshot[path]
