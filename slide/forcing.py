"""
Mass-balance forcing.

A MassBalance produces the net surface/basal mass balance (m/yr of ice,
positive for accumulation) on the h-grid, given the grid, the current
fields and the model time.
"""

import inspect

import numpy as np

from .errors import ShapeMismatch


class MassBalance:
    """Base class for mass-balance strategies."""

    def rate(self, grid, fields, t):
        raise NotImplementedError

    def validate(self, grid):
        """Check the forcing against a grid before the first use."""

    def __add__(self, other):
        return CompositeMassBalance([self, other])


class ConstantMassBalance(MassBalance):
    """Spatially uniform, steady mass balance."""

    def __init__(self, value):
        self.value = float(value)

    def __repr__(self):
        return f"ConstantMassBalance({self.value})"

    def rate(self, grid, fields, t):
        return np.full(grid.shape, self.value)


class GriddedMassBalance(MassBalance):
    """Steady mass balance given as an (nx, ny) array."""

    def __init__(self, values):
        self.values = np.array(values, dtype=float)

    def validate(self, grid):
        if self.values.shape != grid.shape:
            raise ShapeMismatch("accumulation_rate", grid.shape, self.values.shape)

    def rate(self, grid, fields, t):
        self.validate(grid)
        return self.values.copy()


class FunctionMassBalance(MassBalance):
    """
    Mass balance from a function of position, optionally of time.

    Parameters
    ----------
    func : callable
        f(x, y) or f(x, y, t), evaluated on cell-center coordinate arrays.
        Scalar returns are broadcast to the grid.
    """

    def __init__(self, func):
        self.func = func
        self.time_dependent = _arity(func) >= 3

    def rate(self, grid, fields, t):
        if self.time_dependent:
            value = self.func(grid.xxh, grid.yyh, t)
        else:
            value = self.func(grid.xxh, grid.yyh)
        value = np.asarray(value, dtype=float)
        if value.ndim == 0:
            return np.full(grid.shape, float(value))
        if value.shape != grid.shape:
            raise ShapeMismatch("accumulation_rate", grid.shape, value.shape)
        return value


class FloatingMeltMassBalance(MassBalance):
    """Basal melting (m/yr, positive removes ice) applied to floating ice only."""

    def __init__(self, melt_rate):
        self.melt_rate = float(melt_rate)

    def __repr__(self):
        return f"FloatingMeltMassBalance({self.melt_rate})"

    def rate(self, grid, fields, t):
        floating = ~fields.gh.grounded
        return np.where(floating, -self.melt_rate, 0.0)


class CompositeMassBalance(MassBalance):
    """Sum of several mass-balance terms."""

    def __init__(self, terms):
        self.terms = []
        for term in terms:
            if isinstance(term, CompositeMassBalance):
                self.terms.extend(term.terms)
            else:
                self.terms.append(term)

    def __repr__(self):
        return f"CompositeMassBalance({self.terms!r})"

    def validate(self, grid):
        for term in self.terms:
            term.validate(grid)

    def rate(self, grid, fields, t):
        total = np.zeros(grid.shape)
        for term in self.terms:
            total += term.rate(grid, fields, t)
        return total


def _arity(func):
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return 2
    positional = [p for p in params
                  if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
    if any(p.kind == p.VAR_POSITIONAL for p in params):
        return 3
    return len(positional)


def as_mass_balance(value):
    """
    Resolve an accumulation-rate specification into a MassBalance.

    Accepts a MassBalance (returned as is), a scalar, an (nx, ny) array or
    a callable f(x, y) / f(x, y, t).
    """
    if isinstance(value, MassBalance):
        return value
    if callable(value):
        return FunctionMassBalance(value)
    arr = np.asarray(value, dtype=float)
    if arr.ndim == 0:
        return ConstantMassBalance(float(arr))
    return GriddedMassBalance(arr)
