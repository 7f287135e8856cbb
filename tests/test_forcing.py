import numpy as np
import pytest

from slide import (ConstantMassBalance, FloatingMeltMassBalance, FunctionMassBalance,
                   GriddedMassBalance, Params, ShapeMismatch)
from slide.fields import Fields
from slide.forcing import CompositeMassBalance, as_mass_balance


# ----------------------------------------------------------------------
def test_Constant(grid) -> None:
    rate = ConstantMassBalance(0.3).rate(grid, Fields(grid), 0.0)

    assert rate.shape == grid.shape
    np.testing.assert_array_equal(rate, 0.3)


# ----------------------------------------------------------------------
def test_Gridded(grid) -> None:
    values = np.arange(12, dtype=float).reshape(grid.shape)
    forcing = GriddedMassBalance(values)

    rate = forcing.rate(grid, Fields(grid), 0.0)
    np.testing.assert_array_equal(rate, values)

    rate[0, 0] = 100.0
    assert forcing.values[0, 0] == 0.0


# ----------------------------------------------------------------------
def test_GriddedShapeMismatch(grid) -> None:
    with pytest.raises(ShapeMismatch):
        GriddedMassBalance(np.zeros((2, 2))).validate(grid)


# ----------------------------------------------------------------------
def test_FunctionOfPosition(grid) -> None:
    forcing = FunctionMassBalance(lambda x, y: 1e-3 * x)

    assert not forcing.time_dependent
    np.testing.assert_allclose(forcing.rate(grid, Fields(grid), 5.0), 1e-3 * grid.xxh)


# ----------------------------------------------------------------------
def test_FunctionOfTime(grid) -> None:
    forcing = FunctionMassBalance(lambda x, y, t: 0.1 * t)

    assert forcing.time_dependent
    np.testing.assert_allclose(forcing.rate(grid, Fields(grid), 2.0), 0.2)
    assert forcing.rate(grid, Fields(grid), 2.0).shape == grid.shape


# ----------------------------------------------------------------------
def test_FloatingMelt(grid) -> None:
    fields = Fields(grid)
    fields.gh.grounded[:2, :] = True

    rate = FloatingMeltMassBalance(2.0).rate(grid, fields, 0.0)

    np.testing.assert_array_equal(rate[:2], 0.0)
    np.testing.assert_array_equal(rate[2:], -2.0)


# ----------------------------------------------------------------------
def test_Composite(grid) -> None:
    forcing = ConstantMassBalance(1.0) + ConstantMassBalance(0.5) + FloatingMeltMassBalance(0.25)

    assert isinstance(forcing, CompositeMassBalance)
    assert len(forcing.terms) == 3
    np.testing.assert_array_equal(forcing.rate(grid, Fields(grid), 0.0), 1.25)


# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "value, expected_type",
    [
        (0.3, ConstantMassBalance),
        (np.zeros((4, 3)), GriddedMassBalance),
        (lambda x, y: x, FunctionMassBalance),
    ],
)
def test_AsMassBalance(value, expected_type) -> None:
    assert isinstance(as_mass_balance(value), expected_type)

    forcing = ConstantMassBalance(1.0)
    assert as_mass_balance(forcing) is forcing


# ----------------------------------------------------------------------
def test_ParamsBuildsForcing(grid) -> None:
    params = Params(accumulation_rate=0.3, basal_melt_rate=1.0)
    fields = Fields(grid)
    fields.gh.grounded[0, :] = True

    rate = params.mass_balance.rate(grid, fields, 0.0)

    np.testing.assert_allclose(rate[0], 0.3)
    np.testing.assert_allclose(rate[1:], -0.7)
