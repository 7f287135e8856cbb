import re

import numpy as np
import pytest

from slide import (Grid, InitialConditions, InvalidState, Model, Params, ShapeMismatch,
                   update_state)


# ----------------------------------------------------------------------
def test_BedFromFunctionOrArray(grid) -> None:
    bed = lambda x, y: 100.0 - 1e-3 * x + 1e-2 * y  # noqa: E731

    from_function = Model(grid, bed_elevation=bed)
    from_array = Model(grid, bed_elevation=bed(grid.xxh, grid.yyh))

    np.testing.assert_array_equal(from_function.fields.gh.b, from_array.fields.gh.b)
    np.testing.assert_array_equal(from_function.fields.gh.s, from_array.fields.gh.s)


# ----------------------------------------------------------------------
def test_DefaultThickness(grid) -> None:
    model = Model(grid, bed_elevation=0.0, params=Params(default_thickness=250.0))

    np.testing.assert_array_equal(model.fields.gh.h, 250.0)
    assert model.volume() == pytest.approx(250.0 * 12 * grid.cell_area)
    assert not model.velocity_is_current


# ----------------------------------------------------------------------
def test_GeometryOnConstruction(grid) -> None:
    model = Model(grid, bed_elevation=-1000.0,
                  initial_conditions=InitialConditions(initial_thickness=300.0))
    gh = model.fields.gh

    assert not gh.grounded.any()
    assert gh.ice.all()
    np.testing.assert_allclose(gh.s, 300.0 * (1.0 - model.params.density_ratio))
    assert model.grounded_area() == 0.0
    assert model.volume_above_flotation() == 0.0


# ----------------------------------------------------------------------
def test_BedShapeMismatch(grid) -> None:
    with pytest.raises(
        ShapeMismatch,
        match=re.escape("'bed_elevation' has shape (3, 4), expected (4, 3)"),
    ):
        Model(grid, bed_elevation=np.zeros((3, 4)))


# ----------------------------------------------------------------------
def test_ThicknessShapeMismatch(grid) -> None:
    with pytest.raises(ShapeMismatch):
        Model(grid, bed_elevation=0.0,
              initial_conditions=InitialConditions(initial_thickness=np.ones((5, 3))))


# ----------------------------------------------------------------------
def test_VelocityShapeMismatch(grid) -> None:
    with pytest.raises(
        ShapeMismatch,
        match=re.escape("'initial_u_veloc' has shape (4, 3), expected (5, 3)"),
    ):
        Model(grid, bed_elevation=0.0,
              initial_conditions=InitialConditions(initial_u_veloc=np.zeros((4, 3))))


# ----------------------------------------------------------------------
def test_AccumulationShapeMismatch(grid) -> None:
    with pytest.raises(ShapeMismatch):
        Model(grid, bed_elevation=0.0, params=Params(accumulation_rate=np.zeros((2, 2))))


# ----------------------------------------------------------------------
def test_NegativeInitialThickness(grid) -> None:
    h = np.full(grid.shape, 100.0)
    h[1, 1] = -1.0

    with pytest.raises(InvalidState, match=re.escape("thickness must be >= 0")):
        Model(grid, bed_elevation=0.0, initial_conditions=InitialConditions(initial_thickness=h))


# ----------------------------------------------------------------------
def test_NonFiniteBed(grid) -> None:
    bed = np.zeros(grid.shape)
    bed[0, 0] = np.inf

    with pytest.raises(InvalidState):
        Model(grid, bed_elevation=bed)


# ----------------------------------------------------------------------
def test_SetThicknessMarksVelocityStale(glacier) -> None:
    update_state(glacier)
    assert glacier.velocity_is_current

    h_array = glacier.fields.gh.h
    glacier.set_thickness(glacier.fields.gh.h * 0.5)

    assert glacier.fields.gh.h is h_array
    assert not glacier.velocity_is_current


# ----------------------------------------------------------------------
def test_RefreshDiagnostics(glacier) -> None:
    update_state(glacier)
    solved = glacier.fields.snapshot()
    derived = ("gh.s", "gh.eta", "gh.beta", "gh.speed", "gu.beta", "gu.taud", "gv.taud")

    for key in derived:
        glacier.fields.lookup(key)[...] = 0.0
    glacier.velocity_is_current = False

    glacier.refresh_diagnostics()

    assert glacier.velocity_is_current
    for key in derived:
        np.testing.assert_array_equal(glacier.fields.lookup(key), solved[key])


# ----------------------------------------------------------------------
def test_WarmStart(grid) -> None:
    u0 = np.full(grid.u_shape, 2.0)
    model = Model(grid, bed_elevation=0.0,
                  initial_conditions=InitialConditions(initial_u_veloc=u0))

    np.testing.assert_array_equal(model.fields.gu.u, 2.0)
    assert not model.fields.gv.v.any()


# ----------------------------------------------------------------------
def test_Repr() -> None:
    model = Model(Grid(nx=2, ny=1, dx=10.0, dy=10.0), bed_elevation=0.0)

    assert repr(model).startswith("Model(grid=Grid(nx=2, ny=1")
