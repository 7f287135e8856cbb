import numpy as np
import pytest

from slide import Fields, Grid, Params, UnstableStep
from slide.thickness import (ThicknessEvolution, boundary_outflux, face_fluxes,
                             flux_divergence, max_stable_dt)


# ----------------------------------------------------------------------
@pytest.fixture
def moving_fields(grid):
    rng = np.random.default_rng(42)
    fields = Fields(grid)
    fields.gh.h[...] = 100.0 + 10.0 * rng.random(grid.shape)
    fields.gu.u[...] = rng.uniform(-2.0, 2.0, grid.u_shape)
    fields.gv.v[...] = rng.uniform(-2.0, 2.0, grid.v_shape)
    return fields


# ----------------------------------------------------------------------
def test_UpwindFluxes() -> None:
    grid = Grid(nx=3, ny=1, dx=10.0, dy=10.0)
    h = np.array([[1.0], [2.0], [3.0]])
    u = np.array([[1.0], [1.0], [-1.0], [-1.0]])
    v = np.zeros(grid.v_shape)

    q_u, q_v = face_fluxes(grid, h, u, v)

    # Inflow through the west edge carries no ice
    np.testing.assert_array_equal(q_u[:, 0], [0.0, 1.0, -3.0, -0.0])
    assert not q_v.any()


# ----------------------------------------------------------------------
def test_MassConservation(grid, moving_fields) -> None:
    params = Params(accumulation_rate=0.3)
    evolution = ThicknessEvolution(grid, params)
    dt = 1.0
    volume_before = moving_fields.gh.h.sum() * grid.cell_area

    info = evolution.step(moving_fields, dt)

    volume_after = moving_fields.gh.h.sum() * grid.cell_area
    expected = dt * (0.3 * grid.nx * grid.ny * grid.cell_area - info.outflux)
    assert info.clamped_volume == 0.0
    assert volume_after - volume_before == pytest.approx(expected, rel=1e-9)


# ----------------------------------------------------------------------
def test_DivergenceMatchesOutflux(grid, moving_fields) -> None:
    q_u, q_v = face_fluxes(grid, moving_fields.gh.h, moving_fields.gu.u, moving_fields.gv.v)

    total = flux_divergence(grid, q_u, q_v).sum() * grid.cell_area

    assert total == pytest.approx(boundary_outflux(grid, q_u, q_v), rel=1e-9)


# ----------------------------------------------------------------------
def test_NonNegative(grid, moving_fields) -> None:
    moving_fields.gh.h[...] = 1.0
    params = Params(accumulation_rate=-5.0)

    info = ThicknessEvolution(grid, params).step(moving_fields, 1.0)

    assert (moving_fields.gh.h >= 0.0).all()
    assert not moving_fields.gh.h.any()
    assert info.clamped_volume > 0.0
    np.testing.assert_array_equal(moving_fields.gh.mass_balance, -5.0)


# ----------------------------------------------------------------------
def test_Tendency(grid) -> None:
    fields = Fields(grid)
    fields.gh.h[...] = 10.0

    ThicknessEvolution(grid, Params(accumulation_rate=0.5)).step(fields, 2.0)

    np.testing.assert_array_equal(fields.gh.dhdt, 0.5)
    np.testing.assert_array_equal(fields.gh.h, 11.0)


# ----------------------------------------------------------------------
def test_TimeDependentForcing(grid) -> None:
    fields = Fields(grid)
    params = Params(accumulation_rate=lambda x, y, t: 0.1 * t)

    ThicknessEvolution(grid, params).step(fields, 1.0, t=20.0)

    np.testing.assert_allclose(fields.gh.h, 2.0)


# ----------------------------------------------------------------------
def test_UnstableStep(grid, moving_fields) -> None:
    h_before = moving_fields.gh.h.copy()
    evolution = ThicknessEvolution(grid, Params())
    max_dt = max_stable_dt(grid, moving_fields.gu.u, moving_fields.gv.v)

    with pytest.raises(UnstableStep) as exc_info:
        evolution.step(moving_fields, 2.0 * max_dt)

    assert exc_info.value.max_dt == pytest.approx(max_dt)
    assert exc_info.value.dt == 2.0 * max_dt
    np.testing.assert_array_equal(moving_fields.gh.h, h_before)


# ----------------------------------------------------------------------
def test_StabilityCheckDisabled(grid, moving_fields) -> None:
    evolution = ThicknessEvolution(grid, Params(), check_stability=False)
    max_dt = max_stable_dt(grid, moving_fields.gu.u, moving_fields.gv.v)

    info = evolution.step(moving_fields, 2.0 * max_dt)

    assert info.courant == pytest.approx(2.0)


# ----------------------------------------------------------------------
def test_NonFiniteUpdate(grid, moving_fields) -> None:
    moving_fields.gu.u[2, 1] = np.nan

    with pytest.raises(UnstableStep):
        ThicknessEvolution(grid, Params(), check_stability=False).step(moving_fields, 1.0)


# ----------------------------------------------------------------------
def test_MaxStableDt(grid) -> None:
    u = np.zeros(grid.u_shape)
    v = np.zeros(grid.v_shape)
    assert max_stable_dt(grid, u, v) == np.inf

    u[1, 1] = 10.0
    v[0, 1] = -5.0
    # 1 / (10 / 100 + 5 / 50)
    assert max_stable_dt(grid, u, v) == pytest.approx(5.0)
    assert max_stable_dt(grid, u, v, cfl=0.5) == pytest.approx(2.5)
