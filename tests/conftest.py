import pytest

from slide import Grid, InitialConditions, Model, Params


# ----------------------------------------------------------------------
def tutorial_model(solver_params=None):
    """Planar one-dimensional flow: a grounded sheet feeding a floating shelf."""
    grid = Grid(nx=150, ny=2, dx=12000.0, dy=12000.0)
    return Model(
        grid=grid,
        bed_elevation=lambda x, y: 720.0 - 778.5 * x / 750000.0,
        params=Params(accumulation_rate=0.3),
        initial_conditions=InitialConditions(initial_thickness=300.0),
        solver_params=solver_params,
    )


# ----------------------------------------------------------------------
def linear_glacier(solver_params=None, **param_overrides):
    """Small grounded glacier with linear rheology and sliding: one-shot Picard."""
    grid = Grid(nx=20, ny=3, dx=1000.0, dy=1000.0)
    settings = dict(accumulation_rate=0.3, glen_n=1.0, glen_a=1e-7,
                    weertman_m=1.0, weertman_c=1e5)
    settings.update(param_overrides)
    return Model(
        grid=grid,
        bed_elevation=1000.0,
        params=Params(**settings),
        initial_conditions=InitialConditions(initial_thickness=lambda x, y: 500.0 - 0.01 * x),
        solver_params=solver_params,
    )


# ----------------------------------------------------------------------
@pytest.fixture
def grid():
    return Grid(nx=4, ny=3, dx=100.0, dy=50.0)


# ----------------------------------------------------------------------
@pytest.fixture
def glacier():
    return linear_glacier()


# ----------------------------------------------------------------------
@pytest.fixture
def tutorial():
    return tutorial_model()
