import dataclasses
import math

import pytest

from slide import (GlenFlowLaw, OutputParams, Params, SolverParams, TimesteppingParams,
                   WeertmanFriction)


# ----------------------------------------------------------------------
def test_Defaults() -> None:
    params = Params()

    assert params.density_ice == 918.0
    assert params.density_ocean == 1028.0
    assert params.gravity == 9.81
    assert params.sea_level == 0.0
    assert params.density_ratio == pytest.approx(918.0 / 1028.0)

    assert params.rheology is None
    assert isinstance(params.flow_law, GlenFlowLaw)
    assert params.flow_law.A == params.glen_a
    assert isinstance(params.sliding_law, WeertmanFriction)
    assert params.sliding_law.C == params.weertman_c


# ----------------------------------------------------------------------
def test_Immutable() -> None:
    params = Params()

    with pytest.raises(dataclasses.FrozenInstanceError):
        params.sea_level = 10.0

    variant = dataclasses.replace(params, sea_level=10.0, glen_a=2e-18)
    assert variant.sea_level == 10.0
    assert variant.flow_law.A == 2e-18


# ----------------------------------------------------------------------
def test_CustomStrategies() -> None:
    rheology = GlenFlowLaw(A=1e-17, n=4.0)
    friction = WeertmanFriction(C=1e3, m=1.0)

    params = Params(rheology=rheology, friction=friction)

    assert params.flow_law is rheology
    assert params.sliding_law is friction


# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "kwargs",
    [
        dict(gravity=0.0),
        dict(density_ice=-1.0),
        dict(density_ice=1100.0),
        dict(default_thickness=-1.0),
    ],
)
def test_InvalidParams(kwargs) -> None:
    with pytest.raises(ValueError):
        Params(**kwargs)


# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "kwargs",
    [
        dict(tol=0.0),
        dict(max_iter=0),
        dict(relaxation=1.5),
        dict(linear_solver="gmres"),
    ],
)
def test_InvalidSolverParams(kwargs) -> None:
    with pytest.raises(ValueError):
        SolverParams(**kwargs)


# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "kwargs",
    [
        dict(dt=0.0, end_time=1.0),
        dict(dt=float("inf"), end_time=1.0),
        dict(dt=1.0, end_time=-1.0),
        dict(dt=1.0, end_time=1.0, n_iter0=-1),
        dict(dt=1.0, end_time=1.0, cfl=0.0),
    ],
)
def test_InvalidTimesteppingParams(kwargs) -> None:
    with pytest.raises(ValueError):
        TimesteppingParams(**kwargs)


# ----------------------------------------------------------------------
def test_OutputParams() -> None:
    assert not OutputParams().enabled
    assert math.isinf(OutputParams().output_freq)
    assert not OutputParams(outputs={"h": "h"}).enabled
    assert OutputParams(outputs={"h": "h"}, output_freq=10.0).enabled

    with pytest.raises(ValueError):
        OutputParams(output_freq=0.0)

    with pytest.raises(ValueError):
        OutputParams(on_error="ignore")
