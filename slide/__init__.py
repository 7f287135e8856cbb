"""
SLIDE: Shallow-shelf Lightweight Ice Dynamics Engine

A finite-volume ice sheet model implementing the shallow shelf approximation
(SSA) on a staggered grid, with explicit thickness evolution, a time-stepping
controller and HDF5 snapshot output.
"""

import logging

from .errors import (InvalidState, IOFailure, NonConvergence, ShapeMismatch,
                     SlideError, UnstableStep)
from .fields import Fields
from .forcing import (ConstantMassBalance, FloatingMeltMassBalance, FunctionMassBalance,
                      GriddedMassBalance, MassBalance)
from .grid import Grid
from .io import SnapshotWriter, collate_snapshots, list_snapshots, load_snapshot
from .logging_config import setup_logging
from .model import Model, update_state
from .params import InitialConditions, OutputParams, Params, SolverParams, TimesteppingParams
from .physics import GlenFlowLaw, WeertmanFriction
from .simulation import Simulation, SimulationStatus, run_simulation

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
__all__ = [
    "Grid", "Fields", "Model", "update_state",
    "Params", "SolverParams", "TimesteppingParams", "OutputParams", "InitialConditions",
    "GlenFlowLaw", "WeertmanFriction",
    "MassBalance", "ConstantMassBalance", "GriddedMassBalance", "FunctionMassBalance",
    "FloatingMeltMassBalance",
    "Simulation", "SimulationStatus", "run_simulation",
    "SnapshotWriter", "load_snapshot", "list_snapshots", "collate_snapshots",
    "setup_logging",
    "SlideError", "ShapeMismatch", "InvalidState", "NonConvergence", "UnstableStep",
    "IOFailure",
]
