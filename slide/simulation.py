"""
Time-stepping controller.

A Simulation advances a Model from start_time to end_time: each step
evolves the thickness, re-diagnoses the velocity and, when due, hands a
copy of the requested fields to the output writer.
"""

import dataclasses
import enum
import logging
import math
from pathlib import Path

import numpy as np

from .errors import InvalidState, IOFailure, NonConvergence, ShapeMismatch, UnstableStep
from .io import RESTART_GROUP, SnapshotWriter, load_snapshot, snapshot_filename
from .params import OutputParams
from .thickness import ThicknessEvolution

logger = logging.getLogger(__name__)


class SimulationStatus(enum.Enum):
    INITIALIZED = "initialized"
    STEPPING = "stepping"
    COMPLETED = "completed"
    FAILED = "failed"


class Simulation:
    """
    Run a model forward in time.

    Parameters
    ----------
    model : Model
        Model to advance (mutated in place)
    timestepping_params : TimesteppingParams
        Time step, end time and stability controls
    output_params : OutputParams, optional
        Output selection and schedule (no output when omitted)

    Attributes
    ----------
    t : float
        Model time (years)
    step : int
        Step counter, starting at timestepping_params.n_iter0
    last_output_time : float
        Time of the last output event (start_time before the first)
    status : SimulationStatus
    error : Exception or None
        The error that failed the run
    output_files : list of Path
        Files written successfully
    missed_outputs : list of Path
        Files that could not be written under on_error="warn"

    Examples
    --------
    >>> simulation = Simulation(model, TimesteppingParams(dt=0.5, end_time=100.0),
    ...                         OutputParams(outputs={"h": "h"}, output_freq=10.0,
    ...                                      output_path="results"))
    >>> simulation = run_simulation(simulation)
    >>> simulation.step, len(simulation.output_files)
    (200, 10)
    """

    def __init__(self, model, timestepping_params, output_params=None):
        self.model = model
        self.timestepping_params = timestepping_params
        self.output_params = output_params if output_params is not None else OutputParams()
        self.outputs = self._resolve_outputs(self.output_params.outputs)

        tp = timestepping_params
        self.thickness_evolution = ThicknessEvolution(
            model.grid, model.params, cfl=tp.cfl, check_stability=tp.check_stability)

        self.t = tp.start_time
        self.step = tp.n_iter0
        self.last_output_time = tp.start_time
        self.status = SimulationStatus.INITIALIZED
        self.error = None
        self.output_files = []
        self.missed_outputs = []
        self.last_step_info = None
        self.writer = None

    def __repr__(self):
        return (f"Simulation(t={self.t:g}, step={self.step}, "
                f"status={self.status.value})")

    def _resolve_outputs(self, outputs):
        """Map output names to Field Store keys."""
        fields = self.model.fields
        grid = self.model.grid
        resolved = {}
        for name, target in outputs.items():
            if not name or "/" in name or name == RESTART_GROUP:
                raise ValueError(f"invalid output name '{name}': must be non-empty, "
                                 f"contain no '/' and differ from '{RESTART_GROUP}'")
            if isinstance(target, str):
                fields.lookup(target)
                resolved[name] = target
                continue

            key = fields.path_of(target)
            if key is None:
                shape = np.shape(target)
                if shape not in (grid.shape, grid.u_shape, grid.v_shape):
                    raise ShapeMismatch(name, grid.shape, shape)
                raise ShapeMismatch(
                    name, grid.shape, shape,
                    message=f"output '{name}' is not an array of this model's field store",
                )
            resolved[name] = key
        return resolved

    # =========================================================================
    # Clock
    # =========================================================================

    @property
    def n_steps(self):
        """Number of steps from start_time to end_time."""
        tp = self.timestepping_params
        span = (tp.end_time - tp.start_time) / tp.dt
        return max(int(math.ceil(span - 1e-9)), 0)

    def time_at(self, k):
        """Clock after k steps; the last step lands exactly on end_time."""
        tp = self.timestepping_params
        if k >= self.n_steps:
            return tp.end_time
        return tp.start_time + k * tp.dt

    @property
    def done(self):
        return self.step - self.timestepping_params.n_iter0 >= self.n_steps

    @property
    def degraded(self):
        return bool(self.missed_outputs)

    # =========================================================================
    # Stepping
    # =========================================================================

    def run(self):
        """
        Step until end_time.

        Raises
        ------
        NonConvergence, UnstableStep
            The Field Store is restored to the last diagnosed state and the
            simulation is marked FAILED
        IOFailure
            Under on_error="raise"
        """
        if self.status is SimulationStatus.COMPLETED:
            return self
        if self.status is SimulationStatus.FAILED:
            raise InvalidState(
                "cannot resume a failed simulation; build a new one or restart from output"
            )
        if self.status is SimulationStatus.INITIALIZED:
            self._start()

        while not self.done:
            self.timestep()

        self._finish()
        return self

    def timestep(self):
        """
        Advance the model by one step.

        Returns
        -------
        StepInfo
        """
        if self.status is SimulationStatus.INITIALIZED:
            self._start()
        elif self.status is not SimulationStatus.STEPPING:
            raise InvalidState(f"cannot step a simulation that is {self.status.value}")
        if self.done:
            raise InvalidState(f"simulation already reached end_time = {self.t}")

        model = self.model
        t_new = self.time_at(self.step - self.timestepping_params.n_iter0 + 1)
        dt = t_new - self.t

        saved = model.fields.snapshot()
        try:
            info = self.thickness_evolution.step(model.fields, dt, self.t)
            model.velocity_is_current = False
            model.update_state()
        except (NonConvergence, UnstableStep, InvalidState) as exc:
            model.fields.restore(saved)
            model.velocity_is_current = True
            self._fail(exc)
            raise

        self.t = t_new
        self.step += 1
        self.last_step_info = info
        logger.debug(f"Step {self.step}: t = {self.t:g}, dt = {dt:g}, "
                     f"Courant = {info.courant:.3f}")

        if self._output_due():
            self.write_output()
        if self.writer is not None:
            self._handle_writes(self.writer.collect())
        return info

    def _start(self):
        self.status = SimulationStatus.STEPPING
        if not self.model.velocity_is_current:
            try:
                self.model.update_state()
            except (NonConvergence, InvalidState) as exc:
                self._fail(exc)
                raise

        if self.output_params.enabled:
            op = self.output_params
            try:
                self.writer = SnapshotWriter(op.output_path, op.prefix, self.model.grid,
                                             asynchronous=op.asynchronous)
            except IOFailure as exc:
                if op.on_error == "raise":
                    self._fail(exc)
                    raise
                logger.warning(f"Output disabled: {exc}")

        logger.info(f"Starting simulation at t = {self.t:g} (step {self.step}), "
                    f"{self.n_steps - (self.step - self.timestepping_params.n_iter0)} "
                    f"steps to t = {self.timestepping_params.end_time:g}")

    def _finish(self):
        if self.writer is not None:
            self._handle_writes(self.writer.collect(wait=True))
            self.writer.close()
        self.status = SimulationStatus.COMPLETED
        model = self.model
        logger.info(f"Simulation completed at t = {self.t:g} (step {self.step}): "
                    f"volume {model.volume():.4g} m^3, "
                    f"grounded area {model.grounded_area():.4g} m^2"
                    + (f", {len(self.missed_outputs)} outputs missed" if self.degraded else ""))

    def _fail(self, exc):
        self.status = SimulationStatus.FAILED
        self.error = exc
        logger.error(f"Simulation failed at t = {self.t:g} (step {self.step}): {exc}")
        if self.writer is not None:
            for path, write_error in self.writer.collect(wait=True):
                if write_error is None:
                    self.output_files.append(path)
                else:
                    self.missed_outputs.append(path)
            self.writer.close()

    # =========================================================================
    # Output
    # =========================================================================

    def _output_due(self):
        op = self.output_params
        if not op.enabled:
            return False
        tolerance = 1e-9 * self.timestepping_params.dt
        return self.t - self.last_output_time >= op.output_freq - tolerance

    def write_output(self):
        """Hand a copy of the selected fields to the writer."""
        fields = self.model.fields
        self.last_output_time = self.t

        if self.writer is None:
            op = self.output_params
            path = Path(op.output_path) / snapshot_filename(op.prefix, self.step)
            logger.warning(f"Missed output at t = {self.t:g}: {path}")
            self.missed_outputs.append(path)
            return

        data = {name: np.array(fields.lookup(key), dtype=np.float64)
                for name, key in self.outputs.items()}
        restart = None
        if self.output_params.include_restart:
            restart = {"h": fields.gh.h.copy(), "u": fields.gu.u.copy(),
                       "v": fields.gv.v.copy()}
        path = self.writer.write(self.step, self.t, data, restart)
        logger.info(f"Output at t = {self.t:g} (step {self.step}): {path}")

    def _handle_writes(self, results):
        failures = []
        for path, exc in results:
            if exc is None:
                self.output_files.append(path)
            else:
                failures.append((path, exc))

        if failures and self.output_params.on_error == "raise":
            exc = failures[0][1]
            self._fail(exc)
            raise exc
        for path, exc in failures:
            logger.warning(f"Missed output {path}: {exc}")
            self.missed_outputs.append(path)

    # =========================================================================
    # Restart
    # =========================================================================

    @classmethod
    def restart(cls, path, model, timestepping_params, output_params=None):
        """
        Resume from an output file holding a restart group.

        The stored thickness and velocity are installed in model, geometry
        and coefficients are refreshed without a new solve, and the clock
        continues from the stored time and step.

        Parameters
        ----------
        path : str or Path
            Output file written with include_restart=True
        model : Model
            Model on the same grid as the run that wrote the file
        timestepping_params : TimesteppingParams
            dt and end_time of the continued run; start_time and n_iter0
            are taken from the file
        output_params : OutputParams, optional

        Returns
        -------
        Simulation
        """
        snapshot = load_snapshot(path)
        if snapshot.restart is None:
            raise IOFailure(f"{path} has no restart data", path=path)

        grid = model.grid
        fields = model.fields
        restart = snapshot.restart
        for name, shape in (("h", grid.shape), ("u", grid.u_shape), ("v", grid.v_shape)):
            if name not in restart:
                raise IOFailure(f"restart data in {path} lacks '{name}'", path=path)
            if restart[name].shape != shape:
                raise ShapeMismatch(f"restart {name}", shape, restart[name].shape)

        model.set_thickness(restart["h"])
        fields.gu.u[...] = restart["u"]
        fields.gv.v[...] = restart["v"]
        model.refresh_diagnostics()

        tp = dataclasses.replace(timestepping_params, start_time=snapshot.t,
                                 n_iter0=snapshot.step)
        logger.info(f"Restarting from {path} at t = {snapshot.t:g} (step {snapshot.step})")
        return cls(model, tp, output_params)


def run_simulation(simulation):
    """Run a simulation to its end time (see Simulation.run)."""
    simulation.run()
    return simulation
