"""
Input/output utilities for SLIDE.

One HDF5 file is written per output event. Each file holds the model time
and step as attributes, one dataset per requested field, and (optionally)
a ``restart`` group with the state needed to resume the run.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import h5py
import numpy as np
import xarray as xr

from .errors import IOFailure

logger = logging.getLogger(__name__)

RESTART_GROUP = "restart"


@dataclass
class Snapshot:
    """Contents of one output file."""

    t: float
    step: int
    fields: dict
    restart: dict = None
    attrs: dict = field(default_factory=dict)


def snapshot_filename(prefix, step):
    return f"{prefix}{step:010d}.h5"


def _write_snapshot(path, step, time_value, data, restart, grid_attrs, compression):
    """Write one snapshot; never overwrites an existing file."""
    path = Path(path)
    if path.exists():
        raise IOFailure(f"refusing to overwrite existing output file {path}", path=path)
    created = False
    try:
        with h5py.File(path, "x") as f:
            created = True
            f.attrs["t"] = float(time_value)
            f.attrs["step"] = int(step)
            for key, value in grid_attrs.items():
                f.attrs[key] = value

            for name, value in data.items():
                arr = np.asarray(value)
                f.create_dataset(name, data=arr,
                                 compression=compression if arr.ndim else None)

            if restart is not None:
                grp = f.create_group(RESTART_GROUP)
                for name, value in restart.items():
                    arr = np.asarray(value)
                    grp.create_dataset(name, data=arr,
                                       compression=compression if arr.ndim else None)
    except (OSError, ValueError) as exc:
        # Drop the partial file
        if created:
            path.unlink(missing_ok=True)
        raise IOFailure(f"could not write output file {path}: {exc}", path=path) from exc
    return path


class SnapshotWriter:
    """
    Write one HDF5 file per output event.

    Parameters
    ----------
    output_path : str or Path
        Output directory, created if missing
    prefix : str
        File name prefix (default "outfile")
    grid : Grid, optional
        Grid whose geometry is stored as file attributes
    compression : str
        Compression filter ('lzf', 'gzip', or None)
    asynchronous : bool
        Write on a single background thread so that output does not stall
        the caller. Callers must pass data they will not mutate afterwards.

    Examples
    --------
    >>> with SnapshotWriter("results", grid=grid) as writer:
    ...     writer.write(20, 10.0, {"h": h.copy()})
    ...     errors = [err for _, err in writer.collect(wait=True) if err]
    """

    def __init__(self, output_path, prefix="outfile", grid=None,
                 compression="lzf", asynchronous=True):
        self.output_path = Path(output_path)
        try:
            self.output_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailure(f"cannot create output directory {self.output_path}: {exc}",
                            path=self.output_path) from exc

        self.prefix = prefix
        self.compression = compression
        self.asynchronous = asynchronous
        self.grid_attrs = {}
        if grid is not None:
            self.grid_attrs = {"nx": grid.nx, "ny": grid.ny, "dx": grid.dx,
                               "dy": grid.dy, "x0": grid.x0, "y0": grid.y0}

        self._executor = ThreadPoolExecutor(max_workers=1) if asynchronous else None
        self._pending = []
        self._finished = []

    def filename(self, step):
        return self.output_path / snapshot_filename(self.prefix, step)

    def write(self, step, time_value, data, restart=None):
        """
        Queue (or perform) the write of one snapshot.

        Returns the path of the file. Failures are reported by collect().
        """
        path = self.filename(step)
        args = (path, step, time_value, data, restart, self.grid_attrs, self.compression)
        if self._executor is not None:
            self._pending.append((path, self._executor.submit(_write_snapshot, *args)))
        else:
            try:
                _write_snapshot(*args)
                self._finished.append((path, None))
            except IOFailure as exc:
                self._finished.append((path, exc))
        return path

    def collect(self, wait=False):
        """
        Return (path, error) for every write that has finished since the
        last call; error is None for successful writes.

        Parameters
        ----------
        wait : bool
            Block until all queued writes are done
        """
        finished, self._finished = self._finished, []
        still_pending = []
        for path, future in self._pending:
            if wait or future.done():
                exc = future.exception()
                if exc is not None and not isinstance(exc, IOFailure):
                    exc = IOFailure(f"could not write output file {path}: {exc}", path=path)
                finished.append((path, exc))
            else:
                still_pending.append((path, future))
        self._pending = still_pending
        return finished

    def flush(self):
        """
        Wait for all queued writes.

        Returns
        -------
        list of Path
            Files written since the last collect

        Raises
        ------
        IOFailure
            The first failed write, if any
        """
        written = []
        for path, exc in self.collect(wait=True):
            if exc is not None:
                raise exc
            written.append(path)
        return written

    def close(self):
        """Wait for queued writes and stop the worker thread."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def load_snapshot(path):
    """
    Load one output file.

    Returns
    -------
    Snapshot
        Time, step, field arrays exactly as written, and the restart group
        (None if the file has none)
    """
    path = Path(path)
    if not path.is_file():
        raise IOFailure(f"output file {path} does not exist", path=path)
    try:
        with h5py.File(path, "r") as f:
            attrs = {key: f.attrs[key] for key in f.attrs}
            fields = {name: f[name][()] for name in f
                      if isinstance(f[name], h5py.Dataset)}
            restart = None
            if RESTART_GROUP in f:
                restart = {name: f[RESTART_GROUP][name][()] for name in f[RESTART_GROUP]}
    except OSError as exc:
        raise IOFailure(f"could not read output file {path}: {exc}", path=path) from exc

    return Snapshot(t=float(attrs.pop("t")), step=int(attrs.pop("step")),
                    fields=fields, restart=restart, attrs=attrs)


def list_snapshots(folder, prefix="outfile"):
    """Output files in folder, ordered by step."""
    return sorted(Path(folder).glob(f"{prefix}*.h5"))


def collate_snapshots(folder, prefix="outfile", nc_path=None):
    """
    Combine a series of output files into one xarray Dataset.

    Cell-centered fields get dims (time, x, y); fields on u-faces
    (time, xu, y) and on v-faces (time, x, yv). Optionally write the result
    to a single NetCDF file.

    Parameters
    ----------
    folder : str or Path
        Directory holding the output files
    prefix : str
        File name prefix
    nc_path : str or Path, optional
        NetCDF file to write

    Returns
    -------
    xarray.Dataset
    """
    files = list_snapshots(folder, prefix)
    if not files:
        raise IOFailure(f"no output files matching '{prefix}*.h5' in {folder}", path=folder)

    snapshots = [load_snapshot(p) for p in files]
    attrs = snapshots[0].attrs
    nx, ny = int(attrs["nx"]), int(attrs["ny"])
    dx, dy = float(attrs["dx"]), float(attrs["dy"])
    x0, y0 = float(attrs.get("x0", 0.0)), float(attrs.get("y0", 0.0))

    dims_by_shape = {
        (nx, ny): ("x", "y"),
        (nx + 1, ny): ("xu", "y"),
        (nx, ny + 1): ("x", "yv"),
    }

    data_vars = {}
    for name in snapshots[0].fields:
        stacked = np.stack([snap.fields[name] for snap in snapshots])
        dims = dims_by_shape.get(stacked.shape[1:])
        if dims is None:
            logger.warning(f"Skipping '{name}' with unrecognized shape {stacked.shape[1:]}")
            continue
        data_vars[name] = (("time",) + dims, stacked)

    ds = xr.Dataset(
        data_vars,
        coords={
            "time": [snap.t for snap in snapshots],
            "step": ("time", [snap.step for snap in snapshots]),
            "x": x0 + (np.arange(nx) + 0.5) * dx,
            "y": y0 + (np.arange(ny) + 0.5) * dy,
            "xu": x0 + np.arange(nx + 1) * dx,
            "yv": y0 + np.arange(ny + 1) * dy,
        },
        attrs={"dx": dx, "dy": dy},
    )

    if nc_path is not None:
        ds.to_netcdf(nc_path)
    return ds
